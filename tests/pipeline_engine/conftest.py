"""Shared fixtures and reusable dummy operations for pipeline engine tests.

Every operation here is a small generic function over a dict state — no
domain knowledge, just enough to exercise the engine.
"""

from __future__ import annotations

import asyncio

import pytest

from statepipe import Pipeline

# ---------------------------------------------------------------------------
# Reusable dummy operations
# ---------------------------------------------------------------------------


def one(state, env):
    return 1


def two(state, env):
    return 2


async def async_one(state, env):
    await asyncio.sleep(0)  # yield to event loop
    return 1


def increment(value, state, env):
    return value + 1


def boom(*args):
    raise RuntimeError("boom")


async def async_boom(*args):
    await asyncio.sleep(0)
    raise RuntimeError("boom")


def rethrow(error, state, env):
    raise error


def mark_recovered(error, state, env):
    return {**state, "recovered": True}


class Recorder:
    """Records the state every call receives via call_log."""

    def __init__(self, result=None):
        self.call_log: list[dict] = []
        self.result = result

    def __call__(self, state, env):
        self.call_log.append(dict(state))
        return self.result


# ---------------------------------------------------------------------------
# Pytest fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def pipe():
    return Pipeline()


@pytest.fixture
def bubbling():
    return Pipeline.bubbling()


@pytest.fixture
def recorder():
    return Recorder()
