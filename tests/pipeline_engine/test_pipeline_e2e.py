"""End-to-end tests for nested (chained) pipelines.

These tests exercise realistic multi-pipeline scenarios: a parent pipeline
delegating to children, with failures either absorbed at the leaf or
bubbled up to whichever pipeline queued the child.
"""

from __future__ import annotations

import asyncio
import logging

import pytest

from statepipe import Pipeline, PipelineError, RecoveryPolicy, StateShapeError
from tests.pipeline_engine.conftest import boom, mark_recovered, one, rethrow

# ---------------------------------------------------------------------------
# Chain success paths
# ---------------------------------------------------------------------------


@pytest.mark.integration
class TestChainSuccess:
    def test_parent_continues_after_chain(self):
        child = Pipeline().augment("c", one)
        out = (
            Pipeline()
            .augment("p", one)
            .chain(child)
            .augment("q", lambda s, env: s["p"] + s["c"])
            .run({})
        )
        assert out == {"p": 1, "c": 1, "q": 2}

    def test_chain_uses_child_env(self):
        child = Pipeline.bubbling({"inc": lambda n: n + 10}).apply_to(
            lambda s, env: {"child": env["inc"](0)}
        )
        parent = Pipeline({"inc": lambda n: n + 1}).chain(child)
        assert parent.run({}) == {"child": 10}

    def test_deeply_nested_chain(self):
        leaf = Pipeline().augment("leaf", one)
        middle = Pipeline().chain(leaf).transform("leaf", lambda v, s, env: v + 1)
        root = Pipeline().chain(middle).augment("root", lambda s, env: s["leaf"] * 10)
        assert root.run({}) == {"leaf": 2, "root": 20}

    def test_same_child_chained_twice(self):
        child = Pipeline().transform("n", lambda v, s, env: v * 2)
        assert Pipeline().chain(child).chain(child).run({"n": 3}) == {"n": 12}

    def test_child_finishes_before_parent_next_record(self):
        order: list[str] = []

        async def slow_child(s, env):
            await asyncio.sleep(0.01)
            order.append("child")

        child = Pipeline().noop(slow_child)
        Pipeline().chain(child).noop(lambda s, env: order.append("parent")).run({})
        assert order == ["child", "parent"]


# ---------------------------------------------------------------------------
# Chain failure paths
# ---------------------------------------------------------------------------


@pytest.mark.integration
class TestChainFailures:
    def test_swallowing_child_keeps_partial_state(self):
        child = Pipeline().augment("fromChild", one).apply_to(boom)
        out = Pipeline().chain(child).augment("after", one).run({})
        # Child absorbed its own failure, so the parent carries on.
        assert out == {"fromChild": 1, "after": 1}

    def test_bubbling_child_recovered_by_parent(self):
        child = Pipeline.bubbling().augment("fromChild", one).apply_to(boom)
        parent = (
            Pipeline()
            .chain(child)
            .augment("after", one)
            .on_error(lambda e, s, env: {**s, "parentRecovered": True})
        )
        # Parent state at failure is its pre-chain state; child fields are lost.
        assert parent.run({"seed": 0}) == {"seed": 0, "parentRecovered": True}

    def test_bubbling_child_with_rethrowing_parent_rejects(self):
        child = Pipeline.bubbling().augment("x", one).apply_to(boom)
        parent = Pipeline().chain(child).on_error(rethrow)
        with pytest.raises(PipelineError, match="boom") as exc_info:
            parent.run({})
        assert exc_info.value.op == "APPLY_TO"
        assert isinstance(exc_info.value.cause, RuntimeError)

    def test_bubbling_through_two_levels(self):
        leaf = Pipeline.bubbling().transform("missing", lambda v, s, env: v)
        middle = Pipeline.bubbling().chain(leaf)
        root = Pipeline(on_error=RecoveryPolicy.BUBBLE).chain(middle)
        with pytest.raises(PipelineError, match="missing") as exc_info:
            root.run({})
        assert exc_info.value.id == "missing"

    def test_parent_sees_child_error_unwrapped(self):
        seen = []
        child = Pipeline.bubbling().augment("a", one).augment("a", one)
        Pipeline().chain(child).on_error(lambda e, s, env: seen.append(e)).run({})
        assert seen[0].op == "AUGMENT"
        assert seen[0].id == "a"

    def test_chain_returning_non_dict_is_rejected(self):
        class BadChild(Pipeline):
            async def run_async(self, state):
                return 123

        with pytest.raises(PipelineError, match="chain must return a dict") as exc_info:
            Pipeline.bubbling().chain(BadChild()).run({})
        assert exc_info.value.op == "CHAIN"
        assert isinstance(exc_info.value.cause, StateShapeError)

    def test_child_shape_error_on_handler_result_escapes_parent(self):
        child = Pipeline().apply_to(boom).on_error(lambda e, s, env: "nope")
        parent = Pipeline().chain(child).on_error(rethrow)
        with pytest.raises(PipelineError) as exc_info:
            parent.run({})
        assert isinstance(exc_info.value.cause, StateShapeError)


# ---------------------------------------------------------------------------
# Realistic pipeline
# ---------------------------------------------------------------------------


@pytest.mark.integration
class TestRealisticPipeline:
    def _env(self):
        users = {7: {"name": " Ada ", "roles": ["admin"]}}

        async def fetch_user(user_id):
            await asyncio.sleep(0)
            if user_id not in users:
                raise KeyError(user_id)
            return dict(users[user_id])

        return {"fetch_user": fetch_user}

    def _pipeline(self, audit: list) -> Pipeline:
        enrich = (
            Pipeline.bubbling()
            .augment("is_admin", lambda s, env: "admin" in s["user"]["roles"])
            .noop(lambda s, env: audit.append(s["user"]["name"]))
        )
        return (
            Pipeline(self._env())
            .augment("user", lambda s, env: env["fetch_user"](s["user_id"]))
            .transform("user", lambda u, s, env: {**u, "name": u["name"].strip()})
            .log(lambda s, env: f"loaded {s['user']['name']}")
            .chain(enrich)
            .on_error(lambda e, s, env: {**s, "error": e.to_json()})
        )

    def test_happy_path(self, caplog):
        audit: list = []
        with caplog.at_level(logging.INFO, logger="statepipe"):
            out = self._pipeline(audit).run({"user_id": 7})
        assert out["user"]["name"] == "Ada"
        assert out["is_admin"] is True
        assert audit == ["Ada"]
        assert "loaded Ada" in caplog.messages

    def test_failure_recorded_as_serialized_error(self):
        audit: list = []
        out = self._pipeline(audit).run({"user_id": 99})
        assert "user" not in out
        assert out["error"]["op"] == "AUGMENT"
        assert out["error"]["id"] == "user"
        assert out["error"]["cause"] == {"name": "KeyError", "message": "99"}
        assert audit == []

    def test_initial_state_left_untouched(self):
        initial = {"user_id": 7}
        self._pipeline([]).run(initial)
        assert initial == {"user_id": 7}

    def test_recovered_flag_helper(self):
        out = Pipeline().apply_to(boom).on_error(mark_recovered).run({"x": 1})
        assert out == {"x": 1, "recovered": True}
