"""State guard — what the engine accepts as pipeline state."""

from __future__ import annotations

from typing import Any, Dict

State = Dict[str, Any]


def is_state(value: Any) -> bool:
    """Return True if *value* can be threaded through a pipeline.

    Only a plain ``dict`` qualifies.  ``None``, lists, ``dict`` subclasses
    (``OrderedDict``, ``defaultdict``), mapping proxies and arbitrary class
    instances are all rejected.
    """
    return type(value) is dict
