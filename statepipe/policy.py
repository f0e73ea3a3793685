"""Recovery policies — what a pipeline does with a normalized failure."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Dict, Optional, Union

from .errors import PipelineError
from .protocol import RecoveryHandler
from .state import State

logger = logging.getLogger(__name__)


class RecoveryPolicy(Enum):
    """Built-in recovery handlers."""

    SWALLOW = "swallow"
    BUBBLE = "bubble"


# ---------------------------------------------------------------------------
# Built-in handlers
# ---------------------------------------------------------------------------

def _swallow(error: PipelineError, state: State, env: Any) -> Optional[State]:
    """Log the failure and keep the last good state."""
    logger.error(
        "Pipeline failed at %s (id=%r): %s",
        error.op,
        error.id,
        error.message,
        exc_info=error,
    )
    return state


def _bubble(error: PipelineError, state: State, env: Any) -> Optional[State]:
    """Re-raise so whatever runs this pipeline sees the failure."""
    raise error


_BUILTIN_HANDLERS: Dict[RecoveryPolicy, Callable] = {
    RecoveryPolicy.SWALLOW: _swallow,
    RecoveryPolicy.BUBBLE: _bubble,
}


def resolve_handler(
    on_error: Union[RecoveryPolicy, RecoveryHandler, None],
) -> RecoveryHandler:
    """Turn a policy value (or a handler) into a callable handler.

    ``None`` resolves to ``RecoveryPolicy.SWALLOW``.
    """
    if on_error is None:
        return _swallow
    if isinstance(on_error, RecoveryPolicy):
        return _BUILTIN_HANDLERS[on_error]
    if callable(on_error):
        return on_error
    raise TypeError(
        f"on_error must be a RecoveryPolicy or a callable, got {type(on_error).__name__}"
    )


def policy_of(handler: Callable) -> Optional[RecoveryPolicy]:
    """Return the policy a built-in *handler* implements, or None for custom ones."""
    for policy, builtin in _BUILTIN_HANDLERS.items():
        if handler is builtin:
            return policy
    return None
