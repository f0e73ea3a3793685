"""Operation kinds, queued records, and the callable shapes the engine accepts."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Optional, Protocol, Union

from .state import State

if TYPE_CHECKING:
    from .errors import PipelineError


class Operation(Enum):
    """Closed set of record kinds understood by the interpretation loop."""

    APPLY_TO = "APPLY_TO"
    TRANSFORM = "TRANSFORM"
    AUGMENT = "AUGMENT"
    CHAIN = "CHAIN"
    NOOP = "NOOP"


class StateFn(Protocol):
    """``(state, env) -> value`` — used by apply_to, augment, noop and log."""

    def __call__(self, state: State, env: Any) -> Union[Any, Awaitable[Any]]: ...


class TransformFn(Protocol):
    """``(value, state, env) -> value`` — used by transform."""

    def __call__(
        self, value: Any, state: State, env: Any
    ) -> Union[Any, Awaitable[Any]]: ...


class RecoveryHandler(Protocol):
    """``(error, state, env) -> state | None``.

    Returning ``None`` keeps the state the pipeline held when it failed.
    Raising escalates the failure to the caller of ``run``.
    """

    def __call__(
        self, error: "PipelineError", state: State, env: Any
    ) -> Union[Optional[State], Awaitable[Optional[State]]]: ...


@dataclass(frozen=True)
class OperationRecord:
    """One queued unit of work.

    ``fn`` is a :class:`StateFn` / :class:`TransformFn`, or — for
    ``Operation.CHAIN`` — the nested ``Pipeline`` itself.  ``id`` is only
    set for field-level kinds (``TRANSFORM`` and ``AUGMENT``).
    """

    kind: Operation
    fn: Any
    id: Optional[str] = None
