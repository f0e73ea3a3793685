"""Pipeline error types."""

from __future__ import annotations

import traceback
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from .state import State

UNDEFINED_OP = "UNDEFINED"


class StateShapeError(TypeError):
    """A value that must be a plain ``dict`` state was something else.

    Raised for a non-dict initial state, a non-dict ``on_error`` result,
    and a non-``Pipeline`` argument to ``chain()``.
    """


class CausePayload(BaseModel):
    """Serialized view of an error's cause — name and message only."""

    name: str
    message: str


class ErrorPayload(BaseModel):
    """Stable serialized shape of a :class:`PipelineError`.

    Consumed by log pipelines; the pipeline state is never part of it.
    """

    name: str = Field(..., description="Error class name")
    message: str = Field(..., description="Human-readable failure message")
    op: str = Field(..., description="Operation kind that failed, or UNDEFINED")
    id: Optional[str] = Field(default=None, description="Field id, if any")
    cause: Optional[CausePayload] = Field(
        default=None, description="Wrapped exception (no traceback, no chain)"
    )


def _op_label(op: Any) -> str:
    if op is None:
        return UNDEFINED_OP
    if isinstance(op, Enum):
        return str(op.value)
    return str(op)


class PipelineError(Exception):
    """Normalized failure raised while a pipeline runs.

    Every exception escaping an operation is wrapped into one of these
    before the recovery handler sees it, so handlers deal with a single
    type carrying ``op`` / ``id`` and the state at the point of failure.

    ``state`` is read-only and deliberately kept out of :meth:`to_json`
    so large or sensitive state does not leak into logs.  It lives in a
    slot, so it is also absent from ``vars(err)`` and from pickles.
    """

    __slots__ = ("_state",)

    def __init__(
        self,
        message: str,
        *,
        op: Any = None,
        id: Optional[str] = None,
        state: Optional[State] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.op: str = _op_label(op)
        self.id = id
        self.cause = cause
        self._state = state
        if cause is not None:
            self.__cause__ = cause

    @property
    def name(self) -> str:
        return type(self).__name__

    @property
    def state(self) -> Optional[State]:
        """State held by the pipeline when the failure happened (or None)."""
        return self._state

    @property
    def stack(self) -> str:
        """Formatted traceback, with the cause's traceback appended.

        The cause is rendered after a ``Caused by:`` marker so the original
        failure site stays visible wherever only this text is logged.
        """
        text = "".join(
            traceback.format_exception(
                type(self), self, self.__traceback__, chain=False
            )
        )
        if self.cause is not None:
            text += "Caused by: " + "".join(
                traceback.format_exception(
                    type(self.cause), self.cause, self.cause.__traceback__
                )
            )
        return text

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def payload(self) -> ErrorPayload:
        cause = None
        if self.cause is not None:
            cause = CausePayload(
                name=type(self.cause).__name__, message=str(self.cause)
            )
        return ErrorPayload(
            name=self.name,
            message=self.message,
            op=self.op,
            id=None if self.id is None else str(self.id),
            cause=cause,
        )

    def to_json(self) -> Dict[str, Any]:
        """Return ``{name, message, op, id, cause}`` as plain data."""
        return self.payload().model_dump()

    def __reduce__(self):
        # Slots (the state) are left out; only the public attributes travel.
        return (type(self), (self.message,), self.__dict__)

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------

    @classmethod
    def init(cls, message: str, **kwargs: Any) -> "PipelineError":
        """Factory mirroring ``Pipeline.init``; subclasses get their own type."""
        return cls(message, **kwargs)

    @classmethod
    def from_exception(
        cls,
        exc: BaseException,
        *,
        op: Any = None,
        id: Optional[str] = None,
        state: Optional[State] = None,
    ) -> "PipelineError":
        """Wrap an arbitrary exception, keeping it as ``cause``."""
        message = str(exc) or type(exc).__name__
        return cls(message, op=op, id=id, state=state, cause=exc)

    def __repr__(self) -> str:
        return f"{self.name}({self.message!r}, op={self.op!r}, id={self.id!r})"
