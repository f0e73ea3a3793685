"""Pipeline — fluent, sequential, async operation runner over a dict state."""

from __future__ import annotations

import asyncio
import dataclasses
import inspect
import logging
from typing import Any, Callable

from .config import PipelineConfig
from .errors import PipelineError, StateShapeError
from .policy import RecoveryPolicy, policy_of, resolve_handler
from .protocol import (
    Operation,
    OperationRecord,
    RecoveryHandler,
    StateFn,
    TransformFn,
)
from .state import State, is_state

logger = logging.getLogger(__name__)


async def _resolve(value: Any) -> Any:
    """Await *value* when an operation returned an awaitable."""
    if inspect.isawaitable(value):
        return await value
    return value


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

class Pipeline:
    """Ordered queue of operations applied to one dict state.

    Build via the fluent API — nothing executes until ``run()``::

        pipe = (
            Pipeline({"fetch": fetch_user})
            .augment("user", lambda s, env: env["fetch"](s["user_id"]))
            .transform("user", normalise_user)
            .log(lambda s, env: f"loaded {s['user']['name']}")
            .chain(Pipeline.bubbling().augment("audit", audit_user))
        )

        final = pipe.run({"user_id": 7})

    Operation functions may be plain functions or coroutine functions.
    Records run strictly one at a time in insertion order; a chained
    pipeline runs to completion before the next record starts.

    The first failure stops the run.  It is normalized into a
    :class:`PipelineError` and handed to the recovery handler exactly once:
    returning ``None`` keeps the last good state, returning a dict replaces
    it, raising propagates to the caller of ``run()``.
    """

    def __init__(
        self,
        env: Any = None,
        *,
        on_error: RecoveryPolicy | RecoveryHandler | None = None,
        config: PipelineConfig | None = None,
    ) -> None:
        self.config = config or PipelineConfig(
            on_error=RecoveryPolicy.SWALLOW if on_error is None else on_error
        )
        self.env = {} if env is None else env
        self._records: list[OperationRecord] = []
        self._on_error: RecoveryHandler = resolve_handler(self.config.on_error)

    # ------------------------------------------------------------------
    # Factories
    # ------------------------------------------------------------------

    @classmethod
    def init(cls, env: Any = None, **kwargs: Any) -> "Pipeline":
        """Build an instance of *cls* (subclasses get their own type back)."""
        return cls(env, **kwargs)

    @classmethod
    def bubbling(cls, env: Any = None, **kwargs: Any) -> "Pipeline":
        """Build a pipeline whose default handler re-raises every failure.

        Use this for pipelines meant to be ``chain()``-ed into a parent, so
        failures reach the parent's own handler instead of being swallowed
        at the leaf.  A *config* passed here keeps its other settings but
        its ``on_error`` is forced to ``RecoveryPolicy.BUBBLE``.
        """
        config = kwargs.pop("config", None)
        if config is not None:
            config = dataclasses.replace(config, on_error=RecoveryPolicy.BUBBLE)
        return cls(env, on_error=RecoveryPolicy.BUBBLE, config=config, **kwargs)

    is_state = staticmethod(is_state)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def records(self) -> tuple[OperationRecord, ...]:
        """Snapshot of the queued records, in execution order."""
        return tuple(self._records)

    @property
    def policy(self) -> RecoveryPolicy | None:
        """Built-in policy currently in effect, or None for a custom handler."""
        return policy_of(self._on_error)

    def __repr__(self) -> str:
        policy = self.policy
        label = policy.value if policy is not None else "custom"
        return f"{type(self).__name__}(records={len(self._records)}, on_error={label})"

    # ------------------------------------------------------------------
    # Fluent builder
    # ------------------------------------------------------------------

    def _push(self, kind: Operation, fn: Any, id: str | None = None) -> "Pipeline":
        self._records.append(OperationRecord(kind=kind, fn=fn, id=id))
        return self

    def apply_to(self, fn: StateFn) -> "Pipeline":
        """Replace the whole state with ``fn(state, env)``."""
        return self._push(Operation.APPLY_TO, fn)

    def transform(self, id: str, fn: TransformFn) -> "Pipeline":
        """Rewrite existing field *id* with ``fn(state[id], state, env)``."""
        return self._push(Operation.TRANSFORM, fn, id)

    def augment(self, id: str, fn: StateFn) -> "Pipeline":
        """Add new field *id* holding ``fn(state, env)``."""
        return self._push(Operation.AUGMENT, fn, id)

    def noop(self, fn: StateFn) -> "Pipeline":
        """Call ``fn(state, env)`` for its side effects; state is unchanged."""
        return self._push(Operation.NOOP, fn)

    def log(self, arg: str | Callable[[State, Any], Any]) -> "Pipeline":
        """Emit a message through the ``statepipe`` logger.

        *arg* is either the message itself or a (possibly async) callable
        ``(state, env) -> str``.  Queued as a ``NOOP`` record.
        """
        level = self.config.log_level

        if callable(arg):
            async def emit(state: State, env: Any) -> None:
                logger.log(level, "%s", await _resolve(arg(state, env)))
        else:
            def emit(state: State, env: Any) -> None:
                logger.log(level, "%s", arg)

        return self.noop(emit)

    def on_error(self, handler: RecoveryPolicy | RecoveryHandler) -> "Pipeline":
        """Replace the recovery handler.  Last call wins."""
        self._on_error = resolve_handler(handler)
        return self

    def chain(self, other: "Pipeline") -> "Pipeline":
        """Run *other* as one operation of this pipeline.

        *other* keeps its own environment and its own recovery handler.
        """
        if not isinstance(other, Pipeline):
            raise StateShapeError(
                f"Can only chain to a Pipeline instance, got {type(other).__name__}"
            )
        return self._push(Operation.CHAIN, other)

    # ------------------------------------------------------------------
    # Interpretation
    # ------------------------------------------------------------------

    async def _step(self, record: OperationRecord, state: State) -> State:
        """Interpret one record and return the next state."""
        kind, fn, id = record.kind, record.fn, record.id

        if kind is Operation.APPLY_TO:
            next_state = await _resolve(fn(state, self.env))
            if not is_state(next_state):
                raise StateShapeError("Pipeline.apply_to must return a dict as state")
            return next_state

        if kind is Operation.TRANSFORM:
            if id not in state:
                raise PipelineError(
                    f"Pipeline.transform missing property {id!r}", op=kind, id=id
                )
            value = await _resolve(fn(state[id], state, self.env))
            return {**state, id: value}

        if kind is Operation.AUGMENT:
            if id in state:
                raise PipelineError(
                    f"Pipeline.augment property {id!r} already exists", op=kind, id=id
                )
            value = await _resolve(fn(state, self.env))
            return {**state, id: value}

        if kind is Operation.CHAIN:
            next_state = await fn.run_async(state)
            if not is_state(next_state):
                raise StateShapeError("Pipeline.chain must return a dict as state")
            return next_state

        if kind is Operation.NOOP:
            await _resolve(fn(state, self.env))
            return state

        raise PipelineError(
            f"Unknown Operation: {kind}", op=kind, id=id, state=state
        )

    async def run_async(self, state: State) -> State:
        """Apply every queued record to *state* and return the final state.

        Raises ``StateShapeError`` before running anything when *state* is
        not a plain dict, and when the recovery handler returns something
        other than a dict or None.  Whatever the recovery handler raises is
        propagated unchanged.
        """
        if not is_state(state):
            raise StateShapeError("Pipeline.run expects a dict as state")

        record: OperationRecord | None = None
        try:
            for record in self._records:
                logger.debug("Pipeline: %s id=%r", record.kind, record.id)
                state = await self._step(record, state)
        except Exception as exc:
            if isinstance(exc, PipelineError):
                error = exc
            else:
                error = PipelineError.from_exception(
                    exc,
                    op=record.kind if record is not None else None,
                    id=record.id if record is not None else None,
                    state=state,
                )
            result = await _resolve(self._on_error(error, state, self.env))
            if result is None:
                result = state
            if not is_state(result):
                raise StateShapeError(
                    "Pipeline.on_error must return a dict or None as state"
                )
            logger.debug("Pipeline: recovered from %s failure", error.op)
            return result

        return state

    def run(self, state: State) -> State:
        """Sync entry point — ``asyncio.run(self.run_async(state))``.

        Use ``await pipe.run_async(state)`` from coroutine contexts.
        """
        return asyncio.run(self.run_async(state))
