"""Sequential async pipelines over a single dict state, with pluggable recovery.

Public surface::

    from statepipe import (
        Pipeline,
        PipelineConfig,
        RecoveryPolicy,
        Operation,
        OperationRecord,
        PipelineError,
        StateShapeError,
        ErrorPayload,
        is_state,
    )
"""

from .config import PipelineConfig
from .errors import ErrorPayload, PipelineError, StateShapeError
from .pipeline import Pipeline
from .policy import RecoveryPolicy
from .protocol import Operation, OperationRecord
from .state import is_state

__all__ = [
    "Pipeline",
    "PipelineConfig",
    "RecoveryPolicy",
    "Operation",
    "OperationRecord",
    "PipelineError",
    "StateShapeError",
    "ErrorPayload",
    "is_state",
]
