"""Pipeline configuration."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Union

from .policy import RecoveryPolicy
from .protocol import RecoveryHandler


@dataclass
class PipelineConfig:
    """Construction-time settings for a :class:`~statepipe.pipeline.Pipeline`.

    ``on_error`` is either a :class:`RecoveryPolicy` or a custom handler.
    ``log_level`` is the level ``Pipeline.log()`` messages are emitted at.
    """

    on_error: Union[RecoveryPolicy, RecoveryHandler] = RecoveryPolicy.SWALLOW
    log_level: int = logging.INFO
