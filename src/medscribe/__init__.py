"""Medical consultation recording and transcription pipeline."""

from .exceptions import (
    ErrorKind,
    MedscribeError,
    error_kind,
    is_retryable,
)
from .logging import setup_logging

__all__ = [
    "ErrorKind",
    "MedscribeError",
    "error_kind",
    "is_retryable",
    "setup_logging",
]
