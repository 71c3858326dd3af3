"""
Errors Module - Tagged error type for the evaluation engine.
============================================================

Every failure surfaced by the engine is an EvalError carrying one code from
a closed set. Factories build the user-facing message so callers (and the
CLI) get the same wording everywhere.
"""

from enum import Enum
from typing import Optional


class EvalErrorCode(str, Enum):
    """Closed set of evaluation error codes."""

    DATASET_NOT_FOUND = "DATASET_NOT_FOUND"  # No golden entries for project
    DATASET_INVALID = "DATASET_INVALID"  # Malformed golden file or entry
    EVAL_RUN_FAILED = "EVAL_RUN_FAILED"  # Batch run or trend computation failed
    LANGFUSE_ERROR = "LANGFUSE_ERROR"  # Reserved for cloud trace sync
    RAGAS_ERROR = "RAGAS_ERROR"  # Judge-model subprocess failure


class EvalError(Exception):
    """
    Error raised by the evaluation engine.

    Attributes:
        code: Machine-readable error code
        message: Human-readable message (includes low-level detail)
        cause: Underlying exception, if any
    """

    def __init__(
        self,
        code: EvalErrorCode,
        message: str,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.cause = cause

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return f"EvalError(code={self.code.value!r}, message={self.message!r})"

    @classmethod
    def dataset_not_found(cls, project_name: str) -> "EvalError":
        """Golden dataset missing or empty for a project."""
        return cls(
            EvalErrorCode.DATASET_NOT_FOUND,
            f'Golden dataset not found for project "{project_name}". '
            f"Add entries with: ctx-eval golden add {project_name} <query> --file <path>",
        )

    @classmethod
    def dataset_invalid(
        cls, reason: str, cause: Optional[BaseException] = None
    ) -> "EvalError":
        """Golden dataset or entry failed validation."""
        return cls(EvalErrorCode.DATASET_INVALID, f"Invalid golden dataset: {reason}", cause)

    @classmethod
    def eval_run_failed(
        cls, reason: str, cause: Optional[BaseException] = None
    ) -> "EvalError":
        """Batch evaluation or trend computation failed."""
        return cls(EvalErrorCode.EVAL_RUN_FAILED, f"Evaluation run failed: {reason}", cause)

    @classmethod
    def langfuse_error(
        cls, reason: str, cause: Optional[BaseException] = None
    ) -> "EvalError":
        """Cloud trace sync failed."""
        return cls(EvalErrorCode.LANGFUSE_ERROR, f"Langfuse API error: {reason}", cause)

    @classmethod
    def ragas_error(
        cls, reason: str, cause: Optional[BaseException] = None
    ) -> "EvalError":
        """Judge-model subprocess failed."""
        return cls(EvalErrorCode.RAGAS_ERROR, f"RAGAS integration error: {reason}", cause)
