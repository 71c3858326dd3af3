"""
Shared Module - Common utilities, configuration, schemas, and errors.
=====================================================================

Foundational components used across the package:

- config: Configuration loading and management
- logging: Rich logging setup
- errors: EvalError and its codes
- schemas: Pydantic data models
- utils: Path normalization and file I/O helpers
"""

from ctx_eval.shared.config import get_settings, reload_settings, Settings
from ctx_eval.shared.errors import EvalError, EvalErrorCode
from ctx_eval.shared.logging import get_logger, setup_logging
from ctx_eval.shared.schemas import (
    RetrievalMetrics,
    PerQueryMetrics,
    MetricName,
    GoldenEntry,
    GoldenEntrySource,
    GoldenDataset,
    EvalRun,
    EvalResult,
    EvalRunSummary,
    PythonAvailability,
    RagasResults,
    DeepEvalResults,
)
from ctx_eval.shared.utils import (
    normalize_path,
    deduplicate_by_file,
    generate_id,
    ensure_directory,
    load_json,
    save_json,
    load_jsonl,
    save_jsonl,
)

__all__ = [
    # Config
    "get_settings",
    "reload_settings",
    "Settings",
    # Errors
    "EvalError",
    "EvalErrorCode",
    # Logging
    "get_logger",
    "setup_logging",
    # Schemas
    "RetrievalMetrics",
    "PerQueryMetrics",
    "MetricName",
    "GoldenEntry",
    "GoldenEntrySource",
    "GoldenDataset",
    "EvalRun",
    "EvalResult",
    "EvalRunSummary",
    "PythonAvailability",
    "RagasResults",
    "DeepEvalResults",
    # Utils
    "normalize_path",
    "deduplicate_by_file",
    "generate_id",
    "ensure_directory",
    "load_json",
    "save_json",
    "load_jsonl",
    "save_jsonl",
]
