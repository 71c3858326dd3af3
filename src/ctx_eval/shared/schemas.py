"""
Schemas Module - Pydantic data models for the evaluation engine.
================================================================

Defines the data contracts shared across modules:
- Retrieval metric values (aggregate and per-query)
- Golden dataset file format
- Eval run and per-query result records
- Judge-model bridge results
"""

from enum import Enum
from typing import Annotated, Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

UnitScore = Annotated[float, Field(ge=0.0, le=1.0)]

GOLDEN_DATASET_VERSION = "1.0"


# ─────────────────────────────────────────────────────────────────────────────
# Enums
# ─────────────────────────────────────────────────────────────────────────────


class GoldenEntrySource(str, Enum):
    """Provenance of a golden entry."""

    MANUAL = "manual"  # Hand-written by a developer
    GENERATED = "generated"  # Created by an LLM from the codebase
    CAPTURED = "captured"  # Promoted from a positive-feedback trace


class MetricName(str, Enum):
    """The six aggregate retrieval metrics, in report order."""

    MRR = "mrr"
    PRECISION_AT_K = "precision_at_k"
    RECALL_AT_K = "recall_at_k"
    HIT_RATE = "hit_rate"
    NDCG = "ndcg"
    MAP = "map"

    @property
    def label(self) -> str:
        """Human-readable metric name."""
        return METRIC_LABELS[self]


METRIC_LABELS: dict[MetricName, str] = {
    MetricName.MRR: "MRR",
    MetricName.PRECISION_AT_K: "Precision@K",
    MetricName.RECALL_AT_K: "Recall@K",
    MetricName.HIT_RATE: "Hit Rate",
    MetricName.NDCG: "NDCG",
    MetricName.MAP: "MAP",
}


# ─────────────────────────────────────────────────────────────────────────────
# Retrieval Metrics
# ─────────────────────────────────────────────────────────────────────────────


class RetrievalMetrics(BaseModel):
    """
    Aggregate retrieval quality metrics.

    All values are macro-averages in [0, 1] where higher is better.
    Immutable once computed.
    """

    model_config = ConfigDict(frozen=True)

    mrr: UnitScore = 0.0  # Mean Reciprocal Rank
    precision_at_k: UnitScore = 0.0
    recall_at_k: UnitScore = 0.0
    hit_rate: UnitScore = 0.0  # Fraction of queries with a top-k hit
    ndcg: UnitScore = 0.0
    map: UnitScore = 0.0  # Mean Average Precision

    def get(self, metric: MetricName | str) -> float:
        """Get a metric value by name."""
        return getattr(self, MetricName(metric).value)

    def to_json(self) -> str:
        """Serialize for storage inside an EvalRun."""
        return self.model_dump_json()

    def __str__(self) -> str:
        return (
            f"RetrievalMetrics(MRR={self.mrr:.3f}, P@K={self.precision_at_k:.3f}, "
            f"R@K={self.recall_at_k:.3f}, HitRate={self.hit_rate:.3f}, "
            f"NDCG={self.ndcg:.3f}, MAP={self.map:.3f})"
        )


class PerQueryMetrics(BaseModel):
    """Retrieval metrics for a single golden query."""

    reciprocal_rank: UnitScore = 0.0
    precision_at_k: UnitScore = 0.0
    recall_at_k: UnitScore = 0.0
    hit_rate: UnitScore = 0.0


# ─────────────────────────────────────────────────────────────────────────────
# Golden Dataset
# ─────────────────────────────────────────────────────────────────────────────


class GoldenEntry(BaseModel):
    """
    A single evaluation test case.

    Uses file paths (not chunk IDs) so datasets survive re-indexing.
    Serialized with camelCase keys to match the on-disk format.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(..., min_length=1, description="Unique entry identifier (UUID)")
    query: str = Field(..., min_length=1, description="Query to evaluate")
    expected_file_paths: Optional[list[str]] = Field(
        default=None,
        alias="expectedFilePaths",
        description="Files that should be retrieved",
    )
    expected_answer: Optional[str] = Field(
        default=None,
        alias="expectedAnswer",
        description="Reference answer for judge-model grading",
    )
    tags: Optional[list[str]] = Field(default=None, description="Labels for subsets")
    source: GoldenEntrySource = Field(..., description="How this entry was created")

    @property
    def has_file_paths(self) -> bool:
        """Whether the entry can be scored with retrieval metrics."""
        return bool(self.expected_file_paths)


class GoldenDataset(BaseModel):
    """Golden dataset file: one per project."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    version: Literal["1.0"] = GOLDEN_DATASET_VERSION
    project_name: str = Field(..., min_length=1, alias="projectName")
    entries: list[GoldenEntry] = Field(default_factory=list)

    def to_file_dict(self) -> dict[str, Any]:
        """Dump using on-disk key names, omitting unset optional fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ─────────────────────────────────────────────────────────────────────────────
# Eval Run Records
# ─────────────────────────────────────────────────────────────────────────────


class EvalRun(BaseModel):
    """
    A stored batch evaluation.

    `metrics` and `config` are JSON strings, as written by the run store.
    """

    id: str
    project_id: str
    timestamp: str  # ISO 8601
    dataset_version: str
    query_count: int = Field(ge=0)
    metrics: str
    config: str = "{}"
    notes: Optional[str] = None


class EvalResult(BaseModel):
    """Per-query outcome within an eval run."""

    id: str
    eval_run_id: str
    query: str
    expected_files: list[str]
    retrieved_files: list[str]
    latency_ms: float = Field(ge=0)
    metrics: PerQueryMetrics
    passed: bool


class RunComparisonSummary(BaseModel):
    """Deltas against the previous stored run."""

    previous_run_id: str
    metric_changes: dict[str, float]


class EvalRunSummary(BaseModel):
    """Outcome of `run_eval`, with optional comparison to the previous run."""

    run_id: str
    project_name: str
    timestamp: str
    query_count: int
    passed_count: int = 0
    metrics: RetrievalMetrics
    config: dict[str, Any] = Field(default_factory=dict)
    comparison: Optional[RunComparisonSummary] = None


# ─────────────────────────────────────────────────────────────────────────────
# Judge-Model Bridge Results
# ─────────────────────────────────────────────────────────────────────────────


class PythonAvailability(BaseModel):
    """Whether the judge interpreter and its packages are usable."""

    model_config = ConfigDict(extra="forbid")

    python_found: bool = False
    python_version: Optional[str] = None
    ragas_available: bool = False
    ragas_version: Optional[str] = None
    deepeval_available: bool = False
    deepeval_version: Optional[str] = None


class JudgeRunMetadata(BaseModel):
    """Execution metadata reported by a judge runner."""

    model_config = ConfigDict(extra="forbid")

    duration_seconds: float = Field(ge=0)
    model_used: str
    metrics_evaluated: list[str]


class RagasDetail(BaseModel):
    """Per-question RAGAS scores."""

    model_config = ConfigDict(extra="forbid")

    question: str
    scores: dict[str, float]


class RagasResults(BaseModel):
    """Validated RAGAS output."""

    model_config = ConfigDict(extra="forbid")

    scores: dict[str, UnitScore]
    details: list[RagasDetail]
    metadata: JudgeRunMetadata


class DeepEvalDetail(BaseModel):
    """Per-test-case DeepEval scores with the judge's reasoning."""

    model_config = ConfigDict(extra="forbid")

    input: str
    scores: dict[str, float]
    reasons: dict[str, str]


class DeepEvalResults(BaseModel):
    """Validated DeepEval output."""

    model_config = ConfigDict(extra="forbid")

    scores: dict[str, UnitScore]
    details: list[DeepEvalDetail]
    metadata: JudgeRunMetadata
