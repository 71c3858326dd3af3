"""
Evaluation Module - Retrieval quality evaluation engine.
========================================================

Components:
- metrics: Pure retrieval metrics (MRR, P@K, R@K, Hit Rate, NDCG, MAP)
- aggregator: Run-over-run trends and regression detection
- golden: Golden dataset store
- judge: Subprocess bridge to RAGAS / DeepEval
- runner: Batch evaluation of a golden dataset
- history: Storage of eval runs and per-query results
- exporter: Judge-model input files
- thresholds: Pass/fail gate

Example:
    >>> from ctx_eval.evaluation import ReplaySearch, get_eval_store, run_eval
    >>> summary = run_eval("my-app", ReplaySearch("results.json"), get_eval_store())
    >>> print(f"MRR: {summary.metrics.mrr:.3f}")
"""

from ctx_eval.evaluation.metrics import (
    QueryResult,
    reciprocal_rank,
    precision_at_k,
    recall_at_k,
    hit_rate,
    ndcg_at_k,
    average_precision,
    compute_per_query_metrics,
    compute_aggregate_metrics,
)
from ctx_eval.evaluation.aggregator import (
    REGRESSION_THRESHOLD,
    MetricDirection,
    MetricTrend,
    TrendResult,
    RunComparison,
    compare_runs,
    compute_trend,
    format_trend_report,
)
from ctx_eval.evaluation.golden import (
    GoldenDatasetStore,
    get_golden_store,
    load_golden_dataset,
    save_golden_dataset,
    add_golden_entry,
    remove_golden_entry,
    list_golden_entries,
)
from ctx_eval.evaluation.judge import JudgeBridge, get_judge_bridge
from ctx_eval.evaluation.history import EvalStore, JsonlEvalStore, get_eval_store
from ctx_eval.evaluation.runner import ReplaySearch, SearchResult, run_eval, timed_search
from ctx_eval.evaluation.exporter import (
    ExportSourceEntry,
    export_to_ragas,
    export_to_deepeval,
    write_export,
)
from ctx_eval.evaluation.thresholds import (
    ThresholdCheck,
    check_thresholds,
    all_passed,
    format_threshold_report,
)

__all__ = [
    # Metrics
    "QueryResult",
    "reciprocal_rank",
    "precision_at_k",
    "recall_at_k",
    "hit_rate",
    "ndcg_at_k",
    "average_precision",
    "compute_per_query_metrics",
    "compute_aggregate_metrics",
    # Aggregator
    "REGRESSION_THRESHOLD",
    "MetricDirection",
    "MetricTrend",
    "TrendResult",
    "RunComparison",
    "compare_runs",
    "compute_trend",
    "format_trend_report",
    # Golden
    "GoldenDatasetStore",
    "get_golden_store",
    "load_golden_dataset",
    "save_golden_dataset",
    "add_golden_entry",
    "remove_golden_entry",
    "list_golden_entries",
    # Judge
    "JudgeBridge",
    "get_judge_bridge",
    # History
    "EvalStore",
    "JsonlEvalStore",
    "get_eval_store",
    # Runner
    "ReplaySearch",
    "SearchResult",
    "run_eval",
    "timed_search",
    # Exporter
    "ExportSourceEntry",
    "export_to_ragas",
    "export_to_deepeval",
    "write_export",
    # Thresholds
    "ThresholdCheck",
    "check_thresholds",
    "all_passed",
    "format_threshold_report",
]
