"""
Metrics Module - Retrieval quality metrics.
===========================================

Pure information-retrieval metrics over (retrieved paths, expected paths):

Per-Query Metrics:
- Reciprocal Rank
- Precision@K
- Recall@K
- Hit Rate

Aggregate-Only Metrics (by convention):
- NDCG@K
- Average Precision (MAP when averaged)

Paths are normalized before matching and retrieved paths are deduplicated
at file level, so several chunks of one file count once at their best rank.
Every function is deterministic and side-effect free.
"""

import math
from dataclasses import dataclass
from typing import Optional, Sequence

from ctx_eval.shared.schemas import PerQueryMetrics, RetrievalMetrics
from ctx_eval.shared.utils import deduplicate_by_file, normalize_expected


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────


def _top_k(retrieved: Sequence[str], k: Optional[int]) -> tuple[list[str], int]:
    """Deduplicate retrieved paths and cut to the effective k."""
    deduped = deduplicate_by_file(retrieved)
    effective_k = len(deduped) if k is None else max(k, 0)
    return deduped[:effective_k], effective_k


# ─────────────────────────────────────────────────────────────────────────────
# Per-Query Metric Calculations
# ─────────────────────────────────────────────────────────────────────────────


def reciprocal_rank(retrieved: Sequence[str], expected: Sequence[str]) -> float:
    """
    Calculate the reciprocal rank for a single query.

    RR = 1 / rank of the first relevant result (1-indexed)

    Args:
        retrieved: Retrieved file paths in rank order
        expected: Expected relevant file paths

    Returns:
        Reciprocal rank (0 if nothing relevant was retrieved)
    """
    if not expected or not retrieved:
        return 0.0

    expected_set = normalize_expected(expected)
    for i, path in enumerate(deduplicate_by_file(retrieved)):
        if path in expected_set:
            return 1.0 / (i + 1)
    return 0.0


def precision_at_k(
    retrieved: Sequence[str],
    expected: Sequence[str],
    k: Optional[int] = None,
) -> float:
    """
    Calculate Precision@K for a single query.

    Precision@K = |top-K ∩ expected| / K

    Args:
        retrieved: Retrieved file paths in rank order
        expected: Expected relevant file paths
        k: Cutoff (defaults to all deduplicated results)

    Returns:
        Precision at K (0 if either list is empty or K is 0)
    """
    if not expected or not retrieved:
        return 0.0

    expected_set = normalize_expected(expected)
    top_k, effective_k = _top_k(retrieved, k)
    if effective_k == 0:
        return 0.0

    hits = sum(1 for path in top_k if path in expected_set)
    return hits / effective_k


def recall_at_k(
    retrieved: Sequence[str],
    expected: Sequence[str],
    k: Optional[int] = None,
) -> float:
    """
    Calculate Recall@K for a single query.

    Recall@K = |top-K ∩ expected| / |expected|

    Args:
        retrieved: Retrieved file paths in rank order
        expected: Expected relevant file paths
        k: Cutoff (defaults to all deduplicated results)

    Returns:
        Recall at K (0 if either list is empty)
    """
    if not expected or not retrieved:
        return 0.0

    expected_set = normalize_expected(expected)
    top_k, _ = _top_k(retrieved, k)

    found = sum(1 for path in top_k if path in expected_set)
    return found / len(expected_set)


def hit_rate(
    retrieved: Sequence[str],
    expected: Sequence[str],
    k: Optional[int] = None,
) -> float:
    """
    Calculate hit rate (whether any relevant result is in the top K).

    Returns:
        1.0 if any relevant result found, 0.0 otherwise
    """
    if not expected or not retrieved:
        return 0.0

    expected_set = normalize_expected(expected)
    top_k, _ = _top_k(retrieved, k)
    return 1.0 if any(path in expected_set for path in top_k) else 0.0


# ─────────────────────────────────────────────────────────────────────────────
# Aggregate-Only Metric Calculations
# ─────────────────────────────────────────────────────────────────────────────


def ndcg_at_k(
    retrieved: Sequence[str],
    expected: Sequence[str],
    k: Optional[int] = None,
) -> float:
    """
    Calculate NDCG@K with binary relevance.

    DCG  = Σ rel_i / log2(i + 2)  over the top K (i is 0-indexed)
    IDCG = DCG of min(|expected|, K) relevant results ranked first

    Returns:
        DCG / IDCG (0 when IDCG is 0)
    """
    if not expected or not retrieved:
        return 0.0

    expected_set = normalize_expected(expected)
    top_k, effective_k = _top_k(retrieved, k)
    if effective_k == 0:
        return 0.0

    dcg = 0.0
    for i, path in enumerate(top_k):
        if path in expected_set:
            dcg += 1.0 / math.log2(i + 2)

    ideal_count = min(len(expected_set), effective_k)
    idcg = sum(1.0 / math.log2(i + 2) for i in range(ideal_count))

    return dcg / idcg if idcg > 0 else 0.0


def average_precision(
    retrieved: Sequence[str],
    expected: Sequence[str],
    k: Optional[int] = None,
) -> float:
    """
    Calculate Average Precision for a single query.

    AP = Σ precision@i for each relevant hit i / |expected|

    Dividing by the total number of expected paths (not hits found)
    penalizes queries that miss relevant documents.

    Example:
        >>> average_precision(["a", "b", "c"], ["a", "c"])
        0.8333333333333333
    """
    if not expected or not retrieved:
        return 0.0

    expected_set = normalize_expected(expected)
    top_k, _ = _top_k(retrieved, k)

    relevant_so_far = 0
    precision_sum = 0.0
    for i, path in enumerate(top_k):
        if path in expected_set:
            relevant_so_far += 1
            precision_sum += relevant_so_far / (i + 1)

    return precision_sum / len(expected_set)


# ─────────────────────────────────────────────────────────────────────────────
# Aggregation
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class QueryResult:
    """Retrieved vs. expected paths for one query."""

    retrieved: list[str]
    expected: list[str]


def compute_per_query_metrics(
    retrieved: Sequence[str],
    expected: Sequence[str],
    k: Optional[int] = None,
) -> PerQueryMetrics:
    """
    Compute the per-query metric bundle stored with each eval result.

    NDCG and AP are left to aggregation by convention.
    """
    return PerQueryMetrics(
        reciprocal_rank=reciprocal_rank(retrieved, expected),
        precision_at_k=precision_at_k(retrieved, expected, k),
        recall_at_k=recall_at_k(retrieved, expected, k),
        hit_rate=hit_rate(retrieved, expected, k),
    )


def compute_aggregate_metrics(
    queries: Sequence[QueryResult],
    k: Optional[int] = None,
) -> RetrievalMetrics:
    """
    Macro-average all six metrics across queries.

    Args:
        queries: Per-query retrieved/expected pairs
        k: Cutoff applied to every metric except reciprocal rank

    Returns:
        Aggregated RetrievalMetrics (all zeros for an empty query set)
    """
    if not queries:
        return RetrievalMetrics()

    total_mrr = 0.0
    total_precision = 0.0
    total_recall = 0.0
    total_hit_rate = 0.0
    total_ndcg = 0.0
    total_map = 0.0

    for query in queries:
        total_mrr += reciprocal_rank(query.retrieved, query.expected)
        total_precision += precision_at_k(query.retrieved, query.expected, k)
        total_recall += recall_at_k(query.retrieved, query.expected, k)
        total_hit_rate += hit_rate(query.retrieved, query.expected, k)
        total_ndcg += ndcg_at_k(query.retrieved, query.expected, k)
        total_map += average_precision(query.retrieved, query.expected, k)

    n = len(queries)

    return RetrievalMetrics(
        mrr=total_mrr / n,
        precision_at_k=total_precision / n,
        recall_at_k=total_recall / n,
        hit_rate=total_hit_rate / n,
        ndcg=total_ndcg / n,
        map=total_map / n,
    )
