"""
Runner Module - Batch evaluation against a golden dataset.
==========================================================

Orchestrates one evaluation run:
1. Load the golden dataset and select entries with expected file paths
2. Record the run as running
3. Search each query and compute per-query metrics
4. Aggregate, store per-query results and complete the run
5. Compare against the previous stored run

The search pipeline is injected as a callable, so the runner works with a
live engine or with captured results (ReplaySearch).
"""

import json
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from ctx_eval.evaluation.aggregator import build_comparison
from ctx_eval.evaluation.golden import filter_by_tags, load_golden_dataset
from ctx_eval.evaluation.history import EvalStore
from ctx_eval.evaluation.metrics import (
    QueryResult,
    compute_aggregate_metrics,
    compute_per_query_metrics,
)
from ctx_eval.shared.config import get_settings
from ctx_eval.shared.errors import EvalError
from ctx_eval.shared.logging import get_logger
from ctx_eval.shared.schemas import (
    EvalResult,
    EvalRun,
    EvalRunSummary,
    GoldenDataset,
    RetrievalMetrics,
)
from ctx_eval.shared.utils import generate_id, load_json, utc_now_iso

logger = get_logger(__name__)


@dataclass
class SearchResult:
    """Ranked file paths returned by the search pipeline for one query."""

    file_paths: list[str] = field(default_factory=list)
    latency_ms: float = 0.0


SearchFn = Callable[[str, int], SearchResult]
DatasetLoader = Callable[[str], GoldenDataset]


def timed_search(search: Callable[[str, int], list[str]]) -> SearchFn:
    """
    Wrap a function returning ranked paths so latency is measured.

    Example:
        >>> search = timed_search(lambda q, k: engine.search(q, k))
        >>> search("where is auth?", 5).latency_ms
        12.4
    """

    def _search(query: str, k: int) -> SearchResult:
        start = time.perf_counter()
        paths = search(query, k)
        latency_ms = (time.perf_counter() - start) * 1000
        return SearchResult(file_paths=list(paths), latency_ms=round(latency_ms, 2))

    return _search


class ReplaySearch:
    """
    Search callable backed by captured results.

    The file maps query text to ranked paths, either as a plain list or as
    {"file_paths": [...], "latency_ms": n}. Queries missing from the file
    return no results and count as misses.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        try:
            data = load_json(self.path)
        except (OSError, ValueError) as e:
            raise EvalError.eval_run_failed(
                f"cannot read search results from {self.path}: {e}", cause=e
            ) from e

        if not isinstance(data, dict):
            raise EvalError.eval_run_failed(
                f"search results in {self.path} must map query text to file paths"
            )
        self._results = {str(query): self._parse(query, value) for query, value in data.items()}

    def _parse(self, query: str, value) -> SearchResult:
        if isinstance(value, list):
            return SearchResult(file_paths=[str(p) for p in value])
        if isinstance(value, dict):
            paths = value.get("file_paths", value.get("filePaths", []))
            latency = value.get("latency_ms", value.get("latencyMs", 0.0))
            if isinstance(paths, list):
                return SearchResult(
                    file_paths=[str(p) for p in paths], latency_ms=float(latency or 0.0)
                )
        raise EvalError.eval_run_failed(
            f"search results for query {query!r} in {self.path} are not a list of paths"
        )

    def __call__(self, query: str, k: int) -> SearchResult:
        result = self._results.get(query)
        if result is None:
            logger.warning(f"No captured results for query: {query!r}")
            return SearchResult()
        return SearchResult(file_paths=result.file_paths[:k], latency_ms=result.latency_ms)


def run_eval(
    project_name: str,
    search: SearchFn,
    store: EvalStore,
    *,
    project_id: Optional[str] = None,
    k: Optional[int] = None,
    tags: Optional[list[str]] = None,
    dataset_loader: Optional[DatasetLoader] = None,
    include_generation: bool = False,
) -> EvalRunSummary:
    """
    Run a batch evaluation for a project.

    Args:
        project_name: Project whose golden dataset is evaluated
        search: Returns ranked file paths for (query, k)
        store: Where the run and per-query results are recorded
        project_id: ID stored on the run (defaults to the project name)
        k: Cutoff for retrieval metrics (defaults to eval.default_k)
        tags: Only evaluate entries carrying at least one of these tags
        dataset_loader: Golden dataset loader (defaults to the configured store)
        include_generation: Recorded in the config snapshot

    Returns:
        EvalRunSummary with aggregate metrics and comparison to the previous run

    Raises:
        EvalError: DATASET_NOT_FOUND if the dataset has no entries,
            DATASET_INVALID if no entry can be scored,
            EVAL_RUN_FAILED if searching or storing fails mid-run
    """
    project_id = project_id or project_name
    if k is None:
        k = get_settings().get_effective_eval_config().default_k
    load_dataset = dataset_loader or load_golden_dataset

    # ── Select entries ──────────────────────────────────────────────────────
    dataset = load_dataset(project_name)
    if not dataset.entries:
        raise EvalError.dataset_not_found(project_name)

    with_paths = [e for e in dataset.entries if e.has_file_paths]
    skipped_count = len(dataset.entries) - len(with_paths)

    entries = filter_by_tags(with_paths, tags)
    tag_filtered_count = len(with_paths) - len(entries)

    if not entries:
        raise EvalError.dataset_invalid(
            "No entries with expectedFilePaths found in golden dataset"
        )

    config_snapshot = {
        "top_k": k,
        "include_generation": include_generation,
        "tags": list(tags or []),
    }

    # ── Record the run ──────────────────────────────────────────────────────
    run = EvalRun(
        id=generate_id(),
        project_id=project_id,
        timestamp=utc_now_iso(),
        dataset_version=dataset.version,
        query_count=len(entries),
        metrics=RetrievalMetrics().to_json(),
        config=json.dumps(config_snapshot),
        notes="status:running",
    )
    store.insert_eval_run(run)

    logger.info(f"Evaluating {len(entries)} queries for {project_name} (k={k}, run {run.id})")

    try:
        query_results: list[QueryResult] = []
        eval_results: list[EvalResult] = []

        for i, entry in enumerate(entries, 1):
            result = search(entry.query, k)
            expected = list(entry.expected_file_paths or [])

            metrics = compute_per_query_metrics(result.file_paths, expected, k)
            passed = metrics.hit_rate == 1.0

            eval_results.append(
                EvalResult(
                    id=generate_id(),
                    eval_run_id=run.id,
                    query=entry.query,
                    expected_files=expected,
                    retrieved_files=list(result.file_paths),
                    latency_ms=result.latency_ms,
                    metrics=metrics,
                    passed=passed,
                )
            )
            query_results.append(QueryResult(retrieved=list(result.file_paths), expected=expected))
            logger.debug(f"[{i}/{len(entries)}] {'PASS' if passed else 'FAIL'} {entry.query!r}")

        aggregate = compute_aggregate_metrics(query_results, k)

        store.insert_eval_results(eval_results)

        passed_count = sum(1 for r in eval_results if r.passed)
        notes = [
            "status:completed",
            f"{passed_count}/{len(entries)} passed",
        ]
        if skipped_count:
            notes.append(f"{skipped_count} skipped (no expectedFilePaths)")
        if tag_filtered_count:
            notes.append(f"{tag_filtered_count} filtered by tags")

        store.update_eval_run(
            run.id,
            metrics=aggregate.to_json(),
            query_count=len(entries),
            notes=" | ".join(notes),
        )

        comparison = build_comparison(run.id, aggregate, store.get_eval_runs(project_id, 2))

    except Exception as e:
        message = str(e)
        try:
            store.update_eval_run(run.id, notes=f"status:failed | {message}")
        except Exception as update_error:
            logger.warning(f"Could not mark run {run.id} as failed: {update_error}")

        logger.error(f"Eval run {run.id} failed: {message}")
        if isinstance(e, EvalError):
            raise
        raise EvalError.eval_run_failed(message, cause=e) from e

    logger.info(f"Eval run {run.id} completed: {aggregate}")

    return EvalRunSummary(
        run_id=run.id,
        project_name=project_name,
        timestamp=utc_now_iso(),
        query_count=len(entries),
        passed_count=passed_count,
        metrics=aggregate,
        config=config_snapshot,
        comparison=comparison,
    )
