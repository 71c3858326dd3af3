"""
History Module - Persistence of eval runs and per-query results.
================================================================

The runner and report commands talk to storage through the EvalStore
protocol. JsonlEvalStore keeps runs and results as JSON Lines files in one
directory, which is enough for local and CI use.
"""

import threading
from pathlib import Path
from typing import Optional, Protocol, Sequence

from pydantic import ValidationError

from ctx_eval.shared.config import get_settings
from ctx_eval.shared.logging import get_logger
from ctx_eval.shared.schemas import EvalResult, EvalRun
from ctx_eval.shared.utils import append_jsonl, ensure_directory, load_jsonl, save_jsonl

logger = get_logger(__name__)

RUNS_FILE_NAME = "runs.jsonl"
RESULTS_FILE_NAME = "results.jsonl"


class EvalStore(Protocol):
    """Storage for eval runs and their per-query results."""

    def insert_eval_run(self, run: EvalRun) -> None: ...

    def update_eval_run(
        self,
        run_id: str,
        *,
        metrics: Optional[str] = None,
        query_count: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> None: ...

    def get_eval_runs(self, project_id: str, limit: Optional[int] = None) -> list[EvalRun]: ...

    def insert_eval_results(self, results: Sequence[EvalResult]) -> None: ...

    def get_eval_results(self, run_id: str) -> list[EvalResult]: ...


class JsonlEvalStore:
    """
    EvalStore backed by JSON Lines files.

    Runs are appended on insert and rewritten atomically on update.
    Unreadable lines are skipped with a warning.
    """

    def __init__(self, directory: str | Path):
        self.directory = Path(directory).expanduser()
        self.runs_path = self.directory / RUNS_FILE_NAME
        self.results_path = self.directory / RESULTS_FILE_NAME
        self._lock = threading.Lock()

    def _load_runs(self) -> list[EvalRun]:
        if not self.runs_path.exists():
            return []

        runs = []
        for record in load_jsonl(self.runs_path):
            try:
                runs.append(EvalRun.model_validate(record))
            except ValidationError as e:
                logger.warning(f"Skipping malformed run record in {self.runs_path}: {e}")
        return runs

    def _count_run_lines(self) -> int:
        with open(self.runs_path, "r", encoding="utf-8", errors="replace") as f:
            return sum(1 for line in f if line.strip())

    def insert_eval_run(self, run: EvalRun) -> None:
        with self._lock:
            ensure_directory(self.directory)
            append_jsonl(self.runs_path, run.model_dump())
        logger.debug(f"Inserted eval run {run.id}")

    def update_eval_run(
        self,
        run_id: str,
        *,
        metrics: Optional[str] = None,
        query_count: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> None:
        """
        Update fields of a stored run.

        Raises:
            KeyError: If no run with that ID exists
        """
        updates = {
            key: value
            for key, value in (
                ("metrics", metrics),
                ("query_count", query_count),
                ("notes", notes),
            )
            if value is not None
        }

        with self._lock:
            runs = self._load_runs()
            for i, run in enumerate(runs):
                if run.id == run_id:
                    runs[i] = run.model_copy(update=updates)
                    break
            else:
                raise KeyError(f"eval run not found: {run_id}")

            dropped = self._count_run_lines() - len(runs)
            if dropped:
                logger.warning(
                    f"Dropping {dropped} malformed line(s) from {self.runs_path} while updating run {run_id}"
                )
            save_jsonl(self.runs_path, (r.model_dump() for r in runs))

    def get_eval_runs(self, project_id: str, limit: Optional[int] = None) -> list[EvalRun]:
        """Get a project's runs, most recent first."""
        runs = [r for r in self._load_runs() if r.project_id == project_id]
        # Later inserts win ties on timestamp
        runs = list(reversed(runs))
        runs.sort(key=lambda r: r.timestamp, reverse=True)
        if limit is not None:
            runs = runs[: max(limit, 0)]
        return runs

    def insert_eval_results(self, results: Sequence[EvalResult]) -> None:
        if not results:
            return
        with self._lock:
            ensure_directory(self.directory)
            for result in results:
                append_jsonl(self.results_path, result.model_dump())
        logger.debug(f"Inserted {len(results)} eval results")

    def get_eval_results(self, run_id: str) -> list[EvalResult]:
        if not self.results_path.exists():
            return []

        results = []
        for record in load_jsonl(self.results_path):
            if not isinstance(record, dict):
                logger.warning(f"Skipping non-object result record in {self.results_path}")
                continue
            if record.get("eval_run_id") != run_id:
                continue
            try:
                results.append(EvalResult.model_validate(record))
            except ValidationError as e:
                logger.warning(f"Skipping malformed result record in {self.results_path}: {e}")
        return results


def get_eval_store() -> JsonlEvalStore:
    """Get a store rooted at the configured history_path."""
    return JsonlEvalStore(get_settings().get_effective_eval_config().history_dir)
