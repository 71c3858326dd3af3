"""
Pytest Configuration and Fixtures.
===================================

Shared fixtures for all test modules:
- Temporary directories and isolated settings
- Sample golden entries and eval runs
- Fake judge subprocess runner
"""

import json
import subprocess
import tempfile
from pathlib import Path
from typing import Callable, Generator, Optional

import pytest


# ─────────────────────────────────────────────────────────────────────────────
# Path / Settings Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture(autouse=True)
def isolated_settings(temp_dir: Path, monkeypatch: pytest.MonkeyPatch):
    """Point golden datasets and run history at a temp dir and reset cached settings."""
    from ctx_eval.shared.config import get_settings, reload_settings

    monkeypatch.setenv("CTX_EVAL_GOLDEN_PATH", str(temp_dir / "golden"))
    monkeypatch.setenv("CTX_EVAL_HISTORY_PATH", str(temp_dir / "history"))
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    for name in ("CTX_EVAL_DEFAULT_K", "CTX_EVAL_PYTHON_PATH", "CTX_EVAL_RAGAS_MODEL"):
        monkeypatch.delenv(name, raising=False)

    settings = reload_settings()
    yield settings
    get_settings.cache_clear()


@pytest.fixture
def golden_store(temp_dir: Path):
    """GoldenDatasetStore rooted in a temp directory."""
    from ctx_eval.evaluation.golden import GoldenDatasetStore

    return GoldenDatasetStore(temp_dir / "golden")


@pytest.fixture
def eval_store(temp_dir: Path):
    """JsonlEvalStore rooted in a temp directory."""
    from ctx_eval.evaluation.history import JsonlEvalStore

    return JsonlEvalStore(temp_dir / "history")


# ─────────────────────────────────────────────────────────────────────────────
# Sample Data Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def sample_golden_dataset():
    """Golden dataset with file-path, answer-only and tagged entries."""
    from ctx_eval.shared.schemas import GoldenDataset

    return GoldenDataset.model_validate({
        "version": "1.0",
        "projectName": "test-project",
        "entries": [
            {
                "id": "e1",
                "query": "How does login work?",
                "expectedFilePaths": ["src/auth/login.ts"],
                "tags": ["auth"],
                "source": "manual",
            },
            {
                "id": "e2",
                "query": "Where is the database connection opened?",
                "expectedFilePaths": ["src/database/connection.ts"],
                "tags": ["database"],
                "source": "manual",
            },
            {
                "id": "e3",
                "query": "What does the logger do?",
                "expectedAnswer": "It writes structured log lines.",
                "source": "generated",
            },
        ],
    })


@pytest.fixture
def sample_search_results() -> dict:
    """Captured search output for the sample dataset (login hit, database miss)."""
    return {
        "How does login work?": ["./src/auth/login.ts", "src/auth/middleware.ts"],
        "Where is the database connection opened?": {
            "file_paths": ["src/api/router.ts", "src/utils/logger.ts"],
            "latency_ms": 12.5,
        },
    }


@pytest.fixture
def make_run() -> Callable:
    """Factory for EvalRun records with given metrics."""
    from ctx_eval.shared.schemas import EvalRun, RetrievalMetrics

    def _make_run(
        run_id: str,
        metrics: Optional[RetrievalMetrics] = None,
        raw_metrics: Optional[str] = None,
        timestamp: str = "2026-01-01T00:00:00+00:00",
        project_id: str = "test-project",
    ) -> EvalRun:
        return EvalRun(
            id=run_id,
            project_id=project_id,
            timestamp=timestamp,
            dataset_version="1.0",
            query_count=10,
            metrics=raw_metrics if raw_metrics is not None else (metrics or RetrievalMetrics()).to_json(),
            config=json.dumps({"top_k": 5}),
        )

    return _make_run


# ─────────────────────────────────────────────────────────────────────────────
# Judge Fixtures
# ─────────────────────────────────────────────────────────────────────────────


class FakeExec:
    """
    Stand-in for the judge subprocess runner.

    Records every call and writes `output` (a dict, raw text or raw bytes)
    to the output path argument before returning.
    """

    def __init__(
        self,
        output=None,
        returncode: int = 0,
        stdout: str = "",
        stderr: str = "",
        raises: Optional[BaseException] = None,
    ):
        self.output = output
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.raises = raises
        self.calls: list[dict] = []

    @property
    def last_output_path(self) -> Optional[Path]:
        if not self.calls or len(self.calls[-1]["cmd"]) < 5:
            return None
        return Path(self.calls[-1]["cmd"][4])

    def __call__(self, cmd, timeout, env, max_output_bytes):
        self.calls.append({
            "cmd": list(cmd),
            "timeout": timeout,
            "env": dict(env),
            "max_output_bytes": max_output_bytes,
        })

        if len(cmd) >= 5 and self.output is not None:
            if isinstance(self.output, bytes):
                Path(cmd[4]).write_bytes(self.output)
            else:
                text = self.output if isinstance(self.output, str) else json.dumps(self.output)
                Path(cmd[4]).write_text(text, encoding="utf-8")

        if self.raises is not None:
            raise self.raises

        return subprocess.CompletedProcess(cmd, self.returncode, self.stdout, self.stderr)


@pytest.fixture
def fake_exec_factory() -> Callable[..., FakeExec]:
    """Build FakeExec instances."""
    return FakeExec


@pytest.fixture
def ragas_output() -> dict:
    """Valid RAGAS runner output."""
    return {
        "scores": {"faithfulness": 0.9, "answer_relevancy": 0.75},
        "details": [
            {"question": "How does login work?", "scores": {"faithfulness": 0.9, "answer_relevancy": 0.75}},
        ],
        "metadata": {
            "duration_seconds": 3.2,
            "model_used": "gpt-4o-mini",
            "metrics_evaluated": ["faithfulness", "answer_relevancy"],
        },
    }


@pytest.fixture
def deepeval_output() -> dict:
    """Valid DeepEval runner output."""
    return {
        "scores": {"faithfulness": 0.8},
        "details": [
            {
                "input": "How does login work?",
                "scores": {"faithfulness": 0.8},
                "reasons": {"faithfulness": "Claims are supported by the context."},
            },
        ],
        "metadata": {
            "duration_seconds": 1.5,
            "model_used": "gpt-4o-mini",
            "metrics_evaluated": ["faithfulness"],
        },
    }


@pytest.fixture
def judge_input_file(temp_dir: Path) -> Path:
    """Exported judge input file."""
    path = temp_dir / "export.json"
    path.write_text(json.dumps([{"question": "q", "answer": "", "contexts": [], "ground_truths": []}]))
    return path
