"""
Tests for Exporter and Thresholds Modules.
==========================================

Tests for:
- RAGAS and DeepEval row conversion
- Pairing golden entries with eval results
- Writing export files
- Threshold checks and report text
"""

import json
from pathlib import Path

import pytest


def _result(query: str, retrieved: list[str]):
    from ctx_eval.shared.schemas import EvalResult, PerQueryMetrics

    return EvalResult(
        id="res-1",
        eval_run_id="run-1",
        query=query,
        expected_files=["src/auth/login.ts"],
        retrieved_files=retrieved,
        latency_ms=3.0,
        metrics=PerQueryMetrics(),
        passed=False,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Exporter Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestExporter:
    """Tests for judge input export."""

    def test_ragas_rows(self, sample_golden_dataset):
        """Test RAGAS ground truths combine answer and paths."""
        from ctx_eval.evaluation.exporter import ExportSourceEntry, export_to_ragas

        login, _, logger_entry = sample_golden_dataset.entries
        rows = export_to_ragas([
            ExportSourceEntry(golden=login, eval_result=_result(login.query, ["src/auth/login.ts"])),
            ExportSourceEntry(golden=logger_entry, answer="It logs."),
        ])

        assert rows[0] == {
            "question": "How does login work?",
            "answer": "",
            "contexts": ["src/auth/login.ts"],
            "ground_truths": ["src/auth/login.ts"],
        }
        assert rows[1]["ground_truths"] == ["It writes structured log lines."]
        assert rows[1]["answer"] == "It logs."
        assert rows[1]["contexts"] == []

    def test_ragas_answer_precedes_paths(self):
        """Test ordering when an entry has both an answer and paths."""
        from ctx_eval.evaluation.exporter import ExportSourceEntry, export_to_ragas
        from ctx_eval.shared.schemas import GoldenEntry

        entry = GoldenEntry(
            id="e", query="q", expected_file_paths=["a.ts", "b.ts"],
            expected_answer="answer", source="manual",
        )

        rows = export_to_ragas([ExportSourceEntry(golden=entry)])

        assert rows[0]["ground_truths"] == ["answer", "a.ts", "b.ts"]

    def test_deepeval_rows(self, sample_golden_dataset):
        """Test DeepEval expected output falls back to joined paths."""
        from ctx_eval.evaluation.exporter import ExportSourceEntry, export_to_deepeval
        from ctx_eval.shared.schemas import GoldenEntry

        login, _, logger_entry = sample_golden_dataset.entries
        multi = GoldenEntry(id="m", query="q", expected_file_paths=["a.ts", "b.ts"], source="manual")

        rows = export_to_deepeval([
            ExportSourceEntry(golden=login),
            ExportSourceEntry(golden=logger_entry),
            ExportSourceEntry(golden=multi),
        ])

        assert rows[0] == {
            "input": "How does login work?",
            "actual_output": "",
            "retrieval_context": [],
            "expected_output": "src/auth/login.ts",
        }
        assert rows[1]["expected_output"] == "It writes structured log lines."
        assert rows[2]["expected_output"] == "a.ts, b.ts"

    def test_pair_with_results(self, sample_golden_dataset):
        """Test results are matched to entries by query text."""
        from ctx_eval.evaluation.exporter import pair_with_results

        result = _result("How does login work?", ["x.ts"])

        pairs = pair_with_results(sample_golden_dataset.entries, [result])

        assert pairs[0].retrieved_files == ["x.ts"]
        assert pairs[1].eval_result is None

    def test_write_export(self, temp_dir: Path):
        """Test rows are written as pretty JSON with parent directories."""
        from ctx_eval.evaluation.exporter import write_export

        path = write_export([{"question": "q"}], temp_dir / "out" / "ragas.json")

        assert json.loads(path.read_text()) == [{"question": "q"}]

    def test_write_export_failure(self, temp_dir: Path):
        """Test unwritable destinations raise EVAL_RUN_FAILED."""
        from ctx_eval.evaluation.exporter import write_export
        from ctx_eval.shared.errors import EvalError, EvalErrorCode

        blocker = temp_dir / "file"
        blocker.write_text("not a directory")

        with pytest.raises(EvalError) as exc_info:
            write_export([], blocker / "ragas.json")

        assert exc_info.value.code == EvalErrorCode.EVAL_RUN_FAILED


# ─────────────────────────────────────────────────────────────────────────────
# Threshold Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestThresholds:
    """Tests for the pass/fail gate."""

    def test_default_thresholds(self):
        """Test configured thresholds apply to MRR, Precision@K and Hit Rate."""
        from ctx_eval.evaluation.thresholds import all_passed, check_thresholds
        from ctx_eval.shared.schemas import RetrievalMetrics

        checks = check_thresholds(RetrievalMetrics(mrr=0.7, precision_at_k=0.9, hit_rate=0.5))

        assert [c.metric.value for c in checks] == ["mrr", "precision_at_k", "hit_rate"]
        assert [c.passed for c in checks] == [True, True, False]
        assert checks[2].threshold == 0.85
        assert not all_passed(checks)

    def test_custom_thresholds(self):
        """Test explicit thresholds override configuration."""
        from ctx_eval.evaluation.thresholds import all_passed, check_thresholds
        from ctx_eval.shared.config import ThresholdsConfig
        from ctx_eval.shared.schemas import RetrievalMetrics

        checks = check_thresholds(
            RetrievalMetrics(mrr=0.6, precision_at_k=0.5, hit_rate=0.8),
            ThresholdsConfig(mrr=0.6, precision_at_k=0.5, hit_rate=0.8),
        )

        assert all_passed(checks)

    def test_report(self):
        """Test the report lists each metric and the verdict."""
        from ctx_eval.evaluation.thresholds import check_thresholds, format_threshold_report
        from ctx_eval.shared.schemas import RetrievalMetrics

        report = format_threshold_report(check_thresholds(RetrievalMetrics(mrr=1.0)))

        assert "PASS  MRR" in report
        assert "FAIL  Hit Rate" in report
        assert "2 of 3 thresholds failed" in report
