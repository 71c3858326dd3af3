"""
Tests for Aggregator Module.
============================

Tests for:
- Delta classification at the regression threshold
- Run comparison
- Trend computation (single run, corrupt metrics)
- Trend report formatting
"""

import pytest


def _metrics(**values):
    from ctx_eval.shared.schemas import RetrievalMetrics

    return RetrievalMetrics(**values)


# ─────────────────────────────────────────────────────────────────────────────
# Classification Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestClassification:
    """Tests for classify_delta and compare_runs."""

    @pytest.mark.parametrize("delta", [0.05, -0.05, 0.0, 0.049, -0.049])
    def test_stable_within_threshold(self, delta):
        """Test that changes up to and including 0.05 are stable."""
        from ctx_eval.evaluation.aggregator import MetricDirection, classify_delta

        assert classify_delta(delta) == (MetricDirection.STABLE, False, False)

    def test_improvement(self):
        """Test a change above the threshold is an improvement."""
        from ctx_eval.evaluation.aggregator import MetricDirection, classify_delta

        assert classify_delta(0.051) == (MetricDirection.UP, False, True)

    def test_regression(self):
        """Test a change below the negative threshold is a regression."""
        from ctx_eval.evaluation.aggregator import MetricDirection, classify_delta

        assert classify_delta(-0.1) == (MetricDirection.DOWN, True, False)

    def test_boundary_from_float_subtraction(self):
        """Test that 0.80 - 0.75 classifies as stable despite float error."""
        from ctx_eval.evaluation.aggregator import MetricDirection, compare_runs
        from ctx_eval.shared.schemas import MetricName

        comparison = compare_runs(_metrics(mrr=0.80), _metrics(mrr=0.75))

        assert comparison.metrics[MetricName.MRR].direction == MetricDirection.STABLE

    def test_compare_runs_summary(self):
        """Test summary counts over all six metrics."""
        from ctx_eval.evaluation.aggregator import compare_runs
        from ctx_eval.shared.schemas import MetricName

        current = _metrics(mrr=0.9, precision_at_k=0.4, recall_at_k=0.5)
        previous = _metrics(mrr=0.7, precision_at_k=0.6, recall_at_k=0.5)

        comparison = compare_runs(current, previous)

        assert comparison.summary.improvement_count == 1
        assert comparison.summary.regression_count == 1
        assert comparison.summary.stable_count == 4
        assert comparison.metrics[MetricName.MRR].delta == pytest.approx(0.2)
        assert comparison.metrics[MetricName.PRECISION_AT_K].is_regression


# ─────────────────────────────────────────────────────────────────────────────
# Trend Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestComputeTrend:
    """Tests for compute_trend."""

    def test_empty_runs_raises(self):
        """Test that an empty history is an error."""
        from ctx_eval.evaluation.aggregator import compute_trend
        from ctx_eval.shared.errors import EvalError, EvalErrorCode

        with pytest.raises(EvalError) as exc_info:
            compute_trend([])

        assert exc_info.value.code == EvalErrorCode.EVAL_RUN_FAILED

    def test_single_run(self, make_run):
        """Test a first eval has no previous run and stable trends without deltas."""
        from ctx_eval.evaluation.aggregator import MetricDirection, compute_trend

        trend = compute_trend([make_run("r1", _metrics(mrr=0.8))])

        assert trend.previous_run_id is None
        assert trend.run_count == 1
        assert len(trend.trends) == 6
        assert all(t.direction == MetricDirection.STABLE for t in trend.trends)
        assert all(t.delta is None and t.previous is None for t in trend.trends)
        assert not trend.has_regressions
        assert not trend.has_improvements

    def test_regression_and_improvement(self, make_run):
        """Test trends between two runs."""
        from ctx_eval.evaluation.aggregator import compute_trend

        runs = [
            make_run("new", _metrics(mrr=0.6, hit_rate=0.95)),
            make_run("old", _metrics(mrr=0.8, hit_rate=0.85)),
        ]

        trend = compute_trend(runs)

        assert trend.current_run_id == "new"
        assert trend.previous_run_id == "old"
        assert trend.has_regressions
        assert trend.has_improvements
        assert [t.metric.value for t in trend.regressions] == ["mrr"]
        assert [t.metric.value for t in trend.improvements] == ["hit_rate"]

    def test_corrupt_current_raises(self, make_run):
        """Test that unreadable current metrics fail the report."""
        from ctx_eval.evaluation.aggregator import compute_trend
        from ctx_eval.shared.errors import EvalError, EvalErrorCode

        runs = [make_run("bad", raw_metrics="{not json"), make_run("old", _metrics(mrr=0.5))]

        with pytest.raises(EvalError) as exc_info:
            compute_trend(runs)

        assert exc_info.value.code == EvalErrorCode.EVAL_RUN_FAILED
        assert "bad" in exc_info.value.message

    def test_out_of_range_current_raises(self, make_run):
        """Test that metrics outside [0, 1] count as corrupt."""
        from ctx_eval.evaluation.aggregator import compute_trend
        from ctx_eval.shared.errors import EvalError

        with pytest.raises(EvalError):
            compute_trend([make_run("bad", raw_metrics='{"mrr": 3.0}')])

    def test_corrupt_previous_degrades(self, make_run):
        """Test that unreadable previous metrics give a single-run report."""
        from ctx_eval.evaluation.aggregator import compute_trend

        runs = [make_run("new", _metrics(mrr=0.9)), make_run("old", raw_metrics="garbage")]

        trend = compute_trend(runs)

        assert trend.previous_run_id is None
        assert trend.run_count == 2
        assert all(t.delta is None for t in trend.trends)

    def test_to_dict(self, make_run):
        """Test JSON-ready conversion."""
        from ctx_eval.evaluation.aggregator import compute_trend

        data = compute_trend([make_run("r1", _metrics(mrr=0.8))]).to_dict()

        assert data["current_run_id"] == "r1"
        assert data["trends"][0] == {
            "metric": "mrr",
            "current": 0.8,
            "previous": None,
            "delta": None,
            "direction": "stable",
            "is_regression": False,
            "is_improvement": False,
        }


class TestBuildComparison:
    """Tests for build_comparison."""

    def test_skips_current_run(self, make_run):
        """Test the comparison is against the newest other run."""
        from ctx_eval.evaluation.aggregator import build_comparison

        current = _metrics(mrr=0.9)
        runs = [make_run("cur", current), make_run("prev", _metrics(mrr=0.5))]

        comparison = build_comparison("cur", current, runs)

        assert comparison.previous_run_id == "prev"
        assert comparison.metric_changes["mrr"] == pytest.approx(0.4)
        assert set(comparison.metric_changes) == {
            "mrr", "precision_at_k", "recall_at_k", "hit_rate", "ndcg", "map",
        }

    def test_no_previous(self, make_run):
        """Test no comparison for a first run."""
        from ctx_eval.evaluation.aggregator import build_comparison

        current = _metrics()
        assert build_comparison("cur", current, [make_run("cur", current)]) is None

    def test_corrupt_previous(self, make_run):
        """Test no comparison when the previous run is unreadable."""
        from ctx_eval.evaluation.aggregator import build_comparison

        runs = [make_run("cur"), make_run("prev", raw_metrics="[]")]

        assert build_comparison("cur", _metrics(), runs) is None


# ─────────────────────────────────────────────────────────────────────────────
# Report Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestTrendReport:
    """Tests for format_trend_report."""

    def test_first_eval(self, make_run):
        """Test the report for a single run."""
        from ctx_eval.evaluation.aggregator import compute_trend, format_trend_report

        report = format_trend_report(compute_trend([make_run("r1", _metrics(mrr=0.8))]))

        assert "Previous run: (none - first eval)" in report
        assert "MRR" in report
        assert "0.800" in report
        assert "All metrics stable" not in report

    def test_regressions_listed(self, make_run):
        """Test regressions and arrows in a comparison report."""
        from ctx_eval.evaluation.aggregator import compute_trend, format_trend_report

        runs = [make_run("new", _metrics(mrr=0.6)), make_run("old", _metrics(mrr=0.8))]

        report = format_trend_report(compute_trend(runs))

        assert "Regressions (1):" in report
        assert "MRR dropped by 0.200" in report
        assert "↓" in report

    def test_all_stable(self, make_run):
        """Test the stable message when nothing moved."""
        from ctx_eval.evaluation.aggregator import compute_trend, format_trend_report

        runs = [make_run("new", _metrics(mrr=0.8)), make_run("old", _metrics(mrr=0.78))]

        report = format_trend_report(compute_trend(runs))

        assert "All metrics stable (no changes exceeding 5%)" in report
        assert "→" in report
