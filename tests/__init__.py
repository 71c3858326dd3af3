"""
Tests Package - Unit and integration tests for ctx-eval.
========================================================

Test modules:
- test_metrics: Per-query and aggregate retrieval metrics
- test_aggregator: Delta classification, trends and reports
- test_golden: Golden dataset store
- test_runner: Run history store, replay search and batch runner
- test_judge: RAGAS / DeepEval subprocess bridge
- test_exporter: Judge input export and threshold gate
- test_config: Settings and error codes
- test_cli: Typer commands

Run tests with:
    pytest tests/
    pytest tests/ -v --cov=src/ctx_eval
"""
