"""
CLI Module - Command-line interface for ctx-eval.
=================================================

Provides CLI commands for:
- Running batch evaluations against golden datasets
- Reporting run-over-run trends
- Managing golden datasets
- Exporting and grading with judge models

Usage:
    ctx-eval --help
    ctx-eval golden add my-app "where is auth handled?" -f src/auth/login.ts
    ctx-eval run my-app --results search_results.json
    ctx-eval report my-app --last 5

Components:
- main: Typer CLI application
"""

from ctx_eval.cli.main import app, cli

__all__ = ["app", "cli"]
