"""
CLI Main - Typer command-line interface.
========================================

Commands:
- run: Evaluate a project's golden dataset against search results
- report: Show trends across stored eval runs
- golden: List, add and remove golden entries
- export: Write RAGAS / DeepEval input files
- judge: Check and run the judge-model toolchain
- info: Show effective configuration
"""

import json
from pathlib import Path
from typing import NoReturn, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ctx_eval.shared.errors import EvalError
from ctx_eval.shared.logging import get_console, get_logger

logger = get_logger(__name__)

app = typer.Typer(
    name="ctx-eval",
    help="""📏 ctx-eval - Retrieval quality evaluation for RAG search

Scores ranked search output against a curated golden dataset and tracks
whether quality moved between runs.

━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

QUICK START:

  ctx-eval golden add my-app "where is auth handled?" -f src/auth/login.ts
  ctx-eval run my-app --results search_results.json
  ctx-eval report my-app

JUDGE MODELS:

  ctx-eval export my-app --format ragas -o ragas.json
  ctx-eval judge ragas ragas.json -m faithfulness

Use 'ctx-eval <command> --help' for detailed command options.
""",
    add_completion=False,
    rich_markup_mode="rich",
)

golden_app = typer.Typer(help="📚 Manage golden datasets.", add_completion=False)
judge_app = typer.Typer(help="⚖️ Grade answers with RAGAS / DeepEval.", add_completion=False)
app.add_typer(golden_app, name="golden")
app.add_typer(judge_app, name="judge")

console = Console()
# Errors share the stderr console used by the log handler
err_console = get_console()


def _exit_with_error(error: EvalError) -> NoReturn:
    """Print an EvalError as [CODE] message and exit with status 1."""
    err_console.print(f"[red]{escape(f'[{error.code.value}] {error.message}')}[/red]")
    raise typer.Exit(1)


def _echo_json(data) -> None:
    typer.echo(json.dumps(data, indent=2, default=str))


@app.callback()
def main(
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Enable debug logging.",
    ),
):
    """Configure logging from settings before any command runs."""
    from ctx_eval.shared.config import get_settings
    from ctx_eval.shared.logging import setup_logging

    settings = get_settings()
    setup_logging(
        level="DEBUG" if verbose else settings.get_effective_log_level(),
        use_rich=settings.logging.rich_console,
        log_file=settings.logging.file or None,
        log_format=settings.logging.format,
        force=True,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Run Command
# ─────────────────────────────────────────────────────────────────────────────


@app.command()
def run(
    project: str = typer.Argument(..., help="Project whose golden dataset is evaluated."),
    results_file: Path = typer.Option(
        ...,
        "--results", "-r",
        help="JSON file mapping each query to its ranked file paths.",
    ),
    top_k: Optional[int] = typer.Option(
        None,
        "--top-k", "-k",
        min=1, max=100,
        help="Cutoff for retrieval metrics. Default: eval.default_k.",
    ),
    tags: Optional[list[str]] = typer.Option(
        None,
        "--tag", "-t",
        help="Only evaluate entries with this tag (repeatable).",
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the summary as JSON."),
):
    """
    📊 Evaluate retrieval quality for a project.

    Scores each golden query against the captured search results, stores the
    run and prints metrics with threshold pass/fail. Exits with status 1 when
    any threshold fails.

    Examples:
        ctx-eval run my-app -r results.json
        ctx-eval run my-app -r results.json -k 10 -t auth
    """
    from ctx_eval.evaluation.history import get_eval_store
    from ctx_eval.evaluation.runner import ReplaySearch, run_eval
    from ctx_eval.evaluation.thresholds import (
        all_passed,
        check_thresholds,
        format_threshold_report,
    )

    try:
        summary = run_eval(
            project,
            ReplaySearch(results_file),
            get_eval_store(),
            k=top_k,
            tags=tags,
        )
    except EvalError as e:
        _exit_with_error(e)

    checks = check_thresholds(summary.metrics)
    passed = all_passed(checks)

    if as_json:
        data = summary.model_dump(mode="json")
        data["thresholds"] = [c.to_dict() for c in checks]
        data["thresholds_passed"] = passed
        _echo_json(data)
    else:
        console.print(Panel(
            f"[bold]Run:[/bold] {summary.run_id}\n"
            f"Project: {summary.project_name}\n"
            f"Queries: {summary.query_count} ({summary.passed_count} passed)\n"
            f"Top-K: {summary.config.get('top_k')}",
            title="📊 Eval Run",
        ))

        changes = summary.comparison.metric_changes if summary.comparison else {}
        table = Table(show_header=True)
        table.add_column("Metric", style="cyan")
        table.add_column("Value", justify="right")
        table.add_column("Change", justify="right")
        for name, value in summary.metrics.model_dump().items():
            delta = changes.get(name)
            table.add_row(name, f"{value:.3f}", f"{delta:+.3f}" if delta is not None else "-")
        console.print(table)

        console.print("\n[bold]Thresholds:[/bold]")
        console.print(escape(format_threshold_report(checks)))

    if not passed:
        raise typer.Exit(1)


# ─────────────────────────────────────────────────────────────────────────────
# Report Command
# ─────────────────────────────────────────────────────────────────────────────


@app.command()
def report(
    project: str = typer.Argument(..., help="Project to report on."),
    last: int = typer.Option(
        10,
        "--last", "-n",
        min=1,
        help="Number of recent runs to analyze.",
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the trend as JSON."),
):
    """
    📈 Show metric trends across recent eval runs.

    Compares the most recent run with the one before it and lists
    regressions and improvements larger than 5%.
    """
    from ctx_eval.evaluation.aggregator import compute_trend, format_trend_report
    from ctx_eval.evaluation.history import get_eval_store

    runs = get_eval_store().get_eval_runs(project, last)
    if not runs:
        console.print(f"[yellow]No eval runs found for {escape(project)}. "
                      f"Run: ctx-eval run {escape(project)} --results <file>[/yellow]")
        return

    try:
        trend = compute_trend(runs)
    except EvalError as e:
        _exit_with_error(e)

    if as_json:
        _echo_json(trend.to_dict())
    else:
        typer.echo(format_trend_report(trend))


# ─────────────────────────────────────────────────────────────────────────────
# Golden Commands
# ─────────────────────────────────────────────────────────────────────────────


@golden_app.command("list")
def golden_list(
    project: str = typer.Argument(..., help="Project name."),
    as_json: bool = typer.Option(False, "--json", help="Print entries as JSON."),
):
    """List golden entries for a project."""
    from ctx_eval.evaluation.golden import list_golden_entries

    try:
        entries = list_golden_entries(project)
    except EvalError as e:
        _exit_with_error(e)

    if as_json:
        _echo_json([e.model_dump(mode="json", by_alias=True, exclude_none=True) for e in entries])
        return

    if not entries:
        console.print(f"[yellow]No golden entries for {escape(project)}[/yellow]")
        return

    table = Table(show_header=True, title=f"Golden dataset: {escape(project)}")
    table.add_column("ID", style="dim")
    table.add_column("Query", style="cyan")
    table.add_column("Expected")
    table.add_column("Tags")
    table.add_column("Source")

    for entry in entries:
        expected = ", ".join(entry.expected_file_paths or [])
        if entry.expected_answer:
            expected = (expected + "\n" if expected else "") + "(answer)"
        table.add_row(
            entry.id[:8],
            escape(entry.query),
            escape(expected),
            escape(", ".join(entry.tags or [])),
            entry.source.value,
        )

    console.print(table)
    console.print(f"[dim]{len(entries)} entries[/dim]")


@golden_app.command("add")
def golden_add(
    project: str = typer.Argument(..., help="Project name."),
    query: str = typer.Argument(..., help="Query text."),
    files: Optional[list[str]] = typer.Option(
        None,
        "--file", "-f",
        help="Expected file path (repeatable).",
    ),
    answer: Optional[str] = typer.Option(
        None,
        "--answer", "-a",
        help="Reference answer for judge-model grading.",
    ),
    tags: Optional[list[str]] = typer.Option(None, "--tag", "-t", help="Tag (repeatable)."),
    source: str = typer.Option(
        "manual",
        "--source", "-s",
        help="Provenance: manual, generated or captured.",
    ),
):
    """Add a golden entry. Requires --file or --answer."""
    from ctx_eval.evaluation.golden import add_golden_entry

    try:
        entry = add_golden_entry(
            project,
            query,
            expected_file_paths=files,
            expected_answer=answer,
            tags=tags,
            source=source,
        )
    except EvalError as e:
        _exit_with_error(e)

    console.print(f"[green]✓ Added golden entry {entry.id}[/green]")


@golden_app.command("remove")
def golden_remove(
    project: str = typer.Argument(..., help="Project name."),
    entry_id: str = typer.Argument(..., help="ID of the entry to remove."),
):
    """Remove a golden entry by ID."""
    from ctx_eval.evaluation.golden import remove_golden_entry

    try:
        removed = remove_golden_entry(project, entry_id)
    except EvalError as e:
        _exit_with_error(e)

    if not removed:
        err_console.print(f"[yellow]Entry {escape(entry_id)} not found in {escape(project)}[/yellow]")
        raise typer.Exit(1)

    console.print(f"[green]✓ Removed golden entry {escape(entry_id)}[/green]")


# ─────────────────────────────────────────────────────────────────────────────
# Export Command
# ─────────────────────────────────────────────────────────────────────────────


@app.command()
def export(
    project: str = typer.Argument(..., help="Project name."),
    export_format: str = typer.Option(
        ...,
        "--format", "-f",
        help="Output format: ragas or deepeval.",
    ),
    output_file: Path = typer.Option(..., "--output", "-o", help="Output JSON file."),
    run_id: Optional[str] = typer.Option(
        None,
        "--run",
        help="Eval run whose retrieved files become contexts. Default: latest run.",
    ),
):
    """
    📤 Export golden entries for RAGAS or DeepEval.

    Retrieved files from the chosen eval run are used as contexts; entries
    without a result are exported with empty contexts.
    """
    from ctx_eval.evaluation.exporter import (
        EXPORT_FORMATS,
        export_to_deepeval,
        export_to_ragas,
        pair_with_results,
        write_export,
    )
    from ctx_eval.evaluation.golden import list_golden_entries
    from ctx_eval.evaluation.history import get_eval_store

    export_format = export_format.lower()
    if export_format not in EXPORT_FORMATS:
        err_console.print(f"[red]Unknown format '{escape(export_format)}'. "
                          f"Use one of: {', '.join(EXPORT_FORMATS)}[/red]")
        raise typer.Exit(1)

    try:
        entries = list_golden_entries(project)
        if not entries:
            raise EvalError.dataset_not_found(project)

        store = get_eval_store()
        if run_id is None:
            latest = store.get_eval_runs(project, 1)
            run_id = latest[0].id if latest else None
        results = store.get_eval_results(run_id) if run_id else []

        sources = pair_with_results(entries, results)
        rows = export_to_ragas(sources) if export_format == "ragas" else export_to_deepeval(sources)
        write_export(rows, output_file)
    except EvalError as e:
        _exit_with_error(e)

    console.print(f"[green]✓ Exported {len(rows)} rows to {escape(str(output_file))}[/green]")


# ─────────────────────────────────────────────────────────────────────────────
# Judge Commands
# ─────────────────────────────────────────────────────────────────────────────


@judge_app.command("check")
def judge_check(
    as_json: bool = typer.Option(False, "--json", help="Print availability as JSON."),
):
    """Check the judge interpreter and installed packages."""
    from ctx_eval.evaluation.judge import get_judge_bridge

    bridge = get_judge_bridge()
    availability = bridge.check_availability()

    if as_json:
        _echo_json(availability.model_dump())
        return

    def status(found: bool, version: Optional[str]) -> str:
        return f"[green]✓ {version or ''}[/green]" if found else "[red]✗ not installed[/red]"

    table = Table(show_header=True, title=f"Judge interpreter: {escape(bridge.python_path)}")
    table.add_column("Component")
    table.add_column("Status")
    table.add_row("python", status(availability.python_found, availability.python_version))
    table.add_row("ragas", status(availability.ragas_available, availability.ragas_version))
    table.add_row("deepeval", status(availability.deepeval_available, availability.deepeval_version))
    console.print(table)

    if not availability.python_found:
        console.print("[yellow]Install Python 3 or set eval.python_path[/yellow]")
    elif not (availability.ragas_available or availability.deepeval_available):
        console.print("[yellow]Install a judge toolchain: pip install ragas datasets "
                      "(or pip install deepeval)[/yellow]")


def _print_judge_scores(title: str, scores: dict[str, float], duration: float, model: str) -> None:
    table = Table(show_header=True, title=title)
    table.add_column("Metric", style="cyan")
    table.add_column("Score", justify="right")
    for name, value in scores.items():
        table.add_row(name, f"{value:.3f}")
    console.print(table)
    console.print(f"[dim]Model: {escape(model)} | {duration:.1f}s[/dim]")


@judge_app.command("ragas")
def judge_ragas(
    data_file: Path = typer.Argument(..., help="RAGAS export file."),
    metrics: Optional[list[str]] = typer.Option(
        None,
        "--metric", "-m",
        help="faithfulness, answer_relevancy, context_precision, context_recall (repeatable).",
    ),
    as_json: bool = typer.Option(False, "--json", help="Print results as JSON."),
):
    """Grade a RAGAS export with the judge model."""
    from ctx_eval.evaluation.judge import get_judge_bridge

    try:
        results = get_judge_bridge().run_ragas(
            data_file, metrics or ["faithfulness", "answer_relevancy"]
        )
    except EvalError as e:
        _exit_with_error(e)

    if as_json:
        _echo_json(results.model_dump())
        return
    _print_judge_scores(
        "⚖️ RAGAS", results.scores, results.metadata.duration_seconds, results.metadata.model_used
    )


@judge_app.command("deepeval")
def judge_deepeval(
    data_file: Path = typer.Argument(..., help="DeepEval export file."),
    metrics: Optional[list[str]] = typer.Option(
        None,
        "--metric", "-m",
        help="faithfulness, answer_relevancy, contextual_precision, contextual_recall (repeatable).",
    ),
    as_json: bool = typer.Option(False, "--json", help="Print results as JSON."),
):
    """Grade a DeepEval export with the judge model."""
    from ctx_eval.evaluation.judge import get_judge_bridge

    try:
        results = get_judge_bridge().run_deepeval(
            data_file, metrics or ["faithfulness", "answer_relevancy"]
        )
    except EvalError as e:
        _exit_with_error(e)

    if as_json:
        _echo_json(results.model_dump())
        return
    _print_judge_scores(
        "⚖️ DeepEval", results.scores, results.metadata.duration_seconds, results.metadata.model_used
    )


# ─────────────────────────────────────────────────────────────────────────────
# Info Command
# ─────────────────────────────────────────────────────────────────────────────


@app.command()
def info():
    """
    ℹ️ Show version and effective configuration.

    Environment overrides (CTX_EVAL_*) are already applied.
    """
    from ctx_eval import __version__
    from ctx_eval.shared.config import DEFAULT_CONFIG_FILE, get_settings

    settings = get_settings()
    eval_config = settings.get_effective_eval_config()

    console.print(Panel(
        f"[bold]ctx-eval[/bold]\n"
        f"Version: {__version__}\n"
        f"Config: {escape(str(DEFAULT_CONFIG_FILE))}",
        title="ℹ️ Info",
    ))

    table = Table(show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_row("default_k", str(eval_config.default_k))
    table.add_row("thresholds.mrr", f"{eval_config.thresholds.mrr:.2f}")
    table.add_row("thresholds.hit_rate", f"{eval_config.thresholds.hit_rate:.2f}")
    table.add_row("thresholds.precision_at_k", f"{eval_config.thresholds.precision_at_k:.2f}")
    table.add_row("python_path", escape(eval_config.python_path))
    table.add_row("ragas_model", escape(eval_config.ragas_model))
    table.add_row("judge_timeout_seconds", f"{eval_config.judge_timeout_seconds:g}")
    table.add_row("OPENAI_API_KEY", "set" if settings.openai_api_key else "not set")
    console.print(table)

    console.print("\n[bold]Data Paths:[/bold]")
    for name, path in (
        ("golden_path", eval_config.golden_dir),
        ("history_path", eval_config.history_dir),
    ):
        exists = "✓" if path.exists() else "✗"
        console.print(f"  {name}: {escape(str(path))} [{exists}]")


# ─────────────────────────────────────────────────────────────────────────────
# Entry Point
# ─────────────────────────────────────────────────────────────────────────────


def cli():
    """CLI entry point."""
    app()


if __name__ == "__main__":
    cli()
