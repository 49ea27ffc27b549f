"""
SQL Analyzer CLI

Command-line interface for the SQL analyzer.

Usage:
    sql-analyzer analyze query.sql                  # Analyze a SQL file
    sql-analyzer analyze --sql "SELECT * FROM t"    # Analyze inline SQL
    sql-analyzer recover response.txt               # Decode raw model output offline
    sql-analyzer classify "ECONNREFUSED"            # Classify an error message
    sql-analyzer stats                              # Show resilience counters
    sql-analyzer serve                              # Run the HTTP API
"""

import asyncio
import json
import logging
import sys
from typing import Any

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from sql_analyzer import __version__
from sql_analyzer.agents.coordinator import MultiAgentCoordinator
from sql_analyzer.agents.tools import DIMENSIONS
from sql_analyzer.config import LoggingSettings, get_settings
from sql_analyzer.models.analysis import AnalysisRequest, CompositeResult, ExecutionMode
from sql_analyzer.models.classification import ErrorClassification
from sql_analyzer.models.errors import AdaptationError, AnalyzerError, ResilienceError
from sql_analyzer.models.recovery import DecodeResult
from sql_analyzer.parsing.pipeline import recover_structured
from sql_analyzer.resilience.classifier import get_default_classifier
from sql_analyzer.resilience.registry import get_default_registry

console = Console()

DATABASE_TYPES = ["postgresql", "mysql", "clickhouse", "sqlite", "generic"]


def configure_cli_logging(verbose: bool) -> None:
    if verbose:
        LoggingSettings(level="DEBUG").configure()
        return
    logging.basicConfig(level=logging.CRITICAL, force=True)
    for logger_name in ("sql_analyzer", "httpx", "openai", "asyncio"):
        logging.getLogger(logger_name).setLevel(logging.CRITICAL)


def _fail(exc: Exception, verbose: bool) -> None:
    """Print a sanitized error (technical detail only with --verbose) and exit 1."""
    if isinstance(exc, ResilienceError):
        message = get_default_classifier().format_user_message(exc.classification)
        console.print(f"[red]{escape(message)}[/red]")
        if verbose:
            console.print(f"[dim]{escape(exc.technical_message)}[/dim]")
    elif isinstance(exc, AnalyzerError):
        console.print(f"[red]Error: {escape(exc.message)}[/red]")
        if verbose and exc.context:
            console.print(f"[dim]{escape(json.dumps(exc.context, default=str))}[/dim]")
    else:
        classification = get_default_classifier().classify(exc)
        console.print(f"[red]Error: {escape(classification.user_message)}[/red]")
        if verbose:
            console.print(f"[dim]{escape(classification.technical_message)}[/dim]")
    sys.exit(1)


# ============================================================================
# Output Formatting
# ============================================================================


def print_composite(result: CompositeResult) -> None:
    table = Table(title="SQL Analysis", show_header=True, header_style="bold cyan")
    table.add_column("Dimension")
    table.add_column("Status")
    table.add_column("Confidence", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Strategy")
    table.add_column("Summary")

    for name, tool_result in result.per_tool_results.items():
        if tool_result is None:
            table.add_row(name, "[dim]disabled[/dim]", "-", "-", "-", "")
            continue
        status = "[green]ok[/green]" if tool_result.success else "[yellow]default[/yellow]"
        if tool_result.success and tool_result.repaired:
            status = "[green]ok (repaired)[/green]"
        score = tool_result.data.get("score")
        table.add_row(
            name,
            status,
            f"{tool_result.confidence:.2f}",
            "-" if score is None else f"{score:g}",
            tool_result.strategy.value if tool_result.strategy else "-",
            escape(str(tool_result.data.get("summary", ""))),
        )
    console.print(table)

    for name, tool_result in result.per_tool_results.items():
        if tool_result is None:
            continue
        findings = _findings(tool_result.data)
        recommendations = tool_result.data.get("recommendations") or []
        if not findings and not recommendations and tool_result.success:
            continue
        lines = [f"- {_describe_item(item)}" for item in findings]
        if recommendations:
            lines.append("")
            lines.append("[bold]Recommendations[/bold]")
            lines.extend(f"- {_describe_item(item)}" for item in recommendations)
        if tool_result.error:
            lines.append("")
            lines.append(f"[yellow]{escape(tool_result.error)}[/yellow]")
        console.print(Panel("\n".join(lines) or "No findings", title=f"[bold]{name}[/bold]"))

    metadata = result.metadata
    console.print(
        f"[dim]aggregate confidence {result.aggregate_confidence:.2f} | "
        f"{metadata.execution_mode.value} | {metadata.llm_calls} LLM calls | "
        f"{(metadata.duration_ms or 0):.0f} ms"
        f"{' | timed out' if metadata.timed_out else ''}[/dim]"
    )


def _findings(data: dict[str, Any]) -> list[Any]:
    for key in ("issues", "vulnerabilities", "violations"):
        if data.get(key):
            return list(data[key])
    return []


def _describe_item(item: Any) -> str:
    """One-line rendering of a finding, escaped for rich markup."""
    if isinstance(item, dict):
        severity = item.get("severity")
        text = (
            item.get("description") or item.get("message") or item.get("type") or json.dumps(item)
        )
        return escape(f"[{severity}] {text}" if severity else str(text))
    return escape(str(item))


def print_decode_result(result: DecodeResult) -> None:
    if not result.success:
        console.print(
            Panel(
                f"[red]{escape(result.error or '')}[/red]",
                title="[bold red]Recovery failed[/bold red]",
            )
        )
        return

    attempted = ", ".join(strategy.value for strategy in result.attempted)
    console.print(
        f"[green]Recovered[/green] with [bold]{result.strategy.value}[/bold] "
        f"(confidence {result.confidence:.2f}; tried {attempted})"
    )
    console.print_json(json.dumps(result.data, default=str))
    if result.issues:
        table = Table(title="Coerced fields", show_header=True, header_style="bold cyan")
        table.add_column("Field")
        table.add_column("Range")
        table.add_column("Actual")
        table.add_column("Coerced")
        for issue in result.issues:
            low, high = issue.expected_range
            table.add_row(
                issue.field,
                f"{low:g}-{high:g}",
                escape(repr(issue.actual_value)),
                f"{issue.coerced_value:g}",
            )
        console.print(table)


def print_classification(classification: ErrorClassification, verbose: bool) -> None:
    table = Table(title="Error Classification", show_header=False, box=None)
    table.add_column("Field", style="bold cyan")
    table.add_column("Value")
    table.add_row("Kind", classification.kind.value)
    table.add_row("Severity", classification.severity.value)
    table.add_row("Strategy", classification.strategy.value)
    table.add_row("Retryable", "yes" if classification.retryable else "no")
    advice = get_default_classifier().get_handling_advice(classification)
    table.add_row("Retry delay", f"{advice.retry_delay:g}s")
    table.add_row("Escalate", "yes" if advice.escalation_needed else "no")
    if verbose:
        table.add_row("Technical", escape(classification.technical_message))
    console.print(table)
    console.print(escape(get_default_classifier().format_user_message(classification)))


def print_stats(stats: dict[str, Any]) -> None:
    table = Table(title="Resilience Counters", show_header=True, header_style="bold cyan")
    table.add_column("Counter")
    table.add_column("Value", justify="right")
    for key, value in stats.items():
        if key != "breakers":
            table.add_row(key, str(value))
    console.print(table)

    breakers = stats.get("breakers") or {}
    if breakers:
        breaker_table = Table(title="Circuit Breakers", show_header=True, header_style="bold cyan")
        for column in ("Name", "State", "Failures", "Calls", "Rejected"):
            breaker_table.add_column(column)
        for name, breaker in breakers.items():
            breaker_table.add_row(
                name,
                breaker["state"],
                str(breaker["total_failures"]),
                str(breaker["total_calls"]),
                str(breaker["rejected_calls"]),
            )
        console.print(breaker_table)


# ============================================================================
# Commands
# ============================================================================


@click.group()
@click.version_option(version=__version__, prog_name="sql-analyzer")
@click.option("--verbose", "-v", is_flag=True, help="Show logs and technical error detail.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool):
    """SQL Analyzer - LLM-backed SQL analysis with resilient response recovery."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    configure_cli_logging(verbose)


@cli.command()
@click.argument("file", type=click.File("r"), required=False)
@click.option("--sql", "sql_text", help="SQL text to analyze (instead of FILE).")
@click.option(
    "--database-type",
    type=click.Choice(DATABASE_TYPES),
    default="generic",
    show_default=True,
)
@click.option("--mode", type=click.Choice([mode.value for mode in ExecutionMode]), default=None)
@click.option(
    "--dimension",
    "dimensions",
    multiple=True,
    type=click.Choice(list(DIMENSIONS)),
    help="Dimension to run (repeatable; defaults to all).",
)
@click.option("--json", "as_json", is_flag=True, help="Print the composite result as JSON.")
@click.pass_context
def analyze(
    ctx: click.Context,
    file,
    sql_text: str | None,
    database_type: str,
    mode: str | None,
    dimensions: tuple[str, ...],
    as_json: bool,
):
    """Analyze SQL from FILE or --sql."""
    verbose = ctx.obj["verbose"]
    if file is not None and sql_text:
        raise click.UsageError("Pass either FILE or --sql, not both")
    sql = sql_text if sql_text else (file.read() if file is not None else None)
    if not sql or not sql.strip():
        raise click.UsageError("No SQL given: pass FILE or --sql")

    async def run_analysis() -> CompositeResult:
        coordinator = MultiAgentCoordinator.from_settings(get_settings())
        try:
            request = AnalysisRequest(sql=sql, database_type=database_type)
            if as_json:
                return await coordinator.analyze(request, list(dimensions) or None, mode)
            with console.status("[cyan]Analyzing SQL...[/cyan]", spinner="dots"):
                return await coordinator.analyze(request, list(dimensions) or None, mode)
        finally:
            await coordinator.aclose()

    try:
        result = asyncio.run(run_analysis())
    except Exception as e:
        _fail(e, verbose)
        return

    if as_json:
        click.echo(result.model_dump_json(indent=2))
    else:
        print_composite(result)


@cli.command()
@click.argument("file", type=click.File("r"))
@click.option("--json", "as_json", is_flag=True, help="Print the decode result as JSON.")
@click.pass_context
def recover(ctx: click.Context, file, as_json: bool):
    """Decode raw model output from FILE without calling an LLM."""
    content = file.read()
    try:
        result = asyncio.run(recover_structured(content))
    except AdaptationError as e:
        _fail(e, ctx.obj["verbose"])
        return

    if as_json:
        click.echo(result.model_dump_json(indent=2))
    else:
        print_decode_result(result)
    if not result.success:
        sys.exit(1)


@cli.command()
@click.argument("message")
@click.option("--code", help="Error code to include (errno name or HTTP status).")
@click.option("--json", "as_json", is_flag=True, help="Print the classification as JSON.")
@click.pass_context
def classify(ctx: click.Context, message: str, code: str | None, as_json: bool):
    """Classify an error MESSAGE."""
    text = f"{code} {message}" if code else message
    classification = get_default_classifier().classify(text, {"source": "cli"})
    if as_json:
        click.echo(classification.model_dump_json(indent=2))
    else:
        print_classification(classification, ctx.obj["verbose"])


@cli.command()
@click.option("--sql", "sql_text", help="Run one analysis first, then report counters.")
@click.pass_context
def stats(ctx: click.Context, sql_text: str | None):
    """Show operation counters and circuit breaker states."""
    if not sql_text:
        print_stats(get_default_registry().stats())
        return

    async def run_and_collect() -> dict[str, Any]:
        coordinator = MultiAgentCoordinator.from_settings(get_settings())
        try:
            await coordinator.analyze(AnalysisRequest(sql=sql_text))
            return coordinator.executor.registry.stats()
        finally:
            await coordinator.aclose()

    try:
        print_stats(asyncio.run(run_and_collect()))
    except Exception as e:
        _fail(e, ctx.obj["verbose"])


@cli.command()
@click.option("--host", default=None, help="Bind host (defaults to API_HOST).")
@click.option("--port", default=None, type=int, help="Bind port (defaults to API_PORT).")
@click.option("--reload", is_flag=True, help="Reload on code changes.")
def serve(host: str | None, port: int | None, reload: bool):
    """Run the HTTP API with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "sql_analyzer.api.main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=reload,
    )


# ============================================================================
# Entry Point
# ============================================================================


def main():
    """Main entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
