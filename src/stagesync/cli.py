"""Command line interface for stagesync."""

from __future__ import annotations

import difflib
from typing import Any

import click
import yaml
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from stagesync.cli_support import build_service, parse_ids, result_to_record
from stagesync.config import ConfigError, ConfigManager, StageSyncConfig
from stagesync.content import Stage
from stagesync.logging_config import configure_logging
from stagesync.search import IndexingService, Reconciler, ReconciliationError, SearchError

console = Console()


def _handle_cli_error(
    message: str,
    *,
    code: str,
    json_output: bool,
    details: Any | None = None,
    original: Exception | None = None,
) -> None:
    """Emit a standardized error and terminate the command appropriately.

    Args:
        message: Human-readable error message.
        code: Machine-readable error identifier.
        json_output: Indicates whether JSON mode is active.
        details: Optional structured details to include in the payload.
        original: Original exception for chaining when not using JSON.

    Raises:
        SystemExit: When emitting JSON output to terminate the command.
        click.ClickException: For non-JSON flows to surface the error.
    """

    if json_output:
        payload: dict[str, Any] = {"error": {"code": code, "message": message}}
        if details is not None:
            payload["error"]["details"] = details
        console.print_json(data=payload)
        raise SystemExit(1)

    if isinstance(original, click.ClickException):
        raise original

    raise click.ClickException(message) from original


def _emit_message(message: Any, *, mode: str, quiet: bool) -> None:
    """Print CLI output unless quiet mode suppresses it.

    Args:
        message: Renderable or string to emit.
        mode: Output mode identifier (`detail`, `summary`, `warning`, or `error`).
        quiet: Whether quiet mode is active.
    """

    if quiet and mode != "error":
        return
    console.print(message)


def _prepare(json_output: bool) -> tuple[StageSyncConfig, IndexingService]:
    """Load configuration, configure logging, and build the indexing service."""
    try:
        config = ConfigManager().load()
        configure_logging(config.logging)
        service = build_service(config)
    except ConfigError as exc:
        _handle_cli_error(str(exc), code="config_error", json_output=json_output, original=exc)
        raise  # pragma: no cover - _handle_cli_error always raises
    return config, service


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="stagesync")
def cli() -> None:
    """Keep a search index in step with draft and published content."""


# ---------------------------------------------------------------------- #
# Configuration                                                          #
# ---------------------------------------------------------------------- #


@cli.group()
def config() -> None:
    """Manage stagesync configuration files and overrides."""


@config.command("view")
@click.option("--no-env", is_flag=True, help="Ignore environment overrides when displaying output.")
def config_view(no_env: bool) -> None:
    """Display the effective configuration after applying precedence rules."""
    manager = ConfigManager()
    try:
        manager.ensure_exists()
        loaded = manager.load(include_env=not no_env)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    yaml_text = yaml.safe_dump(loaded.model_dump(mode="python"), sort_keys=False)
    console.print(Syntax(yaml_text, "yaml", word_wrap=True))


@config.command("set")
@click.argument("key")
@click.option("--value", required=True, help="Value to assign to KEY.")
def config_set(key: str, value: str) -> None:
    """Persist a configuration value expressed as a dotted KEY.

    Args:
        key: Dotted path describing the configuration field to update.
        value: YAML-literal value to write into the configuration file.

    Raises:
        click.ClickException: If parsing, assignment, or validation fails.
    """
    manager = ConfigManager()
    manager.ensure_exists()
    before = manager.read_text().splitlines()

    try:
        manager.set_value(key, value)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    diff = [
        line
        for line in difflib.unified_diff(
            before,
            manager.read_text().splitlines(),
            fromfile="config.yaml (before)",
            tofile="config.yaml (after)",
            lineterm="",
        )
        if not line.startswith(("-# Last updated", "+# Last updated"))
    ]
    if not any(line[:1] in ("+", "-") and not line.startswith(("+++", "---")) for line in diff):
        console.print("[yellow]No changes applied; value already up to date.[/yellow]")
        return

    console.print(Syntax("\n".join(diff), "diff", word_wrap=False))
    console.print(f"[green]Updated {key.strip()}.[/green]")


@config.command("edit")
def config_edit() -> None:
    """Open the configuration file in an interactive editor session.

    Raises:
        click.ClickException: If edited content is invalid or cannot be saved.
    """
    manager = ConfigManager()
    manager.ensure_exists()

    original = manager.read_text()
    edited = click.edit(original, extension=".yaml")

    if edited is None:
        console.print("[yellow]Edit cancelled; no changes applied.[/yellow]")
        return

    if edited == original:
        console.print("[yellow]No changes detected.[/yellow]")
        return

    try:
        manager.replace_text(edited)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    console.print("[green]Configuration updated successfully.[/green]")


# ---------------------------------------------------------------------- #
# Indexing                                                               #
# ---------------------------------------------------------------------- #


@cli.command()
@click.option("--json", "json_output", is_flag=True, help="Emit the mapped types as JSON.")
def define(json_output: bool) -> None:
    """Create the index if needed and send the mapping of every indexed type."""
    _, service = _prepare(json_output)
    try:
        sent = service.define_index_and_mappings()
    except SearchError as exc:
        _handle_cli_error(str(exc), code="search_error", json_output=json_output, original=exc)
        return

    if json_output:
        console.print_json(data={"index": service.client.index, "types": sent})
        return
    for type_name in sent:
        console.print(f"Mapped {type_name}")
    console.print(f"[green]define summary for {service.client.index}: types={len(sent)}.[/green]")


@cli.command()
@click.option("--json", "json_output", is_flag=True, help="Emit a JSON summary of the run.")
@click.option("--quiet", is_flag=True, help="Suppress progress output.")
def reindex(json_output: bool, quiet: bool) -> None:
    """Reindex every record of every indexed type and remove stale documents."""
    config, service = _prepare(json_output)
    reconciler = Reconciler.from_settings(service, config.reindex)
    silent = quiet or json_output

    def progress(message: str) -> None:
        _emit_message(message, mode="detail", quiet=silent)

    try:
        summary = reconciler.reindex_all(progress=progress)
    except ReconciliationError as exc:
        _handle_cli_error(
            str(exc),
            code="reconcile_failed",
            json_output=json_output,
            details={"failed_types": exc.failed_types},
            original=exc,
        )
        return
    except SearchError as exc:
        _handle_cli_error(str(exc), code="search_error", json_output=json_output, original=exc)
        return

    payload = summary.to_dict()
    if json_output:
        console.print_json(data=payload)
        return
    counts = payload["counts"]
    parts = ", ".join(f"{key}={value}" for key, value in counts.items())
    _emit_message(f"[green]reindex summary: {parts}.[/green]", mode="summary", quiet=quiet)


@cli.command("reindex-items")
@click.argument("ids")
@click.option("--base", "base_type", type=str, help="Type to resolve the ids through.")
@click.option("-r", "--recurse", is_flag=True, help="Also reindex every descendant.")
@click.option("--quiet", is_flag=True, help="Suppress progress output.")
def reindex_items(ids: str, base_type: str | None, recurse: bool, quiet: bool) -> None:
    """Reindex the comma separated record IDS in both stages."""
    config, service = _prepare(False)
    reconciler = Reconciler.from_settings(service, config.reindex)

    def progress(message: str) -> None:
        _emit_message(message, mode="detail", quiet=quiet)

    try:
        count = reconciler.reindex_items(
            parse_ids(ids),
            base_type or config.content.base_type,
            recurse=recurse,
            progress=progress,
        )
    except SearchError as exc:
        _handle_cli_error(str(exc), code="search_error", json_output=False, original=exc)
        return
    _emit_message(f"[green]Reindexed {count} documents.[/green]", mode="summary", quiet=quiet)


# ---------------------------------------------------------------------- #
# Search                                                                 #
# ---------------------------------------------------------------------- #


@cli.command()
@click.argument("query", required=False)
@click.option(
    "--stage",
    type=click.Choice([stage.value for stage in Stage], case_sensitive=False),
    help="Only return documents indexed into this stage.",
)
@click.option("--limit", type=click.IntRange(min=1), default=10, show_default=True)
@click.option("--start", type=click.IntRange(min=0), default=0, show_default=True)
@click.option("--permissions", is_flag=True, help="Drop results that cannot be viewed.")
@click.option("--json", "json_output", is_flag=True, help="Emit results as JSON.")
def search(
    query: str | None,
    stage: str | None,
    limit: int,
    start: int,
    permissions: bool,
    json_output: bool,
) -> None:
    """Search the index with an optional query string."""
    _, service = _prepare(json_output)
    selected = Stage.parse(stage.capitalize()) if stage else None
    with service.stage_context.reading(selected):
        results = service.search(query, stage=selected, evaluate_permissions=permissions).limit(
            limit, start
        )
        try:
            page = results.paginate(limit, start)
            records = [result_to_record(result) for result in page]
        except SearchError as exc:
            _handle_cli_error(str(exc), code="search_error", json_output=json_output, original=exc)
            return

    if json_output:
        console.print_json(
            data={
                "total": results.total_results,
                "took": results.time_taken,
                "page": page.current_page,
                "pages": page.total_pages,
                "results": records,
            }
        )
        return

    if not records:
        console.print("[yellow]No results.[/yellow]")
        return
    table = Table(title=f"{results.total_results} results (page {page.current_page}/{page.total_pages})")
    for column in ("Type", "ID", "Stage", "Title", "Score"):
        table.add_column(column)
    for record in records:
        table.add_row(
            str(record["type"]),
            str(record["id"]),
            str(record["stage"] or ""),
            str(record["title"] or ""),
            "" if record["score"] is None else f"{record['score']:.3f}",
        )
    console.print(table)


def main() -> None:
    """Invoke the Click CLI as the console script entry point."""
    cli()


if __name__ == "__main__":
    main()
