"""CLI entry point for sdr-finder."""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table as RichTable

from sdr_finder import OWNER_FIELD, TERRITORY_FIELD, __version__
from sdr_finder.ingest import IngestionPipeline
from sdr_finder.io import PandasTableParser, write_json
from sdr_finder.lookup import count_territories
from sdr_finder.models import FailureReason, HeaderRules, IngestionOutcome, QueryResult

app = typer.Typer(
    name="sdr-finder",
    help="sdr-finder — Find the SDR assigned to a Sales Level 6 territory.",
    add_completion=False,
    no_args_is_help=True,
)
console = Console()

FAILURE_MESSAGES: dict[FailureReason, str] = {
    FailureReason.no_file_selected: "Please select an Excel or CSV file to upload.",
    FailureReason.parser_not_ready: (
        "Spreadsheet parsing engine is not available yet. "
        "Install openpyxl and try again."
    ),
    FailureReason.parse_error: (
        "Failed to read file. Please ensure it is a valid .xlsx, .xls, or .csv file."
    ),
    FailureReason.no_valid_rows: (
        'No valid "Sales Level 6" or "SDR Name" data found in the file. '
        "Please ensure these columns exist."
    ),
}
NO_MATCH_MESSAGE = "No matching Sales Level 6 found."
PROMPT_MESSAGE = "Start typing a Sales Level 6 to find its SDR."
UPLOAD_FIRST_MESSAGE = "Please upload a file first to search."
WELCOME_MESSAGE = "Upload an Excel or CSV file to get started."
CLEARED_MESSAGE = "Search cleared. You can now enter a new Sales Level 6 to find."
RESET_MESSAGE = "App reset. Upload an Excel or CSV file to get started."

_PROFILE_TARGETS = {
    TERRITORY_FIELD.lower(): "territory_marker",
    OWNER_FIELD.lower(): "owner_marker",
}


def _noop(*_args: object, **_kwargs: object) -> None:
    return None


def _printer(quiet: bool) -> Callable[..., None]:
    return _noop if quiet else console.print


def _err(msg: str) -> None:
    console.print(f"[red]x[/red] {msg}")


# ── Helpers ──────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"sdr-finder v{__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _load_profile_lines(profile: Path | None) -> list[str]:
    """Return ``target=marker`` lines from a profile file."""
    if not profile:
        return []
    if not profile.exists():
        raise ValueError(
            f"Profile not found: {profile} (expected lines like territoryKey=Sales Level 6)"
        )
    if profile.is_dir():
        raise ValueError(f"Profile is a directory, not a file: {profile}")
    try:
        text = profile.read_text(encoding="utf-8")
    except OSError as exc:
        raise ValueError(f"Cannot read profile {profile}: {exc}") from exc

    lines: list[str] = []
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        lines.append(stripped)
    return lines


def _parse_header_rules(lines: list[str]) -> HeaderRules:
    """Build ``HeaderRules`` from ``territoryKey=...`` / ``ownerName=...`` lines."""
    overrides: dict[str, str] = {}
    for item in lines:
        if "=" not in item:
            raise ValueError(f"Invalid profile line: {item!r}  (expected target=marker)")
        target, marker = item.split("=", 1)
        attr = _PROFILE_TARGETS.get(target.strip().lower())
        if attr is None:
            raise ValueError(
                f"Unknown profile target {target.strip()!r}; "
                f"use {TERRITORY_FIELD} or {OWNER_FIELD}"
            )
        if not marker.strip():
            raise ValueError(f"Profile entry for {target.strip()} has an empty marker")
        overrides[attr] = marker
    return HeaderRules(**overrides)


def _build_pipeline(profile: Path | None, delimiter: str | None) -> IngestionPipeline:
    rules = _parse_header_rules(_load_profile_lines(profile))
    return IngestionPipeline(PandasTableParser(delimiter=delimiter), rules=rules)


def _describe_outcome(outcome: IngestionOutcome) -> str:
    if outcome.ok:
        return (
            f'Successfully loaded {outcome.record_count} records from "{outcome.source}". '
            "You can now search."
        )
    return FAILURE_MESSAGES[outcome.reason] if outcome.reason else ""


def _results_table(results: list[QueryResult]) -> RichTable:
    tbl = RichTable(title="Matching SDRs", show_lines=True)
    tbl.add_column("Sales Level 6", style="bold")
    tbl.add_column("SDR", style="cyan")
    for result in results:
        tbl.add_row(result.territory_key, result.owner_name)
    return tbl


def _report_failure(outcome: IngestionOutcome) -> None:
    _err(_describe_outcome(outcome))
    if outcome.detail:
        console.print(f"  [dim]{outcome.detail}[/dim]")


def _print_search(pipeline: IngestionPipeline, query: str) -> None:
    results = pipeline.search(query)
    if not pipeline.records:
        console.print(UPLOAD_FIRST_MESSAGE if query else WELCOME_MESSAGE)
    elif not query:
        console.print(PROMPT_MESSAGE)
    elif not results:
        console.print(f"[yellow]![/yellow] {NO_MATCH_MESSAGE}")
    else:
        console.print(_results_table(results))


# ── Callbacks ────────────────────────────────────────────────────


@app.callback()
def main(
    version: bool | None = typer.Option(
        None, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Show debug logging.",
    ),
) -> None:
    """sdr-finder CLI."""
    _configure_logging(verbose)


# ── load command ─────────────────────────────────────────────────


@app.command()
def load(
    input_file: Path = typer.Option(
        ..., "--input", "-i",
        help="Path to CSV or Excel input file.",
        exists=True, readable=True,
    ),
    profile: Path | None = typer.Option(
        None, "--profile",
        help="Profile file with header markers (territoryKey=... / ownerName=... lines).",
    ),
    delimiter: str | None = typer.Option(
        None, "--delimiter", "-d",
        help="Delimiter for text input (sniffed when omitted).",
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q",
        help="Suppress informational output.",
    ),
) -> None:
    """Load a file and report how many usable records it holds.

    Exit 0 = records loaded, exit 2 = nothing usable.
    """
    try:
        pipeline = _build_pipeline(profile, delimiter)
    except ValueError as exc:
        _err(str(exc))
        raise typer.Exit(code=2)

    if not quiet:
        console.print(Panel(
            f"[bold]sdr-finder[/bold] v{__version__}\nInput: {input_file}",
            title="Load", border_style="blue",
        ))

    try:
        outcome = pipeline.upload(input_file)
    except Exception as exc:
        _err(f"Unexpected internal error: {exc}")
        raise typer.Exit(code=1)

    if not outcome.ok:
        _report_failure(outcome)
        raise typer.Exit(code=2)

    if quiet:
        return

    tbl = RichTable(title="Load Summary", show_lines=True)
    tbl.add_column("Check", style="bold")
    tbl.add_column("Result")
    tbl.add_row("Rows in", str(outcome.rows_in))
    tbl.add_row("Records", str(outcome.record_count))
    tbl.add_row("Dropped", str(outcome.dropped_rows))
    tbl.add_row("Territories", str(count_territories(outcome.records)))
    tbl.add_row("Status", "[green]PASS[/green]")
    console.print(tbl)
    console.print(f"[green]{_describe_outcome(outcome)}[/green]")


# ── search command ───────────────────────────────────────────────


@app.command()
def search(
    query: str = typer.Argument(..., help="Sales Level 6 text to look for."),
    input_file: Path = typer.Option(
        ..., "--input", "-i",
        help="Path to CSV or Excel input file.",
        exists=True, readable=True,
    ),
    json_out: Path | None = typer.Option(
        None, "--json",
        help="Also write the matches to this JSON file.",
    ),
    profile: Path | None = typer.Option(
        None, "--profile",
        help="Profile file with header markers (territoryKey=... / ownerName=... lines).",
    ),
    delimiter: str | None = typer.Option(
        None, "--delimiter", "-d",
        help="Delimiter for text input (sniffed when omitted).",
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q",
        help="Suppress informational output.",
    ),
) -> None:
    """Find the SDR for every Sales Level 6 containing QUERY."""
    echo = _printer(quiet)
    try:
        pipeline = _build_pipeline(profile, delimiter)
    except ValueError as exc:
        _err(str(exc))
        raise typer.Exit(code=2)

    try:
        outcome = pipeline.upload(input_file)
    except Exception as exc:
        _err(f"Unexpected internal error: {exc}")
        raise typer.Exit(code=1)

    if not outcome.ok:
        _report_failure(outcome)
        raise typer.Exit(code=2)

    echo(f"  {outcome.record_count} records loaded from {input_file.name}")
    results = pipeline.search(query)

    if json_out:
        out_path = write_json(
            json_out,
            {"query": query, "source": outcome.source, "results": results},
        )
        echo(f"  Results -> {out_path}")

    if results:
        console.print(_results_table(results))
    elif query:
        console.print(f"[yellow]![/yellow] {NO_MATCH_MESSAGE}")
    else:
        console.print(PROMPT_MESSAGE)


# ── shell command ────────────────────────────────────────────────


@app.command()
def shell(
    input_file: Path | None = typer.Option(
        None, "--input", "-i",
        help="File to load before the first prompt.",
        exists=True, readable=True,
    ),
    profile: Path | None = typer.Option(
        None, "--profile",
        help="Profile file with header markers (territoryKey=... / ownerName=... lines).",
    ),
    delimiter: str | None = typer.Option(
        None, "--delimiter", "-d",
        help="Delimiter for text input (sniffed when omitted).",
    ),
) -> None:
    """Interactive lookup: each line is a new search.

    Commands: ``:load PATH``, ``:clear``, ``:reset``, ``:quit``.
    """
    try:
        pipeline = _build_pipeline(profile, delimiter)
    except ValueError as exc:
        _err(str(exc))
        raise typer.Exit(code=2)

    console.print(Panel(
        f"[bold]sdr-finder[/bold] v{__version__}\n"
        "Type a Sales Level 6 to search. :load PATH, :clear, :reset, :quit",
        title="SDR Finder", border_style="blue",
    ))
    if input_file is not None:
        _shell_upload(pipeline, input_file)
    else:
        console.print(WELCOME_MESSAGE)

    while True:
        try:
            line = console.input("[bold]search>[/bold] ")
        except EOFError:
            break
        command = line.strip()

        if command in (":quit", ":q", ":exit"):
            break
        if command == ":reset":
            pipeline.reset()
            console.print(RESET_MESSAGE)
        elif command == ":clear":
            pipeline.clear_search()
            console.print(CLEARED_MESSAGE if pipeline.records else WELCOME_MESSAGE)
        elif command == ":load" or command.startswith(":load "):
            target = command[len(":load"):].strip()
            _shell_upload(pipeline, Path(target) if target else None)
        else:
            _print_search(pipeline, line)


def _shell_upload(pipeline: IngestionPipeline, path: Path | None) -> None:
    outcome = pipeline.upload(path)
    if outcome.ok:
        console.print(f"[green]{_describe_outcome(outcome)}[/green]")
    elif outcome.reason is FailureReason.no_file_selected:
        console.print(_describe_outcome(outcome))
    else:
        _report_failure(outcome)
