# ABOUTME: Provides the CLI for building and inspecting synthesized student timelines.
# ABOUTME: Reads source CSVs, runs the engine, and writes parquet or CSV outputs.

import logging
from pathlib import Path
from typing import Optional

import pandas as pd
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import load_engine_config
from .events import iter_lifecycle_events
from .periods import build_period_calendar
from .pipeline import build_timeline, load_inputs
from .sequencer import to_target_schema

console = Console()
app = typer.Typer(help="Synthesize per-term student status timelines from sparse lifecycle events.")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _cell(value) -> str:
    if value is None or (not isinstance(value, (list, tuple)) and pd.isna(value)):
        return ""
    return str(value)


def _load(input_dir: Path, config_path: Optional[Path], current_period: Optional[int]):
    try:
        config = load_engine_config(config_path, current_period=current_period)
        inputs = load_inputs(input_dir)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    return config, inputs


@app.command()
def build(
    input_dir: Path = typer.Option(..., "--input-dir", exists=True, file_okay=False, help="Directory of source CSV tables."),
    out: Path = typer.Option(..., "--out", help="Output path (.parquet or .csv)."),
    config_path: Optional[Path] = typer.Option(None, "--config", exists=True, dir_okay=False, help="Engine config YAML."),
    current_period: Optional[int] = typer.Option(None, "--current-period", help="Override the current operational period."),
    target_schema: bool = typer.Option(False, "--target-schema", help="Pad output to the full target table layout."),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging."),
) -> None:
    """Run the engine over a snapshot and write the ordered record set."""
    _configure_logging(verbose)
    config, inputs = _load(input_dir, config_path, current_period)
    try:
        result = build_timeline(inputs, config)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--input-dir") from exc

    output = to_target_schema(result.output) if target_schema else result.output
    out.parent.mkdir(parents=True, exist_ok=True)
    if out.suffix == ".csv":
        output.to_csv(out, index=False)
    else:
        output.to_parquet(out, index=False)
    typer.echo(f"[timeline] Wrote {len(output)} records to {out}")

    report_table = Table(title="Run report", show_header=True, header_style="bold magenta")
    report_table.add_column("Metric")
    report_table.add_column("Value", justify="right")
    for name, value in result.report.as_dict().items():
        report_table.add_row(name.replace("_", " "), str(value))
    console.print(report_table)


@app.command()
def inspect(
    input_dir: Path = typer.Option(..., "--input-dir", exists=True, file_okay=False, help="Directory of source CSV tables."),
    id_num: str = typer.Option(..., "--id-num", help="Source student identifier."),
    config_path: Optional[Path] = typer.Option(None, "--config", exists=True, dir_okay=False, help="Engine config YAML."),
    current_period: Optional[int] = typer.Option(None, "--current-period", help="Override the current operational period."),
) -> None:
    """Print one student's events and classified periods."""
    config, inputs = _load(input_dir, config_path, current_period)
    result = build_timeline(inputs, config)

    student_events = result.events[result.events["id_num"] == id_num]
    if student_events.empty:
        console.print(f"[yellow]No events for {id_num}[/yellow]")
        raise typer.Exit(code=1)

    console.rule(f"[bold blue]Student {id_num}[/bold blue]")
    events_table = Table(title="Lifecycle events", show_header=True, header_style="bold magenta")
    for column in ("Date", "Kind", "Period", "Major", "Degree"):
        events_table.add_column(column)
    for event in iter_lifecycle_events(student_events):
        events_table.add_row(
            event.event_date.isoformat(),
            event.event_kind,
            str(event.period_code),
            event.major_1 or "",
            event.degr_cde or "",
        )
    console.print(events_table)

    periods = result.period_records[result.period_records["id_num"] == id_num]
    periods_table = Table(title="Classified periods", show_header=True, header_style="bold magenta")
    columns = [
        "period_code", "ft_pt_ind", "stst_code", "styp_code", "levl_code",
        "term_code_admit", "program_1", "program_2", "cert_code_1",
    ]
    for column in columns:
        periods_table.add_column(column)
    for row in periods[columns].itertuples(index=False):
        periods_table.add_row(*(_cell(value) for value in row))
    console.print(periods_table)


@app.command()
def calendar(
    input_dir: Path = typer.Option(..., "--input-dir", exists=True, file_okay=False, help="Directory of source CSV tables."),
    config_path: Optional[Path] = typer.Option(None, "--config", exists=True, dir_okay=False, help="Engine config YAML."),
) -> None:
    """Print the gap-filled period calendar."""
    config, inputs = _load(input_dir, config_path, None)
    frame = build_period_calendar(inputs.term_definitions, config).to_frame()

    table = Table(title="Period calendar", show_header=True, header_style="bold magenta")
    for column in frame.columns:
        table.add_column(column)
    for row in frame.itertuples(index=False):
        table.add_row(*("" if value is None else str(value) for value in row))
    console.print(table)


def main():
    app()


if __name__ == "__main__":
    main()
