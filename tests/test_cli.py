# ABOUTME: Verifies the timeline CLI exposes build, inspect, and calendar commands.
# ABOUTME: Runs the commands against a small on-disk snapshot.

import pandas as pd
from typer.testing import CliRunner

from src.term_timeline import cli

runner = CliRunner()


def test_cli_registers_commands():
    command_names = {cmd.name or cmd.callback.__name__ for cmd in cli.app.registered_commands}
    assert {"build", "inspect", "calendar"} <= command_names


def test_build_writes_csv(snapshot_dir, tmp_path):
    out = tmp_path / "out" / "timeline.csv"
    result = runner.invoke(cli.app, ["build", "--input-dir", str(snapshot_dir), "--out", str(out)])
    assert result.exit_code == 0, result.output
    assert "[timeline] Wrote 10 records" in result.output
    written = pd.read_csv(out)
    assert len(written) == 10
    assert written.columns[0] == "pidm"


def test_build_target_schema(snapshot_dir, tmp_path):
    out = tmp_path / "timeline.csv"
    result = runner.invoke(
        cli.app,
        ["build", "--input-dir", str(snapshot_dir), "--out", str(out), "--target-schema", "--current-period", "202409"],
    )
    assert result.exit_code == 0, result.output
    written = pd.read_csv(out)
    assert written.columns[0] == "sgbstdn_pidm"
    assert "sort" in written.columns


def test_build_rejects_incomplete_snapshot(tmp_path):
    (tmp_path / "term_definitions.csv").write_text("yr_cde,trm_cde,trm_begin_dte\n2425,FA,2024-09-03\n")
    result = runner.invoke(cli.app, ["build", "--input-dir", str(tmp_path), "--out", str(tmp_path / "o.csv")])
    assert result.exit_code != 0


def test_inspect_and_calendar(snapshot_dir):
    result = runner.invoke(cli.app, ["inspect", "--input-dir", str(snapshot_dir), "--id-num", "F"])
    assert result.exit_code == 0, result.output

    missing = runner.invoke(cli.app, ["inspect", "--input-dir", str(snapshot_dir), "--id-num", "nobody"])
    assert missing.exit_code == 1

    result = runner.invoke(cli.app, ["calendar", "--input-dir", str(snapshot_dir)])
    assert result.exit_code == 0, result.output
