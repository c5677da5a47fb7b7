from __future__ import annotations

import json
from pathlib import Path

from typer.testing import CliRunner

from tracecov.cli import app

FIXTURES = Path(__file__).parent / "fixtures"
CONFIG = FIXTURES / "tracecov.yml"

runner = CliRunner()


def test_analyze_writes_report(tmp_path: Path) -> None:
    result = runner.invoke(app, ["analyze", "--config", str(CONFIG), "--out", str(tmp_path)])

    assert result.exit_code == 0, result.output
    assert "users: 5 scenarios" in result.output
    report = json.loads((tmp_path / "users-coverage.json").read_text(encoding="utf-8"))
    assert report["service"] == "users"
    assert report["summary"]["gaps_by_priority"]["P0"] == 1
    assert report["matches"][0]["status"] == "PARTIALLY_COVERED"
    assert report["orphan_apis"][0]["api"]["endpoint"] == "/users/{id}"


def test_fail_on_priority_sets_exit_code(tmp_path: Path) -> None:
    result = runner.invoke(
        app,
        ["analyze", "--config", str(CONFIG), "--out", str(tmp_path), "--fail-on", "P0"],
    )

    assert result.exit_code == 1


def test_fail_on_rejects_unknown_priority(tmp_path: Path) -> None:
    result = runner.invoke(
        app,
        ["analyze", "--config", str(CONFIG), "--out", str(tmp_path), "--fail-on", "P7"],
    )

    assert result.exit_code == 2


def test_unknown_service(tmp_path: Path) -> None:
    result = runner.invoke(
        app,
        ["analyze", "--config", str(CONFIG), "--out", str(tmp_path), "--service", "orders"],
    )

    assert result.exit_code == 2
    assert not (tmp_path / "orders-coverage.json").exists()


def test_missing_config(tmp_path: Path) -> None:
    result = runner.invoke(app, ["analyze", "--config", str(tmp_path / "nope.yml")])

    assert result.exit_code == 2


def test_validate_baseline_ok() -> None:
    result = runner.invoke(app, ["validate-baseline", str(FIXTURES / "users" / "baseline.yml")])

    assert result.exit_code == 0, result.output
    assert "Baseline OK: 5 scenarios across 2 APIs" in result.output


def test_validate_baseline_errors(tmp_path: Path) -> None:
    baseline = tmp_path / "baseline.yml"
    baseline.write_text("GET /users:\n  sad_case:\n    - nope\n", encoding="utf-8")

    result = runner.invoke(app, ["validate-baseline", str(baseline)])

    assert result.exit_code == 1
