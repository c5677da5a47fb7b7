"""CLI for tracecov."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer

from tracecov.config import load_config
from tracecov.domain.models import CoverageReport, Priority
from tracecov.errors import InputNotFound, MalformedInput
from tracecov.infra.catalog_store import parse_baseline, validate_baseline
from tracecov.io.report_writer import report_filename, write_report_json
from tracecov.paths import RepoPaths
from tracecov.server.wire import ServiceFailure, build_services
from tracecov.yaml_utils import load_yaml

app = typer.Typer(help="tracecov CLI")

EXIT_GAPS = 1
EXIT_ERROR = 2


@app.command()
def analyze(
    config: str = typer.Option(..., "--config", help="Path to config YAML"),
    service: Optional[List[str]] = typer.Option(None, "--service", help="Service to analyze (repeatable)"),
    out: Optional[str] = typer.Option(None, "--out", help="Directory for JSON reports"),
    fail_on: Optional[List[str]] = typer.Option(None, "--fail-on", help="Exit non-zero on gaps at this priority"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Analyze scenario coverage for the configured services."""
    _configure_logging(verbose)
    config_path = Path(config)
    try:
        cfg = load_config(config_path)
    except (InputNotFound, MalformedInput) as exc:
        typer.echo(f"Config error: {exc}", err=True)
        raise typer.Exit(EXIT_ERROR) from exc
    blocking = _parse_priorities(fail_on or list(cfg.policy.fail_on))
    names = list(service or [])
    unknown = [name for name in names if name not in {item.name for item in cfg.services}]
    if unknown:
        typer.echo(f"Unknown service(s): {', '.join(unknown)}", err=True)
        raise typer.Exit(EXIT_ERROR)

    try:
        services = build_services(config_path, cfg)
    except ValueError as exc:
        typer.echo(f"Matcher error: {exc}", err=True)
        raise typer.Exit(EXIT_ERROR) from exc

    if out:
        reports_dir = Path(out)
    else:
        reports_dir = RepoPaths.for_config(config_path, cfg.project.repo_root).resolve(cfg.outputs.reports_dir)

    outcomes = services.analyze_all(names or None)
    failed = False
    blocked = False
    for name, outcome in outcomes.items():
        if isinstance(outcome, ServiceFailure):
            failed = True
            typer.echo(f"{name}: {outcome.error_type}: {outcome.message}", err=True)
            continue
        report_path = reports_dir / report_filename(name)
        write_report_json(report_path, outcome)
        typer.echo(_summary_line(outcome))
        typer.echo(f"Wrote report to {report_path}")
        if any(outcome.gaps_at(priority) for priority in blocking):
            blocked = True

    if failed:
        raise typer.Exit(EXIT_ERROR)
    if blocked:
        typer.echo(f"Gaps found at {', '.join(priority.value for priority in blocking)}", err=True)
        raise typer.Exit(EXIT_GAPS)


@app.command("validate-baseline")
def validate_baseline_command(path: str = typer.Argument(..., help="Baseline YAML file")) -> None:
    """Check a baseline document's structure."""
    try:
        payload = load_yaml(path)
    except (InputNotFound, MalformedInput) as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(EXIT_ERROR) from exc
    errors = validate_baseline(payload)
    if errors:
        for error in errors:
            typer.echo(f"- {error}", err=True)
        raise typer.Exit(EXIT_GAPS)
    scenarios = parse_baseline(payload)
    apis = {scenario.api for scenario in scenarios}
    typer.echo(f"Baseline OK: {len(scenarios)} scenarios across {len(apis)} APIs")


def _summary_line(report: CoverageReport) -> str:
    summary = report.summary
    gaps = " ".join(f"{key}={value}" for key, value in summary.gaps_by_priority.items())
    line = (
        f"{report.service}: {summary.total_scenarios} scenarios, "
        f"{summary.coverage_percent}% fully covered, gaps {gaps}, "
        f"{summary.orphan_tests} orphan tests, {summary.orphan_apis} orphan APIs"
    )
    if report.degraded:
        line += f" [DEGRADED: {', '.join(summary.degraded_apis) or 'orphan classification'}]"
    return line


def _parse_priorities(values: List[str]) -> List[Priority]:
    priorities = []
    for value in values:
        try:
            priorities.append(Priority(value.strip().upper()))
        except ValueError as exc:
            raise typer.BadParameter(f"Unknown priority: {value}", param_hint="--fail-on") from exc
    return priorities


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
