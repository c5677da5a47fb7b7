"""JSON report writer."""

from __future__ import annotations

import json
from pathlib import Path

from tracecov.domain.models import CoverageReport


def report_filename(service: str) -> str:
    safe = "".join(char if char.isalnum() or char in "-_." else "_" for char in service)
    return f"{safe}-coverage.json"


def write_report_json(path: Path, report: CoverageReport) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        json.dump(report.model_dump(mode="json"), handle, ensure_ascii=False, indent=2)
        handle.write("\n")
