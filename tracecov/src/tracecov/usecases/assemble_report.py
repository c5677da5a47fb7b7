"""Assemble report use-case."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from tracecov.domain.models import (
    AnalysisFailure,
    CoverageMatch,
    CoverageReport,
    CoverageStatus,
    Gap,
    GapSource,
    OrphanCategory,
    OrphanTest,
    Priority,
    ReportSummary,
    RiskLevel,
)
from tracecov.infra.catalog_store import ServiceCatalog
from tracecov.usecases.analyze_coverage import AnalysisResult
from tracecov.usecases.classify_gaps import GapClassification
from tracecov.usecases.detect_orphans import OrphanFindings


def assemble_report(
    catalog: ServiceCatalog,
    analysis: AnalysisResult,
    findings: OrphanFindings,
    classification: GapClassification,
    *,
    cache_stats: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> CoverageReport:
    failures = [*analysis.failures, *classification.failures]
    degraded = analysis.degraded or classification.degraded
    summary = summarize(
        catalog,
        matches=analysis.matches,
        gaps=classification.gaps,
        orphan_tests=classification.orphan_tests,
        orphan_api_count=len(findings.orphan_apis),
        failures=failures,
        degraded=degraded,
    )
    generated_at = (now or datetime.now(timezone.utc)).isoformat()
    return CoverageReport(
        service=catalog.service,
        generated_at=generated_at,
        matches=list(analysis.matches),
        gaps=list(classification.gaps),
        orphan_tests=list(classification.orphan_tests),
        orphan_apis=list(findings.orphan_apis),
        missing_scenarios=list(findings.missing_scenarios),
        summary=summary,
        degraded=degraded,
        failures=failures,
        cache_stats=dict(cache_stats or {}),
    )


def summarize(
    catalog: ServiceCatalog,
    *,
    matches: Sequence[CoverageMatch],
    gaps: Sequence[Gap],
    orphan_tests: Sequence[OrphanTest],
    orphan_api_count: int,
    failures: Sequence[AnalysisFailure],
    degraded: bool,
) -> ReportSummary:
    statuses = [match.status for match in matches]
    total = len(statuses)
    fully = statuses.count(CoverageStatus.fully_covered)
    degraded_apis = {match.scenario.api for match in matches if match.degraded}
    degraded_apis.update(failure.api for failure in failures if failure.api)
    return ReportSummary(
        total_scenarios=total,
        fully_covered=fully,
        partially_covered=statuses.count(CoverageStatus.partially_covered),
        not_covered=statuses.count(CoverageStatus.not_covered),
        downgraded=sum(1 for match in matches if match.downgraded),
        coverage_percent=round(fully / total * 100, 1) if total else 0.0,
        total_tests=len(catalog.tests),
        unattributed_tests=len(catalog.unattributed_tests()),
        orphan_tests=len(orphan_tests),
        technical_orphans=sum(1 for orphan in orphan_tests if orphan.category == OrphanCategory.technical),
        business_orphans=sum(1 for orphan in orphan_tests if orphan.category == OrphanCategory.business),
        orphan_apis=orphan_api_count,
        gaps_by_priority=_count(gaps, "priority", [priority.value for priority in Priority]),
        gaps_by_risk=_count(gaps, "risk_level", [risk.value for risk in RiskLevel]),
        gaps_by_source=_count(gaps, "source", [source.value for source in GapSource]),
        degraded=degraded,
        degraded_apis=sorted(degraded_apis),
    )


def _count(gaps: Sequence[Gap], attribute: str, keys: List[str]) -> Dict[str, int]:
    counts = {key: 0 for key in keys}
    for gap in gaps:
        counts[getattr(gap, attribute).value] += 1
    return counts
