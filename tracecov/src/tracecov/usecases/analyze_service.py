"""Analyze service use-case: coverage, orphans, gaps, report."""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Optional

from tracecov.domain.models import CoverageReport
from tracecov.domain.ports import SemanticMatcherPort
from tracecov.infra.cache import CacheManager
from tracecov.infra.catalog_store import ServiceCatalog
from tracecov.usecases.analyze_coverage import CoverageAnalyzer
from tracecov.usecases.assemble_report import assemble_report
from tracecov.usecases.classify_gaps import classify_gaps
from tracecov.usecases.detect_orphans import detect_orphans


def analyze_service(
    catalog: ServiceCatalog,
    *,
    matcher: SemanticMatcherPort,
    cache: CacheManager,
    timeout_seconds: float = 60.0,
    orphan_api_gaps: bool = False,
    cancel_event: Optional[threading.Event] = None,
    now: Optional[datetime] = None,
) -> CoverageReport:
    analyzer = CoverageAnalyzer(matcher=matcher, cache=cache, timeout_seconds=timeout_seconds)
    analysis = analyzer.analyze(catalog, cancel_event=cancel_event)
    findings = detect_orphans(catalog, analysis.unclaimed)
    classification = classify_gaps(
        analysis.matches,
        findings.orphan_tests,
        findings.orphan_apis,
        matcher=matcher,
        cache=cache.matcher,
        timeout_seconds=timeout_seconds,
        orphan_api_gaps=orphan_api_gaps,
    )
    return assemble_report(
        catalog,
        analysis,
        findings,
        classification,
        cache_stats=cache.stats(),
        now=now,
    )
