from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from tracecov.domain.models import CoverageStatus, GapSource, Priority
from tracecov.infra.cache import CacheManager
from tracecov.infra.catalog_store import CatalogStore, ServicePaths
from tracecov.infra.matcher_stub import StubMatcher
from tracecov.usecases.analyze_service import analyze_service

USERS = Path(__file__).parent / "fixtures" / "users"
NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _report(matcher: StubMatcher, **kwargs):
    paths = ServicePaths(baseline=USERS / "baseline.yml", tests=USERS / "tests.jsonl", apis=USERS / "apis.yaml")
    catalog = CatalogStore(CacheManager().files).load_service("users", paths)
    return analyze_service(catalog, matcher=matcher, cache=CacheManager(), now=NOW, **kwargs)


def test_summary_counts() -> None:
    matcher = StubMatcher(
        script={"Create user with valid name and email returns 201": (CoverageStatus.fully_covered, [])},
        priorities={"writes audit log entry": Priority.P1},
    )
    report = _report(matcher)
    summary = report.summary

    assert report.generated_at == "2024-05-01T12:00:00+00:00"
    assert summary.total_scenarios == 5
    assert summary.fully_covered == 0
    assert summary.partially_covered == 1
    assert summary.not_covered == 4
    assert summary.downgraded == 1
    assert summary.coverage_percent == 0.0
    assert summary.total_tests == 3
    assert summary.unattributed_tests == 0
    assert summary.business_orphans == 1
    assert summary.gaps_by_priority == {"P0": 1, "P1": 4, "P2": 1, "P3": 0}
    assert summary.gaps_by_risk == {"Critical": 1, "High": 4, "Medium": 1, "Low": 0}
    assert summary.gaps_by_source == {
        GapSource.unit_test_gap.value: 4,
        GapSource.completeness_gap.value: 1,
        GapSource.orphan_test.value: 1,
        GapSource.orphan_api.value: 0,
    }
    assert set(report.cache_stats) == {"file", "matcher"}
    assert report.gaps_at(Priority.P0)[0].scenario_id == "GET /users/{id}#1"


def test_coverage_percent_and_orphan_api_policy() -> None:
    matcher = StubMatcher(
        script={
            "Create user with valid name and email returns 201": (
                CoverageStatus.fully_covered,
                ["UserControllerTest.createUser_valid"],
            ),
            "Create user with missing email returns 400": (
                CoverageStatus.fully_covered,
                ["UserControllerTest.createUser_missingEmail", "UserControllerTest.createUser_audit"],
            ),
        },
    )
    report = _report(matcher, orphan_api_gaps=True)

    assert report.summary.fully_covered == 2
    assert report.summary.coverage_percent == 40.0
    assert report.orphan_tests == []
    assert report.summary.gaps_by_source[GapSource.orphan_api.value] == 1
    assert report.gaps[-1].source == GapSource.orphan_api
