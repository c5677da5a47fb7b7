from __future__ import annotations

from typing import List

from tracecov.domain.models import (
    APIDefinition,
    BaselineScenario,
    CoverageMatch,
    CoverageStatus,
    GapSource,
    OrphanAction,
    OrphanAPI,
    OrphanCategorization,
    OrphanCategory,
    OrphanTest,
    Priority,
    RiskLevel,
    ScenarioCategory,
    UnitTest,
)
from tracecov.infra.cache import MatcherResponseCache
from tracecov.infra.matcher_stub import StubMatcher
from tracecov.usecases.classify_gaps import classify_gaps


def _match(api: str, number: int, status: CoverageStatus, priority: Priority, layer2=None) -> CoverageMatch:
    scenario = BaselineScenario(
        scenario_id=f"{api}#{number}",
        scenario=f"scenario {number} of {api}",
        category=ScenarioCategory.happy_case,
        priority=priority,
        api=api,
    )
    return CoverageMatch(scenario=scenario, status=status, layer2_status=layer2 or status)


def _orphan(test_id: str, file: str, description: str = "does something", api: str = "POST /orders") -> OrphanTest:
    test = UnitTest(id=test_id, description=description, file=file, service="orders", api=api)
    return OrphanTest(test=test, api=api)


def _classify(matches=(), orphans=(), orphan_apis=(), matcher=None, **kwargs):
    return classify_gaps(
        list(matches),
        list(orphans),
        list(orphan_apis),
        matcher=matcher or StubMatcher(),
        cache=MatcherResponseCache(),
        timeout_seconds=5,
        **kwargs,
    )


def test_status_maps_to_gap_source_and_declared_priority() -> None:
    matches = [
        _match("GET /a", 1, CoverageStatus.fully_covered, Priority.P0),
        _match("GET /a", 2, CoverageStatus.partially_covered, Priority.P2),
        _match("GET /a", 3, CoverageStatus.not_covered, Priority.P0),
    ]
    result = _classify(matches)

    assert [(gap.scenario_id, gap.source, gap.priority) for gap in result.gaps] == [
        ("GET /a#3", GapSource.unit_test_gap, Priority.P0),
        ("GET /a#2", GapSource.completeness_gap, Priority.P2),
    ]
    assert [gap.risk_level for gap in result.gaps] == [RiskLevel.critical, RiskLevel.medium]


def test_downgraded_match_recommends_mapping_unclaimed_tests() -> None:
    match = _match("GET /a", 1, CoverageStatus.partially_covered, Priority.P1, layer2=CoverageStatus.fully_covered)
    (gap,) = _classify([match]).gaps

    assert gap.source == GapSource.completeness_gap
    assert "unclaimed tests" in gap.recommendation


def test_gaps_sorted_by_priority_api_then_id() -> None:
    matches = [
        _match("POST /b", 1, CoverageStatus.not_covered, Priority.P1),
        _match("GET /a", 2, CoverageStatus.not_covered, Priority.P1),
        _match("GET /a", 1, CoverageStatus.not_covered, Priority.P1),
        _match("DELETE /z", 1, CoverageStatus.not_covered, Priority.P0),
    ]
    result = _classify(matches)

    assert [gap.scenario_id for gap in result.gaps] == ["DELETE /z#1", "GET /a#1", "GET /a#2", "POST /b#1"]


def test_fallback_table_when_matcher_fails() -> None:
    orphans = [
        _orphan("e", "src/test/OrderEntityTest.java"),
        _orphan("d", "src/test/order_dto_test.py"),
        _orphan("c", "src/test/OrderControllerTest.java"),
    ]
    result = _classify(orphans=orphans, matcher=StubMatcher(fail=True))

    by_id = {orphan.test.id: orphan for orphan in result.orphan_tests}
    assert by_id["e"].category == OrphanCategory.technical
    assert by_id["e"].subtype == "Entity Test"
    assert by_id["e"].action == OrphanAction.none
    assert by_id["d"].subtype == "DTO Test"
    assert by_id["c"].category == OrphanCategory.business
    assert by_id["c"].priority == Priority.P2
    assert all(orphan.categorized_by == "fallback" for orphan in result.orphan_tests)

    (gap,) = result.gaps
    assert gap.source == GapSource.orphan_test
    assert gap.test_id == "c"
    assert gap.priority == Priority.P2
    assert gap.degraded
    assert result.degraded
    assert [failure.stage for failure in result.failures] == ["categorize_orphans", "infer_priority"]


def test_matcher_categorization_and_inferred_priority() -> None:
    matcher = StubMatcher(
        categorizations={
            "x": OrphanCategorization(
                test_id="x",
                category=OrphanCategory.business,
                subtype="Controller Test",
                priority=Priority.P1,
                action=OrphanAction.add_scenario,
                reason="covers auth header handling",
            ),
        },
        priorities={"rejects request without auth token": Priority.P0},
    )
    orphans = [_orphan("x", "AuthControllerTest.java", description="rejects request without auth token")]
    result = _classify(orphans=orphans, matcher=matcher)

    (orphan,) = result.orphan_tests
    assert orphan.categorized_by == "matcher"
    assert orphan.subtype == "Controller Test"
    (gap,) = result.gaps
    assert gap.priority == Priority.P0
    assert gap.risk_level == RiskLevel.critical
    assert gap.reason == "covers auth header handling"
    assert not result.degraded


def test_omitted_categorization_uses_fallback_for_that_test() -> None:
    matcher = StubMatcher(
        categorizations={
            "a": OrphanCategorization(
                test_id="a",
                category=OrphanCategory.technical,
                subtype="Utility Test",
                priority=Priority.P3,
                action=OrphanAction.none,
            )
        }
    )

    class _Partial(StubMatcher):
        def categorize_orphans(self, tests):
            return [self.categorizations["a"]]

    partial = _Partial(categorizations=matcher.categorizations)
    result = _classify(orphans=[_orphan("a", "UtilTest.java"), _orphan("b", "OrderServiceTest.java")], matcher=partial)

    sources = {orphan.test.id: orphan.categorized_by for orphan in result.orphan_tests}
    assert sources == {"a": "matcher", "b": "fallback"}
    assert [gap.test_id for gap in result.gaps] == ["b"]


def test_orphan_api_gaps_only_with_policy() -> None:
    orphan_apis: List[OrphanAPI] = [OrphanAPI(api=APIDefinition(method="DELETE", endpoint="/users/{id}"))]

    assert _classify(orphan_apis=orphan_apis).gaps == []

    (gap,) = _classify(orphan_apis=orphan_apis, orphan_api_gaps=True).gaps
    assert gap.source == GapSource.orphan_api
    assert gap.priority == Priority.P3
    assert gap.risk_level == RiskLevel.low
    assert gap.api == "DELETE /users/{id}"
