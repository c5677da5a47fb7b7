"""Classify gaps use-case."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from tracecov.domain.models import (
    AnalysisFailure,
    CoverageMatch,
    CoverageStatus,
    Gap,
    GapSource,
    OrphanAction,
    OrphanAPI,
    OrphanCategorization,
    OrphanTest,
    Priority,
    risk_for,
)
from tracecov.domain.ports import SemanticMatcherPort
from tracecov.errors import MatcherUnavailable
from tracecov.infra.cache import MatcherResponseCache
from tracecov.infra.orphan_rules import fallback_categorize
from tracecov.usecases.matcher_calls import cached_matcher_call

logger = logging.getLogger(__name__)

ORPHAN_API_PRIORITY = Priority.P3


@dataclass
class GapClassification:
    gaps: List[Gap] = field(default_factory=list)
    orphan_tests: List[OrphanTest] = field(default_factory=list)
    failures: List[AnalysisFailure] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return bool(self.failures)


def classify_gaps(
    matches: Sequence[CoverageMatch],
    orphan_tests: Sequence[OrphanTest],
    orphan_apis: Sequence[OrphanAPI],
    *,
    matcher: SemanticMatcherPort,
    cache: MatcherResponseCache,
    timeout_seconds: float = 60.0,
    orphan_api_gaps: bool = False,
) -> GapClassification:
    """Turn non-covered scenarios, actionable orphans and (optionally) orphan APIs into sorted gaps.

    Returns the orphan tests with their categorization filled in. Matcher
    failures fall back to the infrastructure-pattern table and are recorded
    as failures instead of raising.
    """
    result = GapClassification()
    for match in matches:
        if match.status == CoverageStatus.fully_covered:
            continue
        result.gaps.append(scenario_gap(match))

    result.orphan_tests = categorize_orphan_tests(
        orphan_tests,
        matcher=matcher,
        cache=cache,
        timeout_seconds=timeout_seconds,
        failures=result.failures,
    )
    for orphan in result.orphan_tests:
        if orphan.action != OrphanAction.add_scenario:
            continue
        priority = orphan.priority or Priority.P2
        degraded = False
        try:
            priority = _infer_priority(orphan.test.description, matcher, cache, timeout_seconds)
        except MatcherUnavailable as exc:
            logger.warning("Priority inference failed for %s: %s", orphan.test.id, exc)
            degraded = True
            result.failures.append(
                AnalysisFailure(
                    api=orphan.api,
                    stage="infer_priority",
                    error_type=type(exc).__name__,
                    message=str(exc),
                )
            )
        result.gaps.append(orphan_test_gap(orphan, priority, degraded=degraded))

    if orphan_api_gaps:
        result.gaps.extend(orphan_api_gap(orphan) for orphan in orphan_apis)

    result.gaps.sort(key=gap_sort_key)
    return result


def categorize_orphan_tests(
    orphan_tests: Sequence[OrphanTest],
    *,
    matcher: SemanticMatcherPort,
    cache: MatcherResponseCache,
    timeout_seconds: float,
    failures: List[AnalysisFailure],
) -> List[OrphanTest]:
    if not orphan_tests:
        return []
    tests = [orphan.test for orphan in orphan_tests]
    answered: Dict[str, OrphanCategorization] = {}
    payload = {
        "operation": "categorize_orphans",
        "matcher": matcher.name,
        "tests": [test.model_dump(mode="json") for test in tests],
    }
    try:
        categorizations = cached_matcher_call(
            cache,
            payload,
            matcher.categorize_orphans,
            tests,
            timeout_seconds=timeout_seconds,
        )
    except MatcherUnavailable as exc:
        logger.warning("Orphan categorization unavailable, using fallback table: %s", exc)
        failures.append(
            AnalysisFailure(stage="categorize_orphans", error_type=type(exc).__name__, message=str(exc))
        )
    else:
        known = {test.id for test in tests}
        for item in categorizations:
            if item.test_id in known:
                answered.setdefault(item.test_id, item)

    categorized: List[OrphanTest] = []
    for orphan in orphan_tests:
        item = answered.get(orphan.test.id)
        source = "matcher"
        if item is None:
            item = fallback_categorize(orphan.test)
            source = "fallback"
        categorized.append(
            orphan.model_copy(
                update={
                    "category": item.category,
                    "subtype": item.subtype,
                    "priority": item.priority,
                    "action": item.action,
                    "reason": item.reason,
                    "categorized_by": source,
                }
            )
        )
    return categorized


def scenario_gap(match: CoverageMatch) -> Gap:
    scenario = match.scenario
    if match.status == CoverageStatus.not_covered:
        source = GapSource.unit_test_gap
        reason = match.explanation or "No unit test covers this scenario"
        recommendation = f"Add a unit test for: {scenario.scenario}"
    else:
        source = GapSource.completeness_gap
        reason = match.explanation or "Scenario is only partly exercised"
        if match.downgraded:
            recommendation = f"Map the unclaimed tests of {scenario.api} to scenarios, then re-check: {scenario.scenario}"
        elif match.matched_test_ids:
            recommendation = f"Extend {', '.join(match.matched_test_ids)} to fully cover: {scenario.scenario}"
        else:
            recommendation = f"Complete unit test coverage for: {scenario.scenario}"
    return Gap(
        source=source,
        api=scenario.api,
        priority=scenario.priority,
        risk_level=risk_for(scenario.priority),
        scenario_id=scenario.scenario_id,
        description=scenario.scenario,
        reason=reason,
        recommendation=recommendation,
        degraded=match.degraded,
    )


def orphan_test_gap(orphan: OrphanTest, priority: Priority, *, degraded: bool = False) -> Gap:
    if orphan.suggested_scenario:
        recommendation = f'Add a baseline scenario for {orphan.api}: "{orphan.suggested_scenario}"'
    else:
        recommendation = f"Add a baseline scenario for {orphan.api} describing this test"
    return Gap(
        source=GapSource.orphan_test,
        api=orphan.api,
        priority=priority,
        risk_level=risk_for(priority),
        test_id=orphan.test.id,
        description=orphan.test.description,
        reason=orphan.reason or "Unit test matches no baseline scenario",
        recommendation=recommendation,
        degraded=degraded,
    )


def orphan_api_gap(orphan: OrphanAPI) -> Gap:
    return Gap(
        source=GapSource.orphan_api,
        api=orphan.key,
        priority=ORPHAN_API_PRIORITY,
        risk_level=risk_for(ORPHAN_API_PRIORITY),
        description=f"{orphan.key} has no baseline scenarios and no unit tests",
        reason="Endpoint is neither documented nor tested",
        recommendation=f"Document scenarios and add unit tests for {orphan.key}",
    )


def gap_sort_key(gap: Gap) -> tuple:
    return (gap.priority.rank, gap.api, gap.scenario_id or gap.test_id or "")


def _infer_priority(
    text: str,
    matcher: SemanticMatcherPort,
    cache: MatcherResponseCache,
    timeout_seconds: float,
) -> Priority:
    payload = {"operation": "infer_priority", "matcher": matcher.name, "text": text}
    return cached_matcher_call(cache, payload, matcher.infer_priority, text, timeout_seconds=timeout_seconds)
