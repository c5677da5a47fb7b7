"""Analyze coverage use-case.

Runs the three-layer completeness check for every API of a service:

* Layer 1: an API without baseline scenarios produces no matches and
  never reaches the matcher. Its tests are all unclaimed.
* Layer 1b: a test is claimed when it shares enough words with one of the
  API's scenarios or when the matcher cites it for a scenario. Everything
  else is an orphan candidate.
* Layer 2: the matcher rates each scenario against the API's tests.
* Layer 3: a FULLY_COVERED scenario drops to PARTIALLY_COVERED while the API
  still has unclaimed tests. Statuses are never raised.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Tuple

from tracecov.domain.models import (
    AnalysisFailure,
    APIDefinition,
    BaselineScenario,
    CoverageMatch,
    CoverageStatus,
    ScenarioVerdict,
    UnitTest,
)
from tracecov.domain.ports import SemanticMatcherPort
from tracecov.errors import AnalysisCancelled, MatcherUnavailable
from tracecov.infra.cache import CacheManager
from tracecov.infra.catalog_store import ServiceCatalog
from tracecov.infra.scoring import is_similar
from tracecov.usecases.matcher_calls import cached_matcher_call

logger = logging.getLogger(__name__)

NO_TESTS_EXPLANATION = "no unit tests attributed to this API"
NO_VERDICT_EXPLANATION = "no verdict returned by matcher"
UNAVAILABLE_EXPLANATION = "analysis unavailable"


@dataclass
class ApiAnalysis:
    api: str
    matches: List[CoverageMatch]
    unclaimed: List[UnitTest]
    failure: Optional[AnalysisFailure] = None


@dataclass
class AnalysisResult:
    matches: List[CoverageMatch] = field(default_factory=list)
    unclaimed: Dict[str, List[UnitTest]] = field(default_factory=dict)
    failures: List[AnalysisFailure] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return bool(self.failures) or any(match.degraded for match in self.matches)

    def add(self, analysis: ApiAnalysis) -> None:
        self.matches.extend(analysis.matches)
        if analysis.unclaimed:
            self.unclaimed[analysis.api] = list(analysis.unclaimed)
        if analysis.failure is not None:
            self.failures.append(analysis.failure)


@dataclass
class CoverageAnalyzer:
    matcher: SemanticMatcherPort
    cache: CacheManager
    timeout_seconds: float = 60.0

    def analyze(self, catalog: ServiceCatalog, cancel_event: Optional[threading.Event] = None) -> AnalysisResult:
        """Analyze every API of ``catalog`` in catalog order.

        ``cancel_event`` is checked before each API; once set the run stops
        with ``AnalysisCancelled`` and no partially analyzed API is kept.
        """
        result = AnalysisResult()
        for api in catalog.apis:
            if cancel_event is not None and cancel_event.is_set():
                raise AnalysisCancelled(f"Analysis of {catalog.service} cancelled before {api.key}")
            scenarios = catalog.scenarios_for(api.key)
            tests = catalog.tests_for(api.key)
            if not scenarios:
                if tests:
                    logger.debug("%s has %d tests but no scenarios", api.key, len(tests))
                    result.unclaimed[api.key] = tests
                continue
            result.add(self.analyze_api(api, scenarios, tests))
        logger.info(
            "Analyzed %s: %d scenarios, %d orphan candidates, %d failures",
            catalog.service,
            len(result.matches),
            sum(len(tests) for tests in result.unclaimed.values()),
            len(result.failures),
        )
        return result

    def analyze_api(
        self,
        api: APIDefinition,
        scenarios: Sequence[BaselineScenario],
        tests: Sequence[UnitTest],
    ) -> ApiAnalysis:
        if not tests:
            matches = [_match(scenario, CoverageStatus.not_covered, explanation=NO_TESTS_EXPLANATION) for scenario in scenarios]
            return ApiAnalysis(api=api.key, matches=matches, unclaimed=[])

        heuristic_claimed = {test.id for test in tests if _shares_words(test, scenarios)}
        try:
            verdicts = self._match_coverage(api, scenarios, tests)
        except MatcherUnavailable as exc:
            logger.warning("Matcher unavailable for %s: %s", api.key, exc)
            matches = [
                _match(scenario, CoverageStatus.not_covered, explanation=UNAVAILABLE_EXPLANATION, degraded=True)
                for scenario in scenarios
            ]
            unclaimed = [test for test in tests if test.id not in heuristic_claimed]
            failure = AnalysisFailure(
                api=api.key,
                stage="match_coverage",
                error_type=type(exc).__name__,
                message=str(exc),
            )
            return ApiAnalysis(api=api.key, matches=matches, unclaimed=unclaimed, failure=failure)

        by_scenario, matched_ids = _index_verdicts(verdicts, scenarios, tests)
        claimed = heuristic_claimed | matched_ids
        unclaimed = [test for test in tests if test.id not in claimed]

        matches = []
        for scenario in scenarios:
            verdict = by_scenario.get(scenario.scenario_id)
            if verdict is None:
                logger.warning("Matcher returned no verdict for %s", scenario.scenario_id)
                matches.append(
                    _match(scenario, CoverageStatus.not_covered, explanation=NO_VERDICT_EXPLANATION, degraded=True)
                )
                continue
            matches.append(_adjust(scenario, verdict, unclaimed))
        return ApiAnalysis(api=api.key, matches=matches, unclaimed=unclaimed)

    def _match_coverage(
        self,
        api: APIDefinition,
        scenarios: Sequence[BaselineScenario],
        tests: Sequence[UnitTest],
    ) -> List[ScenarioVerdict]:
        payload = {
            "operation": "match_coverage",
            "matcher": self.matcher.name,
            "api": api.key,
            "scenarios": [scenario.model_dump(mode="json") for scenario in scenarios],
            "tests": [test.model_dump(mode="json") for test in tests],
        }
        return cached_matcher_call(
            self.cache.matcher,
            payload,
            self.matcher.match_coverage,
            api,
            list(scenarios),
            list(tests),
            timeout_seconds=self.timeout_seconds,
        )


def _shares_words(test: UnitTest, scenarios: Sequence[BaselineScenario]) -> bool:
    return any(is_similar(test.description, scenario.scenario) for scenario in scenarios)


def _index_verdicts(
    verdicts: Sequence[ScenarioVerdict],
    scenarios: Sequence[BaselineScenario],
    tests: Sequence[UnitTest],
) -> Tuple[Dict[str, ScenarioVerdict], Set[str]]:
    """Keep the first verdict per known scenario and drop unknown test ids."""
    scenario_ids = {scenario.scenario_id for scenario in scenarios}
    test_ids = {test.id for test in tests}
    by_scenario: Dict[str, ScenarioVerdict] = {}
    matched: Set[str] = set()
    for verdict in verdicts:
        if verdict.scenario_id not in scenario_ids or verdict.scenario_id in by_scenario:
            continue
        known = [test_id for test_id in verdict.test_ids if test_id in test_ids]
        if len(known) != len(verdict.test_ids):
            logger.debug("Dropping unknown test ids for %s: %s", verdict.scenario_id, set(verdict.test_ids) - test_ids)
            verdict = verdict.model_copy(update={"test_ids": known})
        by_scenario[verdict.scenario_id] = verdict
        matched.update(known)
    return by_scenario, matched


def _adjust(scenario: BaselineScenario, verdict: ScenarioVerdict, unclaimed: Sequence[UnitTest]) -> CoverageMatch:
    status = verdict.status
    explanation = verdict.explanation
    if status == CoverageStatus.fully_covered and unclaimed:
        status = CoverageStatus.partially_covered
        note = f"downgraded: {len(unclaimed)} test(s) for this API match no scenario"
        explanation = f"{explanation} ({note})" if explanation else note
    return CoverageMatch(
        scenario=scenario,
        status=status,
        matched_test_ids=list(verdict.test_ids),
        explanation=explanation,
        confidence=verdict.confidence,
        layer2_status=verdict.status,
    )


def _match(
    scenario: BaselineScenario,
    status: CoverageStatus,
    *,
    explanation: str,
    degraded: bool = False,
) -> CoverageMatch:
    return CoverageMatch(
        scenario=scenario,
        status=status,
        explanation=explanation,
        layer2_status=status,
        degraded=degraded,
    )
