"""Offline matcher based on word overlap."""

from __future__ import annotations

from typing import List, Sequence

from tracecov.domain.models import (
    APIDefinition,
    BaselineScenario,
    Confidence,
    CoverageStatus,
    OrphanCategorization,
    Priority,
    ScenarioVerdict,
    UnitTest,
)
from tracecov.infra.orphan_rules import fallback_categorize_all
from tracecov.infra.scoring import coverage_ratio, tokenize

FULL_RATIO = 0.6
PARTIAL_RATIO = 0.3

_P0_WORDS = {"critical", "security", "auth", "authentication", "authorization", "injection", "xss", "csrf"}
_P1_WORDS = {"error", "invalid", "fail", "fails", "failure", "missing", "required", "unavailable"}
_P2_WORDS = {"edge", "boundary", "maximum", "minimum", "special", "length"}


class KeywordMatcher:
    """Deterministic stand-in for an LLM matcher.

    A test covers a scenario when it mentions enough of the scenario's
    content words: at least 60% is full coverage, 30% partial.
    """

    name = "keyword"

    def match_coverage(
        self,
        api: APIDefinition,
        scenarios: Sequence[BaselineScenario],
        tests: Sequence[UnitTest],
    ) -> List[ScenarioVerdict]:
        verdicts: List[ScenarioVerdict] = []
        for scenario in scenarios:
            ranked = sorted(
                ((coverage_ratio(scenario.scenario, f"{test.description} {test.file}"), test.id) for test in tests),
                key=lambda item: (-item[0], item[1]),
            )
            matched = [test_id for ratio, test_id in ranked if ratio >= PARTIAL_RATIO]
            best = ranked[0][0] if ranked else 0.0
            if best >= FULL_RATIO:
                status, confidence = CoverageStatus.fully_covered, Confidence.medium
            elif matched:
                status, confidence = CoverageStatus.partially_covered, Confidence.low
            else:
                status, confidence = CoverageStatus.not_covered, Confidence.low
            verdicts.append(
                ScenarioVerdict(
                    scenario_id=scenario.scenario_id,
                    status=status,
                    test_ids=matched,
                    explanation=f"best word overlap {best:.0%}",
                    confidence=confidence,
                )
            )
        return verdicts

    def categorize_orphans(self, tests: Sequence[UnitTest]) -> List[OrphanCategorization]:
        return fallback_categorize_all(tests)

    def infer_priority(self, scenario_text: str) -> Priority:
        words = tokenize(scenario_text)
        if words & _P0_WORDS:
            return Priority.P0
        if words & _P1_WORDS:
            return Priority.P1
        if words & _P2_WORDS:
            return Priority.P2
        return Priority.P3
