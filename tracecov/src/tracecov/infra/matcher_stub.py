"""Scripted matcher implementation."""

from __future__ import annotations

import time
from collections import Counter
from dataclasses import dataclass, field
from typing import ClassVar, Dict, List, Optional, Sequence, Set, Tuple

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
from tracecov.errors import MatcherUnavailable
from tracecov.infra.orphan_rules import fallback_categorize


@dataclass
class StubMatcher:
    """Deterministic matcher answering from a script.

    ``script`` maps scenario text to ``(status, test_ids)``; unscripted
    scenarios get ``default_status`` with no tests. ``calls`` counts every
    invocation per operation. Setting ``fail`` (or listing an API key in
    ``fail_apis``) makes calls raise ``MatcherUnavailable``.
    """

    name: ClassVar[str] = "stub"

    script: Dict[str, Tuple[CoverageStatus, List[str]]] = field(default_factory=dict)
    default_status: CoverageStatus = CoverageStatus.not_covered
    categorizations: Dict[str, OrphanCategorization] = field(default_factory=dict)
    priorities: Dict[str, Priority] = field(default_factory=dict)
    default_priority: Priority = Priority.P3
    fail: bool = False
    fail_apis: Set[str] = field(default_factory=set)
    omit_scenarios: Set[str] = field(default_factory=set)
    delay_seconds: float = 0.0
    calls: Counter = field(default_factory=Counter)

    def match_coverage(
        self,
        api: APIDefinition,
        scenarios: Sequence[BaselineScenario],
        tests: Sequence[UnitTest],
    ) -> List[ScenarioVerdict]:
        self.calls["match_coverage"] += 1
        self._maybe_fail(api.key)
        verdicts = []
        for scenario in scenarios:
            if scenario.scenario in self.omit_scenarios:
                continue
            status, test_ids = self.script.get(scenario.scenario, (self.default_status, []))
            verdicts.append(
                ScenarioVerdict(
                    scenario_id=scenario.scenario_id,
                    status=status,
                    test_ids=list(test_ids),
                    explanation="scripted",
                    confidence=Confidence.high,
                )
            )
        return verdicts

    def categorize_orphans(self, tests: Sequence[UnitTest]) -> List[OrphanCategorization]:
        self.calls["categorize_orphans"] += 1
        self._maybe_fail(None)
        return [self.categorizations.get(test.id) or fallback_categorize(test) for test in tests]

    def infer_priority(self, scenario_text: str) -> Priority:
        self.calls["infer_priority"] += 1
        self._maybe_fail(None)
        return self.priorities.get(scenario_text, self.default_priority)

    def _maybe_fail(self, api_key: Optional[str]) -> None:
        if self.delay_seconds:
            time.sleep(self.delay_seconds)
        if self.fail or (api_key is not None and api_key in self.fail_apis):
            raise MatcherUnavailable("stub matcher configured to fail")
