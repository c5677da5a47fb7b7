"""Ports (interfaces) for tracecov."""

from __future__ import annotations

from typing import Protocol, Sequence

from tracecov.domain.models import (
    APIDefinition,
    BaselineScenario,
    OrphanCategorization,
    Priority,
    ScenarioVerdict,
    UnitTest,
)


class SemanticMatcherPort(Protocol):
    """Opaque, possibly non-deterministic matching capability.

    Implementations raise ``MatcherUnavailable`` on any failure and nothing
    else; callers decide how to degrade.
    """

    name: str

    def match_coverage(
        self,
        api: APIDefinition,
        scenarios: Sequence[BaselineScenario],
        tests: Sequence[UnitTest],
    ) -> list[ScenarioVerdict]:
        ...

    def categorize_orphans(self, tests: Sequence[UnitTest]) -> list[OrphanCategorization]:
        ...

    def infer_priority(self, scenario_text: str) -> Priority:
        ...
