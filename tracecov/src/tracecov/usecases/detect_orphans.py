"""Detect orphans use-case."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Mapping, Sequence

from tracecov.domain.models import MissingScenario, OrphanAPI, OrphanTest, UnitTest
from tracecov.infra.catalog_store import ServiceCatalog
from tracecov.infra.scoring import best_similar, is_similar


@dataclass
class OrphanFindings:
    orphan_tests: List[OrphanTest] = field(default_factory=list)
    orphan_apis: List[OrphanAPI] = field(default_factory=list)
    missing_scenarios: List[MissingScenario] = field(default_factory=list)


def detect_orphans(catalog: ServiceCatalog, unclaimed: Mapping[str, Sequence[UnitTest]]) -> OrphanFindings:
    """Collect orphan tests, orphan APIs and suggested scenarios missing from the baseline.

    ``unclaimed`` is the per-API output of the coverage analysis. Suggestions
    come only from the supplied pools; a test with no similar entry keeps
    ``suggested_scenario=None``.
    """
    findings = OrphanFindings()
    order = [api.key for api in catalog.apis]
    order.extend(key for key in unclaimed if key not in order)
    for key in order:
        pool = catalog.suggestions_for(key)
        for test in unclaimed.get(key, []):
            suggestion = best_similar(test.description, pool) or best_similar(
                test.description, catalog.global_suggestions
            )
            findings.orphan_tests.append(OrphanTest(test=test, api=key, suggested_scenario=suggestion))

    for api in catalog.apis:
        if not catalog.scenarios_for(api.key) and not catalog.tests_for(api.key):
            findings.orphan_apis.append(OrphanAPI(api=api))

    findings.missing_scenarios = missing_scenarios(catalog)
    return findings


def missing_scenarios(catalog: ServiceCatalog) -> List[MissingScenario]:
    missing: List[MissingScenario] = []
    for key, pool in catalog.suggestions.items():
        baseline = [scenario.scenario for scenario in catalog.scenarios_for(key)]
        tests = catalog.tests_for(key)
        for suggestion in pool:
            if any(is_similar(suggestion, text) for text in baseline):
                continue
            missing.append(
                MissingScenario(
                    api=key,
                    scenario=suggestion,
                    has_unit_test=any(is_similar(suggestion, test.description) for test in tests),
                )
            )
    return missing
