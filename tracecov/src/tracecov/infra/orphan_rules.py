"""Fallback orphan categorization used when the matcher cannot answer.

A conservative heuristic: test files named like infrastructure code are
technical and need no scenario, everything else is a business test that a
human should turn into a scenario. Name collisions (a controller test with
"index" in its file name) are misclassified; callers treat the result as a
default, not a verdict.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import List, Sequence, Tuple

from tracecov.domain.models import (
    OrphanAction,
    OrphanCategorization,
    OrphanCategory,
    Priority,
    UnitTest,
)

INFRASTRUCTURE_PATTERNS: List[Tuple[str, re.Pattern[str]]] = [
    ("Entity Test", re.compile(r"entit(y|ies)", re.IGNORECASE)),
    ("DTO Test", re.compile(r"dto", re.IGNORECASE)),
    ("Mapper Test", re.compile(r"mapper", re.IGNORECASE)),
    ("Exception Message Test", re.compile(r"exception|error[-_.]?messages?", re.IGNORECASE)),
    ("Index Test", re.compile(r"(^|[-_.])index([-_.]|$)", re.IGNORECASE)),
    ("Connection Lifecycle Test", re.compile(r"connection|lifecycle", re.IGNORECASE)),
]

BUSINESS_SUBTYPE = "Business Logic Test"
FALLBACK_BUSINESS_PRIORITY = Priority.P2
FALLBACK_TECHNICAL_PRIORITY = Priority.P3


def fallback_categorize(test: UnitTest) -> OrphanCategorization:
    file_name = Path(test.file).name
    for subtype, pattern in INFRASTRUCTURE_PATTERNS:
        if pattern.search(file_name):
            return OrphanCategorization(
                test_id=test.id,
                category=OrphanCategory.technical,
                subtype=subtype,
                priority=FALLBACK_TECHNICAL_PRIORITY,
                action=OrphanAction.none,
                reason=f"File name {file_name} matches an infrastructure pattern",
            )
    return OrphanCategorization(
        test_id=test.id,
        category=OrphanCategory.business,
        subtype=BUSINESS_SUBTYPE,
        priority=FALLBACK_BUSINESS_PRIORITY,
        action=OrphanAction.add_scenario,
        reason="No baseline scenario; needs human review",
    )


def fallback_categorize_all(tests: Sequence[UnitTest]) -> List[OrphanCategorization]:
    return [fallback_categorize(test) for test in tests]
