"""File-backed catalog store.

Loads the three catalogs a service analysis needs (API definitions, the
baseline scenario document and the unit-test JSONL) plus the optional
suggestion pool. Every read goes through the shared ``FileCache``.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from tracecov.domain.models import (
    APIDefinition,
    BaselineScenario,
    Priority,
    ScenarioCategory,
    UnitTest,
    api_key,
)
from tracecov.errors import InputNotFound, MalformedInput
from tracecov.infra.cache import FileCache
from tracecov.infra.scoring import tokenize
from tracecov.normalize import normalize_light, split_priority_tag, strip_suggestion_marker
from tracecov.yaml_utils import load_document, load_yaml

logger = logging.getLogger(__name__)

CATEGORY_ORDER = [
    ScenarioCategory.happy_case,
    ScenarioCategory.edge_case,
    ScenarioCategory.error_case,
    ScenarioCategory.security,
]

# Applied when a scenario line carries no [P0]..[P3] tag.
DEFAULT_PRIORITY_BY_CATEGORY = {
    ScenarioCategory.security: Priority.P0,
    ScenarioCategory.happy_case: Priority.P1,
    ScenarioCategory.error_case: Priority.P1,
    ScenarioCategory.edge_case: Priority.P2,
}

_API_KEY_RE = re.compile(r"^(GET|POST|PUT|DELETE|PATCH|HEAD|OPTIONS)\s+/")
_RESERVED_KEYS = {"service"}

# Suggestion-pool key for scenarios not tied to one endpoint.
GLOBAL_SUGGESTIONS_KEY = "*"

_METHOD_VERBS = {
    "GET": {"get", "fetch", "find", "list", "retrieve", "read", "search"},
    "POST": {"post", "create", "add", "register", "save"},
    "PUT": {"put", "update", "replace", "edit"},
    "PATCH": {"patch", "update", "modify"},
    "DELETE": {"delete", "remove", "destroy"},
}


@dataclass(frozen=True)
class ServicePaths:
    baseline: Path
    tests: Path
    apis: Optional[Path] = None
    suggestions: Optional[Path] = None


@dataclass(frozen=True)
class Baseline:
    """Parsed baseline document. ``api_keys`` includes endpoints listed without scenarios."""

    api_keys: List[str]
    scenarios: List[BaselineScenario]


@dataclass
class ServiceCatalog:
    """Read-only view over one service's catalogs."""

    service: str
    apis: List[APIDefinition]
    scenarios: List[BaselineScenario]
    tests: List[UnitTest]
    suggestions: Dict[str, List[str]] = field(default_factory=dict)
    global_suggestions: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self._scenarios_by_api: Dict[str, List[BaselineScenario]] = {}
        for scenario in self.scenarios:
            self._scenarios_by_api.setdefault(scenario.api, []).append(scenario)
        self._tests_by_api: Dict[str, List[UnitTest]] = {}
        for test in self.tests:
            if test.api:
                self._tests_by_api.setdefault(test.api, []).append(test)

    def scenarios_for(self, key: str) -> List[BaselineScenario]:
        return list(self._scenarios_by_api.get(key, []))

    def tests_for(self, key: str) -> List[UnitTest]:
        return list(self._tests_by_api.get(key, []))

    def unattributed_tests(self) -> List[UnitTest]:
        return [test for test in self.tests if not test.api]

    def suggestions_for(self, key: str) -> List[str]:
        return list(self.suggestions.get(key, []))


@dataclass
class CatalogStore:
    files: FileCache

    def load_service(self, service: str, paths: ServicePaths) -> ServiceCatalog:
        """Load and cross-link all catalogs for ``service``.

        Raises ``InputNotFound`` for a missing required file and
        ``MalformedInput`` for anything unparseable.
        """
        baseline = self.load_baseline(paths.baseline)
        tests = self.load_unit_tests(paths.tests, service=service)
        apis = self.load_apis(paths.apis) if paths.apis else []
        known = {api.key for api in apis}
        apis.extend(_api_from_key(key) for key in baseline.api_keys if key not in known)
        suggestions: Dict[str, List[str]] = {}
        if paths.suggestions:
            try:
                suggestions = self.load_suggestions(paths.suggestions)
            except InputNotFound:
                logger.info("No suggestion pool at %s", paths.suggestions)
        global_pool = suggestions.pop(GLOBAL_SUGGESTIONS_KEY, [])
        return build_catalog(
            service,
            apis=apis,
            scenarios=baseline.scenarios,
            tests=tests,
            suggestions=suggestions,
            global_suggestions=global_pool,
        )

    def load_apis(self, path: Path) -> List[APIDefinition]:
        payload = load_document(path, self.files)
        if isinstance(payload, dict):
            payload = payload.get("apis")
        if not isinstance(payload, list):
            raise MalformedInput(f"API catalog must be a list of definitions: {path}", path=str(path))
        apis: List[APIDefinition] = []
        seen = set()
        for index, item in enumerate(payload, start=1):
            try:
                api = APIDefinition(**item)
            except (TypeError, ValidationError) as exc:
                raise MalformedInput(f"Invalid API definition #{index} in {path}: {exc}", path=str(path)) from exc
            if api.key in seen:
                raise MalformedInput(f"Duplicate API {api.key} in {path}", path=str(path))
            seen.add(api.key)
            apis.append(api)
        return apis

    def load_baseline(self, path: Path) -> Baseline:
        payload = load_yaml(path, self.files)
        if payload is None:
            return Baseline(api_keys=[], scenarios=[])
        errors = validate_baseline(payload)
        if errors:
            raise MalformedInput(
                f"Invalid baseline {path}:\n" + "\n".join(f"- {error}" for error in errors),
                path=str(path),
            )
        api_keys = list(dict.fromkeys(_normalize_key(key) for key in payload if key not in _RESERVED_KEYS))
        return Baseline(api_keys=api_keys, scenarios=parse_baseline(payload))

    def load_unit_tests(self, path: Path, *, service: str) -> List[UnitTest]:
        content = self.files.read(path)
        tests: List[UnitTest] = []
        seen = set()
        for line_number, line in enumerate(content.splitlines(), start=1):
            payload = line.strip()
            if not payload:
                continue
            try:
                data = json.loads(payload)
                data.setdefault("service", service)
                if data.get("api"):
                    data["api"] = _normalize_key(data["api"])
                test = UnitTest(**data)
            except (json.JSONDecodeError, AttributeError, TypeError, ValidationError) as exc:
                raise MalformedInput(f"Invalid unit test at {path}:{line_number}: {exc}", path=str(path)) from exc
            if test.id in seen:
                logger.warning("Duplicate unit test id %s in %s; keeping the first", test.id, path)
                continue
            seen.add(test.id)
            tests.append(test)
        return tests

    def load_suggestions(self, path: Path) -> Dict[str, List[str]]:
        payload = load_yaml(path, self.files)
        if payload is None:
            return {}
        if not isinstance(payload, dict):
            raise MalformedInput(f"Suggestion pool must be a mapping: {path}", path=str(path))
        pool: Dict[str, List[str]] = {}
        for key, categories in payload.items():
            if key in _RESERVED_KEYS:
                continue
            if isinstance(categories, list):
                lines = [str(item) for item in categories]
            elif isinstance(categories, dict):
                lines = [str(item) for _, items in _iter_categories(categories) for item in items]
            else:
                continue
            texts = [_suggestion_text(line) for line in lines]
            target = GLOBAL_SUGGESTIONS_KEY if key == GLOBAL_SUGGESTIONS_KEY else _normalize_key(key)
            pool[target] = [text for text in texts if text]
        return pool


def validate_baseline(data: Any) -> List[str]:
    """Structural checks for a baseline document; returns human-readable errors."""
    errors: List[str] = []
    if not isinstance(data, dict):
        return ["Baseline must be a YAML mapping"]
    valid_categories = [category.value for category in CATEGORY_ORDER]
    for key, value in data.items():
        if key in _RESERVED_KEYS:
            continue
        if not isinstance(key, str) or not _API_KEY_RE.match(key.strip()):
            errors.append(f'Invalid API format: "{key}" - should be "METHOD /path" (e.g. "GET /v1/customers")')
        if value is None:
            continue
        if not isinstance(value, dict):
            errors.append(f'API "{key}" must be a mapping of test categories, got {type(value).__name__}')
            continue
        invalid = [category for category in value if category not in valid_categories]
        if invalid:
            errors.append(
                f'API "{key}" has invalid categories: {", ".join(map(str, invalid))}. '
                f'Valid categories: {", ".join(valid_categories)}'
            )
        for category, scenarios in value.items():
            if scenarios is None:
                continue
            if not isinstance(scenarios, list):
                errors.append(f'API "{key}" category "{category}" must be a list of scenarios')
                continue
            for index, scenario in enumerate(scenarios, start=1):
                text = _scenario_text(scenario)
                if text is None:
                    errors.append(f'API "{key}" category "{category}" scenario {index} must be a string')
                elif not text.strip():
                    errors.append(f'API "{key}" category "{category}" scenario {index} cannot be empty')
                elif isinstance(scenario, dict) and scenario.get("priority") not in (None, *Priority.__members__):
                    errors.append(
                        f'API "{key}" category "{category}" scenario {index} has invalid priority '
                        f'"{scenario.get("priority")}"'
                    )
    return errors


def parse_baseline(data: Dict[str, Any]) -> List[BaselineScenario]:
    scenarios: List[BaselineScenario] = []
    # Keys that normalize to the same API share one numbering.
    numbers: Dict[str, int] = {}
    for key, value in data.items():
        if key in _RESERVED_KEYS or not value:
            continue
        api = _normalize_key(key)
        if api in numbers:
            logger.warning("Baseline key %r repeats API %s; merging its scenarios", key, api)
        number = numbers.get(api, 0)
        for category, items in _iter_categories(value):
            for item in items:
                text, priority = _scenario_priority(item, category)
                number += 1
                scenarios.append(
                    BaselineScenario(
                        scenario_id=f"{api}#{number}",
                        scenario=text,
                        category=category,
                        priority=priority,
                        api=api,
                    )
                )
        numbers[api] = number
    return scenarios


def build_catalog(
    service: str,
    *,
    apis: Sequence[APIDefinition],
    scenarios: Sequence[BaselineScenario],
    tests: Sequence[UnitTest],
    suggestions: Optional[Dict[str, List[str]]] = None,
    global_suggestions: Optional[List[str]] = None,
) -> ServiceCatalog:
    """Cross-link catalogs so every scenario and attributed test has an API.

    APIs named only by the baseline or by a test's attribution are added
    with just their method and endpoint. Tests without an attribution are
    matched to an API by :func:`attribute_test`.
    """
    by_key: Dict[str, APIDefinition] = {}
    for api in apis:
        by_key.setdefault(api.key, api)
    for scenario in scenarios:
        if scenario.api not in by_key:
            logger.warning("Baseline API %s is not in the API catalog; adding it", scenario.api)
            by_key[scenario.api] = _api_from_key(scenario.api)
    for test in tests:
        if test.api and test.api not in by_key:
            logger.warning("Test %s names unknown API %s; adding it", test.id, test.api)
            by_key[test.api] = _api_from_key(test.api)

    api_list = list(by_key.values())
    linked: List[UnitTest] = []
    for test in tests:
        if not test.api:
            inferred = attribute_test(test, api_list)
            if inferred:
                test = test.model_copy(update={"api": inferred})
        linked.append(test)
    return ServiceCatalog(
        service=service,
        apis=api_list,
        scenarios=list(scenarios),
        tests=linked,
        suggestions=dict(suggestions or {}),
        global_suggestions=list(global_suggestions or []),
    )


def attribute_test(test: UnitTest, apis: Iterable[APIDefinition]) -> Optional[str]:
    """Best-effort API attribution for a test the scanner left unattributed.

    Scores static path segments mentioned by the test, plus the HTTP verb and
    an id-style parameter. Returns ``None`` when nothing matches or the best
    score is shared by several APIs.
    """
    words = _stems(tokenize(f"{test.description} {Path(test.file).stem}"))
    scored: List[Tuple[int, str]] = []
    for api in apis:
        segments = _static_segments(api.endpoint)
        matched = len(segments & words)
        if not matched:
            continue
        score = matched * 2
        if _METHOD_VERBS.get(api.method.upper(), set()) & words:
            score += 2
        if "{" in api.endpoint and words & {"id", "by"}:
            score += 1
        scored.append((score, api.key))
    if not scored:
        return None
    scored.sort(key=lambda item: (-item[0], item[1]))
    if len(scored) > 1 and scored[0][0] == scored[1][0]:
        logger.debug("Ambiguous attribution for test %s: %s", test.id, [key for _, key in scored[:2]])
        return None
    return scored[0][1]


def _iter_categories(value: Dict[str, Any]) -> Iterable[Tuple[ScenarioCategory, List[Any]]]:
    for category in CATEGORY_ORDER:
        items = value.get(category.value)
        if items:
            yield category, list(items)


def _scenario_text(item: Any) -> Optional[str]:
    if isinstance(item, str):
        return item
    if isinstance(item, dict) and isinstance(item.get("scenario"), str):
        return item["scenario"]
    return None


def _scenario_priority(item: Any, category: ScenarioCategory) -> Tuple[str, Priority]:
    raw = _scenario_text(item) or ""
    text, tag = split_priority_tag(raw)
    declared = item.get("priority") if isinstance(item, dict) else None
    if declared:
        return text, Priority(declared)
    if tag:
        return text, Priority(tag)
    return text, DEFAULT_PRIORITY_BY_CATEGORY[category]


def _suggestion_text(line: str) -> str:
    # Marker and priority tag may come in either order.
    text, _ = split_priority_tag(strip_suggestion_marker(line))
    return strip_suggestion_marker(text)


def _normalize_key(key: str) -> str:
    method, _, endpoint = normalize_light(str(key)).partition(" ")
    return api_key(method, endpoint)


def _api_from_key(key: str) -> APIDefinition:
    method, _, endpoint = key.partition(" ")
    return APIDefinition(method=method, endpoint=endpoint)


def _static_segments(endpoint: str) -> set[str]:
    segments = set()
    for part in endpoint.strip("/").split("/"):
        if not part or part.startswith("{") or part.startswith(":"):
            continue
        lowered = part.lower()
        if lowered == "api" or re.fullmatch(r"v\d+", lowered):
            continue
        segments |= _stems(tokenize(part))
    return segments


def _stems(words: Iterable[str]) -> set[str]:
    return {word[:-1] if len(word) > 3 and word.endswith("s") else word for word in words}
