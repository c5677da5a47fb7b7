"""LLM-backed semantic matchers."""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar

import requests

from tracecov.config import MatcherConfig
from tracecov.domain.models import (
    APIDefinition,
    BaselineScenario,
    Confidence,
    CoverageStatus,
    OrphanAction,
    OrphanCategorization,
    OrphanCategory,
    Priority,
    ScenarioVerdict,
    UnitTest,
)
from tracecov.errors import MatcherUnavailable
from tracecov.normalize import normalize_light

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_ANTHROPIC_MODEL = "claude-3-5-sonnet-20240620"
DEFAULT_ANTHROPIC_URL = "https://api.anthropic.com"
ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_OPENAI_MODEL = "gpt-4o"
DEFAULT_OPENAI_URL = "https://api.openai.com/v1"

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")
_ACTIONS = {
    "none": OrphanAction.none,
    "review": OrphanAction.review,
    "qa_add_scenario": OrphanAction.add_scenario,
    "add_scenario": OrphanAction.add_scenario,
    "add scenario": OrphanAction.add_scenario,
}
_RESPONSE_ERRORS = (requests.RequestException, KeyError, IndexError, TypeError, ValueError)


class LlmMatcher(ABC):
    """Prompting and response parsing shared by every chat provider.

    Subclasses only implement :meth:`_complete`. Any transport or parse
    problem surfaces as ``MatcherUnavailable``.
    """

    name = "llm"

    def __init__(self, config: MatcherConfig, api_key: str) -> None:
        self.config = config
        self.api_key = api_key

    @property
    @abstractmethod
    def model(self) -> str:
        raise NotImplementedError

    @abstractmethod
    def _complete(self, prompt: str, *, max_tokens: int) -> str:
        raise NotImplementedError

    def match_coverage(
        self,
        api: APIDefinition,
        scenarios: Sequence[BaselineScenario],
        tests: Sequence[UnitTest],
    ) -> List[ScenarioVerdict]:
        content = self._ask(_coverage_prompt(api, scenarios, tests), max_tokens=self.config.max_tokens)
        return self._decode(content, lambda payload: _verdicts_from_payload(payload, scenarios, tests))

    def categorize_orphans(self, tests: Sequence[UnitTest]) -> List[OrphanCategorization]:
        if not tests:
            return []
        content = self._ask(_categorization_prompt(tests), max_tokens=self.config.max_tokens)
        return self._decode(content, lambda payload: _categorizations_from_payload(payload, tests))

    def infer_priority(self, scenario_text: str) -> Priority:
        content = self._ask(_priority_prompt(scenario_text), max_tokens=10)
        answer = content.strip().strip(".:").upper()
        if answer in Priority.__members__:
            return Priority(answer)
        logger.warning("Ambiguous priority response %r; using P3", content)
        return Priority.P3

    def _ask(self, prompt: str, *, max_tokens: int) -> str:
        try:
            return self._complete(prompt, max_tokens=max_tokens)
        except _RESPONSE_ERRORS as exc:
            raise MatcherUnavailable(f"{self.name} request failed: {exc}") from exc

    def _decode(self, content: str, build: Callable[[Dict[str, Any]], List[T]]) -> List[T]:
        payload = _parse_json(content)
        try:
            return build(payload)
        except _RESPONSE_ERRORS as exc:
            raise MatcherUnavailable(f"{self.name} returned an unexpected reply shape: {exc}") from exc


class AnthropicMatcher(LlmMatcher):
    name = "anthropic"

    @property
    def model(self) -> str:
        return self.config.model or DEFAULT_ANTHROPIC_MODEL

    def _complete(self, prompt: str, *, max_tokens: int) -> str:
        base_url = (self.config.base_url or DEFAULT_ANTHROPIC_URL).rstrip("/")
        response = requests.post(
            f"{base_url}/v1/messages",
            headers={
                "x-api-key": self.api_key,
                "anthropic-version": ANTHROPIC_VERSION,
                "content-type": "application/json",
            },
            json={
                "model": self.model,
                "max_tokens": max_tokens,
                "temperature": self.config.temperature,
                "messages": [{"role": "user", "content": prompt}],
            },
            timeout=self.config.timeout_seconds,
        )
        response.raise_for_status()
        payload = response.json()
        blocks = [block.get("text", "") for block in payload["content"] if block.get("type") == "text"]
        return "".join(blocks)


class OpenAICompatibleMatcher(LlmMatcher):
    name = "openai"

    @property
    def model(self) -> str:
        return self.config.model or DEFAULT_OPENAI_MODEL

    def _complete(self, prompt: str, *, max_tokens: int) -> str:
        base_url = (self.config.base_url or DEFAULT_OPENAI_URL).rstrip("/")
        response = requests.post(
            f"{base_url}/chat/completions",
            headers={"Authorization": f"Bearer {self.api_key}"},
            json={
                "model": self.model,
                "max_tokens": max_tokens,
                "temperature": self.config.temperature,
                "messages": [
                    {
                        "role": "system",
                        "content": "You are a QA coverage analyst. Reply with strict JSON unless told otherwise.",
                    },
                    {"role": "user", "content": prompt},
                ],
            },
            timeout=self.config.timeout_seconds,
        )
        response.raise_for_status()
        payload = response.json()
        return payload["choices"][0]["message"]["content"] or ""


def _coverage_prompt(
    api: APIDefinition,
    scenarios: Sequence[BaselineScenario],
    tests: Sequence[UnitTest],
) -> str:
    scenario_lines = "\n".join(
        f"{index}. [{scenario.priority.value}] {scenario.scenario}" for index, scenario in enumerate(scenarios, start=1)
    )
    test_lines = "\n".join(f"Test {index}: {test.description} ({test.file})" for index, test in enumerate(tests, start=1))
    return (
        f"Analyze unit test coverage for {api.key}\n"
        f"Description: {api.description or 'N/A'}\n\n"
        f"Expected scenarios:\n{scenario_lines}\n\n"
        f"Available tests:\n{test_lines}\n\n"
        "For each scenario decide which tests exercise it and whether coverage is "
        "FULLY_COVERED, PARTIALLY_COVERED or NOT_COVERED. Respond in JSON:\n"
        '{"matches": [{"scenarioNumber": 1, "status": "FULLY_COVERED", '
        '"testNumbers": [1, 2], "explanation": "...", "confidence": "HIGH|MEDIUM|LOW"}]}'
    )


def _categorization_prompt(tests: Sequence[UnitTest]) -> str:
    test_lines = "\n".join(f"Test {index}: {test.description} ({test.file})" for index, test in enumerate(tests, start=1))
    return (
        "Categorize these unit tests that have no baseline scenario.\n\n"
        f"Tests:\n{test_lines}\n\n"
        "- TECHNICAL: infrastructure tests (entity, DTO, mapper, exception messages), no scenario needed\n"
        "- BUSINESS: business behavior (controller, service), needs a scenario\n\n"
        "Respond in JSON:\n"
        '{"categorizations": [{"testNumber": 1, "category": "TECHNICAL|BUSINESS", '
        '"subtype": "Entity Test|Controller Test|...", "priority": "P0|P1|P2|P3", '
        '"action": "none|qa_add_scenario", "reasoning": "..."}]}'
    )


def _priority_prompt(scenario_text: str) -> str:
    return (
        "Classify this API test scenario's priority.\n\n"
        f'Scenario: "{scenario_text}"\n\n'
        "- P0: security threats (injection, XSS, CSRF, auth bypass, transport security)\n"
        "- P1: critical validation (missing or invalid required fields, 400s), infrastructure "
        "failures (500/503), attack prevention (rate limiting, brute force)\n"
        "- P2: edge cases (boundaries, special characters, length limits)\n"
        "- P3: everything else\n\n"
        "Respond with ONLY the priority: P0, P1, P2 or P3."
    )


def _parse_json(content: str) -> Dict[str, Any]:
    match = _FENCE_RE.search(content)
    text = match.group(1) if match else content.strip()
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MatcherUnavailable(f"Matcher returned invalid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise MatcherUnavailable("Matcher returned a non-object JSON payload")
    return payload


def _verdicts_from_payload(
    payload: Dict[str, Any],
    scenarios: Sequence[BaselineScenario],
    tests: Sequence[UnitTest],
) -> List[ScenarioVerdict]:
    by_text = {normalize_light(scenario.scenario).lower(): scenario for scenario in scenarios}
    verdicts: List[ScenarioVerdict] = []
    for item in payload.get("matches") or []:
        if not isinstance(item, dict):
            continue
        scenario = _pick(scenarios, item.get("scenarioNumber"))
        if scenario is None and isinstance(item.get("scenario"), str):
            scenario = by_text.get(normalize_light(item["scenario"]).lower())
        if scenario is None:
            logger.debug("Dropping verdict for unknown scenario: %s", item)
            continue
        try:
            status = CoverageStatus(str(item.get("status", "")).upper())
        except ValueError:
            logger.debug("Dropping verdict with unknown status: %s", item)
            continue
        test_ids = []
        for number in item.get("testNumbers") or []:
            test = _pick(tests, number)
            if test is not None and test.id not in test_ids:
                test_ids.append(test.id)
        verdicts.append(
            ScenarioVerdict(
                scenario_id=scenario.scenario_id,
                status=status,
                test_ids=test_ids,
                explanation=str(item.get("explanation") or ""),
                confidence=_confidence(item.get("confidence")),
            )
        )
    return verdicts


def _categorizations_from_payload(payload: Dict[str, Any], tests: Sequence[UnitTest]) -> List[OrphanCategorization]:
    result: List[OrphanCategorization] = []
    for item in payload.get("categorizations") or []:
        if not isinstance(item, dict):
            continue
        test = _pick(tests, item.get("testNumber"))
        if test is None:
            continue
        try:
            category = OrphanCategory(str(item.get("category", "")).upper())
            priority = Priority(str(item.get("priority", "")).upper())
        except ValueError:
            continue
        action = _ACTIONS.get(str(item.get("action", "none")).strip().lower(), OrphanAction.review)
        result.append(
            OrphanCategorization(
                test_id=test.id,
                category=category,
                subtype=str(item.get("subtype") or category.value.title()),
                priority=priority,
                action=action,
                reason=str(item.get("reasoning") or item.get("reason") or ""),
            )
        )
    return result


def _pick(items: Sequence[Any], number: Any) -> Optional[Any]:
    """1-based lookup that ignores anything but an in-range integer."""
    if isinstance(number, bool) or not isinstance(number, int):
        return None
    if 1 <= number <= len(items):
        return items[number - 1]
    return None


def _confidence(value: Any) -> Optional[Confidence]:
    try:
        return Confidence(str(value).upper())
    except ValueError:
        return None
