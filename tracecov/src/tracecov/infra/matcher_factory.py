"""Matcher construction from configuration."""

from __future__ import annotations

from tracecov.config import MatcherConfig
from tracecov.domain.ports import SemanticMatcherPort
from tracecov.infra.keyword_matcher import KeywordMatcher
from tracecov.infra.llm_matcher import AnthropicMatcher, OpenAICompatibleMatcher
from tracecov.infra.matcher_stub import StubMatcher


def build_matcher(config: MatcherConfig) -> SemanticMatcherPort:
    provider = config.provider.lower()
    if provider == "keyword":
        return KeywordMatcher()
    if provider == "stub":
        return StubMatcher()
    api_key = config.resolved_api_key()
    if not api_key:
        source = f"environment variable {config.api_key_env}" if config.api_key_env else "matcher.api_key"
        raise ValueError(f"Matcher provider '{provider}' needs an API key ({source} is empty)")
    if provider in {"anthropic", "claude"}:
        return AnthropicMatcher(config, api_key)
    if provider in {"openai", "gpt"}:
        return OpenAICompatibleMatcher(config, api_key)
    raise ValueError(f"Unsupported matcher provider: {config.provider}")
