"""Configuration loading for tracecov."""

from __future__ import annotations

import os
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from tracecov.errors import MalformedInput
from tracecov.yaml_utils import load_yaml


class ProjectConfig(BaseModel):
    name: str
    repo_root: str = "."


class ServiceConfig(BaseModel):
    name: str
    enabled: bool = True
    baseline: str
    tests: str
    apis: Optional[str] = None
    suggestions: Optional[str] = None


class MatcherConfig(BaseModel):
    provider: Literal["anthropic", "claude", "openai", "gpt", "keyword", "stub"] = "keyword"
    model: Optional[str] = None
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    api_key_env: Optional[str] = None
    temperature: float = 0.0
    max_tokens: int = 4000
    timeout_seconds: float = Field(default=60.0, gt=0)

    def resolved_api_key(self) -> Optional[str]:
        if self.api_key:
            return self.api_key
        if self.api_key_env:
            return os.environ.get(self.api_key_env)
        return None


class CacheConfig(BaseModel):
    file_max_entries: int = Field(default=100, ge=1)
    matcher_max_entries: int = Field(default=50, ge=1)
    matcher_max_age_seconds: float = Field(default=3600.0, gt=0)


class PolicyConfig(BaseModel):
    orphan_api_gaps: bool = False
    parallel_services: int = Field(default=1, ge=1)
    fail_on: List[Literal["P0", "P1", "P2", "P3"]] = Field(default_factory=list)


class OutputConfig(BaseModel):
    reports_dir: str = ".traceability/reports"


class TracecovConfig(BaseModel):
    version: int
    project: ProjectConfig
    services: List[ServiceConfig]
    matcher: MatcherConfig = MatcherConfig()
    cache: CacheConfig = CacheConfig()
    policy: PolicyConfig = PolicyConfig()
    outputs: OutputConfig = OutputConfig()

    @field_validator("version")
    @classmethod
    def validate_version(cls, value: int) -> int:
        if value != 1:
            raise ValueError("Only version 1 config is supported")
        return value

    @field_validator("services")
    @classmethod
    def validate_unique_services(cls, value: List[ServiceConfig]) -> List[ServiceConfig]:
        names = [service.name for service in value]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Duplicate service names: {duplicates}")
        return value

    def service(self, name: str) -> ServiceConfig:
        for service in self.services:
            if service.name == name:
                return service
        raise KeyError(f"Unknown service: {name}")


def load_config(path: str | Path) -> TracecovConfig:
    payload = load_yaml(path)
    if not isinstance(payload, dict):
        raise MalformedInput(f"Config must be a mapping: {path}", path=str(path))
    try:
        return TracecovConfig(**payload)
    except ValidationError as exc:
        raise MalformedInput(f"Invalid config {path}: {exc}", path=str(path)) from exc
