"""Composition root for tracecov."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union

from tracecov.config import ServiceConfig, TracecovConfig
from tracecov.domain.models import CoverageReport
from tracecov.domain.ports import SemanticMatcherPort
from tracecov.errors import InputNotFound, MalformedInput
from tracecov.infra.cache import CacheManager
from tracecov.infra.catalog_store import CatalogStore, ServicePaths
from tracecov.infra.matcher_factory import build_matcher
from tracecov.paths import RepoPaths
from tracecov.usecases.analyze_service import analyze_service

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceFailure:
    """A service whose analysis could not run at all."""

    service: str
    error_type: str
    message: str
    path: Optional[str] = None

    def as_dict(self) -> Dict[str, Optional[str]]:
        return {
            "service": self.service,
            "error_type": self.error_type,
            "message": self.message,
            "path": self.path,
        }


ServiceOutcome = Union[CoverageReport, ServiceFailure]


@dataclass
class ServiceBundle:
    config: TracecovConfig
    config_path: Path
    cache: CacheManager
    matcher: SemanticMatcherPort
    store: CatalogStore
    service_paths: Dict[str, ServicePaths] = field(default_factory=dict)

    def service_names(self) -> List[str]:
        return [service.name for service in self.config.services if service.enabled]

    def analyze_service(self, name: str, cancel_event: Optional[threading.Event] = None) -> CoverageReport:
        """Load and analyze one service. Input errors propagate."""
        paths = self.service_paths.get(name)
        if paths is None:
            paths = resolve_service_paths(self.config_path, self.config, self.config.service(name))
        catalog = self.store.load_service(name, paths)
        logger.info(
            "Loaded %s: %d APIs, %d scenarios, %d tests",
            name,
            len(catalog.apis),
            len(catalog.scenarios),
            len(catalog.tests),
        )
        return analyze_service(
            catalog,
            matcher=self.matcher,
            cache=self.cache,
            timeout_seconds=self.config.matcher.timeout_seconds,
            orphan_api_gaps=self.config.policy.orphan_api_gaps,
            cancel_event=cancel_event,
        )

    def try_analyze_service(self, name: str, cancel_event: Optional[threading.Event] = None) -> ServiceOutcome:
        try:
            return self.analyze_service(name, cancel_event=cancel_event)
        except (InputNotFound, MalformedInput) as exc:
            logger.error("Service %s failed: %s", name, exc)
            return ServiceFailure(
                service=name,
                error_type=type(exc).__name__,
                message=str(exc),
                path=exc.path,
            )

    def analyze_all(
        self,
        names: Optional[List[str]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Dict[str, ServiceOutcome]:
        """Analyze ``names`` (default: every enabled service), keeping input order.

        One service's input errors never stop the others.
        """
        selected = names or self.service_names()
        workers = min(self.config.policy.parallel_services, len(selected)) if selected else 1
        if workers <= 1:
            return {name: self.try_analyze_service(name, cancel_event) for name in selected}
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="tracecov-service") as executor:
            futures = {name: executor.submit(self.try_analyze_service, name, cancel_event) for name in selected}
            return {name: futures[name].result() for name in selected}


def resolve_service_paths(config_path: Path, config: TracecovConfig, service: ServiceConfig) -> ServicePaths:
    repo = RepoPaths.for_config(config_path, config.project.repo_root)
    return ServicePaths(
        baseline=repo.resolve(service.baseline),
        tests=repo.resolve(service.tests),
        apis=repo.resolve_optional(service.apis),
        suggestions=repo.resolve_optional(service.suggestions),
    )


def build_services(
    config_path: Path,
    config: TracecovConfig,
    matcher: Optional[SemanticMatcherPort] = None,
) -> ServiceBundle:
    cache = CacheManager.create(
        file_max_entries=config.cache.file_max_entries,
        matcher_max_entries=config.cache.matcher_max_entries,
        matcher_max_age_seconds=config.cache.matcher_max_age_seconds,
    )
    return ServiceBundle(
        config=config,
        config_path=config_path,
        cache=cache,
        matcher=matcher or build_matcher(config.matcher),
        store=CatalogStore(files=cache.files),
        service_paths={
            service.name: resolve_service_paths(config_path, config, service) for service in config.services
        },
    )
