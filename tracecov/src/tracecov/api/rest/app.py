"""REST API adapter."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

from tracecov.domain.models import CoverageReport
from tracecov.server.wire import ServiceBundle


def create_app(services: ServiceBundle) -> FastAPI:
    app = FastAPI(title="tracecov Server (REST)")

    @app.get("/healthz")
    def healthz() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/services")
    def list_services() -> Dict[str, Any]:
        return {
            "services": [
                {"name": service.name, "enabled": service.enabled} for service in services.config.services
            ],
            "matcher": services.matcher.name,
        }

    @app.post("/services/{name}/analyze")
    def analyze(name: str) -> Dict[str, Any]:
        if name not in {service.name for service in services.config.services}:
            return {"error": "not_found"}
        outcome = services.try_analyze_service(name)
        if isinstance(outcome, CoverageReport):
            return outcome.model_dump(mode="json")
        return {"error": "analysis_failed", **outcome.as_dict()}

    @app.get("/cache/stats")
    def cache_stats() -> Dict[str, Any]:
        return services.cache.stats()

    return app
