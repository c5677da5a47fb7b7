"""Cached, time-bounded matcher invocation shared by the use-cases."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Any, Callable, Dict, TypeVar

from tracecov.errors import MatcherUnavailable
from tracecov.infra.cache import MatcherResponseCache

logger = logging.getLogger(__name__)

T = TypeVar("T")


def call_with_timeout(func: Callable[..., T], *args: Any, timeout_seconds: float) -> T:
    """Run ``func`` on a worker thread and give up after ``timeout_seconds``.

    A timeout raises ``MatcherUnavailable``; the worker is abandoned, not
    joined, so a hung call cannot stall the pipeline. Any other exception
    from the matcher is re-raised as ``MatcherUnavailable`` too.
    """
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="tracecov-matcher")
    try:
        future = executor.submit(func, *args)
        try:
            return future.result(timeout=timeout_seconds)
        except FutureTimeout as exc:
            future.cancel()
            raise MatcherUnavailable(f"Matcher call timed out after {timeout_seconds:g}s") from exc
        except MatcherUnavailable:
            raise
        except Exception as exc:
            raise MatcherUnavailable(f"Matcher call failed: {type(exc).__name__}: {exc}") from exc
    finally:
        executor.shutdown(wait=False)


def cached_matcher_call(
    cache: MatcherResponseCache,
    payload: Dict[str, Any],
    func: Callable[..., T],
    *args: Any,
    timeout_seconds: float,
) -> T:
    """Serve ``payload`` from ``cache`` or invoke ``func`` under a timeout.

    Only successful responses are stored. ``MatcherUnavailable`` propagates
    to the caller, which decides how to degrade.
    """
    response, from_cache = cache.get_or_compute(
        payload,
        lambda: call_with_timeout(func, *args, timeout_seconds=timeout_seconds),
    )
    if from_cache:
        logger.debug("Matcher cache hit for %s", payload.get("operation"))
    return response
