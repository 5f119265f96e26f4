"""Model selector: ranks registered backends and returns the first healthy one."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass

from codeweave.backends.base import BackendHandle
from codeweave.backends.registry import BackendRegistry
from codeweave.core.errors import BackendUnavailableError
from codeweave.core.models import CommandContext, ProjectConfig
from codeweave.selector.routing import families_for

logger = logging.getLogger(__name__)

DEFAULT_HEALTH_CHECK_TIMEOUT = 0.5


@dataclass(frozen=True)
class HealthStatus:
    """Outcome of the most recent probe of one backend."""

    backend: str
    healthy: bool
    checked_at: float
    latency_ms: float = 0.0
    error: str = ""


class ModelSelector:
    """Picks exactly one usable backend for a request.

    Candidate order
    ---------------
    1. ``ctx.preferred_backend`` if registered.
    2. The project's preferred backend.
    3. Backends tagged with the families routed for ``ctx.generation_mode``.
    4. Every other registered backend, in registration order.

    Candidates are probed one at a time, each bounded by
    ``health_check_timeout``.  Worst-case selection latency is therefore
    ``len(candidates) * health_check_timeout``.
    """

    def __init__(
        self,
        registry: BackendRegistry,
        *,
        health_check_timeout: float = DEFAULT_HEALTH_CHECK_TIMEOUT,
        health_cache_ttl: float = 0.0,
    ) -> None:
        self.registry = registry
        self.health_check_timeout = health_check_timeout
        self.health_cache_ttl = health_cache_ttl
        self._health: dict[str, HealthStatus] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def candidates(
        self,
        ctx: CommandContext,
        project_config: ProjectConfig | None = None,
    ) -> list[BackendHandle]:
        """Return the de-duplicated, ranked candidate list for *ctx*."""
        ranked: dict[str, BackendHandle] = {}

        def add(backend: BackendHandle | None) -> None:
            if backend is not None and backend.name not in ranked:
                ranked[backend.name] = backend

        if ctx.preferred_backend:
            add(self.registry.get(ctx.preferred_backend))
        if project_config is not None and project_config.preferred_backend:
            add(self.registry.get(project_config.preferred_backend))
        for family in families_for(ctx.generation_mode):
            for backend in self.registry.with_tag(family):
                add(backend)
        for backend in self.registry.all():
            add(backend)

        return list(ranked.values())

    async def select(
        self,
        ctx: CommandContext,
        project_config: ProjectConfig | None = None,
    ) -> BackendHandle:
        """Return the first healthy candidate or raise :class:`BackendUnavailableError`."""
        candidates = self.candidates(ctx, project_config)
        tried: list[str] = []

        for backend in candidates:
            tried.append(backend.name)
            if self._cached_healthy(backend.name):
                logger.debug("Selected %s from cached health", backend.name)
                return backend
            if await self.probe(backend):
                logger.debug(
                    "Selected %s for %s after %d probe(s)",
                    backend.name,
                    ctx.generation_mode.value,
                    len(tried),
                )
                return backend

        raise BackendUnavailableError(
            f"No healthy backend among {len(candidates)} candidate(s)"
            + (f": {', '.join(tried)}" if tried else ""),
            tried=tried,
        )

    def health_snapshot(self) -> dict[str, HealthStatus]:
        """Most recent probe result for every backend probed so far."""
        return dict(self._health)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def probe(self, backend: BackendHandle) -> bool:
        """Probe *backend* once and record the outcome."""
        started = time.monotonic()
        error = ""
        try:
            healthy = await asyncio.wait_for(
                backend.health_check(self.health_check_timeout),
                self.health_check_timeout,
            )
        except asyncio.TimeoutError:
            healthy = False
            error = f"timed out after {self.health_check_timeout:.2f}s"
        except Exception as e:
            healthy = False
            error = f"{type(e).__name__}: {e}"

        elapsed_ms = (time.monotonic() - started) * 1000
        self._health[backend.name] = HealthStatus(
            backend=backend.name,
            healthy=bool(healthy),
            checked_at=time.monotonic(),
            latency_ms=elapsed_ms,
            error=error,
        )
        if not healthy:
            logger.warning(
                "Backend %s failed health check%s",
                backend.name,
                f" ({error})" if error else "",
            )
        return bool(healthy)

    def _cached_healthy(self, name: str) -> bool:
        if self.health_cache_ttl <= 0:
            return False
        status = self._health.get(name)
        if status is None or not status.healthy:
            return False
        return (time.monotonic() - status.checked_at) <= self.health_cache_ttl
