"""Backend dispatch table and the runtime registry of backend instances."""

from __future__ import annotations

import logging
import os
import threading

from codeweave.backends.anthropic_backend import AnthropicBackend
from codeweave.backends.base import BackendHandle
from codeweave.backends.openai_backend import OpenAICompatibleBackend
from codeweave.backends.template_backend import TemplateBackend
from codeweave.core.config import BackendSpec
from codeweave.core.errors import ConfigError
from codeweave.core.models import BackendKind

logger = logging.getLogger(__name__)


BACKEND_FACTORIES: dict[BackendKind, type[BackendHandle]] = {
    BackendKind.ANTHROPIC: AnthropicBackend,
    BackendKind.OPENAI_COMPATIBLE: OpenAICompatibleBackend,
    BackendKind.LOCAL_TEMPLATE: TemplateBackend,
}

_unmapped = set(BackendKind) - set(BACKEND_FACTORIES)
if _unmapped:
    raise RuntimeError(
        "No backend factory for: " + ", ".join(sorted(k.value for k in _unmapped))
    )


def create_backend(spec: BackendSpec) -> BackendHandle:
    """Instantiate the backend described by *spec*."""
    factory = BACKEND_FACTORIES[spec.kind]
    kwargs: dict = {
        "default_temperature": spec.temperature,
        "max_output_tokens": spec.max_output_tokens,
    }
    if spec.model:
        kwargs["model"] = spec.model
    if spec.tags:
        kwargs["tags"] = spec.tags

    if spec.kind in (BackendKind.ANTHROPIC, BackendKind.OPENAI_COMPATIBLE):
        api_key = os.environ.get(spec.api_key_env) if spec.api_key_env else None
        if spec.api_key_env and not api_key:
            logger.warning(
                "Backend %s: environment variable %s is not set", spec.name, spec.api_key_env
            )
        kwargs["api_key"] = api_key
    if spec.kind == BackendKind.OPENAI_COMPATIBLE and spec.base_url:
        kwargs["base_url"] = spec.base_url
    elif spec.base_url:
        raise ConfigError(f"Backend {spec.name}: base_url is only valid for openai_compatible")

    return factory(spec.name, **kwargs)


class BackendRegistry:
    """Ordered set of backends keyed by name.

    Reads return snapshots and never block on each other; registration and
    deregistration are serialised so a selection in progress always sees a
    consistent list.
    """

    def __init__(self, backends: list[BackendHandle] | None = None) -> None:
        self._lock = threading.Lock()
        self._backends: dict[str, BackendHandle] = {}
        for backend in backends or []:
            self.register(backend)

    def register(self, backend: BackendHandle) -> None:
        with self._lock:
            if backend.name in self._backends:
                raise ValueError(f"Backend '{backend.name}' is already registered")
            # Copy-on-write keeps unlocked readers on a stable dict.
            updated = dict(self._backends)
            updated[backend.name] = backend
            self._backends = updated
        logger.debug("Registered backend %s (%s)", backend.name, backend.kind.value)

    def deregister(self, name: str) -> BackendHandle | None:
        with self._lock:
            if name not in self._backends:
                return None
            updated = dict(self._backends)
            removed = updated.pop(name)
            self._backends = updated
        logger.debug("Deregistered backend %s", name)
        return removed

    def get(self, name: str) -> BackendHandle | None:
        return self._backends.get(name)

    def all(self) -> list[BackendHandle]:
        return list(self._backends.values())

    def names(self) -> list[str]:
        return list(self._backends)

    def with_tag(self, tag: str) -> list[BackendHandle]:
        return [b for b in self._backends.values() if tag in b.tags]

    def __contains__(self, name: object) -> bool:
        return name in self._backends

    def __len__(self) -> int:
        return len(self._backends)

    @classmethod
    def from_specs(cls, specs: list[BackendSpec]) -> BackendRegistry:
        return cls([create_backend(spec) for spec in specs])
