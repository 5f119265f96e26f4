"""Model backends and the registry that holds them."""

from codeweave.backends.base import BackendHandle, GenerationParams
from codeweave.backends.registry import BACKEND_FACTORIES, BackendRegistry, create_backend
from codeweave.backends.template_backend import TemplateBackend

__all__ = [
    "BACKEND_FACTORIES",
    "BackendHandle",
    "BackendRegistry",
    "GenerationParams",
    "TemplateBackend",
    "create_backend",
]
