"""CodeWeave - multi-backend code generation with built-in review."""

from codeweave._version import __version__
from codeweave.core.cancellation import CancellationToken
from codeweave.core.models import CommandContext, Snippet, ValidationReport
from codeweave.engine import Orchestrator, build_orchestrator

__all__ = [
    "__version__",
    "CancellationToken",
    "CommandContext",
    "Orchestrator",
    "Snippet",
    "ValidationReport",
    "build_orchestrator",
]
