"""Backend selection."""

from codeweave.selector.engine import HealthStatus, ModelSelector

__all__ = ["HealthStatus", "ModelSelector"]
