"""Session contexts, conversation logs and snippet history."""

from codeweave.context.keywords import extract_keywords
from codeweave.context.store import ContextStore

__all__ = ["ContextStore", "extract_keywords"]
