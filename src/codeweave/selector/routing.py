"""Static task-to-backend-family routing."""

from __future__ import annotations

from codeweave.core.models import GenerationMode

HIGH_REASONING = "high-reasoning"
CODE_SPECIALIZED = "code-specialized"
GENERAL = "general"
FAST = "fast"

# Families are tried in the listed order.
TASK_ROUTING: dict[GenerationMode, tuple[str, ...]] = {
    GenerationMode.NEW: (GENERAL, FAST),
    GenerationMode.REFACTOR: (CODE_SPECIALIZED, GENERAL),
    GenerationMode.DEBUG: (HIGH_REASONING,),
    GenerationMode.OPTIMIZE: (CODE_SPECIALIZED, HIGH_REASONING),
    GenerationMode.DOCUMENT: (GENERAL, FAST),
    GenerationMode.TEST: (GENERAL, FAST),
    GenerationMode.SCHEMA: (GENERAL,),
    GenerationMode.API_SPEC: (GENERAL,),
    GenerationMode.DEPLOYMENT_SCRIPT: (GENERAL,),
    GenerationMode.SECURITY_AUDIT: (HIGH_REASONING,),
    GenerationMode.CODE_REVIEW: (HIGH_REASONING,),
    GenerationMode.TRANSLATE: (CODE_SPECIALIZED, GENERAL),
    GenerationMode.MIGRATE: (CODE_SPECIALIZED, HIGH_REASONING),
}


def families_for(mode: GenerationMode) -> tuple[str, ...]:
    return TASK_ROUTING.get(mode, (GENERAL,))
