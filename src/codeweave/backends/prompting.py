"""Prompt construction shared by the remote backends."""

from __future__ import annotations

from codeweave.core.models import CommandContext, GenerationMode

_SYSTEM_TEMPLATE = """\
You are an expert {language} developer specializing in {framework}.
Convert natural language requests into high-quality, production-ready code.
Follow modern coding standards, best practices and security guidelines.
For {mode} tasks, analyse the provided context carefully.
Make sure the code is syntactically correct and logically sound.
Never hard-code credentials; use placeholders or environment variables.
Reply with a single fenced code block followed by a short description."""


def build_system_prompt(ctx: CommandContext) -> str:
    framework = ctx.target_framework.value
    if framework == "none":
        framework = f"idiomatic {ctx.target_language.value}"
    return _SYSTEM_TEMPLATE.format(
        language=ctx.target_language.value,
        framework=framework,
        mode=ctx.generation_mode.value.replace("_", " "),
    )


def build_user_prompt(instruction: str, ctx: CommandContext) -> str:
    lang = ctx.target_language.value
    existing = ctx.existing_code or ""
    code_block = f"\n```{lang}\n{existing}\n```" if existing else ""

    mode = ctx.generation_mode
    if mode == GenerationMode.NEW:
        body = f'Generate new code for the request: "{instruction}".'
    elif mode == GenerationMode.REFACTOR:
        body = f'Refactor the following code based on the instruction: "{instruction}".{code_block}'
    elif mode == GenerationMode.DEBUG:
        body = (
            "Debug and fix issues in the following code based on this problem "
            f'description: "{instruction}".{code_block}'
        )
    elif mode == GenerationMode.OPTIMIZE:
        body = f'Optimise the following code for performance: "{instruction}".{code_block}'
    elif mode == GenerationMode.TEST:
        body = (
            f"Generate unit tests for the following code using {ctx.target_framework.value} "
            f'conventions. Focus: "{instruction}".{code_block}'
        )
    elif mode == GenerationMode.DOCUMENT:
        body = f'Write documentation for the following code: "{instruction}".{code_block}'
    else:
        body = f'Fulfil the request: "{instruction}".{code_block}'

    lines = [body]
    if ctx.project_id:
        lines.append(f"Project context: the user is working on project '{ctx.project_id}'.")
    if ctx.file_id:
        lines.append(f"Currently focused on file '{ctx.file_id}'.")
    if ctx.keywords:
        lines.append(f"Inferred keywords: {', '.join(ctx.keywords)}.")
    lines.append(f"The requester's role is {ctx.role.value.replace('_', ' ')}.")
    return "\n".join(lines)


def build_prompt(instruction: str, ctx: CommandContext) -> tuple[str, str]:
    """Return the ``(system, user)`` prompt pair for *instruction*."""
    return build_system_prompt(ctx), build_user_prompt(instruction, ctx)
