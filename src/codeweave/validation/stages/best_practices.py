"""Best-practices stage: framework and language specific suggestions."""

from __future__ import annotations

import ast
import re

from codeweave.core.models import (
    Framework,
    Language,
    ProjectConfig,
    Severity,
    Snippet,
    StageName,
    ValidationFinding,
)
from codeweave.validation.stages.base import ValidationStage, first_match

_TS_DECLARATION_RE = re.compile(r"\b(?:function\s+\w|class\s+\w)|=>")
_TS_TYPE_RE = re.compile(r"\binterface\s+\w|\btype\s+\w+\s*(?:<[^>]*>)?\s*=")
_TS_ANY_RE = re.compile(r":\s*any\b|\bas\s+any\b|<any>")
_ON_CLICK_RE = re.compile(r"\bonClick\s*=")
_USE_CALLBACK_RE = re.compile(r"\buseCallback\b")
_REACT_IMPORT_RE = re.compile(r"from\s+[\"']react[\"']|require\([\"']react[\"']\)")
_BARE_EXCEPT_RE = re.compile(r"(?m)^\s*except\s*:")


def _mutable_default_line(source: str) -> int | None:
    try:
        tree = ast.parse(source)
    except SyntaxError:
        return None
    for node in ast.walk(tree):
        if not isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            continue
        defaults = [*node.args.defaults, *(d for d in node.args.kw_defaults if d is not None)]
        for default in defaults:
            if isinstance(default, (ast.List, ast.Dict, ast.Set)):
                return default.lineno
            if (
                isinstance(default, ast.Call)
                and isinstance(default.func, ast.Name)
                and default.func.id in ("list", "dict", "set")
            ):
                return default.lineno
    return None


class BestPracticesStage(ValidationStage):
    """Heuristic suggestions.  One finding per rule."""

    stage = StageName.BEST_PRACTICES
    severity = Severity.INFO
    description = "Framework and language suggestions"

    def run(self, snippet: Snippet, project_config: ProjectConfig) -> list[ValidationFinding]:
        source = snippet.content
        findings: list[ValidationFinding] = []

        if snippet.language == Language.TYPESCRIPT:
            if _TS_DECLARATION_RE.search(source) and not _TS_TYPE_RE.search(source):
                findings.append(self._make_finding(
                    "Declare an interface or type for the shapes this code uses",
                    rule_id="ts-missing-interface",
                ))
            hit = first_match(_TS_ANY_RE, source)
            if hit is not None:
                findings.append(self._make_finding(
                    "Avoid the 'any' type",
                    rule_id="ts-no-any",
                    line=hit[0],
                ))

        is_react = snippet.framework in (Framework.REACT, Framework.NEXTJS) or bool(
            _REACT_IMPORT_RE.search(source)
        )
        if is_react:
            hit = first_match(_ON_CLICK_RE, source)
            if hit is not None and not _USE_CALLBACK_RE.search(source):
                findings.append(self._make_finding(
                    "Wrap onClick handlers in useCallback to keep them stable across renders",
                    rule_id="react-use-callback",
                    line=hit[0],
                ))

        if snippet.language == Language.PYTHON:
            line = _mutable_default_line(source)
            if line is not None:
                findings.append(self._make_finding(
                    "Mutable default argument",
                    rule_id="mutable-default",
                    line=line,
                ))
            hit = first_match(_BARE_EXCEPT_RE, source)
            if hit is not None:
                findings.append(self._make_finding(
                    "Bare except: catches SystemExit and KeyboardInterrupt",
                    rule_id="bare-except",
                    line=hit[0],
                ))

        return findings
