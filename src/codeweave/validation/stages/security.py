"""Security stage: pattern scan over a fixed vulnerability taxonomy."""

from __future__ import annotations

import re

from codeweave.core.models import (
    ProjectConfig,
    Severity,
    Snippet,
    StageName,
    ValidationFinding,
    VulnerabilityClass,
)
from codeweave.validation.stages.base import ValidationStage, line_of

# Patterns that suggest a hard-coded credential
SECRET_VALUE_PATTERNS = [
    r"sk-[a-zA-Z0-9]{20,}",  # OpenAI-style keys
    r"ghp_[a-zA-Z0-9]{36}",  # GitHub PATs
    r"AKIA[0-9A-Z]{16}",     # AWS access keys
]

_SQL_VERB = r"(?:SELECT|INSERT|UPDATE|DELETE)\b"

VULNERABILITY_PATTERNS: dict[VulnerabilityClass, list[re.Pattern[str]]] = {
    VulnerabilityClass.CODE_INJECTION: [
        re.compile(r"(?<![\w.])eval\s*\("),
        re.compile(r"\bnew\s+Function\s*\("),
        re.compile(r"(?<![\w.])exec\s*\("),
    ],
    VulnerabilityClass.COMMAND_INJECTION: [
        re.compile(r"\bos\.(?:system|popen)\s*\("),
        re.compile(r"\bshell\s*=\s*True\b"),
        re.compile(r"\bchild_process\b[\s\S]*?\bexec(?:Sync)?\s*\("),
        re.compile(r"\bexecSync\s*\("),
    ],
    VulnerabilityClass.SENSITIVE_DATA_EXPOSURE: [
        re.compile(r"\bprocess\.env\.UNSAFE_SECRET\b"),
        re.compile(
            r"(?i)\b(?:api[_-]?key|secret(?:[_-]?key)?|password|passwd|auth[_-]?token|private[_-]?key)"
            r"\s*[:=]\s*[\"'][^\"'\s]{4,}[\"']"
        ),
        *(re.compile(p) for p in SECRET_VALUE_PATTERNS),
    ],
    VulnerabilityClass.SQL_INJECTION: [
        re.compile(rf"(?i)[\"'`]\s*{_SQL_VERB}[^\"'`]*[\"'`]\s*\+"),
        re.compile(rf"(?i)\bf[\"']\s*{_SQL_VERB}[^\"']*\{{"),
        re.compile(rf"(?i)`\s*{_SQL_VERB}[^`]*\$\{{"),
        re.compile(rf"(?i)[\"']\s*{_SQL_VERB}[^\"']*[\"']\s*(?:%|\.format\()"),
    ],
    VulnerabilityClass.XSS: [
        re.compile(r"\.(?:inner|outer)HTML\s*=(?!=)"),
        re.compile(r"\bdangerouslySetInnerHTML\b"),
        re.compile(r"\bdocument\.write(?:ln)?\s*\("),
    ],
    VulnerabilityClass.INSECURE_DESERIALIZATION: [
        re.compile(r"\b(?:c?pickle|marshal)\.loads?\s*\("),
        re.compile(r"\byaml\.load\s*\((?![^)]*Loader)"),
        re.compile(r"(?<![\w.])unserialize\s*\("),
    ],
    VulnerabilityClass.PATH_TRAVERSAL: [
        re.compile(
            r"\b(?:open|readFile(?:Sync)?|createReadStream|sendFile)\s*\("
            r"[^)]*\b(?:req|request)\.(?:params|query|body|args|GET|POST)\b"
        ),
    ],
    VulnerabilityClass.WEAK_CRYPTOGRAPHY: [
        re.compile(r"\bhashlib\.(?:md5|sha1)\s*\("),
        re.compile(r"\bcreateHash\(\s*[\"'](?:md5|sha1)[\"']"),
        re.compile(r"\bMessageDigest\.getInstance\(\s*\"(?:MD5|SHA-?1)\""),
    ],
}

_MESSAGES = {
    VulnerabilityClass.CODE_INJECTION: "Dynamic code execution (eval/new Function/exec)",
    VulnerabilityClass.COMMAND_INJECTION: "Shell command built from program input",
    VulnerabilityClass.SENSITIVE_DATA_EXPOSURE: "Secret value exposed in source",
    VulnerabilityClass.SQL_INJECTION: "SQL query built by string concatenation or interpolation",
    VulnerabilityClass.XSS: "Unescaped HTML written to the document",
    VulnerabilityClass.INSECURE_DESERIALIZATION: "Deserialization of untrusted data",
    VulnerabilityClass.PATH_TRAVERSAL: "File path taken from request input",
    VulnerabilityClass.WEAK_CRYPTOGRAPHY: "Weak hash algorithm (MD5/SHA-1)",
}


class SecurityStage(ValidationStage):
    """Flag vulnerability classes.  One finding per matched class."""

    stage = StageName.SECURITY
    severity = Severity.ERROR
    description = "Vulnerability pattern scan"

    def run(self, snippet: Snippet, project_config: ProjectConfig) -> list[ValidationFinding]:
        source = snippet.content
        findings: list[ValidationFinding] = []
        for vuln, patterns in VULNERABILITY_PATTERNS.items():
            offsets = [m.start() for p in patterns if (m := p.search(source))]
            if not offsets:
                continue
            findings.append(self._make_finding(
                _MESSAGES[vuln],
                rule_id=vuln.value,
                line=line_of(source, min(offsets)),
            ))
        return findings


def vulnerability_of(finding: ValidationFinding) -> VulnerabilityClass | None:
    """Map a security finding back to its vulnerability class."""
    if finding.stage != StageName.SECURITY:
        return None
    try:
        return VulnerabilityClass(finding.rule_id)
    except ValueError:
        return None
