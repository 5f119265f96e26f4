"""Shared data models used across CodeWeave modules."""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any


class GenerationMode(enum.Enum):
    NEW = "new"
    REFACTOR = "refactor"
    DEBUG = "debug"
    OPTIMIZE = "optimize"
    DOCUMENT = "document"
    TEST = "test"
    SCHEMA = "schema"
    API_SPEC = "api_spec"
    DEPLOYMENT_SCRIPT = "deployment_script"
    SECURITY_AUDIT = "security_audit"
    CODE_REVIEW = "code_review"
    TRANSLATE = "translate"
    MIGRATE = "migrate"


# Modes that revise earlier output rather than producing something new.
REVISION_MODES = frozenset(
    {GenerationMode.REFACTOR, GenerationMode.DEBUG, GenerationMode.OPTIMIZE}
)


class Language(enum.Enum):
    TYPESCRIPT = "typescript"
    JAVASCRIPT = "javascript"
    PYTHON = "python"
    JAVA = "java"
    GO = "go"
    RUST = "rust"
    CSHARP = "csharp"
    CPP = "cpp"
    RUBY = "ruby"
    PHP = "php"
    KOTLIN = "kotlin"
    SWIFT = "swift"
    SQL = "sql"
    SHELL = "shell"
    HTML = "html"
    CSS = "css"
    YAML = "yaml"
    OTHER = "other"


# Languages whose comments start with "//" and strings use ', " and `.
C_FAMILY = frozenset(
    {
        Language.TYPESCRIPT,
        Language.JAVASCRIPT,
        Language.JAVA,
        Language.GO,
        Language.RUST,
        Language.CSHARP,
        Language.CPP,
        Language.KOTLIN,
        Language.SWIFT,
        Language.PHP,
    }
)

JS_FAMILY = frozenset({Language.TYPESCRIPT, Language.JAVASCRIPT})


class Framework(enum.Enum):
    NONE = "none"
    REACT = "react"
    ANGULAR = "angular"
    VUE = "vue"
    SVELTE = "svelte"
    NEXTJS = "nextjs"
    EXPRESS = "express"
    NESTJS = "nestjs"
    DJANGO = "django"
    FLASK = "flask"
    FASTAPI = "fastapi"
    SPRING = "spring"
    DOTNET = "dotnet"
    RAILS = "rails"
    LARAVEL = "laravel"


class UserRole(enum.Enum):
    DEVELOPER = "developer"
    ARCHITECT = "architect"
    QA = "qa"
    DEVOPS = "devops"
    BUSINESS_ANALYST = "business_analyst"


class Severity(enum.Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class StageName(enum.Enum):
    SYNTAX = "syntax"
    LINT = "lint"
    SEMANTIC = "semantic"
    SECURITY = "security"
    BEST_PRACTICES = "best_practices"


class VulnerabilityClass(enum.Enum):
    CODE_INJECTION = "code_injection"
    COMMAND_INJECTION = "command_injection"
    SQL_INJECTION = "sql_injection"
    XSS = "xss"
    SENSITIVE_DATA_EXPOSURE = "sensitive_data_exposure"
    INSECURE_DESERIALIZATION = "insecure_deserialization"
    PATH_TRAVERSAL = "path_traversal"
    WEAK_CRYPTOGRAPHY = "weak_cryptography"


class BackendKind(enum.Enum):
    ANTHROPIC = "anthropic"
    OPENAI_COMPATIBLE = "openai_compatible"
    LOCAL_TEMPLATE = "local_template"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class CommandContext:
    """Per-request generation settings.

    Contexts are immutable.  Use :meth:`derive` to obtain a patched copy.
    """

    session_key: str
    project_id: str
    file_id: str | None = None
    target_language: Language = Language.TYPESCRIPT
    target_framework: Framework = Framework.REACT
    generation_mode: GenerationMode = GenerationMode.NEW
    existing_code: str | None = None
    preferred_backend: str | None = None
    # None defers to the backend default
    temperature: float | None = None
    max_tokens: int = 2048
    keywords: tuple[str, ...] = ()
    role: UserRole = UserRole.DEVELOPER
    parent_snippet_id: str | None = None

    def __post_init__(self) -> None:
        if not self.session_key:
            raise ValueError("session_key must not be empty")
        if self.temperature is not None and not 0.0 <= self.temperature <= 1.0:
            raise ValueError(f"temperature must be within [0, 1], got {self.temperature}")
        if self.max_tokens <= 0:
            raise ValueError(f"max_tokens must be positive, got {self.max_tokens}")
        if not isinstance(self.keywords, tuple):
            object.__setattr__(self, "keywords", tuple(self.keywords))

    @classmethod
    def default(cls, session_key: str, project_id: str = "default_project") -> CommandContext:
        """Context handed out for a session that has never been seen."""
        return cls(session_key=session_key, project_id=project_id)

    def derive(self, **changes: Any) -> CommandContext:
        """Return a copy with *changes* applied."""
        return replace(self, **changes)


@dataclass(frozen=True)
class Snippet:
    """One unit of generated output.

    Only ``security_warnings`` and ``quality_score`` may change after
    creation, and only through :meth:`annotated`.
    """

    content: str
    language: Language
    framework: Framework = Framework.NONE
    description: str = ""
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=_utcnow)
    parent_id: str | None = None
    tags: tuple[str, ...] = ()
    security_warnings: tuple[VulnerabilityClass, ...] = ()
    quality_score: int = 100
    backend: str = ""

    def annotated(
        self,
        security_warnings: tuple[VulnerabilityClass, ...] | list[VulnerabilityClass],
        quality_score: int,
    ) -> Snippet:
        return replace(
            self,
            security_warnings=tuple(security_warnings),
            quality_score=max(0, min(100, int(quality_score))),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content,
            "language": self.language.value,
            "framework": self.framework.value,
            "description": self.description,
            "created_at": self.created_at.isoformat(),
            "parent_id": self.parent_id,
            "tags": list(self.tags),
            "security_warnings": [w.value for w in self.security_warnings],
            "quality_score": self.quality_score,
            "backend": self.backend,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Snippet:
        created = data.get("created_at")
        if isinstance(created, str):
            created = datetime.fromisoformat(created)
        elif created is None:
            created = _utcnow()
        return cls(
            id=data["id"],
            content=data.get("content", ""),
            language=Language(data.get("language", Language.OTHER.value)),
            framework=Framework(data.get("framework", Framework.NONE.value)),
            description=data.get("description", ""),
            created_at=created,
            parent_id=data.get("parent_id"),
            tags=tuple(data.get("tags", ())),
            security_warnings=tuple(
                VulnerabilityClass(w) for w in data.get("security_warnings", ())
            ),
            quality_score=data.get("quality_score", 100),
            backend=data.get("backend", ""),
        )


@dataclass(frozen=True)
class ValidationFinding:
    """A single issue raised by a validation stage."""

    stage: StageName
    severity: Severity
    message: str
    rule_id: str = ""
    line: int | None = None
    weight: int = 0


@dataclass
class ValidationReport:
    """Aggregated result of running the validation pipeline on a snippet."""

    snippet_id: str
    issues: list[ValidationFinding] = field(default_factory=list)
    security_warnings: list[VulnerabilityClass] = field(default_factory=list)
    quality_score: int = 100
    incomplete_stages: list[StageName] = field(default_factory=list)
    skipped_stages: list[StageName] = field(default_factory=list)
    # Set when the project mandates human review before the code is used
    review_required: bool = False

    @property
    def is_valid(self) -> bool:
        return not self.issues and not self.incomplete_stages

    @property
    def error_count(self) -> int:
        return sum(1 for f in self.issues if f.severity == Severity.ERROR)

    @property
    def warning_count(self) -> int:
        return sum(1 for f in self.issues if f.severity == Severity.WARNING)

    def findings_for(self, stage: StageName) -> list[ValidationFinding]:
        return [f for f in self.issues if f.stage == stage]

    def to_dict(self) -> dict[str, Any]:
        return {
            "snippet_id": self.snippet_id,
            "quality_score": self.quality_score,
            "is_valid": self.is_valid,
            "security_warnings": [w.value for w in self.security_warnings],
            "incomplete_stages": [s.value for s in self.incomplete_stages],
            "skipped_stages": [s.value for s in self.skipped_stages],
            "review_required": self.review_required,
            "issues": [
                {
                    "stage": f.stage.value,
                    "severity": f.severity.value,
                    "message": f.message,
                    "rule_id": f.rule_id,
                    "line": f.line,
                    "weight": f.weight,
                }
                for f in self.issues
            ],
        }


@dataclass(frozen=True)
class FeedbackRecord:
    """A human rating for a generated snippet."""

    snippet_id: str
    rating: int
    free_text: str
    user_id: str
    submitted_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "snippet_id": self.snippet_id,
            "rating": self.rating,
            "free_text": self.free_text,
            "user_id": self.user_id,
            "submitted_at": self.submitted_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FeedbackRecord:
        ts = data.get("submitted_at")
        if isinstance(ts, str):
            ts = datetime.fromisoformat(ts)
        elif ts is None:
            ts = _utcnow()
        return cls(
            snippet_id=data["snippet_id"],
            rating=data["rating"],
            free_text=data.get("free_text", ""),
            user_id=data.get("user_id", ""),
            submitted_at=ts,
        )


@dataclass(frozen=True)
class FeedbackAck:
    """Acknowledgement returned from feedback submission."""

    accepted: bool
    pending: int
    reason: str = ""


@dataclass(frozen=True)
class ConversationEntry:
    """One turn of short-term dialogue memory for a session."""

    session_key: str
    prompt: str
    snippet_id: str | None = None
    recorded_at: datetime = field(default_factory=_utcnow)


@dataclass
class ProjectConfig:
    """Point-in-time project settings consulted per request."""

    project_id: str
    preferred_backend: str | None = None
    enforce_security_scanning: bool = True
    enforce_code_review: bool = False
    default_language: Language = Language.TYPESCRIPT
    default_framework: Framework = Framework.REACT
