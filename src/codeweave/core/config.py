"""Configuration management for CodeWeave (codeweave.toml parsing + defaults)."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Protocol

from codeweave.core.errors import ConfigError
from codeweave.core.models import BackendKind, Framework, Language, ProjectConfig, StageName

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore[no-redef]


CONFIG_FILENAME = "codeweave.toml"
DATA_DIRNAME = ".codeweave"


@dataclass
class SelectorConfig:
    health_check_timeout: float = 0.5
    # 0 disables caching: every selection re-probes its candidates.
    health_cache_ttl: float = 0.0


@dataclass
class ContextConfig:
    conversation_cap: int = 10


@dataclass
class GenerationConfig:
    timeout: float = 60.0


@dataclass
class ValidationConfig:
    timeout: float = 5.0
    stage_timeout: float = 2.0
    disabled_stages: list[str] = field(default_factory=list)


@dataclass
class FeedbackConfig:
    max_pending: int = 1000


@dataclass
class PersistenceConfig:
    enabled: bool = False
    encrypt: bool = True


@dataclass
class BackendSpec:
    """Declarative description of one backend in ``[[backends]]``."""

    name: str
    kind: BackendKind
    model: str = ""
    tags: list[str] = field(default_factory=list)
    api_key_env: str = ""
    base_url: str = ""
    temperature: float = 0.7
    max_output_tokens: int = 4096


@dataclass
class EngineConfig:
    """Complete CodeWeave configuration."""

    selector: SelectorConfig = field(default_factory=SelectorConfig)
    context: ContextConfig = field(default_factory=ContextConfig)
    generation: GenerationConfig = field(default_factory=GenerationConfig)
    validation: ValidationConfig = field(default_factory=ValidationConfig)
    feedback: FeedbackConfig = field(default_factory=FeedbackConfig)
    persistence: PersistenceConfig = field(default_factory=PersistenceConfig)
    backends: list[BackendSpec] = field(default_factory=list)
    projects: dict[str, ProjectConfig] = field(default_factory=dict)


def load_config(project_path: Path | None = None) -> EngineConfig:
    """Load configuration from codeweave.toml if present, otherwise return defaults."""
    config = EngineConfig()

    if project_path is None:
        project_path = Path.cwd()

    config_file = project_path / CONFIG_FILENAME
    if not config_file.exists():
        return config

    try:
        with open(config_file, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"{config_file}: {e}") from e

    if "selector" in data:
        s = data["selector"]
        for attr in ("health_check_timeout", "health_cache_ttl"):
            if attr in s:
                setattr(config.selector, attr, float(s[attr]))

    if "context" in data:
        c = data["context"]
        if "conversation_cap" in c:
            config.context.conversation_cap = int(c["conversation_cap"])

    if "generation" in data:
        g = data["generation"]
        if "timeout" in g:
            config.generation.timeout = float(g["timeout"])

    if "validation" in data:
        v = data["validation"]
        for attr in ("timeout", "stage_timeout"):
            if attr in v:
                setattr(config.validation, attr, float(v[attr]))
        if "disabled_stages" in v:
            config.validation.disabled_stages = list(v["disabled_stages"])

    if "feedback" in data:
        fb = data["feedback"]
        if "max_pending" in fb:
            config.feedback.max_pending = int(fb["max_pending"])

    if "persistence" in data:
        p = data["persistence"]
        for attr in ("enabled", "encrypt"):
            if attr in p:
                setattr(config.persistence, attr, bool(p[attr]))

    for raw in data.get("backends", []):
        config.backends.append(_parse_backend(raw))

    for project_id, raw in data.get("projects", {}).items():
        config.projects[project_id] = _parse_project(project_id, raw)

    _validate(config)
    return config


def _parse_backend(raw: dict) -> BackendSpec:
    if "name" not in raw or "kind" not in raw:
        raise ConfigError("Each [[backends]] entry needs 'name' and 'kind'")
    try:
        kind = BackendKind(raw["kind"])
    except ValueError:
        known = ", ".join(k.value for k in BackendKind)
        raise ConfigError(f"Unknown backend kind '{raw['kind']}' (expected one of: {known})") from None

    spec = BackendSpec(name=raw["name"], kind=kind)
    for attr in ("model", "api_key_env", "base_url"):
        if attr in raw:
            setattr(spec, attr, str(raw[attr]))
    if "tags" in raw:
        spec.tags = [str(t) for t in raw["tags"]]
    if "temperature" in raw:
        spec.temperature = float(raw["temperature"])
    if "max_output_tokens" in raw:
        spec.max_output_tokens = int(raw["max_output_tokens"])
    return spec


def _parse_project(project_id: str, raw: dict) -> ProjectConfig:
    project = ProjectConfig(project_id=project_id)
    if "preferred_backend" in raw:
        project.preferred_backend = raw["preferred_backend"] or None
    for attr in ("enforce_security_scanning", "enforce_code_review"):
        if attr in raw:
            setattr(project, attr, bool(raw[attr]))
    try:
        if "default_language" in raw:
            project.default_language = Language(raw["default_language"])
        if "default_framework" in raw:
            project.default_framework = Framework(raw["default_framework"])
    except ValueError as e:
        raise ConfigError(f"[projects.{project_id}]: {e}") from e
    return project


def _validate(config: EngineConfig) -> None:
    if config.context.conversation_cap <= 0:
        raise ConfigError("context.conversation_cap must be positive")
    if config.feedback.max_pending <= 0:
        raise ConfigError("feedback.max_pending must be positive")
    if config.selector.health_check_timeout <= 0:
        raise ConfigError("selector.health_check_timeout must be positive")
    if config.generation.timeout <= 0 or config.validation.timeout <= 0:
        raise ConfigError("generation.timeout and validation.timeout must be positive")
    known_stages = {s.value for s in StageName}
    unknown = [s for s in config.validation.disabled_stages if s not in known_stages]
    if unknown:
        raise ConfigError(f"Unknown validation stage(s): {', '.join(unknown)}")
    names = [b.name for b in config.backends]
    duplicates = {n for n in names if names.count(n) > 1}
    if duplicates:
        raise ConfigError(f"Duplicate backend names: {', '.join(sorted(duplicates))}")


def get_data_dir(project_path: Path | None = None) -> Path:
    """Get or create the .codeweave directory."""
    if project_path is None:
        project_path = Path.cwd()
    data_dir = project_path / DATA_DIRNAME
    data_dir.mkdir(exist_ok=True)
    return data_dir


def ensure_gitignore(project_path: Path | None = None) -> None:
    """Add .codeweave/ to .gitignore if not already present."""
    if project_path is None:
        project_path = Path.cwd()
    gitignore = project_path / ".gitignore"
    entry = f"{DATA_DIRNAME}/"

    if gitignore.exists():
        content = gitignore.read_text()
        if entry in content:
            return
        if not content.endswith("\n"):
            content += "\n"
        content += f"{entry}\n"
        gitignore.write_text(content)
    else:
        gitignore.write_text(f"{entry}\n")


class ProjectConfigProvider(Protocol):
    def get(self, project_id: str) -> ProjectConfig: ...


class StaticProjectConfigProvider:
    """Dict-backed provider; unknown projects get default settings."""

    def __init__(self, projects: dict[str, ProjectConfig] | None = None) -> None:
        self._projects = dict(projects or {})

    def get(self, project_id: str) -> ProjectConfig:
        project = self._projects.get(project_id)
        if project is None:
            return ProjectConfig(project_id=project_id)
        # Callers get a snapshot; later edits to the provider do not leak in
        return replace(project)

    def set(self, project: ProjectConfig) -> None:
        self._projects[project.project_id] = project
