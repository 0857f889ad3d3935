"""Configuration management for plan-verifier."""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
import structlog

from .core.errors import ConfigError

logger = structlog.get_logger(__name__)

STATE_DIR_NAME = ".plan-verifier"
CONFIG_FILE_NAME = "config.json"
SESSIONS_DIR_NAME = "sessions"

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"
DEFAULT_TOKEN_BUDGET = 80_000
DEFAULT_MAX_TOKENS = 8192
TOKEN_COUNTERS = ("estimate", "tiktoken")


@dataclass(frozen=True)
class Settings:
    """Verifier settings merged from defaults, config files and environment."""

    api_key: Optional[str] = None
    model: str = DEFAULT_MODEL
    token_budget: int = DEFAULT_TOKEN_BUDGET
    max_tokens: int = DEFAULT_MAX_TOKENS
    token_counter: str = "estimate"
    include_experimental: bool = False
    sources: tuple[str, ...] = field(default_factory=tuple)


def global_state_dir() -> Path:
    """Return the per-user state directory (``~/.plan-verifier``)."""
    return Path.home() / STATE_DIR_NAME


def _read_json_safe(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return {}
    except (OSError, ValueError) as exc:
        logger.warning("config_read_failed", path=str(path), error=str(exc))
        return {}
    return data if isinstance(data, dict) else {}


def _parse_int(raw: Any, name: str) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be a valid integer.", variable=name) from exc
    if value < 1:
        raise ConfigError(f"{name} must be >= 1.", variable=name)
    return value


def _parse_bool(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    return str(raw).strip().lower() in {"1", "true", "yes", "on"}


def load_settings(project_dir: Optional[str] = None) -> Settings:
    """
    Load merged settings: defaults < global < project < environment.

    Args:
        project_dir: Project root whose ``.plan-verifier/config.json`` is read

    Returns:
        Settings instance

    Raises:
        ConfigError: If a numeric value is not a positive integer or the
            token counter is unknown
    """
    load_dotenv()

    merged: dict[str, Any] = {}
    sources: list[str] = ["defaults"]

    global_cfg = _read_json_safe(global_state_dir() / CONFIG_FILE_NAME)
    if global_cfg:
        merged.update(global_cfg)
        sources.append("global")

    if project_dir:
        project_cfg = _read_json_safe(Path(project_dir) / STATE_DIR_NAME / CONFIG_FILE_NAME)
        if project_cfg:
            merged.update(project_cfg)
            sources.append("project")

    env_map = {
        "ANTHROPIC_API_KEY": "apiKey",
        "PLAN_VERIFIER_MODEL": "model",
        "PLAN_VERIFIER_TOKEN_BUDGET": "tokenBudget",
        "PLAN_VERIFIER_MAX_TOKENS": "maxTokens",
        "PLAN_VERIFIER_TOKEN_COUNTER": "tokenCounter",
        "PLAN_VERIFIER_EXPERIMENTAL": "includeExperimental",
    }
    env_used = False
    for env_name, key in env_map.items():
        value = os.getenv(env_name)
        if value:
            merged[key] = value
            env_used = True
    if env_used:
        sources.append("env")

    token_counter = str(merged.get("tokenCounter", "estimate")).strip().lower()
    if token_counter not in TOKEN_COUNTERS:
        raise ConfigError(
            f"PLAN_VERIFIER_TOKEN_COUNTER must be one of {', '.join(TOKEN_COUNTERS)}.",
            variable="PLAN_VERIFIER_TOKEN_COUNTER",
        )

    settings = Settings(
        api_key=merged.get("apiKey") or None,
        model=str(merged.get("model", DEFAULT_MODEL)),
        token_budget=_parse_int(
            merged.get("tokenBudget", DEFAULT_TOKEN_BUDGET), "PLAN_VERIFIER_TOKEN_BUDGET"
        ),
        max_tokens=_parse_int(
            merged.get("maxTokens", DEFAULT_MAX_TOKENS), "PLAN_VERIFIER_MAX_TOKENS"
        ),
        token_counter=token_counter,
        include_experimental=_parse_bool(merged.get("includeExperimental", False)),
        sources=tuple(sources),
    )
    logger.debug("settings_loaded", sources=settings.sources, model=settings.model)
    return settings


def save_global_config(values: dict[str, Any]) -> Path:
    """Merge ``values`` into the global config file and return its path."""
    state_dir = global_state_dir()
    state_dir.mkdir(parents=True, exist_ok=True)
    path = state_dir / CONFIG_FILE_NAME
    existing = _read_json_safe(path)
    existing.update(values)
    path.write_text(json.dumps(existing, indent=2) + "\n", encoding="utf-8")
    return path


def ensure_gitignore(project_dir: str) -> bool:
    """Add the state directory to an existing ``.gitignore``.

    Returns True if the entry was appended. A missing ``.gitignore`` is left
    alone.
    """
    gitignore = Path(project_dir) / ".gitignore"
    entry = f"{STATE_DIR_NAME}/"
    if not gitignore.exists():
        return False
    content = gitignore.read_text(encoding="utf-8")
    if any(line.strip() == entry for line in content.splitlines()):
        return False
    with gitignore.open("a", encoding="utf-8") as f:
        f.write(f"\n{entry}\n")
    return True


def get_project_state_dir(project_dir: str) -> Path:
    """Return the project-level state directory, creating it if needed."""
    state_dir = Path(project_dir) / STATE_DIR_NAME
    state_dir.mkdir(parents=True, exist_ok=True)
    return state_dir
