"""Per-project history of recent verification sessions.

History lives in ``<project>/.plan-verifier/sessions/history.json`` as a JSON
array capped at the last few entries. The most recent feedback is fed back
into the next review's context.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..config import SESSIONS_DIR_NAME, STATE_DIR_NAME

logger = structlog.get_logger(__name__)

MAX_SESSIONS = 3
PLAN_SNIPPET_CHARS = 200
HISTORY_FILE_NAME = "history.json"


class SessionEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    timestamp: datetime
    plan_snippet: str = Field(alias="planSnippet")
    feedback: str


def _history_path(project_dir: str) -> Path:
    return Path(project_dir) / STATE_DIR_NAME / SESSIONS_DIR_NAME / HISTORY_FILE_NAME


def load_history(project_dir: str) -> list[SessionEntry]:
    """Load stored sessions, oldest first. Missing or corrupt history gives []."""
    path = _history_path(project_dir)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return []
    except (OSError, ValueError) as exc:
        logger.warning("session_history_unreadable", path=str(path), error=str(exc))
        return []
    if not isinstance(raw, list):
        return []
    try:
        return [SessionEntry.model_validate(item) for item in raw]
    except ValidationError as exc:
        logger.warning("session_history_invalid", path=str(path), error=str(exc))
        return []


def save_session(project_dir: str, plan_text: str, feedback: str) -> bool:
    """Append a session and evict the oldest beyond the cap.

    Returns:
        True if history was written
    """
    sessions = load_history(project_dir)
    sessions.append(
        SessionEntry(
            timestamp=datetime.now(timezone.utc),
            plan_snippet=plan_text[:PLAN_SNIPPET_CHARS],
            feedback=feedback,
        )
    )
    sessions = sessions[-MAX_SESSIONS:]

    path = _history_path(project_dir)
    payload = [s.model_dump(mode="json", by_alias=True) for s in sessions]
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
    except OSError as exc:
        logger.warning("session_save_failed", path=str(path), error=str(exc))
        return False
    return True


def load_last_feedback(project_dir: str) -> Optional[str]:
    sessions = load_history(project_dir)
    return sessions[-1].feedback if sessions else None
