"""Session history store."""

from .store import SessionEntry, load_history, load_last_feedback, save_session

__all__ = ["SessionEntry", "load_history", "load_last_feedback", "save_session"]
