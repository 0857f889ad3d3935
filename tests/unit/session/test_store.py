"""Tests for per-project session history."""

import json

from plan_verifier.session.store import (
    MAX_SESSIONS,
    load_history,
    load_last_feedback,
    save_session,
)


def history_file(project):
    return project / ".plan-verifier" / "sessions" / "history.json"


def test_save_and_load_last_feedback(tmp_path):
    assert load_last_feedback(str(tmp_path)) is None

    assert save_session(str(tmp_path), "Plan A", "Feedback A") is True
    save_session(str(tmp_path), "Plan B", "Feedback B")

    assert load_last_feedback(str(tmp_path)) == "Feedback B"


def test_history_keeps_last_three(tmp_path):
    for i in range(5):
        save_session(str(tmp_path), f"Plan {i}", f"Feedback {i}")

    history = load_history(str(tmp_path))

    assert len(history) == MAX_SESSIONS
    assert [s.feedback for s in history] == ["Feedback 2", "Feedback 3", "Feedback 4"]


def test_plan_snippet_is_truncated(tmp_path):
    save_session(str(tmp_path), "x" * 500, "ok")

    stored = json.loads(history_file(tmp_path).read_text())

    assert len(stored[0]["planSnippet"]) == 200
    assert set(stored[0]) == {"timestamp", "planSnippet", "feedback"}


def test_corrupt_history_is_ignored(tmp_path):
    path = history_file(tmp_path)
    path.parent.mkdir(parents=True)
    path.write_text("{not json")

    assert load_history(str(tmp_path)) == []
    assert save_session(str(tmp_path), "Plan", "Fresh") is True
    assert [s.feedback for s in load_history(str(tmp_path))] == ["Fresh"]
