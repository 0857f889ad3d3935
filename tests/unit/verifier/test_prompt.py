"""Tests for reviewer prompt rendering."""

from plan_verifier.context.builder import ProjectContext
from plan_verifier.verifier.prompt import SECTION_SEPARATOR, SYSTEM_PROMPT, build_user_message


def test_system_prompt_requires_path_section():
    assert "### File Path Verification" in SYSTEM_PROMPT
    assert "does not exist in the project tree" in SYSTEM_PROMPT


def test_minimal_message_has_tree_then_plan():
    context = ProjectContext(plan_text="1. Do things", tree="app/\n└── main.py")

    message = build_user_message(context)

    sections = message.split(SECTION_SEPARATOR)
    assert len(sections) == 2
    assert sections[0].startswith("## Project Structure")
    assert "```\napp/\n└── main.py\n```" in sections[0]
    assert sections[1] == "## Plan to Review\n\n1. Do things"


def test_full_message_section_order():
    context = ProjectContext(
        plan_text="plan",
        tree="tree",
        prompt="ask",
        readme="readme",
        claude_md="rules",
        session_feedback="earlier",
        referenced_files={"src/a.ts": "export {}"},
    )

    message = build_user_message(context, static_findings="## Static Analysis Findings\n\nx")

    headings = [s.split("\n", 1)[0] for s in message.split(SECTION_SEPARATOR)]
    assert headings == [
        "## Project Structure",
        "## Original User Request",
        "## Plan to Review",
        "## Project README",
        "## Project Guidelines (CLAUDE.md)",
        "## Prior Verification Feedback",
        "## Referenced Source Files",
        "## Static Analysis Findings",
    ]
    assert "### src/a.ts\n\n```\nexport {}\n```" in message
