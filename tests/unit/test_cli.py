"""Tests for the command-line interface."""

import io
import json

import pytest
import structlog

from plan_verifier import cli
from plan_verifier.verifier.client import StreamResult

CLEAN_PLAN = "1. Edit `src/lib/db.ts` to export a pool.\n"
BAD_PLAN = "1. Edit `src/utils/helpers.ts` to add retries.\n"


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    structlog.reset_defaults()


@pytest.fixture
def plan_file(tmp_path):
    def write(text):
        path = tmp_path / "plan.md"
        path.write_text(text)
        return str(path)

    return write


def test_check_clean_plan(project_dir, plan_file, capsys):
    code = cli.main(["check", "--plan", plan_file(CLEAN_PLAN), "--project", str(project_dir)])

    assert code == 0
    assert "0 finding(s). All references verified." in capsys.readouterr().out


def test_check_json_with_findings(project_dir, plan_file, capsys, isolated_home):
    code = cli.main(
        ["check", "--plan", plan_file(BAD_PLAN), "--project", str(project_dir), "--format", "json"]
    )

    assert code == 1
    report = json.loads(capsys.readouterr().out)
    assert report["projectDir"] == "webapp"
    assert any(f["target"] == "src/utils/helpers.ts" for f in report["findings"])
    assert (isolated_home / ".plan-verifier" / "catches.jsonl").is_file()


def test_check_markdown_format(project_dir, plan_file, capsys):
    cli.main(["check", "--plan", plan_file(CLEAN_PLAN), "--project", str(project_dir), "--format", "markdown"])

    assert "## Prisma Schema" in capsys.readouterr().out


def test_check_reads_stdin(project_dir, monkeypatch, capsys):
    monkeypatch.setattr("sys.stdin", io.StringIO(BAD_PLAN))

    code = cli.main(["check", "--stdin", "--project", str(project_dir)])

    assert code == 1
    assert "src/utils/helpers.ts" in capsys.readouterr().out


def test_plan_and_stdin_are_exclusive(project_dir):
    with pytest.raises(SystemExit):
        cli.parse_args(["check", "--plan", "x.md", "--stdin"])


def test_missing_plan_file(project_dir, capsys):
    code = cli.main(["check", "--plan", "nope.md", "--project", str(project_dir)])

    assert code == 1
    assert "Error: Plan file not found: nope.md" in capsys.readouterr().err


def test_missing_project(plan_file, tmp_path, capsys):
    code = cli.main(["check", "--plan", plan_file(CLEAN_PLAN), "--project", str(tmp_path / "gone")])

    assert code == 1
    assert "Project directory not found" in capsys.readouterr().err


def test_verify_requires_api_key(project_dir, plan_file, capsys):
    code = cli.main(["verify", "--plan", plan_file(CLEAN_PLAN), "--project", str(project_dir)])

    assert code == 1
    assert "No API key configured" in capsys.readouterr().err


def test_verify_streams_review_and_saves_session(project_dir, plan_file, monkeypatch, capsys):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-test")
    messages = []

    async def fake_stream(api_key, model, system_prompt, user_message, on_text, max_tokens=0, client=None):
        messages.append(user_message)
        on_text("Paths ")
        on_text("need work.")
        return StreamResult(input_tokens=10, output_tokens=4)

    monkeypatch.setattr(cli, "stream_verification", fake_stream)
    args = ["verify", "--plan", plan_file(BAD_PLAN), "--project", str(project_dir), "--prompt", "add retries"]

    assert cli.main(args) == 0
    assert cli.main(args) == 0

    assert "Paths need work." in capsys.readouterr().out
    first, second = messages
    assert "## Original User Request\n\nadd retries" in first
    assert "## Static Analysis Findings" in first
    assert "## Prior Verification Feedback" not in first
    assert "Paths need work." in second
    history = project_dir / ".plan-verifier" / "sessions" / "history.json"
    assert len(json.loads(history.read_text())) == 2


def test_init_saves_key_and_gitignore(project_dir, isolated_home, capsys):
    (project_dir / ".gitignore").write_text("node_modules/\n")

    code = cli.main(["init", "--api-key", "sk-new", "--project", str(project_dir)])

    assert code == 0
    config = json.loads((isolated_home / ".plan-verifier" / "config.json").read_text())
    assert config["apiKey"] == "sk-new"
    assert ".plan-verifier/" in (project_dir / ".gitignore").read_text()


def test_catches_empty(capsys):
    assert cli.main(["catches"]) == 0
    assert "No catches logged yet." in capsys.readouterr().out


def test_bench_summary(tmp_path, capsys):
    runs = [
        {"promptId": "a", "tier1": {"pathAnalysis": {"hallucinationRate": 0.2}, "detectionRate": 1.0}},
        {"promptId": "b", "tier1": {"pathAnalysis": {"hallucinationRate": 0.4}, "detectionRate": 0.0}},
    ]
    runs_path = tmp_path / "runs.json"
    runs_path.write_text(json.dumps(runs))
    output = tmp_path / "out" / "summary.json"

    code = cli.main(["bench-summary", str(runs_path), "--output", str(output)])

    assert code == 0
    assert json.loads(output.read_text())["tier1"]["avg_hallucination_rate"] == 0.3
    assert "Avg detection rate: 0.5000" in capsys.readouterr().out


def test_bench_summary_missing_file(tmp_path, capsys):
    code = cli.main(["bench-summary", str(tmp_path / "none.json")])

    assert code == 1
    assert "Runs file not found" in capsys.readouterr().err
