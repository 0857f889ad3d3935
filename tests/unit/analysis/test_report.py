"""Tests for report rendering."""

import json

from plan_verifier.analysis import run_checkers
from plan_verifier.analysis.registry import Checker
from plan_verifier.analysis.report import (
    FINDINGS_PREAMBLE,
    build_combined_report,
    build_findings_section,
    build_json_report,
    finding_id,
    format_text_report,
    message_for,
)
from plan_verifier.analysis.types import CheckerResult, Hallucination, HallucinationCategory


class FakeChecker(Checker):
    catch_key = "fake"

    def __init__(self, checker_id, display_name, result):
        self.id = checker_id
        self.display_name = display_name
        self._result = result

    def run(self, plan_text, project_dir, options=None):
        return self._result

    def format_for_combined_report(self, result, project_dir):
        return [f"## {self.display_name}", ""] if result.applicable else []

    def format_for_findings_section(self, result):
        if not result.hallucinations:
            return None
        return f"### {self.display_name} Issues\n\n- `{result.hallucinations[0].raw}`"


def make_pairs():
    dirty = CheckerResult.from_hallucinations(
        "paths",
        3,
        [Hallucination("src/utils/helpers.ts", HallucinationCategory.PATH, "src/lib/helpers.ts")],
    )
    clean = CheckerResult.from_hallucinations("env", 2, [])
    skipped = CheckerResult.not_applicable("prismaSchema")
    checkers = [
        FakeChecker("paths", "File Paths", dirty),
        FakeChecker("env", "Environment Variables", clean),
        FakeChecker("prismaSchema", "Prisma Schema", skipped),
    ]
    return [(c, c.run("", "")) for c in checkers]


class TestFindingId:
    def test_is_deterministic_hex(self):
        first = finding_id("paths", "hallucinated-path", "src/a.ts")

        assert first == finding_id("paths", "hallucinated-path", "src/a.ts")
        assert len(first) == 8
        int(first, 16)

    def test_depends_on_every_part(self):
        base = finding_id("paths", "hallucinated-path", "src/a.ts")

        assert finding_id("env", "hallucinated-path", "src/a.ts") != base
        assert finding_id("paths", "hallucinated-env", "src/a.ts") != base
        assert finding_id("paths", "hallucinated-path", "src/b.ts") != base


def test_combined_report_skips_inapplicable():
    lines = build_combined_report(make_pairs(), "/tmp/webapp")

    assert [line for line in lines if line.startswith("## ")] == [
        "## File Paths",
        "## Environment Variables",
    ]


def test_findings_section_wraps_checker_sections():
    section = build_findings_section(make_pairs())

    assert section.startswith("## Static Analysis Findings\n\n" + FINDINGS_PREAMBLE)
    assert "### File Paths Issues" in section


def test_findings_section_none_when_clean():
    pairs = [p for p in make_pairs() if p[0].id != "paths"]

    assert build_findings_section(pairs) is None


def test_json_report_shape():
    report = build_json_report(make_pairs(), "/tmp/projects/webapp/")

    data = json.loads(report.to_json())

    assert data["schemaVersion"] == "1.0"
    assert data["projectDir"] == "webapp"
    assert data["summary"]["totalChecked"] == 5
    assert data["summary"]["totalFindings"] == 1
    assert [r["checker"] for r in data["summary"]["checkerResults"]] == ["paths", "env", "prismaSchema"]
    assert data["summary"]["checkerResults"][0]["displayName"] == "File Paths"
    finding = data["findings"][0]
    assert finding["findingId"] == finding_id("paths", "hallucinated-path", "src/utils/helpers.ts")
    assert finding["severity"] == "error"
    assert finding["message"] == "Path does not exist: src/utils/helpers.ts"
    assert finding["suggestion"] == "src/lib/helpers.ts"


def test_message_for_unknown_category():
    assert message_for("something-else", "x") == "Hallucinated reference: x"


def test_text_report():
    text = format_text_report(make_pairs())

    assert "✗ File Paths" in text
    assert "src/utils/helpers.ts (did you mean src/lib/helpers.ts?)" in text
    assert "✓ Environment Variables" in text
    assert "Skipped: Prisma Schema" in text
    assert "1 finding(s). Fix the hallucinated references above." in text


def test_text_report_clean():
    pairs = [p for p in make_pairs() if p[0].id != "paths"]

    assert "0 finding(s). All references verified." in format_text_report(pairs)


def test_real_checkers_report_missing_path(project_dir):
    pairs = run_checkers("Edit `src/utils/helpers.ts` next.", str(project_dir))

    report = build_json_report(pairs, str(project_dir))

    targets = [(f.checker, f.target) for f in report.findings]
    assert ("paths", "src/utils/helpers.ts") in targets
    assert report.project_dir == "webapp"
