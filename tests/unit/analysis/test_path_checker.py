"""Tests for the file path checker."""

from plan_verifier.analysis.checkers.paths import (
    PathChecker,
    analyze_paths,
    filter_code_expressions,
    has_create_signal,
    matches_glob,
)
from plan_verifier.analysis.types import HallucinationCategory

PLAN = """\
## Changes

1. Update `src/lib/db.ts` to export a pool.
2. Wire it into `src/utils/helpers.ts`.
3. Read config from `src/lib/database/db.ts`.
4. Create `src/lib/cache.ts` for memoization.
"""


class TestAnalyzePaths:
    """Tests for analyze_paths."""

    def test_classifies_paths(self, project_dir):
        analysis = analyze_paths(PLAN, str(project_dir))

        assert "src/lib/db.ts" in analysis.valid_paths
        assert "src/lib/cache.ts" in analysis.intentional_new_paths
        assert analysis.hallucinated_paths == ["src/utils/helpers.ts", "src/lib/database/db.ts"]

    def test_directory_mismatch_suggestion(self, project_dir):
        analysis = analyze_paths(PLAN, str(project_dir))

        suggestion = analysis.suggestions["src/lib/database/db.ts"]
        assert suggestion.suggestion == "src/lib/db.ts"
        assert suggestion.directory_mismatch is True

    def test_suffix_match_is_valid(self, project_dir):
        analysis = analyze_paths("See `lib/db.ts`.", str(project_dir))

        assert analysis.valid_paths == ["lib/db.ts"]
        assert analysis.hallucinated_paths == []

    def test_allowed_new_glob(self, project_dir):
        analysis = analyze_paths(
            "Touch `src/jobs/nightly.ts`.", str(project_dir), allowed_new_paths=["src/jobs/**"]
        )

        assert analysis.intentional_new_paths == ["src/jobs/nightly.ts"]

    def test_hallucination_rate_excludes_new_paths(self, project_dir):
        analysis = analyze_paths(PLAN, str(project_dir))

        assert analysis.hallucination_rate == 2 / 3


class TestHelpers:
    def test_filter_code_expressions(self):
        kept = filter_code_expressions(
            ["this.state/x.ts", "src/a.ts", "README.md", ".../x/y.ts", "TODO/fix.ts"]
        )

        assert kept == ["src/a.ts"]

    def test_matches_glob(self):
        assert matches_glob("src/a/b.ts", "src/**")
        assert matches_glob("src/b.ts", "src/*.ts")
        assert not matches_glob("src/a/b.ts", "src/*.ts")

    def test_new_files_section(self):
        plan = "### New Files\n\n- `src/x.ts`\n\n### Other\n\n- `src/y.ts`\n"

        assert has_create_signal("src/x.ts", plan)
        assert not has_create_signal("src/y.ts", plan)


class TestPathChecker:
    def test_run_and_findings(self, project_dir):
        checker = PathChecker()

        result = checker.run(PLAN, str(project_dir))

        assert result.applicable
        assert result.checked == 4
        assert result.hallucinated == 2
        assert result.hallucinations[1].category == HallucinationCategory.PATH
        assert result.hallucinations[1].suggestion == "src/lib/db.ts"
        findings = checker.format_for_findings_section(result)
        assert findings.startswith("### File Path Issues")
        assert "(did you mean `src/lib/db.ts`?)" in findings

    def test_clean_plan_has_no_findings(self, project_dir):
        checker = PathChecker()

        result = checker.run("Edit `src/lib/db.ts`.", str(project_dir))

        assert result.hallucinated == 0
        assert checker.format_for_findings_section(result) is None
        assert "All paths valid." in checker.format_for_combined_report(result, str(project_dir))
