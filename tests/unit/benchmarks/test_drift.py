"""Tests for drift injection and drift detection scoring."""

from plan_verifier.benchmarks.drift import inject_drift, score_drift_detection
from plan_verifier.benchmarks.models import DriftSpec

PLAN = "# Plan\n\n1. Use Postgres for storage.\n2. Keep postgres migrations.\n"


def make_spec(injection, signals=("GraphQL", "gateway")):
    return DriftSpec.from_dict(
        {
            "id": "drift-1",
            "category": "scope-creep",
            "injection": injection,
            "expectedSignals": list(signals),
            "promptId": "prompt-1",
        }
    )


class TestInjectDrift:
    def test_append(self):
        spec = make_spec({"method": "append", "appendText": "Add a GraphQL gateway."})

        result = inject_drift(PLAN, spec)

        assert result.applied is True
        assert result.plan.endswith(
            "2. Keep postgres migrations.\n\n## Additional Considerations\n\nAdd a GraphQL gateway.\n"
        )

    def test_append_without_text(self):
        result = inject_drift(PLAN, make_spec({"method": "append"}))

        assert result.applied is False
        assert result.plan == PLAN

    def test_replace_first_match_case_insensitive(self):
        spec = make_spec({"method": "replace", "searchPattern": "postgres", "replaceText": "MongoDB"})

        result = inject_drift(PLAN, spec)

        assert result.applied is True
        assert "1. Use MongoDB for storage." in result.plan
        assert "2. Keep postgres migrations." in result.plan

    def test_replacement_text_is_literal(self):
        spec = make_spec(
            {"method": "remove-and-replace", "searchPattern": "Postgres", "replaceText": r"C:\data\1"}
        )

        result = inject_drift(PLAN, spec)

        assert r"Use C:\data\1 for storage." in result.plan

    def test_no_match_is_not_applied(self):
        spec = make_spec({"method": "replace", "searchPattern": "redis", "replaceText": "x"})

        result = inject_drift(PLAN, spec)

        assert result.applied is False
        assert result.plan == PLAN

    def test_unknown_method(self):
        assert inject_drift(PLAN, make_spec({"method": "rewrite"})).applied is False


class TestScoreDriftDetection:
    def test_critical_callout(self):
        spec = make_spec({"method": "append"})

        detection = score_drift_detection("The GraphQL gateway was not requested by the user.", spec)

        assert detection.method == "critical-callout"
        assert detection.matched_signals == ["GraphQL", "gateway"]
        assert detection.spec_id == "drift-1"
        assert detection.injection_applied is True

    def test_alignment_section(self):
        spec = make_spec({"method": "append"})
        output = "## Scope\n\nThe plan adds a GraphQL layer.\n\n## Summary\n\nOk."

        detection = score_drift_detection(output, spec)

        assert detection.method == "alignment-section"
        assert detection.matched_signals == ["GraphQL"]

    def test_signal_match_threshold(self):
        spec = make_spec({"method": "append"}, signals=("GraphQL", "gateway", "federation"))

        hit = score_drift_detection("GraphQL and federation details are solid.", spec)
        miss = score_drift_detection("The GraphQL parts are solid.", spec)

        assert hit.method == "signal-match"
        assert hit.matched_signals == ["GraphQL", "federation"]
        assert miss.detected is False

    def test_not_detected(self):
        detection = score_drift_detection("All good.", make_spec({"method": "append"}))

        assert detection.detected is False
        assert detection.method is None
        assert detection.matched_signals == []
