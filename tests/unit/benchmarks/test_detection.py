"""Tests for tiered hallucination detection scoring."""

import pytest

from plan_verifier.analysis.checkers.prisma_schema import RefKind, SchemaRef
from plan_verifier.analysis.types import HallucinationCategory
from plan_verifier.benchmarks.detection import (
    build_search_terms,
    detection_rate,
    iter_sections,
    parse_detections,
    parse_schema_detections,
    WARNING_SECTIONS,
)

PATH = "src/utils/helpers.ts"


@pytest.mark.parametrize(
    "output, actual_files, method",
    [
        ("`src/utils/helpers.ts` is referenced in step 2.", None, "direct"),
        ("Step 2 edits helpers.ts.\nThat file does not exist in the tree.", None, "sentiment"),
        ("## Concerns\n\n- helpers.ts looks odd\n\n## Summary\n\nFine.", None, "section"),
        ("Use src/lib/helpers.ts for this.", {"src/lib/helpers.ts"}, "directory"),
    ],
)
def test_path_detection_tiers(output, actual_files, method):
    [detection] = parse_detections([PATH], output, actual_files)

    assert detection.detected is True
    assert detection.method == method


def test_undetected_path():
    [detection] = parse_detections([PATH], "The plan looks reasonable.")

    assert detection.detected is False
    assert detection.method is None
    assert detection.to_dict() == {"path": PATH, "detected": False, "method": None}


def test_directory_tier_needs_actual_files():
    [detection] = parse_detections([PATH], "Use src/lib/helpers.ts for this.")

    assert detection.detected is False


def test_iter_sections_stops_at_next_heading():
    output = "## Issues\n\nA\n\n## Summary\n\nB"

    assert list(iter_sections(output, WARNING_SECTIONS)) == ["## Issues\n\nA\n\n"]


def test_iter_sections_spans_deeper_subheadings():
    output = "### Concerns\n\n#### Details\n\n- bar.ts looks odd\n\n### Summary\n\nFine."

    [section] = iter_sections(output, WARNING_SECTIONS)

    assert section == "### Concerns\n\n#### Details\n\n- bar.ts looks odd\n\n"


def test_section_tier_covers_nested_heading():
    output = "### Concerns\n\n#### Details\n\n- bar.ts looks odd\n\n### Summary"

    [detection] = parse_detections(["src/foo/bar.ts"], output)

    assert detection.detected is True
    assert detection.method == "section"


def test_detection_rate():
    detections = parse_detections(["a/x.ts", "b/y.ts"], "a/x.ts is wrong")

    assert detection_rate(detections) == 0.5
    assert detection_rate([]) == 0.0


def model_ref():
    return SchemaRef(
        raw="prisma.users",
        kind=RefKind.MODEL,
        valid=False,
        model_accessor="users",
        category=HallucinationCategory.MODEL,
        suggestion="prisma.user",
    )


def field_ref():
    return SchemaRef(
        raw="emailAddress",
        kind=RefKind.FIELD,
        valid=False,
        model_accessor="user",
        field_name="emailAddress",
        category=HallucinationCategory.FIELD,
        suggestion="email",
    )


def test_build_search_terms():
    assert build_search_terms(model_ref()) == ["prisma.users", "users", "Users"]
    assert build_search_terms(field_ref()) == ["emailAddress"]


@pytest.mark.parametrize(
    "ref, output, method",
    [
        (model_ref(), "`prisma.users` does not exist; use `prisma.user`.", "direct"),
        (field_ref(), "## Issues\n\n- emailAddress\n", "section"),
        (field_ref(), "Consider email over emailAddress.", "sentiment"),
        (field_ref(), "Nothing to add.", None),
    ],
)
def test_schema_detection_tiers(ref, output, method):
    [detection] = parse_schema_detections([ref], output)

    assert detection.method == method
    assert detection.detected is (method is not None)
    assert detection.category == ref.category.value
