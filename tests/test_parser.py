"""Tests for parsing model output into analysis results."""

from __future__ import annotations

import json

import pytest

from uxlens.parser import DEFAULT_SCORE, ResponseParser, clamp_score


def _parse(text: str, context):
    return ResponseParser().parse(text, context=context, model="gpt-4o", provider="openai", tokens_used=10)


def test_parse_structured_prose_extracts_scores_and_sections(context, sample_response) -> None:
    result = _parse(sample_response, context)

    assert result.error is False
    assert result.overall_score == 7
    assert result.scores.usability == 8
    assert result.scores.accessibility == 5
    assert result.scores.visual_design == 7
    assert result.scores.performance == 7
    assert result.strengths == ("Clear product imagery", "Prominent price display")
    assert len(result.critical_issues) == 1
    assert len(result.major_issues) == 1
    assert len(result.minor_issues) == 2
    assert len(result.recommendations) == 2
    assert result.page == "https://shop.example.com/cart"
    assert result.raw_analysis == sample_response
    assert result.tokens_used == 10


def test_findings_carry_category_fix_and_short_title(context, sample_response) -> None:
    result = _parse(sample_response, context)

    critical = result.critical_issues[0]
    assert critical.severity == "critical"
    assert critical.category == "mobile-optimization"
    assert critical.recommendation == "move it above the fold"
    assert len(critical.title) <= 50

    major = result.major_issues[0]
    assert major.category == "accessibility"
    assert major.recommendation == "The text should use a darker color"


def test_recommendations_are_classified(context, sample_response) -> None:
    first, second = _parse(sample_response, context).recommendations

    assert first.type == "code"
    assert first.effort == "low"
    assert second.type == "content"
    assert second.impact == "high"


@pytest.mark.parametrize(
    "text, expected",
    [
        ("OVERALL UX SCORE: 15/10", 10.0),
        ("Overall score: -3/10", 0.0),
        ("**Overall UX Score: 6.5/10**", 6.5),
        ("I would give this page a score of 8/10.", 8.0),
        ("No structure at all here.", DEFAULT_SCORE),
    ],
)
def test_overall_score_is_clamped_or_defaulted(context, text: str, expected: float) -> None:
    result = _parse(text, context)

    assert result.overall_score == expected
    assert 0 <= result.overall_score <= 10


def test_unstructured_text_yields_valid_empty_result(context) -> None:
    result = _parse("The page looks fine overall.", context)

    assert result.error is False
    assert result.all_findings == []
    assert result.recommendations == ()


def test_placeholder_bullets_are_dropped(context) -> None:
    text = "OVERALL UX SCORE: 9/10\n\n**CRITICAL ISSUES:**\n- None\n\n**MINOR ISSUES:**\n- [Small improvements]\n"

    result = _parse(text, context)

    assert result.critical_issues == ()
    assert result.minor_issues == ()


def test_continuation_lines_join_the_previous_bullet(context) -> None:
    text = "**MAJOR ISSUES:**\n- The search field is hard to find\n  on small screens.\n"

    result = _parse(text, context)

    assert result.major_issues[0].description == "The search field is hard to find on small screens."


def test_json_payload_bypasses_prose_scanning(context) -> None:
    payload = {
        "overall_score": 12,
        "scores": {"accessibility": 4, "visualDesign": 6},
        "strengths": ["Consistent spacing"],
        "critical_issues": [{"title": "Form unusable", "description": "Submit button is disabled", "fix": "Enable it"}],
        "minor_issues": ["Footer is cramped"],
        "recommendations": [{"description": "Enable the submit button"}],
    }
    text = "Here you go:\n```json\n" + json.dumps(payload) + "\n```"

    result = _parse(text, context)

    assert result.overall_score == 10
    assert result.scores.accessibility == 4
    assert result.scores.visual_design == 6
    assert result.scores.usability == 10
    assert result.critical_issues[0].title == "Form unusable"
    assert result.critical_issues[0].recommendation == "Enable it"
    assert result.minor_issues[0].description == "Footer is cramped"
    assert result.recommendations[0].description == "Enable the submit button"


def test_json_fields_of_the_wrong_shape_are_skipped(context) -> None:
    payload = {
        "overall_score": 7,
        "strengths": "Clean layout",
        "critical_issues": 2,
        "major_issues": ["Form fields have no labels", None, {"severity": "major"}],
        "minor_issues": [{"title": 1, "description": "Low contrast", "category": ["a11y"]}],
        "recommendations": [["a", "b"], "Add visible labels", {"title": 3}],
    }

    result = _parse(json.dumps(payload), context)

    assert result.overall_score == 7
    assert result.strengths == ()
    assert len(result.critical_issues) == 0
    assert [f.description for f in result.major_issues] == ["Form fields have no labels"]
    assert result.minor_issues[0].title == "1"
    assert result.minor_issues[0].description == "Low contrast"
    assert result.minor_issues[0].category == "accessibility"
    assert [r.description for r in result.recommendations] == ["Add visible labels", "3"]


def test_json_path_failure_falls_back_to_prose(context) -> None:
    class _BrokenJsonParser(ResponseParser):
        def _json_findings(self, data, severity):
            raise TypeError("unexpected payload")

    text = 'OVERALL UX SCORE: 4/10\n{"overall_score": 9}'

    result = _BrokenJsonParser().parse(text, context=context, model="gpt-4o", provider="openai")

    assert result.error is False
    assert result.overall_score == 4


def test_error_result_shape(context) -> None:
    result = ResponseParser().error_result("boom", context=context, model="gpt-4o", provider="openai")

    assert result.error is True
    assert result.overall_score == 0
    assert result.scores.usability == 0
    assert len(result.critical_issues) == 1
    assert result.critical_issues[0].title == "Analysis Failed"
    assert "boom" in result.critical_issues[0].description
    assert result.major_issues == () and result.minor_issues == ()


def test_page_falls_back_to_stage(context) -> None:
    result = _parse("", context.model_copy(update={"page_url": None}))

    assert result.page == "checkout"


def test_clamp_score() -> None:
    assert clamp_score(15) == 10.0
    assert clamp_score(-1) == 0.0
    assert clamp_score(7.25) == 7.25


def test_grade_thresholds(context) -> None:
    grades = {score: _parse(f"Overall score: {score}/10", context).get_grade() for score in (9, 7.5, 6, 4, 3.9)}

    assert grades == {9: "A", 7.5: "B", 6: "C", 4: "D", 3.9: "F"}
