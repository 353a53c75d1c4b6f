from __future__ import annotations

import pytest

from analyzer.classifier import (
    analyze_emotion,
    analyze_layout,
    classify,
    classify_request,
    detect_error_patterns,
    detect_framework,
    extract_expressions,
    extract_keywords,
    extract_text_content,
)
from analyzer.schema import RequestType, UserEmotion


@pytest.mark.parametrize(
    "transcript",
    [
        "what is 12 * 7?",
        "there's a bug, 3+4 shows 8",
        "please fix this error: 10 / 2 gives an issue",
        "new feature: 5 - 1 should refactor how we help",
        "I'm frustrated, 2 = 3 is broken",
    ],
)
def test_numeric_expression_always_wins_request_type(transcript: str) -> None:
    assert classify_request(transcript) == RequestType.CALCULATION


def test_request_type_priority_order() -> None:
    assert classify_request("there's a bug in the feature") == RequestType.BUG_FIX
    assert classify_request("please add a new page") == RequestType.FEATURE_REQUEST
    assert classify_request("let's refactor this module") == RequestType.REFACTORING
    assert classify_request("improve the code so it reads better") == RequestType.FEATURE_REQUEST
    assert classify_request("why does this happen") == RequestType.QUESTION
    assert classify_request("hello there") == RequestType.GENERAL
    assert classify_request("can you calculate the total") == RequestType.CALCULATION


def test_request_type_falls_back_to_screen_text_without_transcript() -> None:
    assert classify_request("", "Calculator 12 × 7 =") == RequestType.CALCULATION
    assert classify_request("hello there", "Uncaught error: x is not a function") == RequestType.BUG_FIX
    assert classify_request("", "") == RequestType.GENERAL


def test_emotion_first_match_wins() -> None:
    assert analyze_emotion("I'm stuck and this is amazing") == UserEmotion.FRUSTRATED
    assert analyze_emotion("this is awesome but unclear") == UserEmotion.EXCITED
    assert analyze_emotion("I'm not sure what happens") == UserEmotion.CONFUSED
    assert analyze_emotion("the page loads") == UserEmotion.NEUTRAL


def test_scenario_bug_with_button() -> None:
    result = classify(
        "there's a bug, the button isn't working",
        ["Submit button", "Click here to continue"],
        [0.2, 1.0],
    )

    assert result.request_type == RequestType.BUG_FIX
    assert result.user_emotion == UserEmotion.NEUTRAL
    assert "event_handling" in result.suggested_focus
    assert [el.type for el in result.ui_elements] == ["button", "button"]
    assert [el.timestamp for el in result.ui_elements] == [0.2, 1.0]


def test_scenario_bug_without_screen_text_has_no_event_focus() -> None:
    result = classify("there's a bug, the button isn't working", [])

    assert result.request_type == RequestType.BUG_FIX
    assert "event_handling" not in result.suggested_focus
    assert result.intent_keywords == ("bug",)


def test_scenario_calculation_without_vision_text() -> None:
    result = classify("what is 12 * 7?", [])

    assert result.request_type == RequestType.CALCULATION
    assert result.detected_expressions == ("12 * 7",)
    assert "calculation" in result.suggested_focus
    assert result.detected_framework == "unknown"
    assert result.layout_analysis == "unknown"


def test_classifier_is_deterministic() -> None:
    transcript = "I'm frustrated, the login form shows undefined after submit"
    observations = ["React App", "Email input required", "", "Error: 404 not found"]

    first = classify(transcript, observations, [0.0, 1.0, 2.0, 3.0])
    second = classify(transcript, observations, [0.0, 1.0, 2.0, 3.0])

    assert first == second
    assert repr(first) == repr(second)


def test_empty_inputs_produce_defaults() -> None:
    result = classify("", ["", ""])

    assert result.intent_keywords == ()
    assert result.user_emotion == UserEmotion.NEUTRAL
    assert result.request_type == RequestType.GENERAL
    assert result.error_patterns == ()
    assert result.suggested_focus == ()
    assert result.ui_elements == ()
    assert result.detected_framework == "unknown"


def test_framework_detection_prefers_nextjs() -> None:
    assert detect_framework(["Welcome to Next.js", "React DevTools"]) == "nextjs"
    assert detect_framework(["App.jsx"]) == "react"
    assert detect_framework(["Vue DevTools"]) == "vue"
    assert detect_framework(["plain html"]) == "unknown"


def test_error_patterns_are_independent_tags() -> None:
    tags = detect_error_patterns(
        ["Cannot read properties of undefined", "GET /api 404", "Blocked by CORS policy"],
        "the login does nothing",
    )

    assert tags == (
        "undefined_null_reference",
        "missing_resource",
        "authentication_issue",
        "cors_issue",
    )


def test_focus_from_elements_and_keywords() -> None:
    result = classify("the api call breaks my css", ["Warning: form input invalid"])

    assert "error_handling" in result.suggested_focus
    assert "form_handling" in result.suggested_focus
    assert "api_integration" in result.suggested_focus
    assert "styling" in result.suggested_focus


def test_keywords_are_unique_in_first_seen_order() -> None:
    assert extract_keywords("Fix the bug, then fix the other BUG and add tests") == ("fix", "bug", "add")


def test_expressions_are_normalized() -> None:
    assert extract_expressions("12  *   7 and 3+4 and 12 * 7") == ("12 * 7", "3+4")


def test_layout_analysis() -> None:
    assert analyze_layout(["$ npm install\nadded 12 packages"]) == "terminal"
    assert analyze_layout(["const total = items.reduce((a, b) => a + b)"]) == "code_editor"
    assert analyze_layout(["Dashboard Settings Profile"]) == "web_application"
    assert analyze_layout(["", "  "]) == "unknown"


def test_text_content_tokens() -> None:
    assert extract_text_content(["Submit the form", "the Form is ok", ""]) == ("Submit", "the", "form", "Form")
