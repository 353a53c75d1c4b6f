"""Deterministic context classification over transcript and screen text.

Every classification axis is one ordered rule table of (pattern, label)
pairs. Single-label axes (request type, emotion, framework, layout) take
the first match; tag axes (error patterns, focus, UI elements) collect
every match. Nothing here performs I/O or uses randomness, so identical
inputs always produce identical output.
"""

import re
from collections.abc import Sequence

from .schema import ContextClassification, RequestType, UiElement, UserEmotion

# "12 * 7", "3+4", "10 = 10"
CALCULATION_EXPRESSION = re.compile(r"\d+\s*[+\-*/=×÷]\s*\d+")

# Longest text kept on a UI element
MAX_ELEMENT_TEXT = 200


def _rx(pattern: str) -> re.Pattern:
    return re.compile(pattern, re.IGNORECASE)


# =============================================================================
# Rule tables
# =============================================================================

REQUEST_TYPE_RULES: list[tuple[re.Pattern, RequestType]] = [
    (CALCULATION_EXPRESSION, RequestType.CALCULATION),
    (_rx(r"\b(calculate|calculation|calculator|compute|arithmetic|math|multiply|multiplied|divide|divided|plus|minus)\b"),
     RequestType.CALCULATION),
    (_rx(r"\b(bug|error|issue|problem|fix|broken|not working)\b"), RequestType.BUG_FIX),
    (_rx(r"\b(feature|add|create|new|enhancement|improve)\b"), RequestType.FEATURE_REQUEST),
    (_rx(r"\b(refactor|optimize|clean|better)\b"), RequestType.REFACTORING),
    (_rx(r"\b(question|help|how|what|why)\b"), RequestType.QUESTION),
]

EMOTION_RULES: list[tuple[re.Pattern, UserEmotion]] = [
    (_rx(r"\b(frustrated|frustrating|annoyed|annoying|stuck|broken|not working|failing)\b"), UserEmotion.FRUSTRATED),
    (_rx(r"\b(excited|great|awesome|love|amazing)\b"), UserEmotion.EXCITED),
    (_rx(r"\b(confused|confusing|unclear|don't understand|do not understand|not sure)\b"), UserEmotion.CONFUSED),
]

INTENT_KEYWORDS = _rx(
    r"\b(bug|error|fix|issue|problem|feature|enhancement|add|create|update|delete|improve|calculate)\b"
)

# Most specific first: Next.js pages usually mention React as well
FRAMEWORK_RULES: list[tuple[re.Pattern, str]] = [
    (_rx(r"next\.?js"), "nextjs"),
    (_rx(r"react|jsx"), "react"),
    (_rx(r"vue"), "vue"),
    (_rx(r"angular"), "angular"),
    (_rx(r"svelte"), "svelte"),
]

ERROR_PATTERN_RULES: list[tuple[re.Pattern, str]] = [
    (_rx(r"undefined|null"), "undefined_null_reference"),
    (_rx(r"\b404\b|not found"), "missing_resource"),
    (_rx(r"validation|required"), "validation_error"),
    (_rx(r"login|authentication|unauthorized|\b401\b"), "authentication_issue"),
    (_rx(r"\bcors\b|cross-origin"), "cors_issue"),
    (_rx(r"syntaxerror|syntax error|unexpected token"), "syntax_error"),
    (_rx(r"typeerror|is not a function"), "type_error"),
    (_rx(r"timeout|timed out"), "timeout"),
    (_rx(r"internal server error|\b500\b"), "server_error"),
]

# Keyword-triggered focus tags over combined text
FOCUS_TEXT_RULES: list[tuple[re.Pattern, str]] = [
    (_rx(r"\bapi\b|endpoint|fetch|axios"), "api_integration"),
    (_rx(r"\bstyle|\bcss\b|layout|tailwind"), "styling"),
    (_rx(r"\bstate\b|usestate|redux|store"), "state_management"),
]

# Focus tags triggered by detected UI element types
FOCUS_ELEMENT_RULES: list[tuple[str, str]] = [
    ("form", "form_handling"),
    ("button", "event_handling"),
    ("error_message", "error_handling"),
]

# (word family, element type, element state), matched per frame
UI_ELEMENT_RULES: list[tuple[frozenset[str], str, str]] = [
    (frozenset({"button", "click", "submit"}), "button", "clickable"),
    (frozenset({"error", "warning", "exception", "failed"}), "error_message", "visible"),
    (frozenset({"form", "input", "email", "password"}), "form", "editable"),
]

LAYOUT_RULES: list[tuple[re.Pattern, str]] = [
    (_rx(r"(^|\n)\s*(\$|>|❯)\s|\b(npm|pip|git|cd|ls|sudo)\s+\S"), "terminal"),
    (_rx(r"\b(def|function|const|let|import|return|class)\b.*[({=]|=>|\};"), "code_editor"),
]

_WORD = re.compile(r"[a-z0-9_']+")


# =============================================================================
# Rule evaluation
# =============================================================================


def _first_match(rules: Sequence[tuple[re.Pattern, object]], text: str, default):
    for pattern, label in rules:
        if pattern.search(text):
            return label
    return default


def _all_matches(rules: Sequence[tuple[re.Pattern, str]], text: str) -> list[str]:
    return [label for pattern, label in rules if pattern.search(text)]


def _unique(items) -> tuple:
    """De-duplicate keeping first-seen order."""
    return tuple(dict.fromkeys(items))


def classify_request(transcript: str, vision_text: str = "") -> RequestType:
    """Infer the request type.

    The transcript decides; screen text is only consulted when the
    transcript matches no rule (e.g. the transcript is empty).
    """
    request_type = _first_match(REQUEST_TYPE_RULES, transcript, RequestType.GENERAL)
    if request_type == RequestType.GENERAL and vision_text:
        request_type = _first_match(REQUEST_TYPE_RULES, vision_text, RequestType.GENERAL)
    return request_type


def analyze_emotion(transcript: str) -> UserEmotion:
    """Infer the narration tone; first matching emotion wins."""
    return _first_match(EMOTION_RULES, transcript, UserEmotion.NEUTRAL)


def extract_keywords(transcript: str) -> tuple[str, ...]:
    """Intent keywords in first-seen order."""
    return _unique(m.lower() for m in INTENT_KEYWORDS.findall(transcript))


def extract_expressions(text: str) -> tuple[str, ...]:
    """Arithmetic expressions such as '12 * 7', whitespace-normalized."""
    return _unique(re.sub(r"\s+", " ", m.group(0)) for m in CALCULATION_EXPRESSION.finditer(text))


def detect_framework(observations: Sequence[str]) -> str:
    """Framework named anywhere in the screen text, else 'unknown'."""
    return _first_match(FRAMEWORK_RULES, " ".join(observations), "unknown")


def detect_error_patterns(observations: Sequence[str], transcript: str) -> tuple[str, ...]:
    """Independent error tags over screen text plus transcript."""
    return tuple(_all_matches(ERROR_PATTERN_RULES, " ".join([*observations, transcript])))


def analyze_ui_elements(
    observations: Sequence[str],
    timestamps: Sequence[float] | None = None,
) -> tuple[UiElement, ...]:
    """Scan each frame's text for button / error / form word families.

    Args:
        observations: Text per frame, index-aligned with `timestamps`.
        timestamps: Capture offset per frame; the frame index is used if omitted.
    """
    elements: list[UiElement] = []
    for index, text in enumerate(observations):
        words = set(_WORD.findall(text.lower()))
        if not words:
            continue
        timestamp = float(timestamps[index]) if timestamps is not None else float(index)
        snippet = text.strip()[:MAX_ELEMENT_TEXT]
        for family, element_type, state in UI_ELEMENT_RULES:
            if words & family:
                elements.append(UiElement(type=element_type, text=snippet, state=state, timestamp=timestamp))
    return tuple(elements)


def generate_suggested_focus(
    ui_elements: Sequence[UiElement],
    combined_text: str,
    request_type: RequestType,
) -> tuple[str, ...]:
    """Focus tags from element types, keywords and the request type."""
    element_types = {el.type for el in ui_elements}
    focus = [tag for element_type, tag in FOCUS_ELEMENT_RULES if element_type in element_types]
    focus += _all_matches(FOCUS_TEXT_RULES, combined_text)
    if request_type == RequestType.CALCULATION:
        focus.append("calculation")
    return _unique(focus)


def analyze_layout(observations: Sequence[str]) -> str:
    """Coarse layout guess from screen text."""
    text = "\n".join(o for o in observations if o.strip())
    if not text:
        return "unknown"
    return _first_match(LAYOUT_RULES, text, "web_application")


def extract_text_content(observations: Sequence[str]) -> tuple[str, ...]:
    """Whitespace tokens longer than two characters, de-duplicated in first-seen order."""
    return _unique(token for text in observations for token in text.split() if len(token) > 2)


def classify(
    transcript: str,
    observations: Sequence[str],
    timestamps: Sequence[float] | None = None,
) -> ContextClassification:
    """Classify a recording from its transcript and per-frame screen text.

    Args:
        transcript: Spoken text ('' when transcription was unavailable).
        observations: One text per analyzed frame (may contain '').
        timestamps: Capture offset per observation.

    Returns:
        ContextClassification with every axis filled (defaults when nothing matches).
    """
    transcript = transcript or ""
    observations = [o or "" for o in observations]
    vision_text = " ".join(observations)
    combined_text = f"{vision_text} {transcript}"

    request_type = classify_request(transcript, vision_text)
    ui_elements = analyze_ui_elements(observations, timestamps)

    return ContextClassification(
        intent_keywords=extract_keywords(transcript),
        user_emotion=analyze_emotion(transcript),
        request_type=request_type,
        error_patterns=detect_error_patterns(observations, transcript),
        suggested_focus=generate_suggested_focus(ui_elements, combined_text, request_type),
        detected_framework=detect_framework(observations),
        ui_elements=ui_elements,
        detected_expressions=extract_expressions(combined_text),
        layout_analysis=analyze_layout(observations),
    )
