"""Prompts used for frame reading, transcription and code-solution generation."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from analyzer.schema import ProcessedMetadata
    from recorder.frame_sampler import Frame

VISION_PROMPT = """Extract all text visible in this screenshot exactly as it appears.

Pay special attention to mathematical expressions, numbers and operators
(+, -, *, /, =) and keep them intact. Include error messages, button labels,
form fields and code. Return only the extracted text, no commentary."""

TRANSCRIPTION_HINT = (
    "The user is explaining a development issue, bug, or feature request for their application."
)

SOLUTION_SYSTEM_PROMPT = (
    "You are an expert software developer and code reviewer. Provide practical, actionable "
    "solutions to development issues. Always include specific code examples and explain the "
    "reasoning behind your recommendations."
)

BASE_PROMPT = """You are a senior developer helping to analyze a screen recording and provide code solutions.

## Context
- **Recording Duration**: {duration} seconds
- **User Said**: "{transcript}"
- **Request Type**: {request_type}
- **User Emotion**: {user_emotion}
- **Detected Framework**: {framework}

## Visual Analysis
- **Frames Analyzed**: {frames_analyzed}
- **UI Elements Detected**: {ui_elements}
- **Text Content**: {text_content}
- **Layout**: {layout}

## Technical Context
- **Error Patterns**: {error_patterns}
- **Suggested Focus**: {suggested_focus}
- **Keywords**: {keywords}
{expressions_line}
## Your Task
Based on this analysis, provide:

1. **Issue Analysis**: What is the likely problem or request?
2. **Root Cause**: What's causing this issue?
3. **Solution**: Step-by-step solution approach
4. **Code Examples**: Specific code fixes or implementations
5. **Prevention**: How to avoid this issue in the future
6. **Testing**: How to test the solution

Please provide actionable, specific code examples that can be directly implemented. Focus on the {focus_phrase} aspects.

Format your response in markdown with clear sections and code blocks."""

# Extra guidance per request type
REQUEST_TYPE_CONTEXT: dict[str, str] = {
    "calculation": """
## Calculation Context
The user is working with a calculation shown on screen. Focus on:
- Verifying the expression and its expected result
- Operator precedence and number parsing
- Floating point and rounding behaviour
- Code that computes the result correctly""",
    "bug_fix": """
## Bug Fix Context
The user has identified a bug in their application. Focus on:
- Debugging strategies
- Common causes of this type of issue
- Step-by-step troubleshooting
- Code fixes with explanations
- Testing to ensure the fix works""",
    "feature_request": """
## Feature Request Context
The user wants to add new functionality. Focus on:
- Implementation approach
- Best practices for this type of feature
- Code structure and organization
- Integration with existing code
- User experience considerations""",
    "refactoring": """
## Refactoring Context
The user wants to improve existing code. Focus on:
- Code quality improvements
- Performance optimizations
- Maintainability enhancements
- Modern best practices
- Migration strategies""",
    "question": """
## Question Context
The user needs explanation or guidance. Focus on:
- Clear explanations
- Code examples
- Best practices
- Learning resources
- Step-by-step instructions""",
}

FRUSTRATED_TONE = """

## Tone Adjustment
The user seems frustrated. Please:
- Be extra clear and patient in explanations
- Provide step-by-step guidance
- Offer multiple solution approaches
- Include debugging tips
- Reassure that this is a common issue"""

AGENT_INSTRUCTIONS = """Analyze this screen recording of a development session.

## What the user said
{transcript}

## Frames
{frame_count} frames were sampled from the recording at {timestamps}.

Review each frame, identify the issue or request the user is showing, and
propose concrete code changes that address it."""


def _join(items, default: str = "none") -> str:
    items = [str(i) for i in items]
    return ", ".join(items) if items else default


def generate_prompt(metadata: "ProcessedMetadata") -> str:
    """Build the base code-solution prompt from processed metadata."""
    user = metadata.user_context
    visual = metadata.visual_context
    technical = metadata.technical_context

    expressions_line = ""
    if technical.detected_expressions:
        expressions_line = f"- **Expressions**: {_join(technical.detected_expressions)}\n"

    return BASE_PROMPT.format(
        duration=round(metadata.media_duration_seconds, 1),
        transcript=user.transcript,
        request_type=user.request_type,
        user_emotion=user.user_emotion,
        framework=technical.detected_framework,
        frames_analyzed=visual.frames_analyzed,
        ui_elements=_join(f'{el.type}: "{el.text[:60]}"' for el in visual.ui_elements_detected),
        text_content=_join(visual.text_content[:10]),
        layout=visual.layout_analysis,
        error_patterns=_join(technical.error_patterns),
        suggested_focus=_join(technical.suggested_focus),
        keywords=_join(user.intent_keywords),
        expressions_line=expressions_line,
        focus_phrase=" and ".join(technical.suggested_focus) or "most relevant",
    )


def generate_contextual_prompt(metadata: "ProcessedMetadata") -> str:
    """Base prompt plus request-type guidance and tone adjustment."""
    prompt = generate_prompt(metadata)
    prompt += REQUEST_TYPE_CONTEXT.get(str(metadata.user_context.request_type), "")
    if str(metadata.user_context.user_emotion) == "frustrated":
        prompt += FRUSTRATED_TONE
    return prompt


def generate_follow_up_questions(metadata: "ProcessedMetadata") -> list[str]:
    """Questions worth asking the user when the recording leaves gaps."""
    questions: list[str] = []
    technical = metadata.technical_context
    user = metadata.user_context

    if technical.detected_framework == "unknown":
        questions.append("What framework or technology stack are you using?")

    if user.request_type == "bug_fix":
        questions.append("What error messages do you see in the console?")
        questions.append("When did this issue first appear?")

    if "api_integration" in technical.suggested_focus:
        questions.append("What API endpoint are you trying to access?")
        questions.append("Are you seeing any network errors in the developer tools?")

    return questions


def build_agent_instructions(frames: list["Frame"], transcript: str) -> str:
    """Natural-language hand-off text for an external coding agent."""
    timestamps = _join((f"{f.timestamp:.1f}s" for f in frames), default="no timestamps")
    return AGENT_INSTRUCTIONS.format(
        transcript=transcript or "(no narration)",
        frame_count=len(frames),
        timestamps=timestamps,
    )
