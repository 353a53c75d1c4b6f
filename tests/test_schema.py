from __future__ import annotations

import json
from pathlib import Path

import yaml

from analyzer.schema import (
    ProcessedMetadata,
    TechnicalContext,
    UiElement,
    UserContext,
    VisualContext,
)


def _metadata() -> ProcessedMetadata:
    return ProcessedMetadata(
        session_id="0b5e",
        timestamp="2024-05-01T10:00:00+00:00",
        processing_duration_seconds=4.25,
        media_duration_seconds=9.0,
        user_context=UserContext(
            transcript="what is 12 * 7?",
            intent_keywords=("calculate",),
            user_emotion="neutral",
            request_type="calculation",
        ),
        visual_context=VisualContext(
            frames_analyzed=2,
            ui_elements_detected=(UiElement("button", "= button", "clickable", 0.9),),
            color_palette=("#ffffff", "#000000"),
            layout_analysis="web_application",
            text_content=("Calculator",),
        ),
        technical_context=TechnicalContext(
            suggested_focus=("calculation",),
            detected_expressions=("12 * 7",),
        ),
    )


def test_to_dict_uses_snake_case_shape() -> None:
    data = _metadata().to_dict()

    assert list(data) == [
        "session_id",
        "timestamp",
        "processing_duration_seconds",
        "media_duration_seconds",
        "user_context",
        "visual_context",
        "technical_context",
    ]
    assert data["visual_context"]["ui_elements_detected"][0] == {
        "type": "button", "text": "= button", "state": "clickable", "timestamp": 0.9,
    }
    assert data["technical_context"]["detected_framework"] == "unknown"
    json.dumps(data)


def test_save_and_load_json_and_yaml(tmp_path: Path) -> None:
    metadata = _metadata()

    json_path = metadata.save(tmp_path / "out" / "meta.json")
    yaml_path = metadata.save(tmp_path / "out" / "meta.yaml")

    assert ProcessedMetadata.load(json_path) == metadata
    assert ProcessedMetadata.load(yaml_path) == metadata
    assert yaml.safe_load(yaml_path.read_text())["user_context"]["request_type"] == "calculation"


def test_from_dict_fills_defaults() -> None:
    metadata = ProcessedMetadata.from_dict({"session_id": "x", "timestamp": "t"})

    assert metadata.user_context.transcript == ""
    assert metadata.user_context.user_emotion == "neutral"
    assert metadata.visual_context.frames_analyzed == 0
    assert metadata.technical_context.detected_framework == "unknown"
