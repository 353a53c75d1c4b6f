from __future__ import annotations

import asyncio

from recorder.transcriber import PLACEHOLDER_TRANSCRIPT, AudioTranscriber, Transcript

from conftest import FakeDecoder, FakeProvider, provider_failure


def test_transcribes_extracted_audio() -> None:
    provider = FakeProvider(transcript="what is 12 * 7?")
    decoder = FakeDecoder(audio=b"wav-bytes")

    transcript = asyncio.run(AudioTranscriber(provider).transcribe(decoder))

    assert transcript == Transcript(text="what is 12 * 7?", available=True, source="openai")
    assert transcript.spoken_text == "what is 12 * 7?"
    assert provider.audio == [b"wav-bytes"]


def test_provider_without_speech_to_text_gives_placeholder() -> None:
    provider = FakeProvider(supports_transcription=False, provider="anthropic")

    transcript = asyncio.run(AudioTranscriber(provider).transcribe(FakeDecoder()))

    assert transcript.text == PLACEHOLDER_TRANSCRIPT
    assert transcript.available is False
    assert transcript.spoken_text == ""
    assert provider.audio == []


def test_missing_provider_gives_placeholder() -> None:
    transcript = asyncio.run(AudioTranscriber(None).transcribe(FakeDecoder()))

    assert transcript.text == PLACEHOLDER_TRANSCRIPT


def test_audio_extraction_failure_gives_placeholder() -> None:
    provider = FakeProvider(transcript="never used")

    transcript = asyncio.run(AudioTranscriber(provider).transcribe(FakeDecoder(audio=None)))

    assert transcript.available is False
    assert transcript.source == "audio extraction failed"
    assert provider.audio == []


def test_remote_failure_gives_placeholder() -> None:
    provider = FakeProvider(transcript=provider_failure("quota exceeded"))

    transcript = asyncio.run(AudioTranscriber(provider).transcribe(FakeDecoder()))

    assert transcript.text == PLACEHOLDER_TRANSCRIPT
    assert transcript.source == "transcription failed"


def test_transcript_to_dict() -> None:
    assert Transcript.placeholder("no audio").to_dict() == {
        "text": PLACEHOLDER_TRANSCRIPT,
        "available": False,
        "source": "no audio",
    }
