import json
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from multimodal.audio import segments_from_payload, transcribe_audio
from multimodal.media import (
    analyze_media_file,
    analyze_transcript,
    estimate_duration_minutes,
    is_media_type,
    media_analysis_to_text,
    prepare_audio,
    transcribe_media_file,
)
from multimodal.models import MediaAnalysis, MediaSnippet


def test_media_type_detection():
    assert is_media_type("video/mp4")
    assert is_media_type("AUDIO/MPEG")
    assert not is_media_type("application/pdf")
    assert not is_media_type(None)


def test_duration_estimate_uses_speaking_rate():
    assert estimate_duration_minutes("word " * 300) == 2.0


def test_small_native_audio_is_sent_as_is(tmp_path):
    source = tmp_path / "clip.mp3"
    source.write_bytes(b"0" * 1024)
    with patch("multimodal.media.extract_audio") as extract:
        assert prepare_audio(str(source), "audio/mpeg", str(tmp_path)) == str(source)
    extract.assert_not_called()


def test_video_is_transcoded_with_time_limit(tmp_path):
    source = tmp_path / "clip.mp4"
    source.write_bytes(b"0" * 1024)

    def _fake_extract(media_path, output_path, max_seconds=None):
        with open(output_path, "wb") as handle:
            handle.write(b"1" * 512)
        return output_path

    with patch("multimodal.media.extract_audio", side_effect=_fake_extract) as extract:
        audio_path = prepare_audio(str(source), "video/mp4", str(tmp_path), max_seconds=600)

    assert audio_path.endswith("audio.mp3")
    assert extract.call_args.kwargs["max_seconds"] == 600


def test_placeholder_key_returns_mock_transcription():
    result = transcribe_audio("/does/not/matter.mp3", "test-key")
    assert result["text"]
    assert [s.start for s in result["segments"]] == [0.0, 4.0, 9.0]


def test_segments_from_payload_maps_logprob_to_confidence():
    payload = {
        "segments": [
            {"text": " Hello ", "start": 0.0, "end": 1.5, "avg_logprob": -0.25},
            {"text": "", "start": 1.5, "end": 2.0},
            {"text": "World", "start": 2.0, "end": 1.0},
        ]
    }
    segments = segments_from_payload(payload)
    assert [s.text for s in segments] == ["Hello", "World"]
    assert segments[0].confidence == pytest.approx(0.75)
    assert segments[1].end == 2.0


def test_unsupported_media_type_is_rejected(tmp_path):
    with pytest.raises(ValueError, match="Unsupported media type"):
        transcribe_media_file(str(tmp_path / "x.pdf"), "application/pdf", "test-key", str(tmp_path))


def test_analyze_media_file_without_api_key(tmp_path):
    source = tmp_path / "clip.mp3"
    source.write_bytes(b"0" * 1024)
    with patch("multimodal.media.get_media_duration_seconds", return_value=90.0):
        analysis = analyze_media_file(str(source), "clip.mp3", "audio/mpeg", "test-key", str(tmp_path))

    assert analysis.transcript.startswith("Welcome to this overview")
    assert len(analysis.segments) == 3
    assert analysis.estimated_duration_minutes == 1.5


def test_transcript_mock_analysis_summarizes_first_sentence():
    analysis = analyze_transcript("First point. Second point.", "clip.mp4", "")
    assert analysis.summary == "First point"


def test_transcript_analysis_uses_requested_model():
    client = MagicMock()
    content = json.dumps({"content_type": "webinar", "summary": "Pipeline review.", "topics": ["Forecasting"]})
    client.chat.completions.create.return_value = SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))]
    )

    with patch("multimodal.media.get_openai_client", return_value=client):
        analysis = analyze_transcript("We review the pipeline.", "webinar.mp4", "sk-live", model="gpt-4o-2024-08-06")

    assert client.chat.completions.create.call_args.kwargs["model"] == "gpt-4o-2024-08-06"
    assert analysis.content_type == "webinar"
    assert analysis.topics == ["Forecasting"]


def test_media_analysis_renders_as_text():
    analysis = MediaAnalysis(
        content_type="demo",
        transcript="Full words here.",
        summary="Short demo.",
        topics=["Reporting"],
        snippets=[MediaSnippet(type="QUOTE", content="It just works", timestamp="00:12", speaker="Ana")],
    )
    text = media_analysis_to_text(analysis)
    assert text.startswith("[VIDEO TRANSCRIPT - demo]")
    assert "TOPICS: Reporting" in text
    assert "--- FULL TRANSCRIPT ---\nFull words here." in text
    assert "[QUOTE] (00:12) Ana: It just works" in text
