"""
Video/audio analysis: transcription plus a structured LLM read of the transcript.
"""

import json
import logging
import os
from typing import Any, Dict, Optional

from .audio import (
    MAX_PROCESSABLE_BYTES,
    WHISPER_MAX_BYTES,
    extract_audio,
    get_media_duration_seconds,
    transcribe_audio,
)
from .llm import DEFAULT_MODEL, get_openai_client
from .models import MediaAnalysis, MediaSnippet

logger = logging.getLogger(__name__)

SUPPORTED_VIDEO_TYPES = {
    "video/mp4",
    "video/mpeg",
    "video/webm",
    "video/quicktime",
    "video/x-msvideo",
    "video/x-m4v",
    "video/3gpp",
    "video/x-matroska",
}
SUPPORTED_AUDIO_TYPES = {
    "audio/mpeg",
    "audio/mp4",
    "audio/wav",
    "audio/x-wav",
    "audio/webm",
    "audio/ogg",
    "audio/flac",
    "audio/x-flac",
    "audio/aac",
}
# Formats Whisper accepts without transcoding.
WHISPER_NATIVE_EXTENSIONS = {"mp3", "mp4", "mpeg", "mpga", "m4a", "wav", "webm"}

MAX_TRANSCRIPT_CHARS = 80000
WORDS_PER_MINUTE = 150

CONTENT_TYPES = ("webinar", "demo", "testimonial", "tutorial", "interview", "presentation", "podcast", "other")


def is_media_type(mime_type: Optional[str]) -> bool:
    mime = (mime_type or "").lower()
    return mime.startswith("video/") or mime.startswith("audio/")


def is_supported_media_type(mime_type: Optional[str]) -> bool:
    mime = (mime_type or "").lower()
    return mime in SUPPORTED_VIDEO_TYPES or mime in SUPPORTED_AUDIO_TYPES or is_media_type(mime)


def estimate_duration_minutes(transcript: str) -> float:
    words = len((transcript or "").split())
    return round(words / WORDS_PER_MINUTE, 1)


def prepare_audio(
    media_path: str,
    mime_type: str,
    work_dir: str,
    max_seconds: Optional[int] = None,
) -> str:
    """Return a path Whisper can take directly, transcoding when needed."""
    size = os.path.getsize(media_path)
    if size > MAX_PROCESSABLE_BYTES:
        raise ValueError(
            f"File is too large to process ({size // (1024 * 1024)}MB). "
            f"Maximum supported size is {MAX_PROCESSABLE_BYTES // (1024 * 1024)}MB."
        )

    ext = os.path.splitext(media_path)[1].lstrip(".").lower()
    is_audio = (mime_type or "").lower().startswith("audio/")
    if is_audio and size <= WHISPER_MAX_BYTES and ext in WHISPER_NATIVE_EXTENSIONS and not max_seconds:
        return media_path

    audio_path = os.path.join(work_dir, "audio.mp3")
    extract_audio(media_path, audio_path, max_seconds=max_seconds)
    if os.path.getsize(audio_path) > WHISPER_MAX_BYTES:
        raise ValueError(
            "Extracted audio exceeds the 25MB transcription limit. "
            "Try transcribing only the first 10 minutes."
        )
    return audio_path


def transcribe_media_file(
    media_path: str,
    mime_type: str,
    api_key: str,
    work_dir: str,
    max_seconds: Optional[int] = None,
) -> Dict[str, Any]:
    """Transcribe a local audio/video file. Returns {"text", "segments"}."""
    if not is_supported_media_type(mime_type):
        raise ValueError(f"Unsupported media type: {mime_type}")
    audio_path = prepare_audio(media_path, mime_type, work_dir, max_seconds=max_seconds)
    result = transcribe_audio(audio_path, api_key)
    if not result.get("text"):
        raise ValueError("Transcription returned no text.")
    return result


def analyze_transcript(
    transcript: str,
    file_name: str,
    api_key: str,
    model: str = DEFAULT_MODEL,
) -> MediaAnalysis:
    """Ask the LLM for a structured read of a transcript."""
    estimated_minutes = estimate_duration_minutes(transcript)
    client = get_openai_client(api_key)
    if client is None:
        logger.warning("Using MOCK media analysis.")
        first_sentence = transcript.split(".")[0].strip()
        return MediaAnalysis(
            content_type="other",
            transcript=transcript,
            summary=first_sentence[:300] or "Transcript available.",
            topics=[],
            estimated_duration_minutes=estimated_minutes,
        )

    truncated = transcript[:MAX_TRANSCRIPT_CHARS]
    system_prompt = f"""
    You analyze transcripts of B2B marketing videos and recordings.
    Return a strict JSON object with keys:
    "content_type": one of {", ".join(CONTENT_TYPES)},
    "summary": 2-3 sentence summary,
    "speakers": list of speaker names or roles,
    "snippets": up to 10 objects {{"type": "QUOTE|STATISTIC|KEY_POINT|CALL_TO_ACTION", "content": str, "timestamp": str|null, "speaker": str|null}},
    "topics": up to 8 short topics,
    "pain_points_mentioned": customer pain points discussed,
    "suggested_asset_type": short label,
    "audio_quality_score": 1-100 based on transcript clarity
    """

    response = client.chat.completions.create(
        model=model,
        messages=[
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": f"File: {file_name}\n\nTranscript:\n{truncated}"},
        ],
        response_format={"type": "json_object"},
        temperature=0.3,
        max_tokens=2000,
    )
    payload = json.loads(response.choices[0].message.content or "{}")
    snippets = []
    for row in payload.get("snippets") or []:
        if isinstance(row, dict) and str(row.get("content") or "").strip():
            snippets.append(MediaSnippet(
                type=str(row.get("type") or "KEY_POINT"),
                content=str(row["content"]).strip(),
                timestamp=row.get("timestamp"),
                speaker=row.get("speaker"),
            ))
    content_type = str(payload.get("content_type") or "other").lower()
    quality = payload.get("audio_quality_score")
    return MediaAnalysis(
        content_type=content_type if content_type in CONTENT_TYPES else "other",
        transcript=transcript,
        summary=str(payload.get("summary") or ""),
        speakers=[str(s) for s in payload.get("speakers") or []],
        snippets=snippets[:10],
        topics=[str(t) for t in payload.get("topics") or []][:8],
        pain_points_mentioned=[str(p) for p in payload.get("pain_points_mentioned") or []],
        suggested_asset_type=payload.get("suggested_asset_type"),
        audio_quality_score=max(1, min(int(quality), 100)) if isinstance(quality, (int, float)) else None,
        estimated_duration_minutes=estimated_minutes,
    )


def analyze_media_file(
    media_path: str,
    file_name: str,
    mime_type: str,
    api_key: str,
    work_dir: str,
    max_seconds: Optional[int] = None,
    model: str = DEFAULT_MODEL,
) -> MediaAnalysis:
    """Transcribe then analyze a local media file."""
    transcription = transcribe_media_file(media_path, mime_type, api_key, work_dir, max_seconds=max_seconds)
    analysis = analyze_transcript(transcription["text"], file_name, api_key, model=model)
    analysis.segments = list(transcription.get("segments") or [])
    duration = get_media_duration_seconds(media_path)
    if duration > 0:
        analysis.estimated_duration_minutes = round(duration / 60, 1)
    return analysis


def media_analysis_to_text(analysis: MediaAnalysis) -> str:
    """Render a media analysis as the plain text stored on the asset."""
    parts = [f"[VIDEO TRANSCRIPT - {analysis.content_type}]", ""]
    if analysis.summary:
        parts += ["SUMMARY:", analysis.summary, ""]
    if analysis.topics:
        parts += ["TOPICS: " + ", ".join(analysis.topics), ""]
    if analysis.pain_points_mentioned:
        parts += ["PAIN POINTS DISCUSSED: " + ", ".join(analysis.pain_points_mentioned), ""]
    parts += ["--- FULL TRANSCRIPT ---", analysis.transcript]
    if analysis.snippets:
        parts += ["", "--- KEY SNIPPETS ---"]
        for snippet in analysis.snippets:
            prefix = f"[{snippet.type}]"
            if snippet.timestamp:
                prefix += f" ({snippet.timestamp})"
            if snippet.speaker:
                prefix += f" {snippet.speaker}:"
            parts.append(f"{prefix} {snippet.content}")
    return "\n".join(parts).strip()
