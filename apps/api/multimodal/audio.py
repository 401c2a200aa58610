import logging
import ffmpeg
from openai import OpenAI
from typing import Any, Dict, List, Optional

from .models import TranscriptSegmentData

logger = logging.getLogger(__name__)

WHISPER_MAX_BYTES = 25 * 1024 * 1024
MAX_PROCESSABLE_BYTES = 500 * 1024 * 1024


def is_placeholder_key(api_key: Optional[str]) -> bool:
    return not api_key or "your_" in api_key or api_key == "test-key"


def extract_audio(media_path: str, output_path: str, max_seconds: Optional[int] = None) -> str:
    """
    Transcode a media file to low-bitrate mono MP3 that fits the Whisper limit.
    Returns path to audio file.
    """
    try:
        input_kwargs = {"t": int(max_seconds)} if max_seconds else {}
        (
            ffmpeg
            .input(media_path, **input_kwargs)
            .output(output_path, format='mp3', audio_bitrate='32k', ac=1, ar=16000, vn=None)
            .overwrite_output()
            .run(quiet=True)
        )
        return output_path
    except ffmpeg.Error as e:
        logger.error(f"Error extracting audio: {e.stderr.decode() if e.stderr else str(e)}")
        raise


def get_media_duration_seconds(media_path: str) -> float:
    """Probe container metadata and return duration in seconds (0 when unknown)."""
    try:
        probe = ffmpeg.probe(media_path)
        duration = float(probe.get("format", {}).get("duration", 0.0) or 0.0)
        if duration <= 0:
            for stream in probe.get("streams", []):
                duration = float(stream.get("duration", 0.0) or 0.0)
                if duration > 0:
                    break
        return max(0.0, duration)
    except Exception as e:
        logger.warning(f"Could not probe media duration for {media_path}: {e}")
        return 0.0


def _field(item: Any, name: str, default: Any = None) -> Any:
    if isinstance(item, dict):
        return item.get(name, default)
    return getattr(item, name, default)


def segments_from_payload(payload: Any) -> List[TranscriptSegmentData]:
    """Normalize a Whisper verbose_json response (object or dict) into segments."""
    rows: List[TranscriptSegmentData] = []
    for segment in _field(payload, "segments", None) or []:
        text = str(_field(segment, "text", "") or "").strip()
        if not text:
            continue
        start = float(_field(segment, "start", 0.0) or 0.0)
        end = float(_field(segment, "end", start) or start)
        avg_logprob = _field(segment, "avg_logprob", None)
        confidence = None
        if avg_logprob is not None:
            # avg_logprob is <= 0; map onto 0-1
            confidence = max(0.0, min(1.0, 1.0 + float(avg_logprob)))
        rows.append(TranscriptSegmentData(text=text, start=start, end=max(end, start), confidence=confidence))
    return rows


def transcribe_audio(audio_path: str, api_key: str) -> Dict[str, Any]:
    """
    Transcribe audio using OpenAI Whisper API.
    Returns {"text": str, "segments": [TranscriptSegmentData]}.
    """
    # Mock for testing if key is invalid
    if is_placeholder_key(api_key):
        logger.warning("Using MOCK transcription because OpenAI API Key is missing or invalid.")
        segments = [
            TranscriptSegmentData(text="Welcome to this overview of our platform.", start=0.0, end=4.0),
            TranscriptSegmentData(text="Teams cut reporting time by forty percent in the first quarter.", start=4.0, end=9.0),
            TranscriptSegmentData(text="Book a demo to see how it fits your workflow.", start=9.0, end=13.0),
        ]
        return {"text": " ".join(s.text for s in segments), "segments": segments}

    client = OpenAI(api_key=api_key)

    try:
        with open(audio_path, "rb") as audio_file:
            transcript = client.audio.transcriptions.create(
                model="whisper-1",
                file=audio_file,
                response_format="verbose_json",
                timestamp_granularities=["segment"]
            )
    except Exception as e:
        logger.error(f"Error transcribing audio: {e}")
        raise

    segments = segments_from_payload(transcript)
    text = str(_field(transcript, "text", "") or "").strip()
    if not text:
        text = " ".join(s.text for s in segments).strip()
    return {"text": text, "segments": segments}
