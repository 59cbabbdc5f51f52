import logging

from lecture_notes.clients import SonioxClient
from lecture_notes.config import settings
from lecture_notes.errors import JobNotFound, ProviderError, ProviderNotConfigured
from lecture_notes.models import NO_SPEECH_PLACEHOLDER, StatusResult, TranscriptResult, Utterance
from lecture_notes.services.translation import Translator, needs_translation

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Token helpers (Soniox transcript objects)
# ---------------------------------------------------------------------------


def _original_tokens(tokens: list[dict]) -> list[dict]:
    return [t for t in tokens if t.get("translation_status") != "translation"]


def find_translation(payload: dict, target_language: str) -> str | None:
    """Translated text for *target_language* in a status or transcript payload."""
    for entry in payload.get("translations") or []:
        if not isinstance(entry, dict):
            continue
        if entry.get("target_language") == target_language and (entry.get("text") or "").strip():
            return entry["text"]

    translated = [
        t.get("text", "")
        for t in payload.get("tokens") or []
        if t.get("translation_status") == "translation" and t.get("language") == target_language
    ]
    text = "".join(translated).strip()
    return text or None


def render_tokens(tokens: list[dict]) -> str:
    """Readable text with ``Speaker N:`` and ``[lang]`` tags from original tokens."""
    parts: list[str] = []
    current_speaker = None
    current_language = None
    for token in _original_tokens(tokens):
        text = token.get("text", "")
        speaker = token.get("speaker")
        language = token.get("language")

        if speaker is not None and speaker != current_speaker:
            if current_speaker is not None:
                parts.append("\n\n")
            current_speaker = speaker
            current_language = None
            parts.append(f"Speaker {speaker}:")

        if language is not None and language != current_language:
            current_language = language
            parts.append(f"\n[{language}] ")
            text = text.lstrip()

        parts.append(text)
    return "".join(parts).strip()


def tokens_to_utterances(tokens: list[dict]) -> list[Utterance]:
    """Group consecutive same-speaker original tokens into utterances."""
    utterances: list[Utterance] = []
    for token in _original_tokens(tokens):
        speaker = str(token.get("speaker", "1"))
        text = token.get("text", "")
        start = int(token.get("start_ms") or 0)
        end = int(token.get("end_ms") or start)
        if utterances and utterances[-1].speaker == speaker:
            last = utterances[-1]
            last.text += text
            last.end_ms = max(last.end_ms, end)
        else:
            utterances.append(Utterance(speaker=speaker, text=text, start_ms=start, end_ms=end))

    for u in utterances:
        u.text = u.text.strip()
    return [u for u in utterances if u.text]


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class StatusService:
    """Single-shot status query for a transcription job.

    Holds no timer state; the polling cadence belongs to the caller
    (see ``lecture_notes.services.polling``).
    """

    def __init__(
        self,
        soniox: SonioxClient,
        translator: Translator | None = None,
        *,
        target_language: str | None = None,
    ) -> None:
        self.soniox = soniox
        self.translator = translator or Translator()
        self.target_language = target_language or settings.target_language

    async def check(self, job_id: str) -> StatusResult:
        if not self.soniox.configured:
            raise ProviderNotConfigured("SONIOX_API_KEY is not configured")

        try:
            data = await self.soniox.get_transcription(job_id)
        except ProviderError as exc:
            if exc.status_code == 404:
                raise JobNotFound(job_id) from exc
            raise ProviderError(
                f"Soniox API error: {exc.message}", status_code=exc.status_code
            ) from exc

        state = str(data.get("status") or "").lower()
        if state == "error":
            message = data.get("error_message") or data.get("error") or data.get("message")
            error_type = data.get("error_type") or "unknown_error"
            logger.error("Soniox transcription %s failed: %s (%s)", job_id, message, error_type)
            return StatusResult(
                status="error", error=message or "Transcription failed", error_type=error_type
            )

        if state != "completed":
            return StatusResult(status="processing")

        transcript = await self.resolve_transcript(job_id, data)
        return StatusResult(status="completed", transcript=transcript)

    async def resolve_transcript(self, job_id: str, status_data: dict) -> TranscriptResult:
        """Best available transcript text for a completed job.

        Order: translation in the status payload, translation in the
        transcript object, raw transcript text, the no-speech placeholder.
        Non-ASCII results then go through a best-effort LLM translation.
        """
        duration = float(status_data.get("audio_duration_ms") or 0) / 1000
        utterances: list[Utterance] = []

        text = find_translation(status_data, self.target_language)
        if text is None:
            try:
                transcript_data = await self.soniox.get_transcript(job_id)
            except ProviderError as exc:
                raise ProviderError(
                    f"Failed to fetch transcript: {exc.message}", status_code=exc.status_code
                ) from exc

            text = find_translation(transcript_data, self.target_language)
            if text is None:
                tokens = transcript_data.get("tokens") or []
                text = (transcript_data.get("text") or "").strip() or render_tokens(tokens)
                utterances = tokens_to_utterances(tokens)

        if not text or not text.strip():
            return TranscriptResult(
                id=job_id, text=NO_SPEECH_PLACEHOLDER, duration_seconds=duration
            )

        if needs_translation(text):
            logger.info("Transcript %s contains non-ASCII text; translating", job_id)
            translated = await self.translator.translate(text)
            if translated != text:
                text = translated
                # speaker segments are in the source language
                utterances = []

        return TranscriptResult(
            id=job_id, text=text, utterances=utterances, duration_seconds=duration
        )
