import logging

import httpx

from lecture_notes.clients import SonioxClient
from lecture_notes.config import settings
from lecture_notes.errors import JobSubmissionFailed, ProviderError, ProviderNotConfigured
from lecture_notes.models import TranscriptionJob
from lecture_notes.services.lectures import LectureStore
from lecture_notes.services.preflight import preflight_check

logger = logging.getLogger(__name__)


def infer_audio_filename(content_type: str, audio_url: str) -> str:
    """Upload filename for the audio payload.

    Priority: mp4 MIME type, then an explicit .mp3/.wav/.m4a in the URL, then
    webm or ogg MIME types, then webm.
    """
    content_type = (content_type or "").lower()
    if "mp4" in content_type:
        return "audio.mp4"
    for ext in (".mp3", ".wav", ".m4a"):
        if ext in audio_url:
            return f"audio{ext}"
    if "webm" in content_type:
        return "audio.webm"
    if "ogg" in content_type:
        return "audio.ogg"
    return "audio.webm"


class TranscriptionService:
    """Validate an audio URL and submit a Soniox transcription job."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        soniox: SonioxClient | None = None,
        store: LectureStore | None = None,
    ) -> None:
        self.http = http
        self.soniox = soniox or SonioxClient(http)
        self.store = store or LectureStore()

    def build_config(self, *, file_id: str | None, audio_url: str) -> dict:
        config: dict = {
            "model": settings.soniox_model,
            "language_hints": list(settings.language_hints),
            "enable_language_identification": True,
            "enable_speaker_diarization": True,
        }
        if settings.target_language:
            config["translation"] = {
                "type": "one_way",
                "target_language": settings.target_language,
            }
        if file_id:
            config["file_id"] = file_id
        else:
            config["audio_url"] = audio_url
        return config

    async def upload_audio(self, audio_url: str) -> str | None:
        """Copy the audio into provider storage. Returns None on any failure."""
        try:
            resp = await self.http.get(audio_url, follow_redirects=True)
            resp.raise_for_status()
            content_type = resp.headers.get("content-type", "")
            filename = infer_audio_filename(content_type, audio_url)
            logger.info(
                "Uploading audio to Soniox (%s, %d bytes, type=%s)",
                filename,
                len(resp.content),
                content_type or "unknown",
            )
            file_id = await self.soniox.upload_file(resp.content, filename, content_type)
        except (httpx.HTTPError, ProviderError) as exc:
            logger.warning("File upload failed, falling back to audio_url: %s", exc)
            return None
        logger.info("File uploaded to Soniox, file_id=%s", file_id)
        return file_id

    async def start(
        self,
        audio_url: str,
        *,
        lecture_id: int | None = None,
        prefer_upload: bool = True,
    ) -> TranscriptionJob:
        if not self.soniox.configured:
            raise ProviderNotConfigured("SONIOX_API_KEY is not configured")

        await preflight_check(self.http, audio_url)

        file_id = await self.upload_audio(audio_url) if prefer_upload else None
        config = self.build_config(file_id=file_id, audio_url=audio_url)

        try:
            data = await self.soniox.create_transcription(config)
        except ProviderError as exc:
            raise JobSubmissionFailed(
                f"Soniox API error ({exc.status_code}): {exc.message}"
            ) from exc

        job_id = data.get("id") if isinstance(data, dict) else None
        if not job_id:
            raise JobSubmissionFailed("No transcription id returned from Soniox")

        job = TranscriptionJob(job_id=job_id, uses_uploaded_file=bool(file_id), file_id=file_id)
        logger.info(
            "Soniox transcription %s started via %s",
            job_id,
            "file_id" if file_id else "audio_url",
        )

        if lecture_id is not None:
            updated = await self.store.update(lecture_id, status="processing", job_id=job_id)
            if not updated:
                logger.warning("Lecture %s not found; job %s not recorded", lecture_id, job_id)
        return job
