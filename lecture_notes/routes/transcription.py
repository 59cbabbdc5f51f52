from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from lecture_notes.dependencies import (
    get_pipeline,
    get_status_service,
    get_transcription_service,
)
from lecture_notes.services.pipeline import LecturePipeline
from lecture_notes.services.status import StatusService
from lecture_notes.services.transcription import TranscriptionService

router = APIRouter(prefix="/api", tags=["transcription"])


class StartTranscriptionRequest(BaseModel):
    audio_url: str | None = None
    lecture_id: int | None = None
    prefer_upload: bool = True


@router.post("/transcriptions")
async def start_transcription(
    body: StartTranscriptionRequest,
    service: TranscriptionService = Depends(get_transcription_service),
) -> dict:
    """Validate the audio URL and submit a transcription job."""
    if not body.audio_url:
        raise HTTPException(status_code=400, detail="audio_url is required")

    job = await service.start(
        body.audio_url,
        lecture_id=body.lecture_id,
        prefer_upload=body.prefer_upload,
    )
    return {
        "job_id": job.job_id,
        "used_file_upload": job.uses_uploaded_file,
        "file_id": job.file_id,
    }


@router.get("/transcriptions/{job_id}")
async def get_transcription_status(
    job_id: str,
    status: StatusService = Depends(get_status_service),
    pipeline: LecturePipeline = Depends(get_pipeline),
) -> dict:
    """Single status check. Clients poll this every couple of seconds."""
    result = await status.check(job_id)

    if result.status == "error":
        await pipeline.record_transcription_error(job_id, result.error or "Transcription failed")
        return {"status": "error", "error": result.error, "error_type": result.error_type}

    if result.status == "completed" and result.transcript is not None:
        return {
            "status": "completed",
            "transcript": result.transcript.text,
            "duration_seconds": result.transcript.duration_seconds,
        }

    return {"status": "processing"}
