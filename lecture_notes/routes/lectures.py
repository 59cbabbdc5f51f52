import asyncio
import logging
from typing import Any, Literal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from lecture_notes.dependencies import (
    get_pipeline,
    get_status_service,
    get_store,
    get_transcription_service,
)
from lecture_notes.models import Keypoint
from lecture_notes.services.lectures import LectureStore
from lecture_notes.services.pipeline import LecturePipeline
from lecture_notes.services.polling import TranscriptionPoller
from lecture_notes.services.status import StatusService
from lecture_notes.services.transcription import TranscriptionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["lectures"])

# In-memory registry of server-side transcription runs.
# lecture_id -> {"task": asyncio.Task, "poller": TranscriptionPoller, "job_id": str}
_active: dict[int, dict[str, Any]] = {}


# ------------------------------------------------------------------
# Request bodies
# ------------------------------------------------------------------


class KeypointIn(BaseModel):
    timestamp: int = Field(ge=0)
    note: str = Field(min_length=1)


class LectureCreate(BaseModel):
    title: str | None = None
    audio_url: str | None = None
    user_keypoints: list[KeypointIn] = []


class CompleteRequest(BaseModel):
    transcript_text: str | None = None


class RegenerateRequest(BaseModel):
    mode: Literal["draft", "replace"] | None = None


class NotesUpdate(BaseModel):
    notes: str | None = None


class ProcessRequest(BaseModel):
    prefer_upload: bool = True


# ------------------------------------------------------------------
# Lecture records
# ------------------------------------------------------------------


@router.post("/lectures")
async def create_lecture(body: LectureCreate, store: LectureStore = Depends(get_store)) -> dict:
    lecture = await store.create(
        title=body.title,
        audio_url=body.audio_url,
        user_keypoints=[Keypoint(k.timestamp, k.note) for k in body.user_keypoints],
    )
    return lecture.to_dict()


@router.get("/lectures/{lecture_id}")
async def get_lecture(lecture_id: int, store: LectureStore = Depends(get_store)) -> dict:
    lecture = await store.get(lecture_id)
    return lecture.to_dict()


# ------------------------------------------------------------------
# Pipeline entry points
# ------------------------------------------------------------------


@router.post("/lectures/{lecture_id}/complete")
async def complete_lecture(
    lecture_id: int,
    body: CompleteRequest,
    pipeline: LecturePipeline = Depends(get_pipeline),
) -> dict:
    """Persist the transcript, synthesize notes and fact-check them.

    A lecture that is already completed with notes is left alone and the
    response carries ``skipped: true``.
    """
    result = await pipeline.complete_and_synthesize(lecture_id, body.transcript_text)
    return {"lecture_id": result.lecture_id, "title": result.title, "skipped": result.skipped}


@router.post("/lectures/{lecture_id}/regenerate-notes")
async def regenerate_notes(
    lecture_id: int,
    body: RegenerateRequest,
    pipeline: LecturePipeline = Depends(get_pipeline),
) -> dict:
    result = await pipeline.regenerate_notes(lecture_id, body.mode)
    return {"lecture_id": result.lecture_id, "mode": result.mode}


@router.put("/lectures/{lecture_id}/notes")
async def update_notes(
    lecture_id: int,
    body: NotesUpdate,
    pipeline: LecturePipeline = Depends(get_pipeline),
) -> dict:
    """Save user-edited notes. Existing fact checks no longer apply and are cleared."""
    if not body.notes or not body.notes.strip():
        raise HTTPException(status_code=400, detail="Notes are required")
    await pipeline.update_notes(lecture_id, body.notes)
    return {"lecture_id": lecture_id, "notes_edited": True}


@router.post("/lectures/{lecture_id}/process", status_code=202)
async def process_lecture(
    lecture_id: int,
    body: ProcessRequest,
    store: LectureStore = Depends(get_store),
    transcription: TranscriptionService = Depends(get_transcription_service),
    status: StatusService = Depends(get_status_service),
    pipeline: LecturePipeline = Depends(get_pipeline),
) -> dict:
    """Start transcription and run polling + synthesis in the background."""
    entry = _active.get(lecture_id)
    if entry is not None and not entry["task"].done():
        raise HTTPException(
            status_code=409, detail="Transcription already running for this lecture."
        )

    lecture = await store.get(lecture_id)
    if not lecture.audio_url:
        raise HTTPException(status_code=400, detail="No audio file found")

    job = await transcription.start(
        lecture.audio_url, lecture_id=lecture_id, prefer_upload=body.prefer_upload
    )

    poller = TranscriptionPoller(status)
    task = asyncio.create_task(pipeline.await_and_complete(lecture_id, job.job_id, poller))
    _active[lecture_id] = {"task": task, "poller": poller, "job_id": job.job_id}
    task.add_done_callback(lambda t: _on_run_finished(lecture_id, t))

    return {"lecture_id": lecture_id, "job_id": job.job_id, "status": "processing"}


# ==================================================================
# Background run bookkeeping
# ==================================================================


def _on_run_finished(lecture_id: int, task: asyncio.Task) -> None:
    entry = _active.get(lecture_id)
    if entry is not None and entry["task"] is task:
        del _active[lecture_id]
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Background processing of lecture %s failed: %s", lecture_id, exc)


async def cancel_active_runs() -> None:
    """Stop every background poll loop and wait for the tasks to settle."""
    entries = list(_active.values())
    for entry in entries:
        entry["poller"].cancel()
    tasks = [entry["task"] for entry in entries]
    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)
