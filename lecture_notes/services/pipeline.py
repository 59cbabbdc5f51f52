import logging
import re
from dataclasses import dataclass
from typing import Literal

from lecture_notes.errors import (
    AllModelsFailed,
    JobNotFound,
    PipelineError,
    PollingTimeout,
    TranscriptionFailed,
    TranscriptUnavailable,
)
from lecture_notes.models import NO_SPEECH_PLACEHOLDER, TranscriptResult, Utterance
from lecture_notes.services.fact_check import FactCheckService
from lecture_notes.services.lectures import LectureStore
from lecture_notes.services.notes import NotesService, extract_title
from lecture_notes.services.polling import TranscriptionPoller

logger = logging.getLogger(__name__)

RegenerateMode = Literal["draft", "replace"]

_QUOTA_PATTERN = re.compile(r"429|quota|rate.?limit|billing|exceeded", re.IGNORECASE)


def is_quota_error(message: str | None) -> bool:
    return bool(message and _QUOTA_PATTERN.search(message))


def quota_fallback_notes(transcript_text: str) -> str:
    return (
        "## Transcript Available\n\n"
        "**Note:** AI note generation is temporarily unavailable due to API quota limits.\n\n"
        "The transcript has been saved below:\n\n"
        f"{transcript_text or 'Transcript text not available'}"
    )


def error_notes(message: str) -> str:
    return (
        f"## Error\n\n{message}\n\n"
        "Please try again later or check your API service quotas."
    )


@dataclass
class CompletionResult:
    lecture_id: int
    title: str
    skipped: bool = False


@dataclass
class RegenerationResult:
    lecture_id: int
    mode: RegenerateMode


class LecturePipeline:
    """Completion, regeneration and user-edit paths over a lecture record.

    There is no transaction around read-then-write here.  The idempotency
    guard on completion is a check-then-act, backed by a conditional final
    UPDATE; duplicate completions with the same transcript produce compatible
    results, so the remaining window is acceptable for single-user editing.
    """

    def __init__(
        self,
        store: LectureStore | None = None,
        notes: NotesService | None = None,
        fact_checker: FactCheckService | None = None,
    ) -> None:
        self.store = store or LectureStore()
        self.notes = notes or NotesService()
        self.fact_checker = fact_checker or FactCheckService()

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    async def complete_and_synthesize(
        self,
        lecture_id: int,
        transcript_text: str | None,
        *,
        utterances: list[Utterance] | None = None,
        duration_seconds: float = 0.0,
    ) -> CompletionResult:
        lecture = await self.store.get(lecture_id)
        if lecture.is_completed_with_notes:
            logger.info("Lecture %s already completed with notes; skipping", lecture_id)
            return CompletionResult(lecture_id, lecture.title, skipped=True)

        text = transcript_text if transcript_text and transcript_text.strip() else NO_SPEECH_PLACEHOLDER
        transcript = TranscriptResult(
            id=lecture.job_id or str(lecture_id),
            text=text,
            utterances=list(utterances or []),
            duration_seconds=duration_seconds,
        )
        await self.store.update(lecture_id, unless_completed_with_notes=True, transcript=transcript)

        logger.info("Generating notes for lecture %s", lecture_id)
        try:
            notes = await self.notes.synthesize(transcript, lecture.user_keypoints)
        except AllModelsFailed as exc:
            if not is_quota_error(exc.last_error):
                await self._record_failure(lecture_id, exc.message)
                raise
            logger.warning("LLM quota exhausted for lecture %s; saving transcript only", lecture_id)
            notes = quota_fallback_notes(text)
        except PipelineError as exc:
            await self._record_failure(lecture_id, exc.message)
            raise

        fact_checks = await self.fact_checker.fact_check(notes, text)

        fields: dict = {
            "final_notes": notes,
            "ai_notes": notes,
            "notes_edited": False,
            "status": "completed",
            "fact_checks": fact_checks,
            "error_message": None,
        }
        new_title = extract_title(notes) if lecture.has_untitled_title else None
        if new_title:
            fields["title"] = new_title
            logger.info("Extracted title for lecture %s: %s", lecture_id, new_title)

        written = await self.store.update(lecture_id, unless_completed_with_notes=True, **fields)
        if not written:
            # Another completion won the race between our check and our write.
            current = await self.store.get(lecture_id)
            return CompletionResult(lecture_id, current.title, skipped=True)

        logger.info("Lecture %s processing complete", lecture_id)
        return CompletionResult(lecture_id, new_title or lecture.title)

    async def _record_failure(self, lecture_id: int, message: str) -> None:
        written = await self.store.update(
            lecture_id,
            unless_completed_with_notes=True,
            status="error",
            error_message=message,
            final_notes=error_notes(message),
        )
        if not written:
            logger.warning(
                "Lecture %s was completed concurrently; not recording failure: %s",
                lecture_id,
                message,
            )

    # ------------------------------------------------------------------
    # Background transcription
    # ------------------------------------------------------------------

    async def await_and_complete(
        self, lecture_id: int, job_id: str, poller: TranscriptionPoller
    ) -> CompletionResult | None:
        """Poll *job_id* to completion, then synthesize. None when cancelled."""
        try:
            transcript = await poller.run(job_id)
        except (TranscriptionFailed, PollingTimeout, JobNotFound) as exc:
            await self.store.update(
                lecture_id,
                unless_completed_with_notes=True,
                status="error",
                error_message=exc.message,
            )
            raise
        if transcript is None:
            return None
        return await self.complete_and_synthesize(
            lecture_id,
            transcript.text,
            utterances=transcript.utterances,
            duration_seconds=transcript.duration_seconds,
        )

    async def record_transcription_error(self, job_id: str, message: str) -> None:
        lecture = await self.store.find_by_job_id(job_id)
        if lecture is None:
            return
        updated = await self.store.update(
            lecture.id, unless_completed_with_notes=True, status="error", error_message=message
        )
        if not updated:
            return
        logger.info("Lecture %s marked as error: %s", lecture.id, message)

    # ------------------------------------------------------------------
    # Regeneration
    # ------------------------------------------------------------------

    async def regenerate_notes(
        self, lecture_id: int, mode: RegenerateMode | None = None
    ) -> RegenerationResult:
        """Re-run synthesis on the stored transcript.

        ``draft`` only refreshes ``ai_notes``.  ``replace`` overwrites the
        user-visible notes, re-runs the fact check and resets the edited flag.
        Without an explicit mode, edited notes default to ``draft``.
        """
        lecture = await self.store.get(lecture_id)
        if lecture.transcript is None:
            raise TranscriptUnavailable("Transcript not available for regeneration")

        notes = await self.notes.synthesize(lecture.transcript, lecture.user_keypoints)
        resolved: RegenerateMode = mode or ("draft" if lecture.notes_edited else "replace")

        if resolved == "draft":
            await self.store.update(lecture_id, ai_notes=notes)
            logger.info("Saved regenerated draft notes for lecture %s", lecture_id)
            return RegenerationResult(lecture_id, "draft")

        fact_checks = await self.fact_checker.fact_check(notes, lecture.transcript.text)
        fields: dict = {
            "final_notes": notes,
            "ai_notes": notes,
            "notes_edited": False,
            "status": "completed",
            "fact_checks": fact_checks,
            "error_message": None,
        }
        new_title = extract_title(notes) if lecture.has_untitled_title else None
        if new_title:
            fields["title"] = new_title
        await self.store.update(lecture_id, **fields)
        logger.info("Replaced notes for lecture %s", lecture_id)
        return RegenerationResult(lecture_id, "replace")

    # ------------------------------------------------------------------
    # User edits
    # ------------------------------------------------------------------

    async def update_notes(self, lecture_id: int, notes: str) -> None:
        """Store user-edited notes; stale fact checks are cleared."""
        updated = await self.store.update(
            lecture_id,
            final_notes=notes.strip(),
            notes_edited=True,
            fact_checks=None,
        )
        if not updated:
            await self.store.get(lecture_id)  # raises LectureNotFound
