import json
from dataclasses import asdict, dataclass, field
from typing import Any, Literal

LectureStatus = Literal["recording", "processing", "completed", "error"]
Severity = Literal["low", "medium", "high"]

UNTITLED_LECTURE = "Untitled Lecture"
NO_SPEECH_PREFIX = "[No speech detected"
NO_SPEECH_PLACEHOLDER = (
    "[No speech detected in this recording. The audio may be silent or too short.]"
)


@dataclass(frozen=True)
class Keypoint:
    timestamp: int  # seconds from recording start
    note: str

    @classmethod
    def from_dict(cls, data: dict) -> "Keypoint":
        return cls(timestamp=int(data["timestamp"]), note=str(data["note"]))


@dataclass
class Utterance:
    speaker: str
    text: str
    start_ms: int
    end_ms: int


@dataclass
class TranscriptResult:
    id: str
    text: str
    utterances: list[Utterance] = field(default_factory=list)
    duration_seconds: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "TranscriptResult":
        return cls(
            id=str(data.get("id", "")),
            text=data.get("text") or "",
            utterances=[Utterance(**u) for u in data.get("utterances") or []],
            duration_seconds=float(data.get("duration_seconds") or 0.0),
        )


@dataclass
class FactCheckItem:
    claim: str
    correction: str
    rationale: str
    confidence: float  # 0..1
    severity: Severity = "low"
    source_quote: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "FactCheckItem":
        return cls(**data)


@dataclass(frozen=True)
class TranscriptionJob:
    job_id: str
    uses_uploaded_file: bool
    file_id: str | None = None


@dataclass
class StatusResult:
    status: Literal["processing", "completed", "error"]
    transcript: TranscriptResult | None = None
    error: str | None = None
    error_type: str | None = None


@dataclass
class Lecture:
    id: int
    title: str
    status: LectureStatus
    audio_url: str | None = None
    job_id: str | None = None
    transcript: TranscriptResult | None = None
    user_keypoints: list[Keypoint] = field(default_factory=list)
    ai_notes: str | None = None
    final_notes: str | None = None
    notes_edited: bool = False
    fact_checks: list[FactCheckItem] | None = None
    error_message: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def has_untitled_title(self) -> bool:
        return not self.title or self.title == UNTITLED_LECTURE

    @property
    def is_completed_with_notes(self) -> bool:
        return self.status == "completed" and bool(self.final_notes)

    @classmethod
    def from_row(cls, row: Any) -> "Lecture":
        """Build a Lecture from a ``lectures`` row (JSON columns decoded)."""
        transcript = _loads(row["transcript_json"])
        fact_checks = _loads(row["fact_checks_json"])
        return cls(
            id=row["id"],
            title=row["title"],
            status=row["status"],
            audio_url=row["audio_url"],
            job_id=row["job_id"],
            transcript=TranscriptResult.from_dict(transcript) if transcript else None,
            user_keypoints=[
                Keypoint.from_dict(k) for k in _loads(row["user_keypoints_json"]) or []
            ],
            ai_notes=row["ai_notes"],
            final_notes=row["final_notes"],
            notes_edited=bool(row["notes_edited"]),
            fact_checks=(
                [FactCheckItem.from_dict(f) for f in fact_checks]
                if fact_checks is not None
                else None
            ),
            error_message=row["error_message"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def to_dict(self) -> dict:
        return asdict(self)


def _loads(value: str | None) -> Any:
    return json.loads(value) if value else None
