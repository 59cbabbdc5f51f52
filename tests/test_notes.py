from __future__ import annotations

import asyncio

import pytest

from conftest import make_chain, no_sleep
from lecture_notes.errors import AllModelsFailed, NoProviderConfigured
from lecture_notes.models import Keypoint, TranscriptResult, Utterance
from lecture_notes.services.notes import (
    FORMULAS_HEADING,
    NOTES_SYSTEM_PROMPT,
    USER_NOTE_MARKER,
    NotesService,
    extract_title,
    format_keypoints,
    format_transcript,
)


def test_format_keypoints_preserves_every_entry_in_order() -> None:
    keypoints = [
        Keypoint(125, "Definition of a graph"),
        Keypoint(5, "Course logistics"),
        Keypoint(3600, "Dijkstra recap"),
    ]

    rendered = format_keypoints(keypoints)

    assert rendered.splitlines() == [
        '- At 2:05: "Definition of a graph"',
        '- At 0:05: "Course logistics"',
        '- At 60:00: "Dijkstra recap"',
    ]


def test_format_keypoints_empty_list_says_so() -> None:
    assert format_keypoints([]) == "No key points were marked during this lecture."


def test_format_transcript_uses_raw_text_without_utterances() -> None:
    transcript = TranscriptResult(id="t1", text="Today we cover graphs.")
    assert format_transcript(transcript) == "Today we cover graphs."
    assert format_transcript(TranscriptResult(id="t2", text="")) == "No transcript available."


def test_format_transcript_labels_speakers_and_timestamps() -> None:
    transcript = TranscriptResult(
        id="t1",
        text="ignored",
        utterances=[
            Utterance(speaker="A", text="Welcome back.", start_ms=0, end_ms=1500),
            Utterance(speaker="B", text="Question about BFS?", start_ms=65_000, end_ms=67_000),
        ],
    )

    assert format_transcript(transcript) == (
        "[0:00] Speaker 1 (Instructor): Welcome back.\n\n"
        "[1:05] Speaker B: Question about BFS?"
    )


@pytest.mark.parametrize(
    ("notes", "expected"),
    [
        ("## Intro to Graphs\n- vertices and edges", "Intro to Graphs"),
        ("# **Linear Algebra** Basics\n", "Linear Algebra Basics"),
        ("Some preface\n\n## `Heaps` and _Priority_ Queues\n", "Heaps and Priority Queues"),
        ("### Only an H3 heading\n", None),
        ("No heading at all, just prose.", None),
        ("## ab\n", None),
    ],
)
def test_extract_title(notes: str, expected: str | None) -> None:
    assert extract_title(notes) == expected


def test_extract_title_truncates_long_headings() -> None:
    title = extract_title("# " + "x" * 150)
    assert title == "x" * 97 + "..."
    assert len(title) == 100


def test_system_prompt_carries_formatting_rules() -> None:
    assert FORMULAS_HEADING in NOTES_SYSTEM_PROMPT
    assert USER_NOTE_MARKER in NOTES_SYSTEM_PROMPT
    assert "$$...$$" in NOTES_SYSTEM_PROMPT
    assert "None mentioned." in NOTES_SYSTEM_PROMPT
    assert r"\frac{-b \pm \sqrt{b^2 - 4ac}}{2a}" in NOTES_SYSTEM_PROMPT


def test_synthesize_returns_first_success_after_failures() -> None:
    chain, client = make_chain(
        [RuntimeError("503 unavailable"), "", "## Notes\n- ok"],
        models=("m1", "m2", "m3", "m4"),
    )
    sleeps: list[float] = []

    async def record_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    service = NotesService([chain], backoff_seconds=2.0, sleep=record_sleep)
    notes = asyncio.run(
        service.synthesize(TranscriptResult(id="t", text="hello"), [Keypoint(1, "hi")])
    )

    assert notes == "## Notes\n- ok"
    assert client.models_called == ["m1", "m2", "m3"]
    assert sleeps == [2.0, 2.0]


def test_synthesize_prompt_includes_keypoints_and_transcript() -> None:
    chain, client = make_chain(["## Notes"])
    service = NotesService([chain], sleep=no_sleep)

    asyncio.run(
        service.synthesize(
            TranscriptResult(id="t", text="Eigenvalues satisfy det(A - λI) = 0."),
            [Keypoint(90, "exam topic")],
        )
    )

    user_prompt = client.calls[0]["messages"][1]["content"]
    assert '- At 1:30: "exam topic"' in user_prompt
    assert "Eigenvalues satisfy det(A - λI) = 0." in user_prompt
    assert client.calls[0]["messages"][0]["role"] == "system"


def test_all_models_failing_names_every_model_and_last_error() -> None:
    chain, client = make_chain(["", "   ", ""], models=("alpha", "beta", "gamma"))
    service = NotesService([chain], sleep=no_sleep)

    with pytest.raises(AllModelsFailed) as excinfo:
        asyncio.run(service.synthesize(TranscriptResult(id="t", text="x"), []))

    message = str(excinfo.value)
    assert "alpha, beta, gamma" in message
    assert "Empty response from model" in message
    assert excinfo.value.models == ["alpha", "beta", "gamma"]
    assert len(client.calls) == 3


def test_only_first_configured_provider_is_used() -> None:
    primary, primary_client = make_chain([""], models=("groq-1",), name="groq")
    secondary, secondary_client = make_chain(["## From OpenAI"], models=("gpt",), name="openai")
    service = NotesService([primary, secondary], sleep=no_sleep)

    with pytest.raises(AllModelsFailed):
        asyncio.run(service.synthesize(TranscriptResult(id="t", text="x"), []))
    assert secondary_client.calls == []


def test_secondary_provider_used_when_primary_unconfigured() -> None:
    secondary, client = make_chain(["## From OpenAI"], models=("gpt-4o-mini",), name="openai")
    service = NotesService([secondary], sleep=no_sleep)

    notes = asyncio.run(service.synthesize(TranscriptResult(id="t", text="x"), []))

    assert notes == "## From OpenAI"
    assert client.models_called == ["gpt-4o-mini"]


def test_no_provider_configured() -> None:
    service = NotesService([], sleep=no_sleep)
    with pytest.raises(NoProviderConfigured):
        asyncio.run(service.synthesize(TranscriptResult(id="t", text="x"), []))
