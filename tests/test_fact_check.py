from __future__ import annotations

import asyncio
import json

import pytest

from conftest import LONG_NOTES, make_chain, no_sleep
from lecture_notes.config import settings
from lecture_notes.models import NO_SPEECH_PLACEHOLDER
from lecture_notes.services.fact_check import (
    FactCheckService,
    extract_json_array,
    sanitize_fact_checks,
    transcript_excerpt,
)


def _item(**overrides) -> dict:
    item = {
        "claim": "The sun orbits the earth",
        "correction": "The earth orbits the sun",
        "rationale": "Heliocentric model",
        "confidence": 0.9,
        "severity": "high",
        "source_quote": "the sun goes around us",
    }
    item.update(overrides)
    return item


# ------------------------------------------------------------------
# extract_json_array
# ------------------------------------------------------------------


def test_extract_json_array_strict_parse() -> None:
    assert extract_json_array('[{"a": 1}]') == [{"a": 1}]
    assert extract_json_array("[]") == []


def test_extract_json_array_from_surrounding_prose() -> None:
    text = 'Here are the findings:\n```json\n[{"claim": "x"}]\n```\nThanks.'
    assert extract_json_array(text) == [{"claim": "x"}]


def test_extract_json_array_gives_up_on_garbage() -> None:
    assert extract_json_array("No factual errors found.") is None
    assert extract_json_array("[not json]") is None
    assert extract_json_array('{"claim": "an object, not an array"}') is None


# ------------------------------------------------------------------
# sanitize_fact_checks
# ------------------------------------------------------------------


def test_sanitize_drops_low_confidence_and_incomplete_items() -> None:
    raw = [
        _item(),
        _item(confidence=0.74),
        _item(claim="   "),
        _item(correction=None),
        _item(rationale=""),
        _item(confidence="not a number"),
        "not an object",
        None,
    ]

    items = sanitize_fact_checks(raw)

    assert len(items) == 1
    assert items[0].claim == "The sun orbits the earth"
    assert items[0].confidence == 0.9


def test_sanitize_clamps_confidence_and_defaults_severity() -> None:
    items = sanitize_fact_checks(
        [
            _item(confidence=1.7, severity="CRITICAL"),
            _item(confidence="0.8", severity=" Medium "),
            _item(source_quote=42),
        ]
    )

    assert [i.confidence for i in items] == [1.0, 0.8, 0.9]
    assert [i.severity for i in items] == ["low", "medium", "high"]
    assert items[2].source_quote is None


def test_sanitize_caps_at_ten_items() -> None:
    items = sanitize_fact_checks([_item(claim=f"claim {n}") for n in range(25)])
    assert len(items) == 10
    assert items[0].claim == "claim 0"
    assert items[-1].claim == "claim 9"


def test_sanitize_rejects_non_lists() -> None:
    assert sanitize_fact_checks(None) == []
    assert sanitize_fact_checks({"claim": "x"}) == []


@pytest.mark.parametrize("confidence", [0.0, 0.5, 0.7499, 0.75, 0.9, 1.0, 3])
def test_sanitized_output_never_below_threshold(confidence: float) -> None:
    items = sanitize_fact_checks([_item(confidence=confidence)] * 12)
    assert len(items) <= 10
    assert all(0.75 <= i.confidence <= 1.0 for i in items)
    assert all(i.claim and i.correction and i.rationale for i in items)


def test_transcript_excerpt_truncates_with_marker() -> None:
    excerpt = transcript_excerpt("a" * 13000)
    assert excerpt == "a" * 12000 + "\n...[truncated]..."
    assert transcript_excerpt("  short  ") == "short"


# ------------------------------------------------------------------
# FactCheckService
# ------------------------------------------------------------------


def test_fact_check_returns_sanitized_items() -> None:
    chain, client = make_chain([json.dumps([_item(), _item(confidence=0.2)])])
    service = FactCheckService([chain], sleep=no_sleep)

    items = asyncio.run(service.fact_check(LONG_NOTES, "The sun goes around us."))

    assert len(items) == 1
    assert client.calls[0]["temperature"] == settings.fact_check_temperature
    system_prompt = client.calls[0]["messages"][0]["content"]
    assert "pure JSON array" in system_prompt


def test_fact_check_falls_back_to_next_model() -> None:
    chain, client = make_chain([RuntimeError("429 rate limited"), "[]"])
    service = FactCheckService([chain], sleep=no_sleep)

    assert asyncio.run(service.fact_check(LONG_NOTES, "transcript")) == []
    assert client.models_called == ["model-a", "model-b"]


def test_fact_check_unparseable_response_means_no_findings() -> None:
    chain, _ = make_chain(["I could not find anything wrong."])
    service = FactCheckService([chain], sleep=no_sleep)
    assert asyncio.run(service.fact_check(LONG_NOTES, "transcript")) == []


def test_fact_check_never_raises_when_every_model_fails() -> None:
    chain, client = make_chain([RuntimeError("boom")] * 3)
    service = FactCheckService([chain], sleep=no_sleep)

    assert asyncio.run(service.fact_check(LONG_NOTES, "transcript")) == []
    assert len(client.calls) == 3


@pytest.mark.parametrize(
    ("notes", "transcript"),
    [
        (LONG_NOTES, NO_SPEECH_PLACEHOLDER),
        ("## Short notes", "A real transcript"),
    ],
)
def test_fact_check_skips_without_model_call(notes: str, transcript: str) -> None:
    chain, client = make_chain([json.dumps([_item()])])
    service = FactCheckService([chain], sleep=no_sleep)

    assert asyncio.run(service.fact_check(notes, transcript)) == []
    assert client.calls == []


def test_fact_check_skips_when_no_capable_provider() -> None:
    chain, client = make_chain([json.dumps([_item()])], name="openai")
    service = FactCheckService([chain], sleep=no_sleep)

    assert service.providers == []
    assert asyncio.run(service.fact_check(LONG_NOTES, "transcript")) == []
    assert client.calls == []
