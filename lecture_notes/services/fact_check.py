import asyncio
import json
import logging
import math
from typing import Any

from lecture_notes.config import settings
from lecture_notes.models import NO_SPEECH_PREFIX, FactCheckItem
from lecture_notes.services.llm import ProviderChain, Sleep, configured_providers, run_chain

logger = logging.getLogger(__name__)

MIN_CONFIDENCE = 0.75
MAX_ITEMS = 10
MIN_NOTES_LENGTH = 200
TRANSCRIPT_EXCERPT_CHARS = 12000
TRUNCATION_MARKER = "\n...[truncated]..."
_SEVERITIES = ("low", "medium", "high")

FACT_CHECK_SYSTEM_PROMPT = """You are a careful academic fact-checker.

Goal: Identify statements that are likely WRONG (factually incorrect) in the lecture content.

STRICT RULES:
- Be conservative: if you are not highly confident a statement is wrong, OUTPUT [].
- Only flag items that are clearly incorrect according to well-established knowledge.
- Do NOT nitpick opinions, teaching style, or ambiguous phrasing.
- The lecture notes below are derived from the transcript; ONLY flag claims that are explicitly present.
- Output MUST be a pure JSON array (no markdown, no prose).
- Each item MUST include: claim, correction, rationale, confidence (0..1), severity (low|medium|high), source_quote.
- confidence must be >= 0.75 only when you are highly confident.
- Keep at most 10 items."""

FACT_CHECK_USER_PROMPT = """Analyze the lecture notes + transcript excerpt and find ONLY the clearly wrong statements.
If there are no clear factual errors, return [].

Lecture notes:
{notes}

Transcript excerpt (optional supporting context):
{transcript}

Return JSON array of objects with keys:
- claim: string (what lecturer taught that is wrong)
- correction: string (the correct information)
- rationale: string (brief explanation why it's wrong)
- confidence: number (0..1)
- severity: "low"|"medium"|"high"
- source_quote: string (verbatim quote from notes or transcript that contains the claim)"""


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def extract_json_array(text: str) -> list | None:
    """Parse a JSON array out of free model text.

    Strict parse of the whole text first, then the span from the first ``[``
    to the last ``]``.  Anything else is None.
    """
    try:
        parsed = json.loads(text)
    except (TypeError, ValueError):
        pass
    else:
        return parsed if isinstance(parsed, list) else None

    start = text.find("[")
    end = text.rfind("]")
    if start < 0 or end <= start:
        return None
    try:
        parsed = json.loads(text[start : end + 1])
    except ValueError:
        return None
    return parsed if isinstance(parsed, list) else None


def _text_field(obj: dict, key: str) -> str:
    value = obj.get(key)
    return value.strip() if isinstance(value, str) else ""


def _confidence(value: Any) -> float:
    if isinstance(value, bool):
        return math.nan
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return math.nan
    return math.nan


def sanitize_fact_checks(raw: Any) -> list[FactCheckItem]:
    """Keep only complete, high-confidence items; at most MAX_ITEMS."""
    if not isinstance(raw, list):
        return []

    items: list[FactCheckItem] = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        claim = _text_field(entry, "claim")
        correction = _text_field(entry, "correction")
        rationale = _text_field(entry, "rationale")
        confidence = _confidence(entry.get("confidence"))
        if not (claim and correction and rationale):
            continue
        if not math.isfinite(confidence) or confidence < MIN_CONFIDENCE:
            continue

        severity = _text_field(entry, "severity").lower()
        source_quote = entry.get("source_quote")
        items.append(
            FactCheckItem(
                claim=claim,
                correction=correction,
                rationale=rationale,
                confidence=max(0.0, min(1.0, confidence)),
                severity=severity if severity in _SEVERITIES else "low",
                source_quote=source_quote.strip() if isinstance(source_quote, str) else None,
            )
        )
    return items[:MAX_ITEMS]


def transcript_excerpt(transcript_text: str) -> str:
    trimmed = (transcript_text or "").strip()
    if len(trimmed) > TRANSCRIPT_EXCERPT_CHARS:
        return trimmed[:TRANSCRIPT_EXCERPT_CHARS] + TRUNCATION_MARKER
    return trimmed


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class FactCheckService:
    """Conservative second pass over generated notes. Never raises."""

    def __init__(
        self,
        providers: list[ProviderChain] | None = None,
        *,
        backoff_seconds: float | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        providers = configured_providers() if providers is None else providers
        self.providers = [p for p in providers if p.name in settings.fact_check_providers]
        self.backoff_seconds = (
            settings.fact_check_backoff_seconds if backoff_seconds is None else backoff_seconds
        )
        self._sleep = sleep

    def should_skip(self, notes: str, transcript_text: str) -> bool:
        if (transcript_text or "").strip().startswith(NO_SPEECH_PREFIX):
            return True
        if len((notes or "").strip()) < MIN_NOTES_LENGTH:
            return True
        return not self.providers

    async def fact_check(self, notes: str, transcript_text: str) -> list[FactCheckItem]:
        if self.should_skip(notes, transcript_text):
            return []

        chain = self.providers[0]
        messages = [
            {"role": "system", "content": FACT_CHECK_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": FACT_CHECK_USER_PROMPT.format(
                    notes=notes, transcript=transcript_excerpt(transcript_text)
                ),
            },
        ]
        try:
            attempts = await run_chain(
                chain,
                messages,
                temperature=settings.fact_check_temperature,
                backoff_seconds=self.backoff_seconds,
                sleep=self._sleep,
            )
        except Exception:
            logger.warning("Fact-check pass failed; continuing without fact checks", exc_info=True)
            return []

        if not attempts or not attempts[-1].ok:
            last_error = attempts[-1].error if attempts else None
            logger.warning(
                "Fact-check generation failed; continuing without fact checks. Last error: %s",
                last_error,
            )
            return []

        items = sanitize_fact_checks(extract_json_array(attempts[-1].text))
        logger.info("Fact-check items: %d", len(items))
        return items
