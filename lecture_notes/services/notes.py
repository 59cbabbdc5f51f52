import asyncio
import logging
import re

from lecture_notes.config import settings
from lecture_notes.errors import AllModelsFailed, NoProviderConfigured
from lecture_notes.models import Keypoint, TranscriptResult
from lecture_notes.services.llm import ProviderChain, Sleep, configured_providers, run_chain

logger = logging.getLogger(__name__)

USER_NOTE_MARKER = "🔖 USER NOTE:"
FORMULAS_HEADING = "## Formulas & Equations (LaTeX)"
NO_KEYPOINTS = "No key points were marked during this lecture."
NO_TRANSCRIPT = "No transcript available."

# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

NOTES_SYSTEM_PROMPT = f"""You are an expert academic assistant. Create DETAILED, COMPREHENSIVE study notes from this transcript. Capture all specific examples, technical terms, and explanations. Do not summarize too heavily; preserve the depth of the original content.

STRICT RULES:
- **ONLY** include what the instructor actually said - DO NOT add external information
- Capture ALL specific examples, definitions, technical terms, and explanations mentioned
- Preserve the depth and detail of the original content - do NOT over-summarize
- Use markdown formatting (headers for topics, bullet points for key points)
- Organize content into clear hierarchical sections based on the transcript flow
- If the transcript is unclear or audio quality was poor, note that briefly
- If there are mathematical equations/formulas, represent them in LaTeX math:
  - Inline math: $...$
  - Display math (own line): $$...$$
  - Do NOT spell equations out in English if you can express them as LaTeX.
  - IMPORTANT: If the instructor *mentions or describes* an equation/formula (even in words), you MUST include the actual equation in LaTeX.
    Example: "minus b plus minus root b squared minus 4ac over 2a" -> $$x = \\frac{{-b \\pm \\sqrt{{b^2 - 4ac}}}}{{2a}}$$

STRUCTURE:
- Use ## for main topics/sections
- Use ### for subtopics if needed
- Use bullet points for key points within each section
- Include specific details, examples, and explanations under each point
- If user marked key points during recording, highlight them with: **{USER_NOTE_MARKER} [note]**

CRITICAL: Capture the full depth of the lecture content. Include all important details, examples, and explanations that the instructor provided.

MANDATORY EQUATIONS SECTION:
- At the END of the notes, add a section titled: "{FORMULAS_HEADING}"
- List EVERY equation/formula mentioned (or described in words) as LaTeX. If none, include the heading and write: "None mentioned."
"""

NOTES_USER_PROMPT = """Create DETAILED, COMPREHENSIVE study notes from this lecture transcript. Capture all specific examples, technical terms, and explanations. Preserve the full depth of the content.

## ⭐ USER'S MARKED KEY POINTS:
{keypoints}

Find these timestamps in the transcript and include them in your notes with the format: **{marker} [the user's note]**

## Lecture Transcript:
{transcript}

Create detailed notes that:
- Capture ALL specific examples, definitions, and explanations mentioned
- Organize content into clear topics/sections using headers and subheaders
- Use bullet points with full detail (not just summaries)
- Include the user's marked key points at the relevant sections
- Maintain the original flow and order of topics from the transcript
- Preserve technical terms and specific details exactly as stated
- Ensure every mentioned/described formula is included as LaTeX and also appears in the final "{formulas_heading}" section
"""


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


def _clock(seconds: int) -> str:
    return f"{seconds // 60}:{seconds % 60:02d}"


def format_keypoints(keypoints: list[Keypoint]) -> str:
    """Render key points as ``- At M:SS: "note"`` lines, in input order."""
    if not keypoints:
        return NO_KEYPOINTS
    return "\n".join(f'- At {_clock(kp.timestamp)}: "{kp.note}"' for kp in keypoints)


def format_transcript(transcript: TranscriptResult) -> str:
    """Speaker-labelled, timestamped lines when utterances exist, else raw text."""
    if not transcript.utterances:
        return transcript.text or NO_TRANSCRIPT

    lines = []
    for u in transcript.utterances:
        speaker = "Speaker 1 (Instructor)" if u.speaker == "A" else f"Speaker {u.speaker}"
        lines.append(f"[{_clock(u.start_ms // 1000)}] {speaker}: {u.text}")
    return "\n\n".join(lines)


_HEADING = re.compile(r"^#{1,2}\s+(.+)$", re.MULTILINE)
_EMPHASIS = re.compile(r"[*_~`]")


def extract_title(notes: str) -> str | None:
    """Title from the first H1/H2 heading, or None when there is no usable one."""
    match = _HEADING.search(notes or "")
    if not match:
        return None
    title = _EMPHASIS.sub("", match.group(1).strip().replace("**", "")).strip()
    if len(title) > 100:
        title = title[:97] + "..."
    if 3 <= len(title) <= 100:
        return title
    return None


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class NotesService:
    """Synthesize study notes from a transcript through a model fallback chain.

    Only the first configured provider is used (Groq when it has a key,
    otherwise OpenAI); within it every model is tried in order.
    """

    def __init__(
        self,
        providers: list[ProviderChain] | None = None,
        *,
        backoff_seconds: float | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.providers = configured_providers() if providers is None else providers
        self.backoff_seconds = (
            settings.notes_backoff_seconds if backoff_seconds is None else backoff_seconds
        )
        self._sleep = sleep

    def build_messages(self, transcript: TranscriptResult, keypoints: list[Keypoint]) -> list[dict]:
        return [
            {"role": "system", "content": NOTES_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": NOTES_USER_PROMPT.format(
                    keypoints=format_keypoints(keypoints),
                    transcript=format_transcript(transcript),
                    marker=USER_NOTE_MARKER,
                    formulas_heading=FORMULAS_HEADING,
                ),
            },
        ]

    async def synthesize(self, transcript: TranscriptResult, keypoints: list[Keypoint]) -> str:
        """Return markdown notes; raises NoProviderConfigured or AllModelsFailed."""
        if not self.providers:
            raise NoProviderConfigured()
        chain = self.providers[0]

        logger.info("Generating notes with %s (%d models)", chain.name, len(chain.models))
        attempts = await run_chain(
            chain,
            self.build_messages(transcript, keypoints),
            temperature=settings.notes_temperature,
            max_tokens=settings.notes_max_tokens,
            backoff_seconds=self.backoff_seconds,
            sleep=self._sleep,
        )
        if attempts and attempts[-1].ok:
            return attempts[-1].text

        last_error = attempts[-1].error if attempts else "no models configured"
        raise AllModelsFailed(chain.name, [a.model for a in attempts] or list(chain.models), last_error)
