import asyncio
import logging

from lecture_notes.config import settings
from lecture_notes.services.llm import ProviderChain, Sleep, configured_providers, run_chain

logger = logging.getLogger(__name__)

LANGUAGE_NAMES = {
    "en": "English",
    "ur": "Urdu",
    "hi": "Hindi",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "ar": "Arabic",
}

TRANSLATION_SYSTEM_PROMPT = (
    "You are a professional translator for lecture transcripts. Translate the "
    "transcript into {language}. Keep any text that is already in {language} "
    "unchanged. Preserve speaker labels, line breaks, technical terms and numbers. "
    "Output ONLY the translated transcript, with no commentary."
)


def needs_translation(text: str) -> bool:
    """Coarse check: any non-ASCII character counts as non-target-language text.

    Accented Latin characters also trigger it; a known imprecision.
    """
    return any(ord(ch) > 127 for ch in text)


class Translator:
    """Best-effort secondary translation through the language-model chain."""

    def __init__(
        self,
        providers: list[ProviderChain] | None = None,
        *,
        target_language: str | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.providers = configured_providers() if providers is None else providers
        self.target_language = target_language or settings.target_language
        self._sleep = sleep

    @property
    def language_name(self) -> str:
        return LANGUAGE_NAMES.get(self.target_language, self.target_language)

    async def translate(self, text: str) -> str:
        """Translated text, or *text* unchanged when translation is not possible."""
        if not self.providers:
            logger.warning("No LLM provider configured; skipping transcript translation")
            return text

        chain = self.providers[0]
        messages = [
            {
                "role": "system",
                "content": TRANSLATION_SYSTEM_PROMPT.format(language=self.language_name),
            },
            {"role": "user", "content": text},
        ]
        try:
            attempts = await run_chain(
                chain,
                messages,
                temperature=settings.translation_temperature,
                backoff_seconds=settings.notes_backoff_seconds,
                sleep=self._sleep,
            )
        except Exception:
            logger.warning("Transcript translation failed; keeping original text", exc_info=True)
            return text

        if attempts and attempts[-1].ok:
            return attempts[-1].text.strip()
        logger.warning(
            "Transcript translation failed; keeping original text. Last error: %s",
            attempts[-1].error if attempts else None,
        )
        return text
