from groq import AsyncGroq

from lecture_notes.config import settings


class GroqClient:
    """Async wrapper around the official Groq SDK.

    Usage::

        groq = GroqClient()                                   # key from env
        text = await groq.chat(messages, model="llama-3.1-8b-instant")

    The model is chosen per call so one client (and its httpx session) can
    serve a whole fallback chain.
    """

    name = "groq"

    def __init__(self, api_key: str | None = None) -> None:
        self._client = AsyncGroq(api_key=api_key or settings.groq_api_key)

    async def chat(
        self,
        messages: list[dict],
        *,
        model: str,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Plain-text chat completion. Returns the content string ("" if absent)."""
        kwargs: dict = {
            "model": model,
            "messages": messages,
        }
        if temperature is not None:
            kwargs["temperature"] = temperature
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens

        resp = await self._client.chat.completions.create(**kwargs)
        if not resp.choices:
            return ""
        return resp.choices[0].message.content or ""

    async def aclose(self) -> None:
        await self._client.close()
