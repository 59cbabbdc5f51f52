"""Ordered model fallback chains shared by notes, fact-checking and translation.

A chain is configuration, not control flow: ``ProviderChain`` names a client
and the ordered models to try on it.  ``run_chain`` walks the list, turning
each call into an ``Attempt`` (never an exception), and stops at the first
non-empty answer.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol

from lecture_notes.clients import GroqClient, OpenAIClient
from lecture_notes.config import Settings, settings

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class ChatClient(Protocol):
    async def chat(
        self,
        messages: list[dict],
        *,
        model: str,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str: ...

    async def aclose(self) -> None: ...


@dataclass(frozen=True)
class ProviderChain:
    name: str
    client: ChatClient
    models: tuple[str, ...]


@dataclass
class Attempt:
    model: str
    text: str = ""
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def configured_providers(cfg: Settings = settings) -> list[ProviderChain]:
    """Providers with an API key, in preference order (Groq, then OpenAI)."""
    providers: list[ProviderChain] = []
    if cfg.groq_api_key:
        providers.append(
            ProviderChain("groq", GroqClient(api_key=cfg.groq_api_key), cfg.groq_model_chain())
        )
    if cfg.openai_api_key:
        providers.append(
            ProviderChain("openai", OpenAIClient(api_key=cfg.openai_api_key), (cfg.openai_model,))
        )
    return providers


async def try_model(
    client: ChatClient,
    model: str,
    messages: list[dict],
    *,
    temperature: float | None = None,
    max_tokens: int | None = None,
) -> Attempt:
    """Run one completion and fold every outcome into an Attempt."""
    try:
        text = await client.chat(
            messages, model=model, temperature=temperature, max_tokens=max_tokens
        )
    except Exception as exc:  # SDK errors differ per provider; all count as a failed attempt
        return Attempt(model=model, error=str(exc) or exc.__class__.__name__)
    if not text or not text.strip():
        return Attempt(model=model, error="Empty response from model")
    return Attempt(model=model, text=text)


async def run_chain(
    chain: ProviderChain,
    messages: list[dict],
    *,
    temperature: float | None = None,
    max_tokens: int | None = None,
    backoff_seconds: float = 0.0,
    sleep: Sleep = asyncio.sleep,
) -> list[Attempt]:
    """Try ``chain.models`` in order; the last Attempt is the success if any."""
    attempts: list[Attempt] = []
    for index, model in enumerate(chain.models):
        attempt = await try_model(
            chain.client,
            model,
            messages,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        attempts.append(attempt)
        if attempt.ok:
            logger.info("%s model %s succeeded", chain.name, model)
            break
        logger.warning("%s model %s failed: %s", chain.name, model, attempt.error)
        if index < len(chain.models) - 1 and backoff_seconds > 0:
            await sleep(backoff_seconds)
    return attempts
