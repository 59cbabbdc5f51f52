from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Callable

import httpx
import pytest

from lecture_notes.config import settings
from lecture_notes.database import init_db
from lecture_notes.services.lectures import LectureStore
from lecture_notes.services.llm import ProviderChain


class FakeChatClient:
    """Stands in for GroqClient/OpenAIClient.

    ``responses`` is consumed in order; an Exception instance is raised, a
    string is returned.
    """

    def __init__(self, responses: list | None = None) -> None:
        self.responses = list(responses or [])
        self.calls: list[dict] = []
        self.closed = False

    async def chat(self, messages, *, model, temperature=None, max_tokens=None):
        self.calls.append(
            {
                "messages": messages,
                "model": model,
                "temperature": temperature,
                "max_tokens": max_tokens,
            }
        )
        response = self.responses.pop(0) if self.responses else ""
        if isinstance(response, Exception):
            raise response
        return response

    async def aclose(self) -> None:
        self.closed = True

    @property
    def models_called(self) -> list[str]:
        return [c["model"] for c in self.calls]


def make_chain(
    responses: list | None = None,
    models: tuple[str, ...] = ("model-a", "model-b", "model-c"),
    name: str = "groq",
) -> tuple[ProviderChain, FakeChatClient]:
    client = FakeChatClient(responses)
    return ProviderChain(name, client, models), client


async def no_sleep(_seconds: float) -> None:
    return None


def mock_http(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


LONG_NOTES = "## Photosynthesis\n\n" + "- Plants convert light into chemical energy.\n" * 10


@pytest.fixture()
def database(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    db_path = tmp_path / "lectures.db"
    monkeypatch.setattr(settings, "database_path", str(db_path))
    asyncio.run(init_db())
    return db_path


@pytest.fixture()
def store(database: Path) -> LectureStore:
    return LectureStore()


@pytest.fixture()
def soniox_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "soniox_api_key", "test-soniox-key")
    monkeypatch.setattr(settings, "soniox_base_url", "https://soniox.test")
    monkeypatch.setattr(settings, "target_language", "en")
