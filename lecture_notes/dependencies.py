"""FastAPI dependency providers.

Tests swap these out through ``app.dependency_overrides``.
"""

import httpx
from fastapi import Request

from lecture_notes.clients import SonioxClient
from lecture_notes.services.fact_check import FactCheckService
from lecture_notes.services.lectures import LectureStore
from lecture_notes.services.llm import ProviderChain
from lecture_notes.services.notes import NotesService
from lecture_notes.services.pipeline import LecturePipeline
from lecture_notes.services.status import StatusService
from lecture_notes.services.transcription import TranscriptionService
from lecture_notes.services.translation import Translator


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http


def get_providers(request: Request) -> list[ProviderChain]:
    """LLM provider chains built once in the lifespan; their SDK clients are shared."""
    return request.app.state.providers


def get_store() -> LectureStore:
    return LectureStore()


def get_transcription_service(request: Request) -> TranscriptionService:
    return TranscriptionService(get_http_client(request))


def get_status_service(request: Request) -> StatusService:
    return StatusService(
        SonioxClient(get_http_client(request)), Translator(get_providers(request))
    )


def get_pipeline(request: Request) -> LecturePipeline:
    providers = get_providers(request)
    return LecturePipeline(
        notes=NotesService(providers),
        fact_checker=FactCheckService(providers),
    )
