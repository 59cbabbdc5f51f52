from contextlib import asynccontextmanager

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from lecture_notes.config import settings
from lecture_notes.database import init_db
from lecture_notes.errors import PipelineError
from lecture_notes.logging_utils import configure_logging
from lecture_notes.routes import lectures, transcription
from lecture_notes.services.llm import configured_providers


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create SQLite tables, the shared HTTP client and the LLM provider chains.

    On shutdown, background poll loops are cancelled before the clients they
    use are closed.
    """
    configure_logging(settings.log_level.upper())
    await init_db()
    app.state.http = httpx.AsyncClient(timeout=httpx.Timeout(60.0, connect=10.0))
    app.state.providers = configured_providers()
    try:
        yield
    finally:
        await lectures.cancel_active_runs()
        for chain in app.state.providers:
            await chain.client.aclose()
        await app.state.http.aclose()


app = FastAPI(
    title="lecture-notes",
    description="Lecture transcription with LLM-generated study notes and fact checks",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(transcription.router)
app.include_router(lectures.router)


@app.exception_handler(PipelineError)
async def pipeline_error_handler(_request: Request, exc: PipelineError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def run() -> None:
    uvicorn.run("lecture_notes.main:app", host=settings.host, port=settings.port)
