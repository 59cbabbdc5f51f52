"""Domain errors raised by the transcription-to-notes pipeline.

Every error carries the HTTP status the API layer should answer with; the
FastAPI exception handler in ``lecture_notes.main`` does the mapping.
"""


class PipelineError(Exception):
    status_code: int = 500

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code

    @property
    def message(self) -> str:
        return str(self)


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------


class InvalidResource(PipelineError):
    """The audio URL failed the preflight check."""

    status_code = 400


class PreflightTimeout(PipelineError):
    """The audio URL did not answer the preflight check in time."""

    status_code = 400


class TranscriptUnavailable(PipelineError):
    status_code = 400


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------


class LectureNotFound(PipelineError):
    status_code = 404

    def __init__(self, lecture_id: int) -> None:
        super().__init__(f"Lecture {lecture_id} not found")
        self.lecture_id = lecture_id


class JobNotFound(PipelineError):
    status_code = 404

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Transcription {job_id} not found")
        self.job_id = job_id


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ProviderNotConfigured(PipelineError):
    """No speech-to-text API key is configured."""


class NoProviderConfigured(PipelineError):
    """No language-model provider is configured."""

    def __init__(self) -> None:
        super().__init__(
            "No LLM API key configured. Set either GROQ_API_KEY or OPENAI_API_KEY"
        )


# ---------------------------------------------------------------------------
# Upstream
# ---------------------------------------------------------------------------


class ProviderError(PipelineError):
    """A provider answered with an unsuccessful HTTP response."""


class JobSubmissionFailed(PipelineError):
    pass


class TranscriptionFailed(PipelineError):
    """The provider reports the job itself failed. Terminal, never retried."""

    def __init__(self, message: str, error_type: str = "unknown_error") -> None:
        super().__init__(message)
        self.error_type = error_type


class PollingTimeout(PipelineError):
    status_code = 504


class AllModelsFailed(PipelineError):
    """Every model in a fallback chain failed or returned nothing."""

    def __init__(self, provider: str, models: list[str], last_error: str | None) -> None:
        super().__init__(
            f"All {provider} models failed. Tried: {', '.join(models)}. "
            f"Last error: {last_error}"
        )
        self.provider = provider
        self.models = models
        self.last_error = last_error
