import logging

import httpx

from lecture_notes.config import settings
from lecture_notes.errors import ProviderError

logger = logging.getLogger(__name__)


def error_text(resp: httpx.Response) -> str:
    """Best human-readable error from a provider response body."""
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        message = body.get("error_message") or body.get("error") or body.get("message")
        if message:
            return str(message)
    return resp.text or resp.reason_phrase or f"HTTP {resp.status_code}"


class SonioxClient:
    """Thin async client for the Soniox async transcription REST API.

    Every method maps an unsuccessful response to ``ProviderError`` carrying
    the provider's status code and raw error text; callers decide what a given
    status means for them.

    The ``httpx.AsyncClient`` is injected (shared across the app, owned by the
    FastAPI lifespan) so tests can hand in one backed by ``httpx.MockTransport``.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
    ) -> None:
        self._http = http
        self._api_key = settings.soniox_api_key if api_key is None else api_key
        self._base_url = (base_url or settings.soniox_base_url).rstrip("/")

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self._api_key}"}

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        url = f"{self._base_url}{path}"
        try:
            resp = await self._http.request(method, url, headers=self._headers(), **kwargs)
        except httpx.HTTPError as exc:
            raise ProviderError(f"Soniox request failed: {exc}") from exc
        logger.debug("Soniox %s %s -> %s", method, path, resp.status_code)
        if not resp.is_success:
            raise ProviderError(error_text(resp), status_code=resp.status_code)
        try:
            return resp.json()
        except ValueError as exc:
            raise ProviderError(f"Invalid JSON response from Soniox {path}") from exc

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    async def upload_file(self, content: bytes, filename: str, content_type: str) -> str:
        """Upload audio bytes; returns the provider file id."""
        data = await self._request(
            "POST",
            "/v1/files",
            files={"file": (filename, content, content_type or "application/octet-stream")},
        )
        file_id = data.get("id")
        if not file_id:
            raise ProviderError("No file id returned from Soniox")
        return file_id

    # ------------------------------------------------------------------
    # Transcriptions
    # ------------------------------------------------------------------

    async def create_transcription(self, config: dict) -> dict:
        return await self._request("POST", "/v1/transcriptions", json=config)

    async def get_transcription(self, transcription_id: str) -> dict:
        return await self._request("GET", f"/v1/transcriptions/{transcription_id}")

    async def get_transcript(self, transcription_id: str) -> dict:
        return await self._request(
            "GET", f"/v1/transcriptions/{transcription_id}/transcript"
        )
