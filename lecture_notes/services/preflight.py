import logging

import httpx

from lecture_notes.config import settings
from lecture_notes.errors import InvalidResource, PreflightTimeout

logger = logging.getLogger(__name__)

_ERROR_PAGE_TYPES = ("text/html", "application/xml")


async def preflight_check(
    http: httpx.AsyncClient, audio_url: str, *, timeout: float | None = None
) -> None:
    """HEAD the audio URL and reject anything that is clearly not audio.

    Raises InvalidResource or PreflightTimeout; returns None when the URL looks
    usable.  A missing Content-Length is tolerated (not every storage backend
    sends it).
    """
    timeout = settings.preflight_timeout_seconds if timeout is None else timeout
    try:
        resp = await http.head(audio_url, timeout=timeout, follow_redirects=True)
    except httpx.TimeoutException as exc:
        raise PreflightTimeout(
            f"Pre-flight check timeout: Audio URL did not respond within {timeout:g} seconds"
        ) from exc
    except httpx.HTTPError as exc:
        raise InvalidResource(f"Pre-flight check failed: {exc}") from exc

    if not resp.is_success:
        raise InvalidResource(
            f"Pre-flight check failed: HEAD request failed: "
            f"{resp.status_code} {resp.reason_phrase}"
        )

    content_type = resp.headers.get("content-type", "")
    if any(t in content_type.lower() for t in _ERROR_PAGE_TYPES):
        raise InvalidResource(
            f'Invalid audio URL: Content-Type is "{content_type}" '
            "(likely an error page, not audio)"
        )

    content_length = resp.headers.get("content-length")
    if content_length is None:
        logger.warning("Content-Length header not provided for audio URL; continuing")
    elif content_length.strip().isdigit() and int(content_length) == 0:
        raise InvalidResource("Invalid audio URL: Content-Length is 0 (file appears to be empty)")

    logger.info(
        "Pre-flight check passed (Content-Type=%s, Content-Length=%s)",
        content_type or "unknown",
        content_length or "not provided",
    )
