"""Response Normalizer - Converts transport outcomes into Success/Failure results."""

from __future__ import annotations

import httpx

from rest_engine.models import ContentType, Failure, Success


def normalize_response(response: httpx.Response, elapsed_ms: float, url: str) -> Success:
    """Convert an httpx Response to Success.

    Header names are lowercased and only the first value of a repeated header
    is kept. Content type falls back to JSON when absent or unrecognized.
    """
    headers: dict[str, str] = {}
    for key, value in response.headers.multi_items():
        headers.setdefault(key.lower(), value)

    content_type = ContentType.from_mime_type(headers.get("content-type")) or ContentType.JSON

    return Success(
        status_code=response.status_code,
        headers=headers,
        body=response.text,
        content_type=content_type,
        elapsed_ms=elapsed_ms,
        url=url,
    )


def normalize_failure(error: BaseException, elapsed_ms: float, url: str | None) -> Failure:
    """Convert any exception to Failure, keeping its message.

    A blank message falls back to the exception class name.
    """
    message = str(error).strip() or type(error).__name__
    return Failure(message=message, elapsed_ms=max(elapsed_ms, 0.0), url=url)
