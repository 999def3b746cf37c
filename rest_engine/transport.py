"""Transport - Sends one wire request and returns the raw httpx response.

A fresh httpx.Client is created per call so that TLS verification, redirect
policy and timeout stay scoped to that call. No retries happen here.
"""

from __future__ import annotations

import logging
import ssl
from typing import Any

import httpx

from rest_engine.errors import ConfigurationError, TransportError
from rest_engine.models import WireRequest

logger = logging.getLogger(__name__)


def _describe(exc: BaseException) -> str:
    """Exception message, or its class name when the message is blank."""
    text = str(exc).strip()
    return text or type(exc).__name__


class Transport:
    """Executes wire requests synchronously.

    Usage:
        transport = Transport()
        response = transport.send(wire_request)

    Tests pass an httpx.MockTransport as http_transport to avoid the network.
    """

    def __init__(
        self,
        http_transport: httpx.BaseTransport | None = None,
        ca_bundle: str | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            http_transport: Optional httpx transport used for every call.
            ca_bundle: Optional CA file trusted whenever verification is on.

        Raises:
            ConfigurationError: If ca_bundle cannot be loaded.
        """
        self._http_transport = http_transport
        self._ssl_context: ssl.SSLContext | None = None
        if ca_bundle:
            try:
                self._ssl_context = ssl.create_default_context(cafile=ca_bundle)
            except (OSError, ssl.SSLError) as e:
                raise ConfigurationError(f"Invalid CA bundle '{ca_bundle}': {e}") from e

    def _build_client_kwargs(self, request: WireRequest) -> dict[str, Any]:
        """Build kwargs for httpx.Client from the request's call-scoped policy."""
        kwargs: dict[str, Any] = {
            "timeout": httpx.Timeout(request.timeout_ms / 1000.0),
            "follow_redirects": request.follow_redirects,
        }

        if not request.verify_ssl:
            # Explicit per-call opt-in; certificate and hostname checks are off
            kwargs["verify"] = False
        elif self._ssl_context is not None:
            kwargs["verify"] = self._ssl_context
        # else: use httpx default (True)

        if self._http_transport is not None:
            kwargs["transport"] = self._http_transport

        return kwargs

    def send(self, request: WireRequest) -> httpx.Response:
        """Send the request and return the fully read response.

        Raises:
            TransportError: On timeout, connection, TLS, URL or encoding errors.
        """
        if not request.verify_ssl:
            logger.warning(
                "TLS certificate verification disabled for %s %s",
                request.method,
                request.url.split("?", 1)[0],
            )

        try:
            with httpx.Client(**self._build_client_kwargs(request)) as client:
                return client.request(
                    method=request.method,
                    url=request.url,
                    headers=request.headers or None,
                    content=request.content,
                )
        except httpx.TimeoutException as e:
            raise TransportError(f"Request timeout: {_describe(e)}") from e
        except httpx.ConnectError as e:
            raise TransportError(f"Connection error: {_describe(e)}") from e
        except httpx.RequestError as e:
            raise TransportError(f"Request error: {_describe(e)}") from e
        except httpx.InvalidURL as e:
            raise TransportError(f"Invalid URL '{request.url.split('?', 1)[0]}': {_describe(e)}") from e
        except UnicodeEncodeError as e:
            # Header names/values and URLs must be ASCII on the wire
            raise TransportError(
                f"Encoding error: non-ASCII character {e.object[e.start:e.end]!r} "
                f"at position {e.start} in a header or URL"
            ) from e
