"""Engine - Executes request descriptors and returns uniform results.

Flow per call:
    descriptor -> AuthResolver (TokenCache, maybe a token exchange)
               -> build_request -> Transport -> normalize_response

RestEngine never raises from its execute* methods: every error, expected or
not, comes back as a Failure carrying the elapsed time and target URL.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

import httpx

from rest_engine.auth_resolver import AuthResolver
from rest_engine.config_loader import parse_request, parse_request_json
from rest_engine.errors import EngineError
from rest_engine.models import EngineConfig, Failure, RequestDescriptor, Success
from rest_engine.normalizer import normalize_failure, normalize_response
from rest_engine.request_builder import build_request, target_url
from rest_engine.token_cache import TokenCache
from rest_engine.transport import Transport

logger = logging.getLogger(__name__)


class RestEngine:
    """Authenticated REST execution engine.

    Usage:
        engine = RestEngine()
        result = engine.execute(RequestDescriptor(base_url="https://api.example.com", path="/items"))
        if isinstance(result, Success):
            print(result.status_code, result.body)

    Each engine owns its TokenCache; pass one in to share tokens between
    engines or to inspect it in tests.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        token_cache: TokenCache | None = None,
        http_transport: httpx.BaseTransport | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the engine.

        Args:
            config: Engine-wide settings. Defaults to EngineConfig().
            token_cache: OAuth2 token cache. A fresh one is created if None.
            http_transport: Optional httpx transport for every call (tests).
            clock: Epoch-seconds clock for a newly created token cache.

        Raises:
            ConfigurationError: If config.ca_bundle cannot be loaded.
        """
        self._config = config or EngineConfig()
        self._token_cache = token_cache if token_cache is not None else TokenCache(clock=clock)
        self._transport = Transport(
            http_transport=http_transport, ca_bundle=self._config.ca_bundle
        )
        self._resolver = AuthResolver(
            self._token_cache,
            self._transport,
            token_timeout_ms=self._config.token_timeout_ms,
            token_verify_ssl=self._config.token_verify_ssl,
        )

    @property
    def token_cache(self) -> TokenCache:
        return self._token_cache

    def execute(self, descriptor: RequestDescriptor | None) -> Success | Failure:
        """Execute one descriptor.

        Returns:
            Success for any HTTP response (including 4xx/5xx), Failure when no
            response was obtained or auth resolution failed.
        """
        if descriptor is None:
            return Failure(message="Request cannot be null", elapsed_ms=0.0)

        url = target_url(descriptor)
        start_time = time.perf_counter()

        try:
            logger.debug("Executing %s request to: %s", descriptor.method.value, url)

            # Auth failures abort here; the business request is never sent
            contribution = self._resolver.resolve(descriptor.auth)
            wire_request = build_request(descriptor, contribution, self._config.default_headers)
            response = self._transport.send(wire_request)

            elapsed_ms = (time.perf_counter() - start_time) * 1000
            result = normalize_response(response, elapsed_ms, url)

        except EngineError as e:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            logger.error("Error executing request to %s: %s", url, e)
            return normalize_failure(e, elapsed_ms, url)
        except Exception as e:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            logger.exception("Unexpected error executing request to %s", url)
            return normalize_failure(e, elapsed_ms, url)

        logger.debug("Response: %d %s in %.0fms", result.status_code, url, elapsed_ms)
        return result

    def execute_mapping(self, data: Any) -> Success | Failure:
        """Parse a decoded JSON-format request and execute it."""
        start_time = time.perf_counter()
        try:
            descriptor = parse_request(data)
        except EngineError as e:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            logger.error("Error parsing configuration: %s", e)
            return normalize_failure(e, elapsed_ms, None)
        except Exception as e:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            logger.exception("Unexpected error parsing configuration")
            return normalize_failure(e, elapsed_ms, None)
        return self.execute(descriptor)

    def execute_json(self, text: str | None) -> Success | Failure:
        """Parse a JSON request string and execute it."""
        start_time = time.perf_counter()
        try:
            descriptor = parse_request_json(text)
        except EngineError as e:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            logger.error("Error parsing JSON configuration: %s", e)
            return normalize_failure(e, elapsed_ms, None)
        except Exception as e:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            logger.exception("Unexpected error parsing JSON configuration")
            return normalize_failure(e, elapsed_ms, None)
        return self.execute(descriptor)

    def invalidate_token(self, token_url: str, identity: str) -> None:
        """Forget cached tokens for (token_url, client id or username)."""
        self._token_cache.invalidate(token_url, identity)

    def clear_token_cache(self) -> None:
        self._token_cache.clear_all()
