"""Auth Resolver - Turns an auth strategy into concrete request contributions.

None, Basic, Bearer and ApiKey resolve locally with no I/O. The two OAuth2
variants consult the TokenCache and, on a miss or expiry, exchange their
credentials for an access token at the token endpoint.

Token lifecycle per cache key:
    Absent -> Fetching -> Cached -> Expired -> Fetching ...
                                 -> Invalidated -> Absent

A failed exchange (non-2xx, unparseable body, transport error) caches nothing.
"""

from __future__ import annotations

import base64
import json
import logging
from typing import assert_never
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError

from rest_engine.errors import AuthenticationError, TokenParseError
from rest_engine.models import (
    DEFAULT_TIMEOUT_MS,
    TOKEN_EXPIRY_BUFFER_SECONDS,
    ApiKeyAuth,
    ApiKeyLocation,
    AuthContribution,
    AuthStrategy,
    BasicAuth,
    BearerAuth,
    CachedToken,
    ClientAuthMethod,
    ContentType,
    GrantKind,
    NoAuth,
    OAuth2ClientCredentials,
    OAuth2Password,
    TokenResponse,
    WireRequest,
)
from rest_engine.token_cache import CacheKey, TokenCache
from rest_engine.transport import Transport

logger = logging.getLogger(__name__)

HEADER_AUTHORIZATION = "Authorization"


def basic_credentials(username: str, password: str) -> str:
    """Return 'Basic <base64(username:password)>'."""
    raw = f"{username}:{password}".encode("utf-8")
    return "Basic " + base64.b64encode(raw).decode("ascii")


def bearer_contribution(token: str) -> AuthContribution:
    return AuthContribution(headers={HEADER_AUTHORIZATION: f"Bearer {token}"})


def extract_access_token(body: str) -> str | None:
    """Pull access_token out of a token response body, or None."""
    try:
        data = json.loads(body)
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    token = data.get("access_token")
    if token is None or token == "":
        return None
    return token if isinstance(token, str) else str(token)


def cache_key_for(strategy: OAuth2ClientCredentials | OAuth2Password) -> CacheKey:
    """Cache key: grant kind, token URL, and client id or username."""
    if isinstance(strategy, OAuth2ClientCredentials):
        return CacheKey(GrantKind.CLIENT_CREDENTIALS, strategy.token_url, strategy.client_id)
    return CacheKey(GrantKind.PASSWORD, strategy.token_url, strategy.username)


def _form_fields(strategy: OAuth2ClientCredentials | OAuth2Password) -> dict[str, str]:
    """Form fields for the grant request, in the order they are sent."""
    if isinstance(strategy, OAuth2ClientCredentials):
        fields = {"grant_type": GrantKind.CLIENT_CREDENTIALS.value}
        if strategy.client_auth_method is ClientAuthMethod.BODY:
            fields["client_id"] = strategy.client_id
            fields["client_secret"] = strategy.client_secret
        if strategy.scope and strategy.scope.strip():
            fields["scope"] = strategy.scope
        if strategy.audience and strategy.audience.strip():
            fields["audience"] = strategy.audience
        return fields

    fields = {
        "grant_type": GrantKind.PASSWORD.value,
        "username": strategy.username,
        "password": strategy.password,
        "client_id": strategy.client_id,
    }
    if strategy.client_secret and strategy.client_secret.strip():
        fields["client_secret"] = strategy.client_secret
    if strategy.scope and strategy.scope.strip():
        fields["scope"] = strategy.scope
    return fields


class AuthResolver:
    """Resolves auth strategies, caching OAuth2 tokens.

    Usage:
        resolver = AuthResolver(TokenCache(), Transport())
        contribution = resolver.resolve(descriptor.auth)
    """

    def __init__(
        self,
        token_cache: TokenCache,
        transport: Transport,
        token_timeout_ms: int = DEFAULT_TIMEOUT_MS,
        token_verify_ssl: bool = True,
    ) -> None:
        """Initialize the resolver.

        Args:
            token_cache: Cache shared by every resolution of this resolver.
            transport: Used for token exchange calls.
            token_timeout_ms: Timeout for each token exchange.
            token_verify_ssl: Validate TLS on token endpoints.
        """
        self._cache = token_cache
        self._transport = transport
        self._token_timeout_ms = token_timeout_ms
        self._token_verify_ssl = token_verify_ssl

    def resolve(self, strategy: AuthStrategy) -> AuthContribution:
        """Resolve a strategy into headers and/or query parameters.

        Raises:
            AuthenticationError: Token endpoint returned non-2xx.
            TokenParseError: Token response was not JSON or lacked access_token.
            TransportError: Token endpoint could not be reached.
        """
        if isinstance(strategy, NoAuth):
            return AuthContribution()
        if isinstance(strategy, BasicAuth):
            return AuthContribution(
                headers={HEADER_AUTHORIZATION: basic_credentials(strategy.username, strategy.password)}
            )
        if isinstance(strategy, BearerAuth):
            return bearer_contribution(strategy.token)
        if isinstance(strategy, ApiKeyAuth):
            if strategy.location is ApiKeyLocation.QUERY:
                return AuthContribution(query_params={strategy.key_name: strategy.key_value})
            return AuthContribution(headers={strategy.key_name: strategy.key_value})
        if isinstance(strategy, (OAuth2ClientCredentials, OAuth2Password)):
            return bearer_contribution(self._resolve_oauth2(strategy))
        assert_never(strategy)

    def _resolve_oauth2(self, strategy: OAuth2ClientCredentials | OAuth2Password) -> str:
        """Return a valid access token, exchanging credentials on a cache miss."""
        key = cache_key_for(strategy)

        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("Using cached OAuth2 token for %s", key.identity)
            return cached.token

        logger.debug("Obtaining OAuth2 %s token from %s", key.grant_kind.value, key.token_url)
        token_response = self._exchange(strategy)

        expires_at = self._cache.now() + token_response.expires_in - TOKEN_EXPIRY_BUFFER_SECONDS
        self._cache.put(key, CachedToken(token=token_response.access_token, expires_at=expires_at))
        logger.debug(
            "OAuth2 token obtained for %s, expires in %d seconds",
            key.identity,
            token_response.expires_in,
        )
        return token_response.access_token

    def _build_token_request(
        self, strategy: OAuth2ClientCredentials | OAuth2Password
    ) -> WireRequest:
        headers = {"Content-Type": ContentType.FORM_URLENCODED.value, "Accept": ContentType.JSON.value}
        if (
            isinstance(strategy, OAuth2ClientCredentials)
            and strategy.client_auth_method is ClientAuthMethod.HEADER
        ):
            headers[HEADER_AUTHORIZATION] = basic_credentials(
                strategy.client_id, strategy.client_secret
            )

        return WireRequest(
            method="POST",
            url=strategy.token_url,
            headers=headers,
            content=urlencode(_form_fields(strategy)).encode("ascii"),
            timeout_ms=self._token_timeout_ms,
            follow_redirects=False,
            verify_ssl=self._token_verify_ssl,
        )

    def _exchange(self, strategy: OAuth2ClientCredentials | OAuth2Password) -> TokenResponse:
        """POST the grant request and parse the token response."""
        response = self._transport.send(self._build_token_request(strategy))

        if not response.is_success:
            # Body may echo credentials back; only the status is reported
            logger.error(
                "OAuth2 token request to %s failed: %d", strategy.token_url, response.status_code
            )
            raise AuthenticationError(
                f"OAuth2 token request failed: {response.status_code}",
                status_code=response.status_code,
            )

        return self._parse_token_response(response)

    @staticmethod
    def _parse_token_response(response: httpx.Response) -> TokenResponse:
        try:
            data = response.json()
        except ValueError as e:
            raise TokenParseError(f"OAuth2 token response is not valid JSON: {e}") from e

        if not isinstance(data, dict):
            raise TokenParseError("OAuth2 token response must be a JSON object")
        if data.get("access_token") in (None, ""):
            raise TokenParseError("OAuth2 token response is missing access_token")

        try:
            return TokenResponse.model_validate(data)
        except ValidationError as e:
            raise TokenParseError(f"Invalid OAuth2 token response: {e}") from e
