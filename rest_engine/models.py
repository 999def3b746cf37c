"""Internal data models for rest-engine.

All models use Pydantic v2. Descriptor, strategy and result models accept
both camelCase (the JSON wire format) and snake_case field names.
"""

from __future__ import annotations

import json
import math
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)
from pydantic.alias_generators import to_camel


MIN_TIMEOUT_MS = 1_000
MAX_TIMEOUT_MS = 300_000
DEFAULT_TIMEOUT_MS = 30_000

# Subtracted from expires_in so a token is never handed out right before it dies.
TOKEN_EXPIRY_BUFFER_SECONDS = 60
DEFAULT_EXPIRES_IN_SECONDS = 3600

DEFAULT_USER_AGENT = "rest-engine/0.1"

_WIRE_CONFIG = ConfigDict(
    extra="forbid",
    frozen=True,
    alias_generator=to_camel,
    populate_by_name=True,
)


def clamp_timeout_ms(value: int) -> int:
    """Clamp a timeout into [MIN_TIMEOUT_MS, MAX_TIMEOUT_MS]."""
    return max(MIN_TIMEOUT_MS, min(MAX_TIMEOUT_MS, value))


# =============================================================================
# Enumerations
# =============================================================================


class HttpMethod(str, Enum):
    """HTTP methods a descriptor may use."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"

    @property
    def allows_body(self) -> bool:
        return self in (HttpMethod.POST, HttpMethod.PUT, HttpMethod.PATCH)


class ContentType(str, Enum):
    """Content types understood for request bodies and responses."""

    JSON = "application/json"
    XML = "application/xml"
    TEXT_PLAIN = "text/plain"
    TEXT_HTML = "text/html"
    FORM_URLENCODED = "application/x-www-form-urlencoded"
    MULTIPART_FORM_DATA = "multipart/form-data"
    BINARY = "application/octet-stream"
    PDF = "application/pdf"

    @classmethod
    def from_mime_type(cls, mime_type: str | None) -> ContentType | None:
        """Look up a content type, ignoring parameters like '; charset=utf-8'.

        Returns None for blank or unknown mime types.
        """
        if mime_type is None:
            return None
        normalized = mime_type.split(";", 1)[0].strip().lower()
        if not normalized:
            return None
        for member in cls:
            if member.value == normalized:
                return member
        return None

    @property
    def is_text_based(self) -> bool:
        return self in (
            ContentType.JSON,
            ContentType.XML,
            ContentType.TEXT_PLAIN,
            ContentType.TEXT_HTML,
        )

    @property
    def is_json(self) -> bool:
        return self is ContentType.JSON

    @property
    def is_xml(self) -> bool:
        return self is ContentType.XML


class ApiKeyLocation(str, Enum):
    """Where an API key is placed on the outgoing request."""

    HEADER = "header"
    QUERY = "queryParam"


class ClientAuthMethod(str, Enum):
    """How client credentials reach the token endpoint."""

    BODY = "body"  # client_id/client_secret as form fields
    HEADER = "header"  # HTTP Basic on the token request


class GrantKind(str, Enum):
    """OAuth2 flow that produced a cached token."""

    CLIENT_CREDENTIALS = "client_credentials"
    PASSWORD = "password"


# =============================================================================
# Authentication Strategies
# =============================================================================


class NoAuth(BaseModel):
    """No credentials."""

    model_config = _WIRE_CONFIG

    auth_type: Literal["none"] = "none"


class BasicAuth(BaseModel):
    """HTTP Basic authentication."""

    model_config = _WIRE_CONFIG

    auth_type: Literal["basic"] = "basic"
    username: str = Field(min_length=1, description="Basic auth user")
    password: str = Field(default="", description="Basic auth password")


class BearerAuth(BaseModel):
    """Static bearer token."""

    model_config = _WIRE_CONFIG

    auth_type: Literal["bearer"] = "bearer"
    token: str = Field(min_length=1, description="Bearer token value")


class ApiKeyAuth(BaseModel):
    """API key sent as a header or query parameter."""

    model_config = _WIRE_CONFIG

    auth_type: Literal["apiKey"] = "apiKey"
    key_name: str = Field(
        default="X-API-Key",
        min_length=1,
        validation_alias=AliasChoices("keyName", "key_name", "name"),
        description="Header or query parameter name",
    )
    key_value: str = Field(
        min_length=1,
        validation_alias=AliasChoices("keyValue", "key_value", "value"),
        description="API key value",
    )
    location: ApiKeyLocation = Field(
        default=ApiKeyLocation.HEADER,
        validation_alias=AliasChoices("location", "placement"),
        description="header or queryParam",
    )

    @field_validator("location", mode="before")
    @classmethod
    def normalize_location(cls, v: Any) -> Any:
        if isinstance(v, str):
            lowered = v.strip().lower()
            if lowered in ("query", "queryparam", "query_param"):
                return ApiKeyLocation.QUERY
            if lowered == "header":
                return ApiKeyLocation.HEADER
        return v


class OAuth2ClientCredentials(BaseModel):
    """OAuth2 client-credentials grant."""

    model_config = _WIRE_CONFIG

    auth_type: Literal["oauth2ClientCredentials"] = "oauth2ClientCredentials"
    token_url: str = Field(min_length=1, description="Token endpoint URL")
    client_id: str = Field(min_length=1, description="OAuth2 client id")
    client_secret: str = Field(min_length=1, description="OAuth2 client secret")
    scope: str | None = Field(default=None, description="Requested scope")
    audience: str | None = Field(default=None, description="Requested audience")
    client_auth_method: ClientAuthMethod = Field(
        default=ClientAuthMethod.BODY, description="body or header"
    )


class OAuth2Password(BaseModel):
    """OAuth2 resource-owner password grant."""

    model_config = _WIRE_CONFIG

    auth_type: Literal["oauth2Password"] = "oauth2Password"
    token_url: str = Field(min_length=1, description="Token endpoint URL")
    client_id: str = Field(min_length=1, description="OAuth2 client id")
    username: str = Field(min_length=1, description="Resource owner")
    password: str = Field(default="", description="Resource owner password")
    client_secret: str | None = Field(default=None, description="Optional client secret")
    scope: str | None = Field(default=None, description="Requested scope")


AuthStrategy = Annotated[
    Union[
        NoAuth,
        BasicAuth,
        BearerAuth,
        ApiKeyAuth,
        OAuth2ClientCredentials,
        OAuth2Password,
    ],
    Field(discriminator="auth_type"),
]

# Accepted spellings of authType (lower-cased) -> canonical tag
_AUTH_TYPE_ALIASES = {
    "none": "none",
    "basic": "basic",
    "bearer": "bearer",
    "apikey": "apiKey",
    "api_key": "apiKey",
    "oauth2clientcredentials": "oauth2ClientCredentials",
    "oauth2_client_credentials": "oauth2ClientCredentials",
    "oauth2password": "oauth2Password",
    "oauth2_password": "oauth2Password",
}


def _normalize_auth(value: Any) -> Any:
    """Map loose authType spellings onto the canonical discriminator."""
    if value is None:
        return {"auth_type": "none"}
    if not isinstance(value, dict):
        return value

    data = dict(value)
    raw_type = data.pop("authType", None)
    if raw_type is None:
        raw_type = data.pop("auth_type", "none")
    if not isinstance(raw_type, str):
        raise ValueError(f"authType must be a string, got {type(raw_type).__name__}")
    canonical = _AUTH_TYPE_ALIASES.get(raw_type.strip().lower())
    if canonical is None:
        valid = ", ".join(sorted(set(_AUTH_TYPE_ALIASES.values())))
        raise ValueError(f"Unknown authType '{raw_type}'. Valid options: {valid}")
    data["auth_type"] = canonical
    return data


# =============================================================================
# Request Descriptor
# =============================================================================


def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    if value is None:
        return ""
    if isinstance(value, (bool, int, float, list, dict)):
        return _to_json_text(value)
    # Dates and other YAML scalars
    return str(value)


def _to_json_text(value: Any, **kwargs: Any) -> str:
    """json.dumps with non-JSON values (dates, decimals) rendered via str()."""
    try:
        return json.dumps(value, default=str, **kwargs)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Value cannot be serialized to JSON: {e}") from e


class RequestDescriptor(BaseModel):
    """Declarative description of one HTTP call, built per call.

    timeout_ms is clamped into [MIN_TIMEOUT_MS, MAX_TIMEOUT_MS]; zero and
    negative values become MIN_TIMEOUT_MS.
    """

    model_config = _WIRE_CONFIG

    base_url: str = Field(
        min_length=1,
        validation_alias=AliasChoices("baseUrl", "base_url", "url"),
        description="Base URL, e.g. https://api.example.com",
    )
    path: str = Field(default="", description="Path appended to base_url")
    method: HttpMethod = Field(default=HttpMethod.GET, description="HTTP method")
    query_params: dict[str, str] = Field(default_factory=dict, description="Query parameters")
    headers: dict[str, str] = Field(default_factory=dict, description="Caller headers")
    body: str | None = Field(default=None, description="Raw request body")
    content_type: ContentType = Field(default=ContentType.JSON, description="Body content type")
    timeout_ms: int = Field(default=DEFAULT_TIMEOUT_MS, description="Request timeout in ms")
    follow_redirects: bool = Field(default=True, description="Follow 3xx automatically")
    verify_ssl: bool = Field(
        default=True, description="Validate TLS certificates; False is insecure"
    )
    auth: AuthStrategy = Field(default_factory=NoAuth, description="Authentication strategy")

    @field_validator("base_url", mode="before")
    @classmethod
    def strip_base_url(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("method", mode="before")
    @classmethod
    def normalize_method(cls, v: Any) -> Any:
        if v is None:
            return HttpMethod.GET
        return v.strip().upper() if isinstance(v, str) else v

    @field_validator("query_params", "headers", mode="before")
    @classmethod
    def stringify_values(cls, v: Any) -> Any:
        if v is None:
            return {}
        if isinstance(v, dict):
            return {str(k): _stringify(val) for k, val in v.items()}
        return v

    @field_validator("body", mode="before")
    @classmethod
    def serialize_body(cls, v: Any) -> Any:
        # JSON objects/arrays in a request file become compact JSON text
        if v is None or isinstance(v, str):
            return v
        return _to_json_text(v, separators=(",", ":"))

    @field_validator("content_type", mode="before")
    @classmethod
    def parse_content_type(cls, v: Any) -> Any:
        if v is None:
            return ContentType.JSON
        if isinstance(v, str) and not isinstance(v, ContentType):
            resolved = ContentType.from_mime_type(v)
            if resolved is None:
                raise ValueError(f"Unsupported content type '{v}'")
            return resolved
        return v

    @field_validator("timeout_ms", mode="before")
    @classmethod
    def default_timeout(cls, v: Any) -> Any:
        return DEFAULT_TIMEOUT_MS if v is None else v

    @field_validator("timeout_ms")
    @classmethod
    def clamp_timeout(cls, v: int) -> int:
        return clamp_timeout_ms(v)

    @field_validator("auth", mode="before")
    @classmethod
    def normalize_auth(cls, v: Any) -> Any:
        return _normalize_auth(v)

    @property
    def has_body(self) -> bool:
        return self.body is not None and self.body != ""

    @property
    def url(self) -> str:
        """base_url (trailing slash stripped) joined with path, no query string."""
        base = self.base_url.rstrip("/")
        if not self.path:
            return base
        if self.path.startswith("/"):
            return base + self.path
        return f"{base}/{self.path}"


# =============================================================================
# Auth Resolution and Wire Models
# =============================================================================


class AuthContribution(BaseModel):
    """Headers and query parameters an auth strategy adds to a request."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    headers: dict[str, str] = Field(default_factory=dict)
    query_params: dict[str, str] = Field(default_factory=dict)


class WireRequest(BaseModel):
    """A fully assembled request, ready for the transport."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    method: str = Field(description="HTTP method")
    url: str = Field(description="Absolute URL including query string")
    headers: dict[str, str] = Field(default_factory=dict, description="Final headers")
    content: bytes | None = Field(default=None, description="Raw body bytes")
    timeout_ms: int = Field(default=DEFAULT_TIMEOUT_MS, description="Timeout in ms")
    follow_redirects: bool = Field(default=True)
    verify_ssl: bool = Field(default=True)


class CachedToken(BaseModel):
    """An access token and the instant (epoch seconds) it stops being served."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    token: str
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class TokenResponse(BaseModel):
    """Token endpoint JSON payload. Unknown members are kept."""

    model_config = ConfigDict(extra="allow")

    access_token: str = Field(min_length=1)
    token_type: str | None = None
    expires_in: int = DEFAULT_EXPIRES_IN_SECONDS
    refresh_token: str | None = None
    scope: str | None = None

    @field_validator("access_token", mode="before")
    @classmethod
    def scalar_token_to_text(cls, v: Any) -> Any:
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("expires_in", mode="before")
    @classmethod
    def lenient_expires_in(cls, v: Any) -> int:
        # Providers send ints, numeric strings, or junk; junk means the default.
        if isinstance(v, bool):
            return DEFAULT_EXPIRES_IN_SECONDS
        if isinstance(v, str):
            try:
                v = float(v.strip())
            except ValueError:
                return DEFAULT_EXPIRES_IN_SECONDS
        if isinstance(v, int):
            return v
        if isinstance(v, float) and math.isfinite(v):
            return int(v)
        return DEFAULT_EXPIRES_IN_SECONDS


# =============================================================================
# Results
# =============================================================================


class Success(BaseModel):
    """A completed HTTP exchange, whatever its status code.

    Header names are lowercase with one value per name (first wins).
    """

    model_config = _WIRE_CONFIG

    kind: Literal["success"] = "success"
    status_code: int = Field(description="HTTP status code")
    headers: dict[str, str] = Field(default_factory=dict, description="Response headers")
    body: str = Field(default="", description="Response body text")
    content_type: ContentType = Field(default=ContentType.JSON, description="Response content type")
    elapsed_ms: float = Field(description="Elapsed time in milliseconds")
    url: str = Field(description="Target URL")

    @property
    def is_successful(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def is_redirect(self) -> bool:
        return 300 <= self.status_code < 400

    @property
    def is_client_error(self) -> bool:
        return 400 <= self.status_code < 500

    @property
    def is_server_error(self) -> bool:
        return 500 <= self.status_code < 600

    @property
    def is_error(self) -> bool:
        return self.status_code >= 400

    @property
    def location(self) -> str | None:
        return self.get_header("Location")

    @property
    def has_json_body(self) -> bool:
        return self.content_type.is_json and bool(self.body.strip())

    def get_header(self, name: str) -> str | None:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower())

    def body_as_json(self) -> Any:
        """Parse the body as JSON. Returns None when blank or not JSON."""
        if not self.body.strip():
            return None
        try:
            return json.loads(self.body)
        except ValueError:
            return None

    def get_json_field(self, name: str) -> str | None:
        """Top-level JSON field as text, or None when absent/null."""
        data = self.body_as_json()
        if not isinstance(data, dict):
            return None
        value = data.get(name)
        if value is None:
            return None
        return value if isinstance(value, str) else json.dumps(value)

    def summary(self) -> str:
        return (
            f"HTTP {self.status_code} ({self.elapsed_ms:.0f}ms) "
            f"Body: {len(self.body)} chars"
        )


class Failure(BaseModel):
    """An execution that produced no HTTP response."""

    model_config = _WIRE_CONFIG

    kind: Literal["failure"] = "failure"
    message: str = Field(min_length=1, description="What went wrong")
    elapsed_ms: float = Field(description="Elapsed time in milliseconds")
    url: str | None = Field(default=None, description="Target URL, if known")

    @property
    def is_error(self) -> bool:
        return True

    def summary(self) -> str:
        return f"ERROR: {self.message} ({self.elapsed_ms:.0f}ms)"


Result = Annotated[Union[Success, Failure], Field(discriminator="kind")]


# =============================================================================
# Runtime Configuration
# =============================================================================


class EngineConfig(BaseModel):
    """Engine-wide settings, usually loaded from YAML."""

    model_config = ConfigDict(extra="forbid")

    default_headers: dict[str, str] = Field(
        default_factory=lambda: {"User-Agent": DEFAULT_USER_AGENT},
        description="Lowest-precedence headers on every business request",
    )
    token_timeout_ms: int = Field(
        default=DEFAULT_TIMEOUT_MS, description="Timeout for token exchange calls"
    )
    token_verify_ssl: bool = Field(
        default=True, description="Validate TLS on token endpoints"
    )
    ca_bundle: str | None = Field(
        default=None, description="CA bundle path used whenever TLS is verified"
    )

    @field_validator("token_timeout_ms")
    @classmethod
    def clamp_token_timeout(cls, v: int) -> int:
        return clamp_timeout_ms(v)
