"""Request Builder - Assembles a descriptor and auth contribution into a WireRequest.

Header precedence, lowest to highest:
    engine default headers < Content-Type (only with a body)
    < auth contribution headers < caller headers

Header names collide case-insensitively; exactly one header per name is
emitted and it keeps the spelling of whichever layer won.
"""

from __future__ import annotations

from urllib.parse import urlencode

from rest_engine.models import AuthContribution, RequestDescriptor, WireRequest

HEADER_CONTENT_TYPE = "Content-Type"


def append_query(url: str, params: dict[str, str]) -> str:
    """Append form-encoded params to url, using '&' if it already has a query."""
    if not params:
        return url
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{urlencode(params)}"


def target_url(descriptor: RequestDescriptor) -> str:
    """URL reported in results: descriptor query only, never auth parameters."""
    return append_query(descriptor.url, descriptor.query_params)


def _merge_headers(*layers: dict[str, str]) -> dict[str, str]:
    """Merge header dicts, later layers winning on case-insensitive collision."""
    merged: dict[str, tuple[str, str]] = {}
    for layer in layers:
        for name, value in layer.items():
            merged[name.lower()] = (name, value)
    return dict(merged.values())


def build_request(
    descriptor: RequestDescriptor,
    contribution: AuthContribution,
    default_headers: dict[str, str] | None = None,
) -> WireRequest:
    """Build the final wire request.

    Args:
        descriptor: The call to make.
        contribution: Headers/query params from the resolved auth strategy.
        default_headers: Engine-wide headers with the lowest precedence.

    Returns:
        WireRequest with merged headers, absolute URL and encoded body.
    """
    content_headers: dict[str, str] = {}
    content: bytes | None = None
    if descriptor.has_body:
        content_headers[HEADER_CONTENT_TYPE] = descriptor.content_type.value
        content = descriptor.body.encode("utf-8")

    headers = _merge_headers(
        default_headers or {},
        content_headers,
        contribution.headers,
        descriptor.headers,
    )

    # Descriptor params first, then auth params; last applied wins
    params = dict(descriptor.query_params)
    params.update(contribution.query_params)

    return WireRequest(
        method=descriptor.method.value,
        url=append_query(descriptor.url, params),
        headers=headers,
        content=content,
        timeout_ms=descriptor.timeout_ms,
        follow_redirects=descriptor.follow_redirects,
        verify_ssl=descriptor.verify_ssl,
    )
