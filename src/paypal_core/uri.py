"""
URI helpers — `{name}` path templates and query strings for resource paths.

    format_uri_path("v1/payments/payment/{id}", {"id": "PAY-1"})
        → "v1/payments/payment/PAY-1"
    format_uri_path("v1/payments/payment", query_parameters={"count": "10"})
        → "v1/payments/payment?count=10"
"""

from __future__ import annotations

from collections.abc import Mapping
from urllib.parse import quote_plus

from paypal_core.errors import PayPalError


def format_uri_path(
    pattern: str,
    path_parameters: Mapping[str, str] | None = None,
    query_parameters: Mapping[str, str] | None = None,
) -> str:
    """
    Substitute `{name}` placeholders and append URL-encoded query parameters.

    Raises PayPalError when a placeholder is left unreplaced.
    """
    path = pattern
    for name, value in (path_parameters or {}).items():
        path = path.replace("{" + name.strip() + "}", value.strip())

    if query_parameters:
        if "?" not in path:
            path += "?"
        elif not path.endswith(("?", "&")):
            path += "&"
        path += "&".join(
            f"{quote_plus(key)}={quote_plus(value)}" for key, value in query_parameters.items()
        )

    if "{" in path or "}" in path:
        raise PayPalError(
            f"Unable to format URI path {path!r}: placeholders left after applying "
            f"{dict(path_parameters or {})!r}"
        )
    return path


class QueryParameters(dict[str, str]):
    """Query parameters that render themselves as a URL query string."""

    def to_url_formatted_string(self) -> str:
        """`?a=1&b=2`, skipping empty values; empty string when nothing is set."""
        pairs = [f"{key}={quote_plus(value)}" for key, value in self.items() if value]
        return "?" + "&".join(pairs) if pairs else ""
