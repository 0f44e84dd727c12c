"""
Resource call glue — turn a RequestContext and a resource path into one HTTP call.

    context + "v1/payments/payment" + JSON payload
      → URL:     endpoint (argument | "endpoint" config | mode default) + path
      → headers: context headers, Authorization, PayPal-Request-Id, Content-Type
      → HttpExecutor.execute()
      → decoded JSON (or raw text)

HttpErrors are specialised to IdentityError/PaymentsError from the error
body; the Identity shape is tried first on OAuth and identity paths.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

import structlog

from paypal_core.adapters.http_client import HttpExecutor
from paypal_core.adapters.oauth import normalize_endpoint
from paypal_core.config import (
    AUTHORIZATION_HEADER,
    CONTENT_TYPE_HEADER,
    CONTENT_TYPE_JSON,
    ENDPOINT,
    REQUEST_ID_HEADER,
    default_endpoint,
)
from paypal_core.domain.models import RequestContext
from paypal_core.domain.ports import RequestExecutor
from paypal_core.errors import HttpError, PayPalError, specialize

log = structlog.get_logger()

_IDENTITY_PATH_PREFIXES = ("v1/oauth2/", "v1/identity/")


def resolve_endpoint(config: Mapping[str, str], endpoint: str = "") -> str:
    if endpoint:
        return normalize_endpoint(endpoint)
    configured = config.get(ENDPOINT)
    if configured:
        return normalize_endpoint(configured)
    return default_endpoint(config)


def build_headers(context: RequestContext) -> dict[str, str]:
    headers = dict(context.headers)
    if context.access_token:
        headers[AUTHORIZATION_HEADER] = context.access_token
    if not context.mask_idempotency_key and context.idempotency_key:
        headers[REQUEST_ID_HEADER] = context.idempotency_key
    if not any(name.lower() == CONTENT_TYPE_HEADER.lower() for name in headers):
        headers[CONTENT_TYPE_HEADER] = CONTENT_TYPE_JSON
    return headers


def configure_and_execute(
    context: RequestContext,
    method: str,
    resource_path: str,
    payload: str = "",
    endpoint: str = "",
    executor: RequestExecutor | None = None,
    raw: bool = False,
) -> Any:
    """
    Execute `method` on `resource_path` with the context's token and headers.

    Returns the decoded JSON body (None for an empty body), or the body text
    when `raw` is set.
    """
    config = context.config_with_defaults()
    path = resource_path.lstrip("/")
    url = resolve_endpoint(config, endpoint) + path
    headers = build_headers(context)

    owned = executor is None
    active = executor if executor is not None else HttpExecutor(config)
    try:
        body = active.execute(method, url, headers, payload)
    except HttpError as exc:
        specialised = specialize(exc, prefer_identity=path.startswith(_IDENTITY_PATH_PREFIXES))
        if specialised is exc:
            raise
        raise specialised from exc
    finally:
        if owned and isinstance(active, HttpExecutor):
            active.close()

    if raw:
        return body
    if not body:
        return None
    try:
        return json.loads(body)
    except ValueError as exc:
        log.error("resource.invalid_json", url=url)
        raise PayPalError(f"Response from {url} is not valid JSON: {exc}") from exc
