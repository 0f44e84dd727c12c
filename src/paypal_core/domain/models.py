"""
Domain models — per-call context, cached token, and per-call HTTP records.

RequestContext is the only mutable value: callers own it for the
duration of one call and may reset its idempotency key before a retry
of their own. Everything else is a frozen dataclass.

RequestDetails/ResponseDetails describe one logical HTTP call (all of
its attempts). They are created inside the call and handed back to the
caller in an HttpExchange; the executor never keeps them.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field

from paypal_core.config import get_config_with_defaults


def _new_idempotency_key() -> str:
    return str(uuid.uuid4())


@dataclass(slots=True)
class RequestContext:
    """
    Per-call context: access token, idempotency key, headers, configuration.

    A fresh context always carries a new UUID4 idempotency key, sent as the
    PayPal-Request-Id header unless `mask_idempotency_key` is set.
    """

    access_token: str = ""
    idempotency_key: str = field(default_factory=_new_idempotency_key)
    mask_idempotency_key: bool = False
    headers: dict[str, str] = field(default_factory=dict)
    config: dict[str, str] | None = None

    @classmethod
    def with_token(
        cls,
        access_token: str,
        idempotency_key: str | None = None,
        config: dict[str, str] | None = None,
    ) -> RequestContext:
        """Build a context for an authenticated call, rejecting empty values."""
        if not access_token:
            raise ValueError("access_token cannot be null or empty")
        if idempotency_key is not None and not idempotency_key:
            raise ValueError("idempotency_key cannot be null or empty")
        context = cls(access_token=access_token, config=config)
        if idempotency_key is not None:
            context.idempotency_key = idempotency_key
        return context

    def reset_idempotency_key(self) -> None:
        self.idempotency_key = _new_idempotency_key()

    def config_with_defaults(self) -> dict[str, str]:
        return get_config_with_defaults(self.config)


@dataclass(frozen=True, slots=True)
class CachedToken:
    """
    A bearer token issued by a successful client-credentials exchange.

    `issued_at` is wall-clock seconds (time.time()). The token may be reused
    while the elapsed time stays within its lifetime minus the safety gap.
    """

    bearer_value: str
    application_id: str | None
    issued_at: float
    expires_in_seconds: int
    safety_gap_seconds: int = 120

    def is_reusable(self, now: float) -> bool:
        elapsed = now - self.issued_at
        return elapsed <= self.expires_in_seconds - self.safety_gap_seconds


@dataclass(frozen=True, slots=True)
class RequestDetails:
    """What was sent during one logical call, including how many retries it took."""

    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: str = field(default="", repr=False)
    retry_attempts: int = 0


@dataclass(frozen=True, slots=True)
class ResponseDetails:
    """The final answer of one logical call."""

    status_code: int | None = None
    headers: dict[str, str] = field(default_factory=dict)
    body: str = field(default="", repr=False)


@dataclass(frozen=True, slots=True)
class HttpExchange:
    request: RequestDetails
    response: ResponseDetails

    @property
    def body(self) -> str:
        return self.response.body
