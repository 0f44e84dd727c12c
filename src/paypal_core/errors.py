"""
Error taxonomy — typed failures raised by the access layer.

    PayPalError                     generic SDK error (wraps unexpected failures)
    ├── ConfigError                 malformed/missing configuration, bad URI
    ├── MissingCredentialError      empty client id or secret
    ├── InvalidCredentialError      credentials cannot be encoded
    └── PayPalConnectionError       transport failure (timeout, connect, receive)
        └── HttpError               non-transient HTTP status, body + headers attached
            ├── IdentityError       body decoded as an Identity API error
            └── PaymentsError       body decoded as a REST API error

Transient failures never surface here unless retries are exhausted.
Typed errors are never re-wrapped; anything else is wrapped exactly once.

Decoding an HttpError body is a tagged result (IdentityDecoded,
PaymentsDecoded, Undecoded) that `specialize` matches on, so callers
never have to guess by catching and re-parsing.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

if TYPE_CHECKING:
    from paypal_core.domain.models import RequestDetails

log = structlog.get_logger()


class PayPalError(Exception):
    """Generic SDK error. Also raised when retries are exhausted."""


class ConfigError(PayPalError):
    """Configuration is missing, malformed, or names an invalid URI."""


class MissingCredentialError(PayPalError):
    """Client id or client secret is empty."""


class InvalidCredentialError(PayPalError):
    """Client credentials could not be turned into an authorization header."""


class PayPalConnectionError(PayPalError):
    """
    Transport-level failure talking to the remote host.

    `response` holds whatever body text the host sent (often empty);
    `request` describes the logical call that failed.
    """

    def __init__(
        self,
        message: str,
        response: str = "",
        request: RequestDetails | None = None,
    ) -> None:
        super().__init__(message)
        self.response = response
        self.request = request


class HttpError(PayPalConnectionError):
    """The remote host answered with a non-transient error status."""

    def __init__(
        self,
        message: str,
        response: str,
        status_code: int,
        headers: Mapping[str, str] | None = None,
        request: RequestDetails | None = None,
    ) -> None:
        super().__init__(message, response=response, request=request)
        self.status_code = status_code
        self.headers: dict[str, str] = dict(headers or {})


# ─────────────────────── Error Body Shapes ───────────────────────


class IdentityErrorDetails(BaseModel):
    """Identity API error object. Unknown members reject the decode."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    error: str
    error_description: str | None = None
    error_uri: str | None = None


class ErrorDetail(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    field: str | None = None
    issue: str | None = None


class PaymentsErrorDetails(BaseModel):
    """REST API error object (name, message, debug id, field issues)."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    name: str
    message: str | None = None
    information_link: str | None = None
    debug_id: str | None = None
    details: list[ErrorDetail] = Field(default_factory=list)


class IdentityError(HttpError):
    """Identity API error (e.g. invalid_client on the token exchange)."""

    details: IdentityErrorDetails

    def __init__(self, source: HttpError, details: IdentityErrorDetails) -> None:
        super().__init__(
            str(source),
            response=source.response,
            status_code=source.status_code,
            headers=source.headers,
            request=source.request,
        )
        self.details = details

    def summary(self) -> str:
        return "\n".join(
            [
                "",
                f"   Error:   {self.details.error}",
                f"   Message: {self.details.error_description}",
                f"   URI:     {self.details.error_uri}",
            ]
        )


class PaymentsError(HttpError):
    """REST API error carrying the decoded error object."""

    details: PaymentsErrorDetails

    def __init__(self, source: HttpError, details: PaymentsErrorDetails) -> None:
        super().__init__(
            str(source),
            response=source.response,
            status_code=source.status_code,
            headers=source.headers,
            request=source.request,
        )
        self.details = details

    def summary(self) -> str:
        lines = [
            "",
            f"   Error:    {self.details.name}",
            f"   Message:  {self.details.message}",
            f"   URI:      {self.details.information_link}",
            f"   Debug ID: {self.details.debug_id}",
        ]
        lines.extend(f"   Details:  {d.field} -> {d.issue}" for d in self.details.details)
        return "\n".join(lines)


# ─────────────────────── Decoding ───────────────────────


@dataclass(frozen=True, slots=True)
class IdentityDecoded:
    details: IdentityErrorDetails


@dataclass(frozen=True, slots=True)
class PaymentsDecoded:
    details: PaymentsErrorDetails


@dataclass(frozen=True, slots=True)
class Undecoded:
    reason: str


type DecodedError = IdentityDecoded | PaymentsDecoded | Undecoded


def decode_error_body(body: str, prefer_identity: bool = False) -> DecodedError:
    """
    Try the known error shapes against an HTTP error body.

    The Identity shape is tried first when `prefer_identity` is set (token
    and identity endpoints); otherwise the REST shape is tried first.
    """
    if not body or not body.strip():
        return Undecoded("empty body")
    try:
        payload = json.loads(body)
    except ValueError as exc:
        return Undecoded(f"not JSON: {exc}")
    if not isinstance(payload, dict):
        return Undecoded("not a JSON object")

    attempts: list[type[BaseModel]] = [IdentityErrorDetails, PaymentsErrorDetails]
    if not prefer_identity:
        attempts.reverse()

    for shape in attempts:
        try:
            details = shape.model_validate(payload)
        except ValidationError:
            continue
        if isinstance(details, IdentityErrorDetails):
            return IdentityDecoded(details)
        if isinstance(details, PaymentsErrorDetails):
            return PaymentsDecoded(details)
    return Undecoded("no known error shape matched")


def specialize(error: HttpError, prefer_identity: bool = False) -> HttpError:
    """
    Return the most specific HttpError for `error`'s body.

    Already-specialised errors and undecodable bodies come back unchanged.
    """
    if isinstance(error, (IdentityError, PaymentsError)):
        return error

    match decode_error_body(error.response, prefer_identity=prefer_identity):
        case IdentityDecoded(details=details):
            specialised: IdentityError | PaymentsError = IdentityError(error, details)
            log.error("error.identity", status=error.status_code, summary=specialised.summary())
        case PaymentsDecoded(details=details):
            specialised = PaymentsError(error, details)
            log.error("error.payments", status=error.status_code, summary=specialised.summary())
        case Undecoded():
            return error
    specialised.__cause__ = error
    return specialised
