"""
OAuth adapter — client-credentials bearer token with per-instance caching.

Adapter layer — implements the AccessTokenProvider port.

One OAuthTokenCredential per client id/secret pair. The cached token is
reused while

    now - issued_at <= expires_in - safety_gap      (safety gap default 120 s)

and regenerated otherwise. The whole check-then-regenerate sequence runs
under an instance lock, so concurrent callers wait for one exchange
instead of racing their own.

Exchange:
  POST {endpoint}v1/oauth2/token
  Authorization: Basic base64(client_id:client_secret)
  Content-Type: application/x-www-form-urlencoded
  grant_type=client_credentials
  → {"token_type", "access_token", "app_id", "expires_in"}
  → bearer value "<token_type> <access_token>"
"""

from __future__ import annotations

import base64
import dataclasses
import threading
import time
from collections.abc import Callable, Mapping
from datetime import UTC, datetime

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, ValidationError

from paypal_core.adapters.http_client import HttpExecutor
from paypal_core.config import (
    AUTHORIZATION_HEADER,
    CLIENT_ID,
    CLIENT_SECRET,
    CONTENT_TYPE_FORM_URLENCODED,
    CONTENT_TYPE_HEADER,
    ENDPOINT,
    OAUTH_ENDPOINT,
    default_endpoint,
    get_config_with_defaults,
    load_settings,
)
from paypal_core.domain.models import CachedToken
from paypal_core.domain.ports import RequestExecutor
from paypal_core.errors import (
    ConfigError,
    HttpError,
    IdentityDecoded,
    IdentityError,
    InvalidCredentialError,
    MissingCredentialError,
    PayPalError,
    decode_error_body,
)

log = structlog.get_logger()

OAUTH_TOKEN_PATH = "v1/oauth2/token"
GRANT_CLIENT_CREDENTIALS = "grant_type=client_credentials"
DEFAULT_SAFETY_GAP_SECONDS = 120


class TokenResponse(BaseModel):
    """Successful token exchange payload."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    token_type: str
    access_token: str
    app_id: str | None = None
    expires_in: int


def normalize_endpoint(endpoint: str) -> str:
    """Validate an absolute http(s) endpoint and give it exactly one trailing slash."""
    candidate = endpoint.strip()
    try:
        url = httpx.URL(candidate)
    except httpx.InvalidURL as exc:
        raise ConfigError(f"Invalid endpoint: {endpoint!r}") from exc
    if url.scheme not in ("http", "https") or not url.host:
        raise ConfigError(f"Invalid endpoint: {endpoint!r}")
    return candidate.rstrip("/") + "/"


class OAuthTokenCredential:
    """
    Generates and caches the OAuth token used for REST API calls.

    Explicit `client_id`/`client_secret` win over the configuration keys;
    with no configuration at all the environment settings are used (invalid
    PAYPAL_* settings raise ConfigError). Use as a context manager, or call
    close(), to release the executor it creates on first exchange.
    """

    def __init__(
        self,
        client_id: str = "",
        client_secret: str = "",
        config: Mapping[str, str] | None = None,
        executor: RequestExecutor | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        source = config if config is not None else load_settings().to_config()
        self._config = get_config_with_defaults(source)
        if client_id:
            self._config[CLIENT_ID] = client_id
        if client_secret:
            self._config[CLIENT_SECRET] = client_secret

        self.client_id = self._config.get(CLIENT_ID, "")
        self.client_secret = self._config.get(CLIENT_SECRET, "")

        self._executor = executor
        self._owned_executor: HttpExecutor | None = None
        self._clock = clock
        self._lock = threading.Lock()
        self._token: CachedToken | None = None
        self._safety_gap_seconds = DEFAULT_SAFETY_GAP_SECONDS

    # ─────────────────────── Token state ───────────────────────

    @property
    def application_id(self) -> str | None:
        token = self._token
        return token.application_id if token else None

    @property
    def access_token_expiration_in_seconds(self) -> int | None:
        token = self._token
        return token.expires_in_seconds if token else None

    @property
    def access_token_last_creation_date(self) -> datetime | None:
        token = self._token
        return datetime.fromtimestamp(token.issued_at, UTC) if token else None

    @property
    def access_token_expiration_safety_gap_in_seconds(self) -> int:
        return self._safety_gap_seconds

    @access_token_expiration_safety_gap_in_seconds.setter
    def access_token_expiration_safety_gap_in_seconds(self, seconds: int) -> None:
        with self._lock:
            self._safety_gap_seconds = seconds
            if self._token is not None:
                self._token = dataclasses.replace(self._token, safety_gap_seconds=seconds)

    # ─────────────────────── Public API ───────────────────────

    def close(self) -> None:
        """Close the executor this credential created; an injected one is left open."""
        with self._lock:
            owned, self._owned_executor = self._owned_executor, None
            if owned is not None:
                owned.close()
                self._executor = None
                log.debug("token.executor_closed")

    def __enter__(self) -> OAuthTokenCredential:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def get_access_token(self) -> str:
        """
        Return the cached bearer value, regenerating it when missing or expiring.

        Raises MissingCredentialError, IdentityError, HttpError,
        PayPalConnectionError, ConfigError, or PayPalError.
        """
        with self._lock:
            token = self._token
            if token is not None and token.is_reusable(self._clock()):
                log.debug("token.reused", app_id=token.application_id)
                return token.bearer_value

            if token is not None:
                log.info("token.regenerating", app_id=token.application_id)
            self._token = self._generate_token()
            return self._token.bearer_value

    # ─────────────────────── Exchange ───────────────────────

    def _generate_token(self) -> CachedToken:
        if not self.client_id or not self.client_secret:
            raise MissingCredentialError("clientId and clientSecret are required to request an OAuth token")

        url = self._endpoint() + OAUTH_TOKEN_PATH
        headers = {
            AUTHORIZATION_HEADER: self._basic_authorization(),
            CONTENT_TYPE_HEADER: CONTENT_TYPE_FORM_URLENCODED,
        }

        try:
            body = self._get_executor().execute("POST", url, headers, GRANT_CLIENT_CREDENTIALS)
        except HttpError as exc:
            match decode_error_body(exc.response, prefer_identity=True):
                case IdentityDecoded(details=details):
                    identity_error = IdentityError(exc, details)
                    log.error("token.identity_error", status=exc.status_code, summary=identity_error.summary())
                    raise identity_error from exc
                case _:
                    raise

        try:
            payload = TokenResponse.model_validate_json(body)
        except ValidationError as exc:
            raise PayPalError(
                f"Unexpected OAuth token response ({exc.error_count()} invalid field(s))"
            ) from exc

        token = CachedToken(
            bearer_value=f"{payload.token_type} {payload.access_token}",
            application_id=payload.app_id,
            issued_at=self._clock(),
            expires_in_seconds=payload.expires_in,
            safety_gap_seconds=self._safety_gap_seconds,
        )
        log.info("token.acquired", app_id=payload.app_id, expires_in=payload.expires_in)
        return token

    def _endpoint(self) -> str:
        override = self._config.get(OAUTH_ENDPOINT)
        if override:
            return normalize_endpoint(override)
        configured = self._config.get(ENDPOINT)
        if configured:
            return normalize_endpoint(configured)
        return default_endpoint(self._config)

    def _basic_authorization(self) -> str:
        try:
            raw = f"{self.client_id}:{self.client_secret}".encode("utf-8")
        except UnicodeEncodeError as exc:
            raise InvalidCredentialError("Client credentials cannot be encoded") from exc
        return "Basic " + base64.b64encode(raw).decode("ascii")

    def _get_executor(self) -> RequestExecutor:
        if self._executor is None:
            self._owned_executor = HttpExecutor(self._config)
            self._executor = self._owned_executor
        return self._executor
