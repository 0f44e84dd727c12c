"""
HTTP adapter — single logical call with bounded retry, via httpx + tenacity.

Adapter layer — implements the RequestExecutor port.

Attempt loop (strictly sequential, one attempt at a time):
  attempt 0          → request built from the caller's method/url/headers/body
  attempt n (n ≥ 1)  → a NEW request copied from the previous one, minus
                       connection-scoped headers (regenerated by the client)
  stop               → after retry_limit + 1 attempts

Failure classification per attempt:
  408 / 502 / 503 / 504             → transient, consumes a retry slot
  any other non-2xx status          → HttpError (status, headers, body), not retried
  connect / read / write / protocol → transient, consumes a retry slot
  timeout                           → PayPalConnectionError with the timeout value
  any other transport failure       → PayPalConnectionError, not retried
  retries exhausted                 → PayPalError("Retried N times....")

Every transient failure counts against the limit, so a host that keeps
refusing connections cannot keep a call looping.

Per-call records (RequestDetails/ResponseDetails) are local to `send()`
and returned to the caller in an HttpExchange — never stored on the
executor, so concurrent calls on one instance share no state.
"""

from __future__ import annotations

from collections.abc import Mapping

import httpx
import structlog
from tenacity import RetryError, Retrying, retry_if_exception_type, stop_after_attempt, wait_none
from tenacity.wait import wait_base

from paypal_core.config import (
    AUTHORIZATION_HEADER,
    CONNECTION_TIMEOUT,
    REQUEST_RETRIES,
    USER_AGENT_HEADER,
    get_config_with_defaults,
    get_int,
    is_live_mode_enabled,
    user_agent,
)
from paypal_core.domain.models import HttpExchange, RequestDetails, ResponseDetails
from paypal_core.errors import ConfigError, HttpError, PayPalConnectionError, PayPalError

log = structlog.get_logger()

_TRANSIENT_STATUS = frozenset({408, 502, 503, 504})

_TRANSIENT_TRANSPORT_ERRORS = (
    httpx.ConnectError,
    httpx.ReadError,
    httpx.WriteError,
    httpx.RemoteProtocolError,
)

# Never copied onto a retry request; the client regenerates them.
_CONNECTION_SCOPED_HEADERS = frozenset(
    {
        "accept",
        "connection",
        "content-length",
        "content-type",
        "date",
        "expect",
        "host",
        "if-modified-since",
        "range",
        "referer",
        "transfer-encoding",
        "user-agent",
        "proxy-connection",
    }
)

_BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})

_REDACTED = "<redacted>"


class _TransientFailure(Exception):
    """An attempt failed in a way worth retrying."""

    def __init__(self, reason: str, status_code: int | None = None) -> None:
        super().__init__(reason)
        self.status_code = status_code


def _redact(headers: Mapping[str, str]) -> dict[str, str]:
    return {
        key: (_REDACTED if key.lower() == AUTHORIZATION_HEADER.lower() else value)
        for key, value in headers.items()
    }


# ─────────────────────── Connection Factory ───────────────────────


class ConnectionManager:
    """
    Creates the httpx client and the per-attempt request objects.

    The client carries the connection timeout and the SDK User-Agent, so
    every request it builds (first attempt or retry) gets them regenerated.
    """

    def __init__(self, config: Mapping[str, str]) -> None:
        self.timeout_ms = get_int(config, CONNECTION_TIMEOUT)

    def create_client(self) -> httpx.Client:
        return httpx.Client(
            timeout=httpx.Timeout(self.timeout_ms / 1000),
            headers={USER_AGENT_HEADER: user_agent()},
        )

    def build_request(
        self,
        client: httpx.Client,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: str,
    ) -> httpx.Request:
        try:
            parsed = httpx.URL(url)
        except (httpx.InvalidURL, TypeError) as exc:
            raise ConfigError(f"Invalid URI: {url}") from exc
        if parsed.scheme not in ("http", "https") or not parsed.host:
            raise ConfigError(f"Invalid URI: {url}")

        content = body.encode("utf-8") if method in _BODY_METHODS and body else None
        return client.build_request(method, parsed, headers=dict(headers), content=content)

    def copy_request(self, client: httpx.Client, previous: httpx.Request) -> httpx.Request:
        """A fresh request for a retry: same method, URL, body and end-to-end headers."""
        headers = [
            (key, value)
            for key, value in previous.headers.multi_items()
            if key.lower() not in _CONNECTION_SCOPED_HEADERS
        ]
        for name in ("accept", "content-type"):
            if name in previous.headers:
                headers.append((name, previous.headers[name]))

        content = previous.content if previous.method in _BODY_METHODS else None
        return client.build_request(
            previous.method, previous.url, headers=headers, content=content or None
        )


# ─────────────────────── Executor ───────────────────────


class HttpExecutor:
    """
    Execute one logical HTTP call with retry of transient failures.

    Implements the RequestExecutor port. `wait` is an optional tenacity wait
    strategy between attempts; by default retries are immediate.
    """

    def __init__(
        self,
        config: Mapping[str, str] | None = None,
        client: httpx.Client | None = None,
        wait: wait_base | None = None,
    ) -> None:
        self._config = get_config_with_defaults(config)
        self._connections = ConnectionManager(self._config)
        self._owns_client = client is None
        self._client = client if client is not None else self._connections.create_client()
        self._wait = wait if wait is not None else wait_none()
        self._live_mode = is_live_mode_enabled(self._config)

    @property
    def config(self) -> dict[str, str]:
        return dict(self._config)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> HttpExecutor:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def execute(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str] | None = None,
        body: str = "",
        retry_limit: int | None = None,
    ) -> str:
        """Send the call and return the trimmed response body."""
        return self.send(method, url, headers, body, retry_limit).body

    def send(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str] | None = None,
        body: str = "",
        retry_limit: int | None = None,
    ) -> HttpExchange:
        """
        Send the call and return what was sent and received.

        Raises HttpError, PayPalConnectionError, ConfigError, or PayPalError
        (retries exhausted / unexpected failure).
        """
        try:
            limit = get_int(self._config, REQUEST_RETRIES) if retry_limit is None else retry_limit
            return self._send_with_retry(method.upper(), url, headers or {}, body, max(limit, 0))
        except PayPalError:
            raise
        except Exception as exc:
            raise PayPalError(f"Exception in HttpExecutor.execute(): {exc}") from exc

    def _send_with_retry(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: str,
        retry_limit: int,
    ) -> HttpExchange:
        request = self._connections.build_request(self._client, method, url, headers, body)
        self._log_request(method, url, headers, body)

        retrying = Retrying(
            stop=stop_after_attempt(retry_limit + 1),
            wait=self._wait,
            retry=retry_if_exception_type(_TransientFailure),
            reraise=False,
        )
        try:
            for attempt in retrying:
                with attempt:
                    retries = attempt.retry_state.attempt_number - 1
                    if retries > 0:
                        request = self._connections.copy_request(self._client, request)
                        log.info("http.retry", method=method, url=url, attempt=retries)
                    details = RequestDetails(
                        method=method,
                        url=url,
                        headers=_redact(headers),
                        body=body,
                        retry_attempts=retries,
                    )
                    return self._attempt(request, details)
        except RetryError as exc:
            last = exc.last_attempt.exception()
            log.error("http.retries_exhausted", method=method, url=url, retries=retry_limit, last=str(last))
            raise PayPalError(
                f"Retried {retry_limit} times.... Exception in HttpExecutor.execute(). "
                "Check log for more details."
            ) from last
        raise PayPalError("Exception in HttpExecutor.execute(): no attempt was made")

    def _attempt(self, request: httpx.Request, details: RequestDetails) -> HttpExchange:
        try:
            response = self._client.send(request)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            text = exc.response.text.strip()
            if status in _TRANSIENT_STATUS:
                log.warning("http.transient_status", url=details.url, status=status)
                raise _TransientFailure(f"HTTP {status}", status) from exc
            log.error("http.error", url=details.url, status=status)
            self._log_body("http.error.body", text)
            raise HttpError(
                str(exc),
                response=text,
                status_code=status,
                headers=dict(exc.response.headers),
                request=details,
            ) from exc
        except _TRANSIENT_TRANSPORT_ERRORS as exc:
            log.warning("http.transient_failure", url=details.url, error=str(exc))
            raise _TransientFailure(f"{type(exc).__name__}: {exc}") from exc
        except httpx.TimeoutException as exc:
            log.error("http.timeout", url=details.url, timeout_ms=self._connections.timeout_ms)
            raise PayPalConnectionError(
                f"{exc} (HTTP request timeout was set to {self._connections.timeout_ms}ms)",
                request=details,
            ) from exc
        except httpx.HTTPError as exc:
            log.error("http.connection_failed", url=details.url, error=str(exc))
            raise PayPalConnectionError(f"Invalid HTTP response: {exc}", request=details) from exc

        text = response.text.strip()
        log.info(
            "http.response",
            url=details.url,
            status=response.status_code,
            retries=details.retry_attempts,
        )
        self._log_body("http.response.body", text)
        return HttpExchange(
            request=details,
            response=ResponseDetails(
                status_code=response.status_code,
                headers=dict(response.headers),
                body=text,
            ),
        )

    def _log_request(
        self, method: str, url: str, headers: Mapping[str, str], body: str
    ) -> None:
        log.info("http.request", method=method, url=url)
        log.debug("http.request.headers", headers=_redact(headers))
        if method in _BODY_METHODS:
            self._log_body("http.request.body", body)

    def _log_body(self, event: str, body: str) -> None:
        if self._live_mode:
            log.debug(event, body="<hidden in live mode>")
        else:
            log.debug(event, body=body)
