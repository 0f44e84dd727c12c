"""
Unit tests for domain models — RequestContext and CachedToken.
"""

from __future__ import annotations

import dataclasses
import uuid

import pytest

from paypal_core.domain.models import (
    CachedToken,
    HttpExchange,
    RequestContext,
    RequestDetails,
    ResponseDetails,
)


class TestRequestContext:
    def test_idempotency_key_is_uuid4(self) -> None:
        key = RequestContext().idempotency_key
        assert uuid.UUID(key).version == 4

    def test_idempotency_keys_are_unique(self) -> None:
        keys = {RequestContext().idempotency_key for _ in range(100)}
        assert len(keys) == 100

    def test_reset_changes_key(self) -> None:
        """
        GIVEN a context with an idempotency key
        WHEN reset_idempotency_key is called
        THEN the key changes and is still a valid UUID.
        """
        context = RequestContext()
        before = context.idempotency_key
        context.reset_idempotency_key()
        assert context.idempotency_key != before
        assert uuid.UUID(context.idempotency_key).version == 4

    def test_with_token_keeps_explicit_key(self) -> None:
        context = RequestContext.with_token("Bearer abc", idempotency_key="order-42")
        assert context.access_token == "Bearer abc"
        assert context.idempotency_key == "order-42"

    def test_with_token_generates_key(self) -> None:
        context = RequestContext.with_token("Bearer abc")
        assert uuid.UUID(context.idempotency_key)

    def test_with_token_rejects_empty_token(self) -> None:
        with pytest.raises(ValueError, match="access_token"):
            RequestContext.with_token("")

    def test_with_token_rejects_empty_key(self) -> None:
        with pytest.raises(ValueError, match="idempotency_key"):
            RequestContext.with_token("Bearer abc", idempotency_key="")

    def test_config_with_defaults_does_not_mutate(self) -> None:
        context = RequestContext(config={"mode": "live"})
        merged = context.config_with_defaults()
        assert merged["mode"] == "live"
        assert merged["requestRetries"] == "3"
        assert context.config == {"mode": "live"}

    def test_headers_are_independent_per_context(self) -> None:
        first, second = RequestContext(), RequestContext()
        first.headers["X-A"] = "1"
        assert second.headers == {}


class TestCachedToken:
    @pytest.fixture()
    def token(self) -> CachedToken:
        return CachedToken(
            bearer_value="Bearer abc",
            application_id="APP-1",
            issued_at=1_000.0,
            expires_in_seconds=3600,
        )

    @pytest.mark.parametrize(
        ("elapsed", "reusable"),
        [(0, True), (3400, True), (3480, True), (3481, False), (3500, False)],
    )
    def test_reuse_window(self, token: CachedToken, elapsed: int, reusable: bool) -> None:
        assert token.is_reusable(token.issued_at + elapsed) is reusable

    def test_is_frozen(self, token: CachedToken) -> None:
        with pytest.raises(dataclasses.FrozenInstanceError):
            token.bearer_value = "Bearer other"  # type: ignore[misc]


class TestHttpExchange:
    def test_body_is_response_body(self) -> None:
        exchange = HttpExchange(
            request=RequestDetails(method="GET", url="https://api.paypal.com/"),
            response=ResponseDetails(status_code=200, body="ok"),
        )
        assert exchange.body == "ok"
        assert exchange.request.retry_attempts == 0
