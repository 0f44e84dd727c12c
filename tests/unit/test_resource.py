"""
Unit tests for resource call glue — URL, headers, decoding and error specialisation.
"""

from __future__ import annotations

import json

import httpx
import pytest
import respx

from paypal_core.config import APPLICATION_MODE, ENDPOINT
from paypal_core.domain.models import RequestContext
from paypal_core.errors import HttpError, IdentityError, PaymentsError
from paypal_core.resource import build_headers, configure_and_execute

PAYMENT_URL = "https://api.sandbox.paypal.com/v1/payments/payment"


@pytest.fixture()
def context() -> RequestContext:
    return RequestContext.with_token("Bearer A21AAExampleToken", idempotency_key="req-123")


class TestHeaders:
    def test_token_request_id_and_json_content_type(self, context: RequestContext) -> None:
        headers = build_headers(context)
        assert headers["Authorization"] == "Bearer A21AAExampleToken"
        assert headers["PayPal-Request-Id"] == "req-123"
        assert headers["Content-Type"] == "application/json"

    def test_masked_idempotency_key_is_not_sent(self, context: RequestContext) -> None:
        context.mask_idempotency_key = True
        assert "PayPal-Request-Id" not in build_headers(context)

    def test_caller_content_type_wins(self, context: RequestContext) -> None:
        context.headers["content-type"] = "application/x-www-form-urlencoded"
        headers = build_headers(context)
        assert headers["content-type"] == "application/x-www-form-urlencoded"
        assert "Content-Type" not in headers

    def test_no_token_no_authorization(self) -> None:
        assert "Authorization" not in build_headers(RequestContext())


class TestConfigureAndExecute:
    @respx.mock
    def test_posts_payload_and_decodes_json(self, context: RequestContext) -> None:
        """
        GIVEN a context with token and idempotency key
        WHEN configure_and_execute POSTs to v1/payments/payment
        THEN the sandbox URL, headers and body are used and the JSON is decoded.
        """
        route = respx.post(PAYMENT_URL).mock(
            return_value=httpx.Response(201, json={"id": "PAY-1", "state": "created"})
        )
        result = configure_and_execute(
            context, "POST", "/v1/payments/payment", json.dumps({"intent": "sale"})
        )

        assert result == {"id": "PAY-1", "state": "created"}
        sent = route.calls.last.request
        assert sent.headers["Authorization"] == "Bearer A21AAExampleToken"
        assert sent.headers["PayPal-Request-Id"] == "req-123"
        assert json.loads(sent.content) == {"intent": "sale"}

    @respx.mock
    def test_live_mode_endpoint(self) -> None:
        context = RequestContext.with_token("Bearer abc", config={APPLICATION_MODE: "live"})
        route = respx.get("https://api.paypal.com/v1/payments/payment/PAY-1").mock(
            return_value=httpx.Response(200, json={"id": "PAY-1"})
        )
        configure_and_execute(context, "GET", "v1/payments/payment/PAY-1")
        assert route.called

    @respx.mock
    def test_endpoint_config_key(self) -> None:
        context = RequestContext.with_token("Bearer abc", config={ENDPOINT: "https://api.example.com"})
        route = respx.get("https://api.example.com/v1/things").mock(
            return_value=httpx.Response(200, json=[])
        )
        assert configure_and_execute(context, "GET", "v1/things") == []
        assert route.called

    @respx.mock
    def test_endpoint_argument_wins(self, context: RequestContext) -> None:
        route = respx.get("https://mock.example.com/v1/things").mock(
            return_value=httpx.Response(200, text="")
        )
        result = configure_and_execute(
            context, "GET", "v1/things", endpoint="https://mock.example.com/"
        )
        assert result is None
        assert route.called

    @respx.mock
    def test_raw_returns_text(self, context: RequestContext) -> None:
        respx.get(PAYMENT_URL).mock(return_value=httpx.Response(200, text='{"a": 1}'))
        assert configure_and_execute(context, "GET", "v1/payments/payment", raw=True) == '{"a": 1}'

    @respx.mock
    def test_rest_error_becomes_payments_error(self, context: RequestContext) -> None:
        respx.post(PAYMENT_URL).mock(
            return_value=httpx.Response(
                400,
                json={"name": "VALIDATION_ERROR", "message": "Invalid request", "debug_id": "d1"},
            )
        )
        with pytest.raises(PaymentsError) as exc_info:
            configure_and_execute(context, "POST", "v1/payments/payment", "{}")
        assert exc_info.value.details.name == "VALIDATION_ERROR"
        assert exc_info.value.status_code == 400

    @respx.mock
    def test_identity_path_prefers_identity_shape(self, context: RequestContext) -> None:
        respx.get("https://api.sandbox.paypal.com/v1/identity/openidconnect/userinfo").mock(
            return_value=httpx.Response(401, json={"error": "invalid_token"})
        )
        with pytest.raises(IdentityError) as exc_info:
            configure_and_execute(context, "GET", "v1/identity/openidconnect/userinfo")
        assert exc_info.value.details.error == "invalid_token"

    @respx.mock
    def test_undecodable_error_stays_http_error(self, context: RequestContext) -> None:
        respx.get(PAYMENT_URL).mock(return_value=httpx.Response(404, text="Not Found"))
        with pytest.raises(HttpError) as exc_info:
            configure_and_execute(context, "GET", "v1/payments/payment")
        assert type(exc_info.value) is HttpError
