"""Unit tests for the payment gateway clients.

Covers:
- HttpPaymentGateway request shape (URL, JSON body, auth header, timeout).
- Timeout, transport error, bad JSON and decline map to PaymentGatewayError.
- SimulatedPaymentGateway references.
- build_payment_gateway() selection from settings.
"""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
import requests

from modules.orders.gateways import (
    HttpPaymentGateway,
    PaymentGatewayError,
    SimulatedPaymentGateway,
    build_payment_gateway,
)

pytestmark = pytest.mark.unit


@pytest.fixture()
def session():
    session = MagicMock(spec=requests.Session)
    response = MagicMock()
    response.json.return_value = {"reference_id": "ch_42"}
    session.post.return_value = response
    return session


@pytest.fixture()
def gateway(session):
    return HttpPaymentGateway(
        "https://payments.example.com/v1/",
        api_key="sk_test",
        timeout=3.0,
        session=session,
    )


def _charge(gateway, order_id=None):
    return gateway.charge(
        order_id or uuid4(), Decimal("1150.00"), "upi", {"vpa": "buyer@upi"}
    )


class TestHttpPaymentGateway:
    def test_posts_charge(self, gateway, session):
        order_id = uuid4()

        result = _charge(gateway, order_id)

        assert result.reference_id == "ch_42"
        session.post.assert_called_once_with(
            "https://payments.example.com/v1/charges",
            json={
                "order_id": str(order_id),
                "amount": "1150.00",
                "payment_method": "upi",
                "payment_details": {"vpa": "buyer@upi"},
            },
            headers={
                "Content-Type": "application/json",
                "Authorization": "Bearer sk_test",
            },
            timeout=3.0,
        )

    def test_no_auth_header_without_key(self, session):
        gateway = HttpPaymentGateway("https://payments.example.com", session=session)
        _charge(gateway)
        headers = session.post.call_args.kwargs["headers"]
        assert "Authorization" not in headers

    def test_timeout_is_a_failure(self, gateway, session):
        session.post.side_effect = requests.exceptions.ReadTimeout("slow")
        with pytest.raises(PaymentGatewayError) as excinfo:
            _charge(gateway)
        assert excinfo.value.reason == "timeout"

    def test_http_error(self, gateway, session):
        session.post.return_value.raise_for_status.side_effect = (
            requests.exceptions.HTTPError("502 Bad Gateway")
        )
        with pytest.raises(PaymentGatewayError) as excinfo:
            _charge(gateway)
        assert excinfo.value.reason == "gateway_error"

    def test_connection_error(self, gateway, session):
        session.post.side_effect = requests.exceptions.ConnectionError("refused")
        with pytest.raises(PaymentGatewayError) as excinfo:
            _charge(gateway)
        assert excinfo.value.reason == "gateway_error"

    def test_non_json_body(self, gateway, session):
        response = requests.Response()
        response.status_code = 200
        response.headers["Content-Type"] = "text/html"
        response._content = b"<html>Service Unavailable</html>"
        session.post.return_value = response

        with pytest.raises(PaymentGatewayError) as excinfo:
            _charge(gateway)
        assert excinfo.value.reason == "invalid_response"

    def test_decline_reason_is_kept(self, gateway, session):
        session.post.return_value.json.return_value = {"reason": "insufficient_funds"}
        with pytest.raises(PaymentGatewayError) as excinfo:
            _charge(gateway)
        assert excinfo.value.reason == "insufficient_funds"

    def test_missing_reference_is_a_decline(self, gateway, session):
        session.post.return_value.json.return_value = {}
        with pytest.raises(PaymentGatewayError) as excinfo:
            _charge(gateway)
        assert excinfo.value.reason == "declined"


class TestSimulatedPaymentGateway:
    def test_approves_with_unique_reference(self):
        gateway = SimulatedPaymentGateway()
        first = _charge(gateway)
        second = _charge(gateway)
        assert first.reference_id.startswith("pay_")
        assert first.reference_id != second.reference_id


class TestBuildPaymentGateway:
    def test_simulated_without_url(self, settings):
        settings.PAYMENT_GATEWAY_URL = ""
        assert isinstance(build_payment_gateway(), SimulatedPaymentGateway)

    def test_http_with_url(self, settings):
        settings.PAYMENT_GATEWAY_URL = "https://payments.example.com"
        settings.PAYMENT_GATEWAY_API_KEY = "sk_live"
        settings.PAYMENT_GATEWAY_TIMEOUT = 5.0
        gateway = build_payment_gateway()
        assert isinstance(gateway, HttpPaymentGateway)

    def test_charges_endpoint_under_base_url(self, settings, session):
        settings.PAYMENT_GATEWAY_URL = "https://payments.example.com/v1"
        gateway = build_payment_gateway()
        gateway._session = session

        _charge(gateway)

        assert session.post.call_args.args[0] == "https://payments.example.com/v1/charges"
