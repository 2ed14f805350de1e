import hashlib
import hmac
from unittest.mock import MagicMock, patch

import httpx
import pytest

from dairyledger.errors import GatewayUnavailable
from dairyledger.services.gateway import (
    RazorpayGateway,
    compute_signature,
    get_gateway,
    order_receipt,
    verify_signature,
)


class TestSignature:
    def test_compute_matches_hmac_sha256(self):
        expected = hmac.new(b"secret", b"order_1|pay_1", hashlib.sha256).hexdigest()
        assert compute_signature("secret", "order_1", "pay_1") == expected

    def test_verify(self):
        signature = compute_signature("secret", "order_1", "pay_1")
        assert verify_signature("secret", "order_1", "pay_1", signature)
        assert not verify_signature("secret", "order_1", "pay_2", signature)
        assert not verify_signature("other", "order_1", "pay_1", signature)

    @pytest.mark.parametrize("secret,signature", [("", "abc"), ("secret", "")])
    def test_empty_inputs_never_verify(self, secret, signature):
        assert not verify_signature(secret, "order_1", "pay_1", signature)


class TestRazorpayGateway:
    def test_create_order(self):
        client = MagicMock()
        client.post.return_value.json.return_value = {"id": "order_9", "amount": 5000}
        gateway = RazorpayGateway("key", "secret", api_url="https://rzp.test/v1/", client=client)

        order = gateway.create_order(5000, "bill_1_1", {"billId": 1})

        assert order == {"id": "order_9", "amount": 5000}
        client.post.assert_called_once_with(
            "https://rzp.test/v1/orders",
            auth=("key", "secret"),
            json={"amount": 5000, "currency": "INR", "receipt": "bill_1_1", "notes": {"billId": 1}},
        )

    def test_transport_error_is_gateway_unavailable(self):
        client = MagicMock()
        client.post.side_effect = httpx.ConnectError("refused")
        gateway = RazorpayGateway("key", "secret", client=client)

        with pytest.raises(GatewayUnavailable):
            gateway.create_order(5000, "r", {})


def test_order_receipt():
    receipt = order_receipt(42)
    prefix, bill_id, stamp = receipt.split("_")
    assert (prefix, bill_id) == ("bill", "42")
    assert stamp.isdigit()


@patch("dairyledger.services.gateway.settings")
def test_get_gateway_unconfigured(mock_settings):
    mock_settings.gateway_configured = False
    assert get_gateway() is None


@patch("dairyledger.services.gateway.settings")
def test_get_gateway_configured(mock_settings):
    mock_settings.gateway_configured = True
    mock_settings.razorpay_key_id = "rzp_key"
    mock_settings.razorpay_key_secret = "rzp_secret"
    mock_settings.razorpay_api_url = "https://rzp.test/v1"

    gateway = get_gateway()

    assert isinstance(gateway, RazorpayGateway)
    assert gateway.key_id == "rzp_key"
