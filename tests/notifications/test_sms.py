from unittest.mock import MagicMock

import httpx
import pytest

from dairyledger.models.user import User
from dairyledger.notifications.sms import TwilioSMSChannel


def _channel(client):
    return TwilioSMSChannel("AC123", "token", "+15550000000", api_url="https://twilio.test/2010-04-01/", client=client)


def test_can_reach_requires_phone():
    channel = _channel(MagicMock())
    assert channel.can_reach(User(name="A", phone="+919800000001"))
    assert not channel.can_reach(User(name="B"))


def test_send_posts_message():
    client = MagicMock()
    client.post.return_value.json.return_value = {"sid": "SM1"}

    _channel(client).send(User(id=1, name="A", phone="+919800000001"), "Payment Received", "₹60.00")

    url = client.post.call_args.args[0]
    assert url == "https://twilio.test/2010-04-01/Accounts/AC123/Messages.json"
    kwargs = client.post.call_args.kwargs
    assert kwargs["auth"] == ("AC123", "token")
    assert kwargs["data"] == {"To": "+919800000001", "From": "+15550000000", "Body": "Payment Received: ₹60.00"}


def test_send_raises_on_http_error():
    client = MagicMock()
    request = httpx.Request("POST", "https://twilio.test")
    client.post.return_value.raise_for_status.side_effect = httpx.HTTPStatusError(
        "boom", request=request, response=httpx.Response(500, request=request)
    )

    with pytest.raises(httpx.HTTPStatusError):
        _channel(client).send(User(id=1, name="A", phone="+91"), "T", "M")
