import logging

import httpx

from dairyledger.models.user import User
from dairyledger.notifications.base import NotificationChannel

logger = logging.getLogger(__name__)


class TwilioSMSChannel(NotificationChannel):
    """Sends SMS through the Twilio Messages REST endpoint."""

    name = "sms"

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        api_url: str = "https://api.twilio.com/2010-04-01",
        client: httpx.Client | None = None,
    ) -> None:
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.api_url = api_url.rstrip("/")
        self.client = client or httpx.Client(timeout=10.0)

    def can_reach(self, user: User) -> bool:
        return bool(user.phone)

    def send(self, user: User, title: str, message: str) -> None:
        response = self.client.post(
            f"{self.api_url}/Accounts/{self.account_sid}/Messages.json",
            auth=(self.account_sid, self.auth_token),
            data={"To": user.phone, "From": self.from_number, "Body": f"{title}: {message}"},
        )
        response.raise_for_status()
        logger.debug("SMS sent to user=%s (sid=%s)", user.id, response.json().get("sid", ""))
