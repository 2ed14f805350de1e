import logging
import smtplib
from email.message import EmailMessage

from dairyledger.models.user import User
from dairyledger.notifications.base import NotificationChannel

logger = logging.getLogger(__name__)


class SMTPEmailChannel(NotificationChannel):
    name = "email"

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        sender: str,
        timeout: float = 10.0,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender or username
        self.timeout = timeout

    def can_reach(self, user: User) -> bool:
        return bool(user.email)

    def _build_message(self, to: str, subject: str, body: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content(body)
        return msg

    def send(self, user: User, title: str, message: str) -> None:
        self.send_raw(user.email, title, message)

    def send_raw(self, to: str, subject: str, body: str) -> None:
        msg = self._build_message(to, subject, body)
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            smtp.starttls()
            if self.username:
                smtp.login(self.username, self.password)
            smtp.send_message(msg)
        logger.debug("Email sent to %s: %s", to, subject)
