import logging

from dairyledger.notifications.base import NotificationChannel
from dairyledger.settings import settings

logger = logging.getLogger(__name__)


def get_channels() -> dict[str, NotificationChannel]:
    """Build the outbound channels that have credentials configured.

    A missing channel is not an error: the dispatcher records it as skipped.
    """
    channels: dict[str, NotificationChannel] = {}

    if settings.smtp_host:
        from dairyledger.notifications.email import SMTPEmailChannel

        channels["email"] = SMTPEmailChannel(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_user,
            password=settings.smtp_password,
            sender=settings.smtp_from,
        )
        logger.debug("Email channel enabled: host=%s", settings.smtp_host)
    else:
        logger.debug("Email channel disabled: DAIRY_SMTP_HOST is not set")

    if settings.twilio_account_sid and settings.twilio_auth_token:
        from dairyledger.notifications.sms import TwilioSMSChannel

        channels["sms"] = TwilioSMSChannel(
            account_sid=settings.twilio_account_sid,
            auth_token=settings.twilio_auth_token,
            from_number=settings.twilio_from_number,
            api_url=settings.twilio_api_url,
        )
        logger.debug("SMS channel enabled")
    else:
        logger.debug("SMS channel disabled: Twilio credentials are not set")

    return channels
