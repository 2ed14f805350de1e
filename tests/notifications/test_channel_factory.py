from unittest.mock import patch

from dairyledger.notifications.email import SMTPEmailChannel
from dairyledger.notifications.factory import get_channels
from dairyledger.notifications.sms import TwilioSMSChannel


@patch("dairyledger.notifications.factory.settings")
def test_no_credentials(mock_settings):
    mock_settings.smtp_host = ""
    mock_settings.twilio_account_sid = ""
    mock_settings.twilio_auth_token = ""
    assert get_channels() == {}


@patch("dairyledger.notifications.factory.settings")
def test_all_configured(mock_settings):
    mock_settings.smtp_host = "smtp.example.com"
    mock_settings.smtp_port = 2525
    mock_settings.smtp_user = "bot"
    mock_settings.smtp_password = "pw"
    mock_settings.smtp_from = "bot@example.com"
    mock_settings.twilio_account_sid = "AC123"
    mock_settings.twilio_auth_token = "token"
    mock_settings.twilio_from_number = "+1555"
    mock_settings.twilio_api_url = "https://twilio.test"

    channels = get_channels()

    assert isinstance(channels["email"], SMTPEmailChannel)
    assert channels["email"].port == 2525
    assert isinstance(channels["sms"], TwilioSMSChannel)
    assert channels["sms"].api_url == "https://twilio.test"
