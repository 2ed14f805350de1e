import logging

from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="DAIRY_", extra="ignore")

    db_url: str = "mysql://dairy:dairy@db:3306/dairy"

    timezone: str = "Asia/Kolkata"

    business_name: str = "Muthujaya Dairy Farm"
    bill_number_prefix: str = "MDF"
    bill_due_day: int = 7
    reminder_window_days: int = 3

    # Scheduler times are HH:MM in local (Asia/Kolkata) time
    materialize_at: str = "06:00"
    reminders_at: str = "09:00"
    overdue_at: str = "09:05"
    daily_report_at: str = "22:00"
    scheduler_poll_seconds: int = 60

    razorpay_key_id: str = ""
    razorpay_key_secret: str = ""
    razorpay_api_url: str = "https://api.razorpay.com/v1"

    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from: str = ""

    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_from_number: str = ""
    twilio_api_url: str = "https://api.twilio.com/2010-04-01"

    log_level: str = "INFO"
    log_json: bool = False

    @property
    def gateway_configured(self) -> bool:
        return bool(self.razorpay_key_id and self.razorpay_key_secret)

    def get_gateway_secret(self) -> str:
        if not self.razorpay_key_secret:
            logger.warning(
                "DAIRY_RAZORPAY_KEY_SECRET is not set, gateway payments cannot be verified. "
                "Set DAIRY_RAZORPAY_KEY_SECRET in your environment or .env file."
            )
        return self.razorpay_key_secret


settings = Settings()
