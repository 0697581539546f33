from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings

# .env lives at the project root: tgshop/core/config.py -> tgshop/core -> tgshop -> root
_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _ROOT / ".env"

DEFAULT_TINKOFF_API_URL = "https://securepay.tinkoff.ru/v2/"


class Settings(BaseSettings):
    database_url: str = "sqlite:///./tgshop.db"
    # Comma separated origin list; the Mini-App is served from Telegram's webview
    cors_origins: str = "*"
    rate_limit_per_minute: int = 60
    rate_limit_checkout_per_minute: int = 10
    # Shared secret for the admin API (X-Admin-Secret header)
    admin_secret: str = ""
    environment: str = "development"
    # Public address of this service; redirect and webhook URLs are derived from it
    base_url: str = "http://localhost:3000"
    currency: str = "RUB"
    # Telegram bot used to relay orders to the operator chat
    bot_token: str = ""
    admin_chat_id: str = ""
    # T-Bank (Tinkoff) acquiring: terminal credentials from the merchant cabinet
    tinkoff_terminal_key: str = ""
    tinkoff_password: str = ""
    tinkoff_api_url: str = DEFAULT_TINKOFF_API_URL
    # password_field | trailing_secret
    tinkoff_signing_convention: str = "password_field"
    # When on, an Init response without Token is rejected instead of logged
    tinkoff_strict_response_verification: bool = False
    tinkoff_timeout_seconds: float = 15.0
    tinkoff_taxation: str = "usn_income"
    tinkoff_success_url: str = ""
    tinkoff_fail_url: str = ""
    tinkoff_notification_url: str = ""

    model_config = {
        "env_file": _ENV_FILE if _ENV_FILE.is_file() else ".env",
        "extra": "ignore",
    }

    @field_validator("tinkoff_terminal_key", "tinkoff_password", "bot_token", "admin_secret", mode="before")
    @classmethod
    def strip_credentials(cls, v: str | None) -> str:
        """Whitespace from copy-pasted credentials breaks token signing."""
        return (v or "").strip()

    @field_validator("tinkoff_api_url", mode="before")
    @classmethod
    def normalize_api_url(cls, v: str | None) -> str:
        url = (v or "").strip() or DEFAULT_TINKOFF_API_URL
        return url.rstrip("/") + "/"


settings = Settings()


def is_tinkoff_configured() -> bool:
    """Both terminal key and password are present."""
    return bool(settings.tinkoff_terminal_key and settings.tinkoff_password)


def tinkoff_urls() -> dict[str, str]:
    """
    Redirect and notification URLs for Init. Explicit TINKOFF_*_URL values win;
    otherwise they are built from BASE_URL.
    """
    base = (settings.base_url or "").strip().rstrip("/")
    return {
        "success_url": settings.tinkoff_success_url or (f"{base}/payment/success" if base else ""),
        "fail_url": settings.tinkoff_fail_url or (f"{base}/payment/failure" if base else ""),
        "notification_url": settings.tinkoff_notification_url or (f"{base}/api/payment/webhook" if base else ""),
    }
