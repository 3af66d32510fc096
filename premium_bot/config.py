"""Configuration loader for the premium order bot.

Configuration is loaded from environment variables, with ``.env`` support
through python-dotenv. Environment variables take precedence over the file.
"""
from __future__ import annotations

from dataclasses import dataclass, field
import os
from pathlib import Path
from typing import FrozenSet, Optional

from dotenv import load_dotenv

from .i18n import DEFAULT_LANGUAGE, SUPPORTED_LANGUAGES


@dataclass
class Settings:
    """Configuration values required by the application."""

    bot_token: str
    admin_chat_ids: FrozenSet[str] = field(default_factory=frozenset)
    admin_api_ids: FrozenSet[str] = field(default_factory=frozenset)
    database_path: str = "premium_bot.sqlite3"
    poll_interval: float = 1.0
    # Shortest accepted subscriber (Google) id.
    min_subscriber_id_length: int = 10
    # Allowed shortfall between claimed and required amount. Zero means the
    # claim must cover the full price.
    amount_tolerance: int = 0
    session_timeout_minutes: int = 30
    sweep_interval: float = 60.0
    qris_file_id: Optional[str] = None
    site_url: Optional[str] = None
    webhook_secret: Optional[str] = None
    api_host: str = "127.0.0.1"
    api_port: int = 3000
    default_language: str = DEFAULT_LANGUAGE
    log_level: str = "INFO"

    @property
    def qris_photo(self) -> Optional[str]:
        """Telegram file id of the QRIS image, or its public URL."""

        if self.qris_file_id:
            return self.qris_file_id
        if self.site_url:
            return self.site_url.rstrip("/") + "/qris.png"
        return None


def parse_id_list(raw: Optional[str]) -> FrozenSet[str]:
    """Split a comma separated allow-list into a set of trimmed ids."""

    if not raw:
        return frozenset()
    return frozenset(part.strip() for part in raw.split(",") if part.strip())


def _number(name: str, default: str, kind=int):
    raw = os.environ.get(name, default)
    try:
        return kind(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be a number") from exc


def load_settings() -> Settings:
    """Load settings from environment variables.

    Returns
    -------
    Settings
        The populated configuration dataclass. Raises ``RuntimeError`` if the
        bot token or every admin identity is missing, or a numeric value is
        malformed.
    """
    dotenv_path = os.environ.get("DOTENV_PATH")
    env_path = Path(dotenv_path) if dotenv_path else Path(__file__).parent.parent / ".env"
    if env_path.exists():
        load_dotenv(dotenv_path=env_path)

    token = os.environ.get("TELEGRAM_BOT_TOKEN") or os.environ.get("BOT_TOKEN")
    if not token:
        raise RuntimeError("TELEGRAM_BOT_TOKEN environment variable is required")

    # TELEGRAM_ADMIN_CHAT_ID is the single-admin name used by older deployments.
    admin_chat_ids = parse_id_list(
        os.environ.get("ADMIN_CHAT_IDS") or os.environ.get("TELEGRAM_ADMIN_CHAT_ID")
    )
    admin_api_ids = parse_id_list(os.environ.get("ADMIN_API_IDS") or os.environ.get("ADMIN_UIDS"))
    if not admin_chat_ids and not admin_api_ids:
        raise RuntimeError("ADMIN_CHAT_IDS or ADMIN_API_IDS must be set")

    tolerance = _number("AMOUNT_TOLERANCE", "0")
    if tolerance < 0:
        raise RuntimeError("AMOUNT_TOLERANCE must not be negative")
    min_length = _number("MIN_SUBSCRIBER_ID_LENGTH", "10")
    if min_length < 1:
        raise RuntimeError("MIN_SUBSCRIBER_ID_LENGTH must be positive")

    default_language = os.environ.get("DEFAULT_LANGUAGE", DEFAULT_LANGUAGE)
    if default_language not in SUPPORTED_LANGUAGES:
        default_language = DEFAULT_LANGUAGE

    return Settings(
        bot_token=token,
        admin_chat_ids=admin_chat_ids,
        admin_api_ids=admin_api_ids,
        database_path=os.environ.get("DB_PATH", "premium_bot.sqlite3"),
        poll_interval=_number("POLL_INTERVAL", "1.0", float),
        min_subscriber_id_length=min_length,
        amount_tolerance=tolerance,
        session_timeout_minutes=_number("SESSION_TIMEOUT_MINUTES", "30"),
        sweep_interval=_number("SWEEP_INTERVAL", "60", float),
        qris_file_id=os.environ.get("QRIS_FILE_ID") or os.environ.get("TELEGRAM_QRIS_FILE_ID"),
        site_url=os.environ.get("SITE_URL"),
        webhook_secret=os.environ.get("WEBHOOK_SECRET"),
        api_host=os.environ.get("API_HOST", "127.0.0.1"),
        api_port=_number("API_PORT", os.environ.get("PORT", "3000")),
        default_language=default_language,
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
    )
