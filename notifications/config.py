"""Shared configuration for the notification relay."""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

EMAIL = "email"
WHATSAPP = "whatsapp"
TELEGRAM = "telegram"

VALID_CHANNELS = (EMAIL, WHATSAPP, TELEGRAM)

TELEGRAM_PLACEHOLDER_TOKEN = "your_telegram_bot_token"

DEFAULT_CORS_ORIGINS = (
    "http://localhost:8001",
    "http://127.0.0.1:5500",
    "http://localhost:5500",
)


def _flag(value: Optional[str], default: bool = True) -> bool:
    if value is None or not value.strip():
        return default
    return value.strip().lower() not in {"0", "false", "no", "off"}


def _number(value: Optional[str], default: float) -> float:
    try:
        return float(value) if value else default
    except ValueError:
        return default


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


@dataclass(frozen=True, slots=True)
class RelaySettings:
    """Provider credentials and presentation defaults, read once at startup."""

    email_user: Optional[str] = None
    email_password: Optional[str] = None
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_use_tls: bool = True
    smtp_timeout: float = 10.0

    sender_name: str = "Anomaly Insight System"
    subject_tag: str = "[Anomaly Insight]"
    org_name: str = "Solusi Bangun Indonesia"

    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = None
    twilio_whatsapp_from: Optional[str] = None
    twilio_api_base: str = "https://api.twilio.com"

    telegram_bot_token: Optional[str] = None
    telegram_api_base: str = "https://api.telegram.org"
    telegram_parse_mode: Optional[str] = "MarkdownV2"

    http_timeout: float = 10.0
    diagnostics: bool = False
    cors_origins: Tuple[str, ...] = DEFAULT_CORS_ORIGINS

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RelaySettings":
        env = os.environ if environ is None else environ
        origins = env.get("CORS_ORIGINS")
        if origins is not None:
            cors = tuple(o.strip() for o in origins.split(",") if o.strip())
        else:
            cors = DEFAULT_CORS_ORIGINS
        parse_mode = env.get("TELEGRAM_PARSE_MODE")
        return cls(
            email_user=_clean(env.get("EMAIL_USER")),
            email_password=_clean(env.get("EMAIL_PASS")),
            smtp_host=_clean(env.get("SMTP_HOST")) or "smtp.gmail.com",
            smtp_port=int(_number(env.get("SMTP_PORT"), 587)),
            smtp_use_tls=_flag(env.get("SMTP_USE_TLS")),
            smtp_timeout=_number(env.get("SMTP_TIMEOUT"), 10.0),
            sender_name=env.get("NOTIFY_SENDER_NAME") or "Anomaly Insight System",
            subject_tag=env.get("NOTIFY_SUBJECT_TAG") or "[Anomaly Insight]",
            org_name=env.get("NOTIFY_ORG_NAME") or "Solusi Bangun Indonesia",
            twilio_account_sid=_clean(env.get("TWILIO_ACCOUNT_SID")),
            twilio_auth_token=_clean(env.get("TWILIO_AUTH_TOKEN")),
            twilio_whatsapp_from=_clean(env.get("TWILIO_WHATSAPP_FROM")),
            twilio_api_base=(env.get("TWILIO_API_BASE") or "https://api.twilio.com").rstrip("/"),
            telegram_bot_token=_clean(env.get("TELEGRAM_BOT_TOKEN")),
            telegram_api_base=(env.get("TELEGRAM_API_BASE") or "https://api.telegram.org").rstrip("/"),
            telegram_parse_mode="MarkdownV2" if parse_mode is None else (_clean(parse_mode)),
            http_timeout=_number(env.get("NOTIFY_HTTP_TIMEOUT"), 10.0),
            diagnostics=(env.get("FLASK_ENV") or "").strip().lower() == "development",
            cors_origins=cors,
        )

    @property
    def email_configured(self) -> bool:
        return bool(self.email_user and self.email_password and self.smtp_host)

    @property
    def whatsapp_configured(self) -> bool:
        return bool(self.twilio_account_sid and self.twilio_auth_token and self.twilio_whatsapp_from)

    @property
    def telegram_configured(self) -> bool:
        token = self.telegram_bot_token
        return bool(token) and token != TELEGRAM_PLACEHOLDER_TOKEN

