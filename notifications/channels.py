from __future__ import annotations

import logging
import re
import smtplib
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from typing import Any, Callable, Dict, Optional

import requests

from .config import EMAIL, TELEGRAM, TELEGRAM_PLACEHOLDER_TOKEN, WHATSAPP, RelaySettings
from .errors import (
    AuthenticationFailed,
    ChannelDeliveryError,
    ChannelNotConfigured,
    ConnectivityError,
    InvalidRecipient,
    ProviderError,
)
from .models import FAILED, SKIPPED, SUCCESS, ChannelResult

LOGGER = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

SMTP_ADDRESS_CODES = {501, 550, 553}
TWILIO_AUTH_CODES = {20003}
TWILIO_ADDRESS_CODES = {21211, 21606, 21608, 21614, 63003}
TELEGRAM_ADDRESS_HINTS = ("chat not found", "bot was blocked", "user is deactivated", "chat_id is empty", "peer_id_invalid")
TELEGRAM_ESCAPES = {
    "MarkdownV2": re.compile(r"([_*\[\]()~`>#+\-=|{}.!\\])"),
    "Markdown": re.compile(r"([_*`\[])"),
}


def is_valid_email(address: Optional[str]) -> bool:
    return bool(address) and EMAIL_PATTERN.match(address) is not None


def escape_telegram(text: str, parse_mode: Optional[str]) -> str:
    """Backslash-escape markup characters so text renders literally in parse_mode."""
    pattern = TELEGRAM_ESCAPES.get(parse_mode or "")
    return pattern.sub(r"\\\1", text) if pattern else text


# ------------------------------ error classification ------------------------------

def classify_smtp_error(exc: BaseException) -> ChannelDeliveryError:
    """Map an smtplib/socket failure onto a delivery error subtype."""
    detail = str(exc) or exc.__class__.__name__
    if isinstance(exc, smtplib.SMTPAuthenticationError):
        return AuthenticationFailed("check the mail account user and app password", provider_detail=detail)
    if isinstance(exc, (smtplib.SMTPRecipientsRefused, smtplib.SMTPSenderRefused)):
        return InvalidRecipient("the mail server refused the sender or recipient", provider_detail=detail)
    if isinstance(exc, smtplib.SMTPResponseException) and exc.smtp_code in SMTP_ADDRESS_CODES:
        return InvalidRecipient("the mail server refused the sender or recipient", provider_detail=detail)
    if isinstance(exc, (smtplib.SMTPConnectError, smtplib.SMTPServerDisconnected)):
        return ConnectivityError("could not talk to the mail server", provider_detail=detail)
    if isinstance(exc, smtplib.SMTPException):
        return ProviderError("the mail server rejected the message", provider_detail=detail)
    if isinstance(exc, OSError):
        return ConnectivityError("could not connect to the mail server", provider_detail=detail)
    return ProviderError("unexpected error while sending email", provider_detail=detail)


def classify_transport_error(exc: BaseException, provider: str) -> ChannelDeliveryError:
    """Map a requests failure that happened before any HTTP response arrived."""
    detail = str(exc) or exc.__class__.__name__
    if isinstance(exc, (requests.Timeout, requests.ConnectionError)):
        return ConnectivityError(f"could not reach the {provider} API", provider_detail=detail)
    return ProviderError(f"unexpected error calling the {provider} API", provider_detail=detail)


def classify_twilio_error(status_code: int, payload: Dict[str, Any]) -> ChannelDeliveryError:
    code = payload.get("code")
    message = payload.get("message") or f"HTTP {status_code}"
    detail = f"Twilio error {code}: {message}" if code else f"Twilio error: {message}"
    if status_code == 401 or code in TWILIO_AUTH_CODES:
        return AuthenticationFailed("check the Twilio account SID and auth token", provider_detail=detail)
    if code in TWILIO_ADDRESS_CODES:
        return InvalidRecipient("Twilio rejected the WhatsApp number", provider_detail=detail)
    return ProviderError(detail)


def classify_telegram_error(status_code: int, payload: Dict[str, Any]) -> ChannelDeliveryError:
    code = payload.get("error_code") or status_code
    description = payload.get("description") or f"HTTP {status_code}"
    detail = f"Telegram error {code}: {description}"
    lowered = description.lower()
    # An unknown bot token answers 401, or 404 on the whole bot path.
    if code == 401 or (code == 404 and "chat" not in lowered):
        return AuthenticationFailed("check the Telegram bot token", provider_detail=detail)
    if code in (400, 403) and any(hint in lowered for hint in TELEGRAM_ADDRESS_HINTS):
        return InvalidRecipient("Telegram rejected the chat id", provider_detail=detail)
    return ProviderError(detail)


def _json(resp) -> Dict[str, Any]:
    try:
        data = resp.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


# ----------------------------------- handlers ------------------------------------

class Channel:
    """Uniform delivery capability shared by every provider-backed channel."""

    name = "channel"

    def __init__(self, settings: RelaySettings) -> None:
        self.settings = settings

    @property
    def service_configured(self) -> bool:
        raise NotImplementedError

    def ensure_ready(self, recipient: Optional[str]) -> None:
        """Raise ChannelNotConfigured when a delivery must not be attempted."""
        raise NotImplementedError

    def deliver(self, subject: str, message: str, recipient: str) -> str:
        """Send the message and return the provider identifier."""
        raise NotImplementedError

    def classify(self, exc: BaseException) -> ChannelDeliveryError:
        return ProviderError(str(exc) or exc.__class__.__name__)

    def is_configured(self, recipient: Optional[str]) -> bool:
        try:
            self.ensure_ready(recipient)
        except ChannelNotConfigured:
            return False
        return True

    def attempt(self, subject: str, message: str, recipient: Optional[str]) -> ChannelResult:
        try:
            self.ensure_ready(recipient)
        except ChannelNotConfigured as exc:
            LOGGER.warning("Skipping %s notification: %s", self.name, exc.message)
            return ChannelResult(self.name, SKIPPED, exc.message, reason=exc.kind)

        try:
            provider_id = self.deliver(subject, message, recipient)
        except ChannelDeliveryError as exc:
            LOGGER.error("Failed to send %s notification to %s: %s", self.name, recipient, exc.describe())
            return ChannelResult(self.name, FAILED, exc.describe(), reason=exc.kind)
        except Exception as exc:
            error = self.classify(exc)
            LOGGER.exception("Failed to send %s notification to %s: %s", self.name, recipient, error.describe())
            return ChannelResult(self.name, FAILED, error.describe(), reason=error.kind)

        LOGGER.info("Sent %s notification to %s: %s", self.name, recipient, provider_id or "-")
        return ChannelResult(self.name, SUCCESS, provider_id or "")


class EmailChannel(Channel):
    name = EMAIL

    def __init__(self, settings: RelaySettings, smtp_factory: Optional[Callable[..., Any]] = None) -> None:
        super().__init__(settings)
        self._smtp_factory = smtp_factory or smtplib.SMTP

    @property
    def service_configured(self) -> bool:
        return self.settings.email_configured

    def ensure_ready(self, recipient: Optional[str]) -> None:
        if not self.service_configured:
            raise ChannelNotConfigured("Email transport is not configured (EMAIL_USER / EMAIL_PASS).")
        if not recipient:
            raise ChannelNotConfigured("No email recipient was provided.")
        if not is_valid_email(recipient):
            raise ChannelNotConfigured(f"Email recipient is not a valid address: {recipient}")

    def classify(self, exc: BaseException) -> ChannelDeliveryError:
        return classify_smtp_error(exc)

    def _connect(self):
        s = self.settings
        server = self._smtp_factory(s.smtp_host, s.smtp_port, timeout=s.smtp_timeout)
        try:
            if s.smtp_use_tls:
                server.starttls()
            server.login(s.email_user, s.email_password)
        except Exception:
            server.quit()
            raise
        return server

    def verify(self) -> bool:
        """Open and close one authenticated SMTP session; used at startup."""
        if not self.service_configured:
            return False
        try:
            server = self._connect()
            server.quit()
        except Exception as exc:
            LOGGER.error("Email transport verification failed: %s", classify_smtp_error(exc).describe())
            return False
        LOGGER.info("Email transport is ready to send messages")
        return True

    def render_html(self, subject: str, message: str) -> str:
        org = self.settings.org_name
        return f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <div style="background-color: #f8f9fa; padding: 20px; border-radius: 8px;">
    <h2 style="color: #333; margin-bottom: 20px;">Notification from {org}</h2>
    <div style="background-color: white; padding: 20px; border-radius: 5px; border-left: 4px solid #007bff;">
      <h3 style="color: #333; margin-top: 0;">{subject}</h3>
      <p style="color: #666; line-height: 1.6;">{message}</p>
    </div>
    <div style="margin-top: 20px; font-size: 12px; color: #888;">
      <p>This message was sent automatically by the {org} system.</p>
    </div>
  </div>
</div>
"""

    def build_message(self, subject: str, message: str, recipient: str) -> EmailMessage:
        s = self.settings
        email = EmailMessage()
        # Header values cannot carry line breaks; the bodies keep the original text.
        header = " ".join(subject.split())
        email["Subject"] = f"{s.subject_tag} {header}" if s.subject_tag else header
        email["From"] = formataddr((s.sender_name, s.email_user))
        email["To"] = recipient
        domain = s.email_user.rsplit("@", 1)[-1] if "@" in s.email_user else None
        email["Message-ID"] = make_msgid(domain=domain)
        email.set_content(f"{subject}\n\n{message}")
        email.add_alternative(self.render_html(subject, message), subtype="html")
        return email

    def deliver(self, subject: str, message: str, recipient: str) -> str:
        email = self.build_message(subject, message, recipient)
        try:
            server = self._connect()
            with server:
                server.send_message(email)
        except Exception as exc:
            raise classify_smtp_error(exc) from exc
        return email["Message-ID"]


class WhatsAppChannel(Channel):
    name = WHATSAPP
    address_scheme = "whatsapp:"

    def __init__(self, settings: RelaySettings, http=None) -> None:
        super().__init__(settings)
        self._http = http or requests

    @property
    def service_configured(self) -> bool:
        return self.settings.whatsapp_configured

    def ensure_ready(self, recipient: Optional[str]) -> None:
        s = self.settings
        missing = [
            key
            for key, value in (
                ("TWILIO_ACCOUNT_SID", s.twilio_account_sid),
                ("TWILIO_AUTH_TOKEN", s.twilio_auth_token),
                ("TWILIO_WHATSAPP_FROM", s.twilio_whatsapp_from),
            )
            if not value
        ]
        if missing:
            raise ChannelNotConfigured(f"Twilio credentials are incomplete (missing {', '.join(missing)}).")
        if not recipient:
            raise ChannelNotConfigured("No WhatsApp recipient number was provided.")

    def classify(self, exc: BaseException) -> ChannelDeliveryError:
        return classify_transport_error(exc, "Twilio")

    def endpoint(self) -> str:
        return f"{self.settings.twilio_api_base}/2010-04-01/Accounts/{self.settings.twilio_account_sid}/Messages.json"

    def format_body(self, subject: str, message: str) -> str:
        return f"*{subject}*\n\n{message}\n\n_Sent from {self.settings.org_name}_"

    def address(self, recipient: str) -> str:
        if recipient.startswith(self.address_scheme):
            return recipient
        return f"{self.address_scheme}{recipient}"

    def deliver(self, subject: str, message: str, recipient: str) -> str:
        s = self.settings
        form = {
            "From": s.twilio_whatsapp_from,
            "To": self.address(recipient),
            "Body": self.format_body(subject, message),
        }
        try:
            resp = self._http.post(
                self.endpoint(),
                data=form,
                auth=(s.twilio_account_sid, s.twilio_auth_token),
                timeout=s.http_timeout,
            )
        except requests.RequestException as exc:
            raise classify_transport_error(exc, "Twilio") from exc

        payload = _json(resp)
        if resp.status_code >= 400:
            raise classify_twilio_error(resp.status_code, payload)
        return str(payload.get("sid") or "")


class TelegramChannel(Channel):
    name = TELEGRAM

    def __init__(self, settings: RelaySettings, http=None) -> None:
        super().__init__(settings)
        self._http = http or requests

    @property
    def service_configured(self) -> bool:
        return self.settings.telegram_configured

    def ensure_ready(self, recipient: Optional[str]) -> None:
        token = self.settings.telegram_bot_token
        if not token or token == TELEGRAM_PLACEHOLDER_TOKEN:
            raise ChannelNotConfigured("Telegram bot token is not configured (TELEGRAM_BOT_TOKEN).")
        if not recipient:
            raise ChannelNotConfigured("No Telegram chat id was provided.")

    def classify(self, exc: BaseException) -> ChannelDeliveryError:
        return classify_transport_error(exc, "Telegram")

    def endpoint(self) -> str:
        return f"{self.settings.telegram_api_base}/bot{self.settings.telegram_bot_token}/sendMessage"

    def format_text(self, subject: str, message: str) -> str:
        mode = self.settings.telegram_parse_mode
        return f"*{escape_telegram(subject, mode)}*\n\n{escape_telegram(message, mode)}"

    def deliver(self, subject: str, message: str, recipient: str) -> str:
        s = self.settings
        body: Dict[str, Any] = {"chat_id": recipient, "text": self.format_text(subject, message)}
        if s.telegram_parse_mode:
            body["parse_mode"] = s.telegram_parse_mode
        try:
            # The token is part of the URL; never log the endpoint itself.
            resp = self._http.post(self.endpoint(), json=body, timeout=s.http_timeout)
        except requests.RequestException as exc:
            raise classify_transport_error(exc, "Telegram") from exc

        payload = _json(resp)
        if resp.status_code >= 400 or payload.get("ok") is False:
            raise classify_telegram_error(resp.status_code, payload)
        result = payload.get("result") or {}
        message_id = result.get("message_id") if isinstance(result, dict) else None
        return "" if message_id is None else str(message_id)


__all__ = [
    "Channel",
    "EmailChannel",
    "WhatsAppChannel",
    "TelegramChannel",
    "is_valid_email",
    "escape_telegram",
    "classify_smtp_error",
    "classify_transport_error",
    "classify_twilio_error",
    "classify_telegram_error",
]
