from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .channels import Channel, EmailChannel, TelegramChannel, WhatsAppChannel
from .config import VALID_CHANNELS, RelaySettings
from .errors import ValidationError
from .models import FAILED, ChannelResult, DispatchOutcome, NotificationRequest

LOGGER = logging.getLogger(__name__)


def _text(value: Any) -> Optional[str]:
    if isinstance(value, str):
        return value if value.strip() else None
    return None


def _recipients(raw: Any) -> Dict[str, str]:
    if not isinstance(raw, Mapping):
        return {}
    recipients: Dict[str, str] = {}
    for channel, value in raw.items():
        if value is None or isinstance(value, (dict, list, bool)):
            continue
        text = str(value).strip()
        if text:
            recipients[str(channel)] = text
    return recipients


def parse_request(payload: Any) -> NotificationRequest:
    """Validate a raw request body and build a NotificationRequest.

    Only the top-level shape is checked here. Recipients are left to each
    channel, so a bad address downgrades that channel instead of the request.
    """
    if not isinstance(payload, Mapping):
        raise ValidationError("Request body must be a JSON object.")

    subject = _text(payload.get("subject"))
    message = _text(payload.get("message"))
    channels = payload.get("channels")
    if not subject or not message or not isinstance(channels, list) or not channels:
        raise ValidationError("Subject, message and channels are required.")

    unknown = [c for c in channels if c not in VALID_CHANNELS]
    if unknown:
        raise ValidationError(
            f"Unknown channel(s): {', '.join(map(str, unknown))}. Expected one of: {', '.join(VALID_CHANNELS)}."
        )

    ordered: List[str] = []
    for channel in channels:
        if channel not in ordered:
            ordered.append(channel)

    return NotificationRequest(
        subject=subject,
        message=message,
        channels=tuple(ordered),
        recipients=_recipients(payload.get("recipients")),
    )


class Dispatcher:
    """Fan a request out to its channels and collect one result per channel."""

    def __init__(self, channels: Iterable[Channel]) -> None:
        self.channels: Dict[str, Channel] = {channel.name: channel for channel in channels}

    def service_status(self) -> Dict[str, str]:
        return {
            name: "configured" if channel.service_configured else "not configured"
            for name, channel in self.channels.items()
        }

    def _run(self, channel: Channel, request: NotificationRequest) -> ChannelResult:
        recipient = request.recipient_for(channel.name)
        try:
            return channel.attempt(request.subject, request.message, recipient)
        except Exception as exc:
            # attempt() already isolates provider errors; this guards a broken handler.
            LOGGER.exception("Channel handler %s crashed", channel.name)
            detail = f"Internal error in {channel.name} handler: {exc}"
            return ChannelResult(channel.name, FAILED, detail, reason="unclassified")

    def dispatch(self, request: NotificationRequest) -> DispatchOutcome:
        outcome = DispatchOutcome()
        for name in request.channels:
            channel = self.channels.get(name)
            if channel is None:
                raise ValidationError(f"Channel {name} is not available.")
            outcome.add(self._run(channel, request))

        LOGGER.info(
            "Dispatched '%s': sent=%s failed=%s skipped=%s",
            request.subject,
            outcome.success_channels,
            outcome.failed_channels,
            outcome.skipped_channels,
        )
        return outcome

    def send(self, payload: Any) -> DispatchOutcome:
        return self.dispatch(parse_request(payload))


def build_dispatcher(settings: RelaySettings, *, http=None, smtp_factory=None) -> Dispatcher:
    return Dispatcher(
        [
            EmailChannel(settings, smtp_factory=smtp_factory),
            WhatsAppChannel(settings, http=http),
            TelegramChannel(settings, http=http),
        ]
    )


__all__ = ["Dispatcher", "build_dispatcher", "parse_request"]
