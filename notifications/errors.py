"""Exceptions raised while validating and dispatching notifications."""
from __future__ import annotations

from typing import Optional


class NotificationError(Exception):
    """Base class for relay errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(NotificationError):
    """The top-level request is malformed or incomplete."""

    status_code = 400


class InternalError(NotificationError):
    """Something escaped the per-channel isolation boundary."""

    status_code = 500


class ChannelNotConfigured(NotificationError):
    """Provider credentials or the recipient are missing for a channel."""

    kind = "not_configured"


class ChannelDeliveryError(NotificationError):
    """The provider was called and the delivery did not go through."""

    kind = "unclassified"
    label = "Delivery failed"

    def __init__(self, message: str, *, provider_detail: Optional[str] = None) -> None:
        super().__init__(message)
        self.provider_detail = provider_detail

    def describe(self) -> str:
        text = f"{self.label}: {self.message}"
        if self.provider_detail and self.provider_detail not in self.message:
            text = f"{text} ({self.provider_detail})"
        return text


class AuthenticationFailed(ChannelDeliveryError):
    kind = "auth"
    label = "Authentication failed"


class InvalidRecipient(ChannelDeliveryError):
    kind = "invalid_address"
    label = "Invalid recipient address"


class ConnectivityError(ChannelDeliveryError):
    kind = "connectivity"
    label = "Could not reach provider"


class ProviderError(ChannelDeliveryError):
    kind = "unclassified"
    label = "Provider error"


__all__ = [
    "NotificationError",
    "ValidationError",
    "InternalError",
    "ChannelNotConfigured",
    "ChannelDeliveryError",
    "AuthenticationFailed",
    "InvalidRecipient",
    "ConnectivityError",
    "ProviderError",
]
