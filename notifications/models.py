from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

SUCCESS = "success"
FAILED = "failed"
SKIPPED = "skipped"


@dataclass(frozen=True, slots=True)
class NotificationRequest:
    """A validated request to deliver one message on several channels."""

    subject: str
    message: str
    channels: Sequence[str]
    recipients: Dict[str, str] = field(default_factory=dict)

    def recipient_for(self, channel: str) -> Optional[str]:
        return self.recipients.get(channel)


@dataclass(frozen=True, slots=True)
class ChannelResult:
    """Outcome of a single channel attempt."""

    channel: str
    status: str
    detail: str = ""
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"channel": self.channel, "status": self.status, "detail": self.detail}
        if self.status == SUCCESS:
            data["messageId"] = self.detail or None
        else:
            data["error"] = self.detail
        if self.reason:
            data["reason"] = self.reason
        return data


@dataclass(slots=True)
class DispatchOutcome:
    """Per-channel results in request order, plus the overall verdict."""

    results: List[ChannelResult] = field(default_factory=list)

    def add(self, result: ChannelResult) -> None:
        self.results.append(result)

    def _channels(self, status: str) -> List[str]:
        return [r.channel for r in self.results if r.status == status]

    @property
    def success_channels(self) -> List[str]:
        return self._channels(SUCCESS)

    @property
    def failed_channels(self) -> List[str]:
        return self._channels(FAILED)

    @property
    def skipped_channels(self) -> List[str]:
        return self._channels(SKIPPED)

    @property
    def success(self) -> bool:
        # Nothing failed and nothing sent (all skipped) still counts as a no-op success.
        return bool(self.success_channels) or not self.failed_channels

    @property
    def status_code(self) -> int:
        return 200 if self.success else 400

    def summary(self) -> str:
        sent, failed, skipped = self.success_channels, self.failed_channels, self.skipped_channels
        parts = ["Notification processed."]
        if sent:
            parts.append(f"Sent via: {', '.join(sent)}.")
        if failed:
            parts.append(f"Failed on: {', '.join(failed)}.")
        if skipped:
            parts.append(f"Skipped on: {', '.join(skipped)}.")
        if not sent and not failed:
            parts.append("No notifications were sent; check the requested channels or the provider configuration.")
        return " ".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": self.summary(),
            "results": [r.to_dict() for r in self.results],
        }
