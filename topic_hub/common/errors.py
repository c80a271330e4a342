from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


@dataclass
class ApiError(Exception):
    """统一的业务错误，用于转换成桥接层的错误响应结构。"""
    code: str
    message: str
    http_status: int = 400
    data: Optional[dict[str, Any]] = None


class BusError(Exception):
    """Base class for every error raised by the message bus."""


class ConfigurationError(BusError, ValueError):
    """Malformed topic pattern or topic; raised before any registry change."""


class PayloadError(BusError, TypeError):
    """Payload is not plain data (only raised with strict_payloads enabled)."""


class BusClosedError(BusError, RuntimeError):
    """The bus was torn down with close()."""


class SubscriberError(BusError):
    """A single subscriber callback (or its filter) raised during dispatch.

    The original exception is chained as ``__cause__``.
    """

    def __init__(
        self,
        message: str,
        *,
        subscription_id: str,
        channel: str,
        topic: str,
        pattern: str,
        message_id: str,
    ) -> None:
        super().__init__(message)
        self.subscription_id = subscription_id
        self.channel = channel
        self.topic = topic
        self.pattern = pattern
        self.message_id = message_id

    def to_dict(self) -> dict[str, Any]:
        cause = self.__cause__
        return {
            "subscription_id": self.subscription_id,
            "channel": self.channel,
            "topic": self.topic,
            "pattern": self.pattern,
            "message_id": self.message_id,
            "error_type": type(cause).__name__ if cause is not None else type(self).__name__,
            "error": str(cause) if cause is not None else str(self),
        }


class DispatchError(BusError):
    """One or more subscribers failed; raised after the whole dispatch ran."""

    def __init__(self, errors: list[SubscriberError], *, notified: int = 0) -> None:
        noun = "subscriber" if len(errors) == 1 else "subscribers"
        super().__init__(f"{len(errors)} {noun} failed during dispatch")
        self.errors = list(errors)
        self.notified = notified
