from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..events.registry import Callback, Filter, SubscriptionHandle


@runtime_checkable
class Publisher(Protocol):
    """Something that can publish on a fixed channel (e.g. a Channel)."""

    def publish(self, topic: str, data: Any = None) -> int:
        ...


@runtime_checkable
class Subscriber(Protocol):
    """Something subscribers can attach to.

    Objects that need emitter behaviour hold a Channel (composition) instead of
    inheriting from one.
    """

    def subscribe(
        self,
        pattern: str,
        callback: "Callback",
        *,
        context: Any = ...,
        filter: Optional["Filter"] = None,
        deferred: bool = False,
        once: bool = False,
    ) -> "SubscriptionHandle":
        ...
