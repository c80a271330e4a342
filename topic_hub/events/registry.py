from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Callable, Dict, Optional, Union

from ..common.time_util import utc_now_iso
from ..common.trace import new_id
from .matcher import DEFAULT_SYNTAX, TopicSyntax, compile_pattern
from .models import Envelope

log = logging.getLogger(__name__)

Callback = Callable[..., None]
Filter = Callable[[Any, Envelope], bool]

# "no context given"; None is a legitimate context value
_MISSING: Any = object()


@dataclass(eq=False)
class Subscription:
    subscription_id: str
    channel: str
    pattern: str
    callback: Callback
    seq: int
    context: Any = _MISSING
    filter: Optional[Filter] = None
    deferred: bool = False
    once: bool = False
    created_at_utc: str = field(default_factory=utc_now_iso)
    active: bool = True
    _target: Callable[[Any, Envelope], None] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        # a context is bound like `self`, so the bus always calls (data, envelope)
        if self.context is _MISSING:
            self._target = self.callback
        else:
            self._target = partial(self.callback, self.context)

    @property
    def has_context(self) -> bool:
        return self.context is not _MISSING

    def accepts(self, data: Any, envelope: Envelope) -> bool:
        if self.filter is None:
            return True
        return bool(self.filter(data, envelope))

    def invoke(self, data: Any, envelope: Envelope) -> None:
        self._target(data, envelope)


class SubscriptionRegistry:
    """Channel -> pattern -> subscriptions, in creation order.

    Writers replace the per-pattern tuple under the lock; readers copy the
    channel mapping under the same lock, so every lookup works on a consistent
    snapshot and callbacks run without holding it.
    """

    def __init__(self, syntax: TopicSyntax = DEFAULT_SYNTAX) -> None:
        self.syntax = syntax
        self._lock = threading.Lock()
        self._channels: Dict[str, Dict[str, tuple[Subscription, ...]]] = {}
        self._by_id: Dict[str, Subscription] = {}
        self._counter = itertools.count(1)

    def ensure_channel(self, channel: str) -> bool:
        """Register an empty channel partition; True if it was new."""
        with self._lock:
            if channel in self._channels:
                return False
            self._channels[channel] = {}
            return True

    def validate(self, pattern: str, callback: Callback, filter: Optional[Filter] = None) -> None:
        """Check a subscription request without touching registry state."""
        compile_pattern(pattern, self.syntax)
        if not callable(callback):
            raise TypeError("callback must be callable")
        if filter is not None and not callable(filter):
            raise TypeError("filter must be callable")

    def add(
        self,
        channel: str,
        pattern: str,
        callback: Callback,
        *,
        context: Any = _MISSING,
        filter: Optional[Filter] = None,
        deferred: bool = False,
        once: bool = False,
    ) -> Subscription:
        self.validate(pattern, callback, filter)

        with self._lock:
            sub = Subscription(
                subscription_id=new_id(),
                channel=channel,
                pattern=pattern,
                callback=callback,
                seq=next(self._counter),
                context=context,
                filter=filter,
                deferred=deferred,
                once=once,
            )
            patterns = self._channels.setdefault(channel, {})
            patterns[pattern] = patterns.get(pattern, ()) + (sub,)
            self._by_id[sub.subscription_id] = sub
        log.debug("subscribed %s -> %s:%s", sub.subscription_id, channel, pattern)
        return sub

    def _remove_locked(self, sub: Subscription) -> bool:
        if self._by_id.get(sub.subscription_id) is not sub:
            return False
        del self._by_id[sub.subscription_id]
        sub.active = False
        patterns = self._channels.get(sub.channel, {})
        remaining = tuple(s for s in patterns.get(sub.pattern, ()) if s is not sub)
        if remaining:
            patterns[sub.pattern] = remaining
        else:
            patterns.pop(sub.pattern, None)
        return True

    def remove(self, target: Union[Subscription, str]) -> bool:
        """Remove by subscription or id. Unknown or already removed -> False."""
        with self._lock:
            if isinstance(target, str):
                sub = self._by_id.get(target)
                if sub is None:
                    return False
            else:
                sub = target
            removed = self._remove_locked(sub)
        if removed:
            log.debug("unsubscribed %s", sub.subscription_id)
        return removed

    def consume(self, sub: Subscription) -> bool:
        """Claim a once-subscription: only the first caller gets True."""
        with self._lock:
            return self._remove_locked(sub)

    def lookup(self, channel: str, topic: str) -> list[Subscription]:
        with self._lock:
            snapshot = dict(self._channels.get(channel, {}))
        matched: list[Subscription] = []
        for pattern, subs in snapshot.items():
            if compile_pattern(pattern, self.syntax).matches(topic):
                matched.extend(subs)
        matched.sort(key=lambda s: s.seq)
        return matched

    def get(self, subscription_id: str) -> Optional[Subscription]:
        with self._lock:
            return self._by_id.get(subscription_id)

    def channels(self) -> list[str]:
        with self._lock:
            return list(self._channels)

    def subscriptions(self, channel: str) -> list[Subscription]:
        with self._lock:
            subs = [s for group in self._channels.get(channel, {}).values() for s in group]
        subs.sort(key=lambda s: s.seq)
        return subs

    def count(self, channel: Optional[str] = None) -> int:
        with self._lock:
            if channel is None:
                return len(self._by_id)
            return sum(len(group) for group in self._channels.get(channel, {}).values())

    def clear(self) -> int:
        """Drop every channel and subscription; returns how many were removed."""
        with self._lock:
            subs = list(self._by_id.values())
            for sub in subs:
                sub.active = False
            self._by_id.clear()
            self._channels.clear()
        return len(subs)


class SubscriptionHandle:
    """Returned by subscribe(); pass to unsubscribe() or call unsubscribe()."""

    __slots__ = ("_registry", "_sub")

    def __init__(self, registry: SubscriptionRegistry, sub: Subscription) -> None:
        self._registry = registry
        self._sub = sub

    @property
    def id(self) -> str:
        return self._sub.subscription_id

    @property
    def channel(self) -> str:
        return self._sub.channel

    @property
    def pattern(self) -> str:
        return self._sub.pattern

    @property
    def subscription(self) -> Subscription:
        return self._sub

    @property
    def active(self) -> bool:
        return self._sub.active

    def unsubscribe(self) -> bool:
        return self._registry.remove(self._sub)

    def __enter__(self) -> "SubscriptionHandle":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.unsubscribe()

    def __repr__(self) -> str:
        state = "active" if self.active else "removed"
        return f"SubscriptionHandle(id={self.id!r}, channel={self.channel!r}, pattern={self.pattern!r}, {state})"
