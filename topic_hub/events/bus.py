from __future__ import annotations

import asyncio
import itertools
import logging
import threading
from collections import deque
from typing import Any, Deque, Dict, Optional, Tuple

from ..common.errors import BusClosedError, ConfigurationError, DispatchError, SubscriberError
from ..common.time_util import epoch_now
from ..common.trace import new_id
from ..core.config import BusConfig
from .matcher import validate_topic
from .models import Envelope, ensure_plain_data
from .registry import _MISSING, Callback, Filter, Subscription, SubscriptionHandle, SubscriptionRegistry

log = logging.getLogger(__name__)

ERROR_TOPIC = "subscriber.error"


class Channel:
    """Named partition of the bus; publish/subscribe scoped to its name."""

    def __init__(self, bus: "MessageBus", name: str) -> None:
        self._bus = bus
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    def publish(self, topic: str, data: Any = None) -> int:
        return self._bus.publish(self._name, topic, data)

    def subscribe(
        self,
        pattern: str,
        callback: Callback,
        *,
        context: Any = _MISSING,
        filter: Optional[Filter] = None,
        deferred: bool = False,
        once: bool = False,
    ) -> SubscriptionHandle:
        return self._bus.subscribe(
            self._name,
            pattern,
            callback,
            context=context,
            filter=filter,
            deferred=deferred,
            once=once,
        )

    def subscriptions(self) -> list[Subscription]:
        return self._bus.registry.subscriptions(self._name)

    def __repr__(self) -> str:
        return f"Channel({self._name!r})"


class MessageBus:
    """In-process topic bus: channels, wildcard subscriptions, isolated dispatch.

    Delivery is synchronous on the publisher's thread, in subscription order.
    Subscriptions created with deferred=True run on a later loop turn (when an
    asyncio loop is running) or on the next drain().
    """

    def __init__(self, config: Optional[BusConfig] = None) -> None:
        self.config = config or BusConfig()
        self.registry = SubscriptionRegistry(self.config.syntax())
        self._lock = threading.Lock()
        self._channels: Dict[str, Channel] = {}
        self._sequence = itertools.count(1)
        self._pending: Deque[Tuple[Subscription, Any, Envelope]] = deque()
        self._closed = False

    # -- lifecycle --------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed

    def _ensure_open(self) -> None:
        if self._closed:
            raise BusClosedError("message bus is closed")

    def close(self) -> None:
        """Tear down: drop every channel, subscription and pending delivery."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._channels.clear()
            self._pending.clear()
        removed = self.registry.clear()
        log.debug("bus closed, %d subscriptions released", removed)

    def __enter__(self) -> "MessageBus":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # -- channels ---------------------------------------------------------

    def channel(self, name: Optional[str] = None) -> Channel:
        self._ensure_open()
        if name is None:
            name = self.config.default_channel
        elif not isinstance(name, str) or not name:
            raise ConfigurationError(f"channel name must be a non-empty string, got {name!r}")
        with self._lock:
            ch = self._channels.get(name)
            if ch is None:
                ch = Channel(self, name)
                self._channels[name] = ch
                self.registry.ensure_channel(name)
                log.debug("channel %r created", name)
        return ch

    def channels(self) -> list[str]:
        with self._lock:
            return list(self._channels)

    def subscription_count(self, channel: Optional[str] = None) -> int:
        return self.registry.count(channel)

    # -- subscriptions ----------------------------------------------------

    def subscribe(
        self,
        channel: Optional[str],
        pattern: str,
        callback: Callback,
        *,
        context: Any = _MISSING,
        filter: Optional[Filter] = None,
        deferred: bool = False,
        once: bool = False,
    ) -> SubscriptionHandle:
        self._ensure_open()
        self.registry.validate(pattern, callback, filter)
        ch = self.channel(channel)
        sub = self.registry.add(
            ch.name,
            pattern,
            callback,
            context=context,
            filter=filter,
            deferred=deferred,
            once=once,
        )
        return SubscriptionHandle(self.registry, sub)

    def unsubscribe(self, handle: SubscriptionHandle | Subscription | str) -> bool:
        if isinstance(handle, SubscriptionHandle):
            return handle.unsubscribe()
        return self.registry.remove(handle)

    # -- dispatch ---------------------------------------------------------

    def publish(self, channel: Optional[str], topic: str, data: Any = None) -> int:
        """Deliver `data` to every matching subscriber; returns how many were notified."""
        _envelope, notified = self.publish_envelope(channel, topic, data)
        return notified

    def publish_envelope(self, channel: Optional[str], topic: str, data: Any = None) -> tuple[Envelope, int]:
        """Same as publish() but also returns the envelope that was delivered."""
        self._ensure_open()
        validate_topic(topic, self.registry.syntax)
        if self.config.strict_payloads:
            ensure_plain_data(data)
        ch = self.channel(channel)
        envelope = Envelope(
            topic=topic,
            channel=ch.name,
            data=data,
            timestamp=epoch_now(),
            sequence=self._next_sequence(),
            message_id=new_id(),
        )
        notified, errors = self._dispatch(envelope)
        if errors and self.config.error_policy == "raise":
            raise DispatchError(errors, notified=notified)
        return envelope, notified

    def _next_sequence(self) -> int:
        with self._lock:
            return next(self._sequence)

    def _dispatch(self, envelope: Envelope) -> tuple[int, list[SubscriberError]]:
        data = envelope.data
        notified = 0
        errors: list[SubscriberError] = []
        for sub in self.registry.lookup(envelope.channel, envelope.topic):
            try:
                if not sub.accepts(data, envelope):
                    continue
            except Exception as e:  # noqa: BLE001
                errors.append(self._failure(sub, envelope, e, stage="filter"))
                continue
            if sub.once and not self.registry.consume(sub):
                continue
            notified += 1
            if sub.deferred:
                self._defer(sub, data, envelope)
                continue
            err = self._invoke(sub, data, envelope)
            if err is not None:
                errors.append(err)
        return notified, errors

    def _invoke(self, sub: Subscription, data: Any, envelope: Envelope) -> Optional[SubscriberError]:
        try:
            sub.invoke(data, envelope)
        except Exception as e:  # noqa: BLE001
            return self._failure(sub, envelope, e, stage="callback")
        return None

    def _failure(self, sub: Subscription, envelope: Envelope, exc: Exception, *, stage: str) -> SubscriberError:
        err = SubscriberError(
            f"subscriber {sub.subscription_id} {stage} failed on {envelope.channel}:{envelope.topic}: {exc}",
            subscription_id=sub.subscription_id,
            channel=envelope.channel,
            topic=envelope.topic,
            pattern=sub.pattern,
            message_id=envelope.message_id,
        )
        err.__cause__ = exc
        log.error(
            "subscriber %s (%s) %s failed for %s:%s",
            sub.subscription_id,
            sub.pattern,
            stage,
            envelope.channel,
            envelope.topic,
            exc_info=exc,
        )
        self._report(err)
        return err

    def _report(self, err: SubscriberError) -> None:
        error_channel = self.config.error_channel
        if not error_channel or err.channel == error_channel or self._closed:
            return
        report = Envelope(
            topic=ERROR_TOPIC,
            channel=error_channel,
            data=err.to_dict(),
            timestamp=epoch_now(),
            sequence=self._next_sequence(),
            message_id=new_id(),
        )
        self.channel(error_channel)
        # failures inside error-channel subscribers are logged by _failure only
        self._dispatch(report)

    # -- deferred delivery ------------------------------------------------

    def _defer(self, sub: Subscription, data: Any, envelope: Envelope) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is not None:
            loop.call_soon(self._run_deferred, sub, data, envelope)
            return
        with self._lock:
            self._pending.append((sub, data, envelope))

    def _run_deferred(self, sub: Subscription, data: Any, envelope: Envelope) -> None:
        # close() forgets deliveries that have not run yet
        if self._closed:
            return
        self._invoke(sub, data, envelope)

    def pending(self) -> int:
        with self._lock:
            return len(self._pending)

    def drain(self) -> int:
        """Run deferred deliveries queued while no event loop was running.

        Deliveries queued by the callbacks being drained run in the same call.
        """
        ran = 0
        errors: list[SubscriberError] = []
        while True:
            with self._lock:
                if not self._pending:
                    break
                sub, data, envelope = self._pending.popleft()
            ran += 1
            err = self._invoke(sub, data, envelope)
            if err is not None:
                errors.append(err)
        if errors and self.config.error_policy == "raise":
            raise DispatchError(errors, notified=ran)
        return ran
