from __future__ import annotations

import asyncio
import json
from typing import Any, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from ..common.auth import check_bearer
from ..common.errors import ApiError, BusError, DispatchError
from ..events.bus import MessageBus
from ..events.models import Envelope, ensure_plain_data
from ..events.registry import SubscriptionHandle
from ..models import (
    EnvelopeRecord,
    WsEnvelope,
    WsError,
    WsPublish,
    WsPublished,
    WsSubscribe,
    WsSubscribed,
    WsUnsubscribe,
    WsUnsubscribed,
)

router = APIRouter()


class _Tap:
    """Bus callback that forwards envelopes into a connection's outbox.

    Publishers may run on any thread, so frames are handed to the event loop
    with call_soon_threadsafe.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, outbox: asyncio.Queue) -> None:
        self.loop = loop
        self.outbox = outbox
        self.subscription_id = ""

    def __call__(self, data: Any, envelope: Envelope) -> None:
        ensure_plain_data(envelope.data)
        frame = WsEnvelope(
            subscription_id=self.subscription_id,
            envelope=EnvelopeRecord(**envelope.to_dict()),
        )
        self.loop.call_soon_threadsafe(self.outbox.put_nowait, frame.model_dump())


@router.websocket("/ws/bus")
async def ws_bus(websocket: WebSocket):
    # Auth (reject before accept)
    try:
        check_bearer(websocket.headers.get("authorization"))
    except ApiError:
        await websocket.close(code=4401, reason="UNAUTHORIZED")
        return

    await websocket.accept()

    bus: MessageBus = websocket.app.state.bus
    loop = asyncio.get_running_loop()
    outbox: asyncio.Queue = asyncio.Queue()
    handles: dict[str, SubscriptionHandle] = {}

    async def send_error(code: str, message: str) -> None:
        await websocket.send_json(WsError(code=code, message=message).model_dump())

    async def handle_subscribe(msg: WsSubscribe) -> None:
        tap = _Tap(loop, outbox)
        handle = bus.subscribe(msg.channel, msg.pattern, tap)
        tap.subscription_id = handle.id
        handles[handle.id] = handle
        reply = WsSubscribed(subscription_id=handle.id, channel=handle.channel, pattern=handle.pattern)
        await websocket.send_json(reply.model_dump())

    async def handle_unsubscribe(msg: WsUnsubscribe) -> None:
        # only this connection's subscriptions can be removed here
        handle = handles.pop(msg.subscription_id, None)
        removed = handle.unsubscribe() if handle is not None else False
        await websocket.send_json(WsUnsubscribed(subscription_id=msg.subscription_id, removed=removed).model_dump())

    async def handle_publish(msg: WsPublish) -> None:
        try:
            envelope, notified = bus.publish_envelope(msg.channel, msg.topic, msg.data)
        except DispatchError as e:
            await send_error("SUBSCRIBER_FAILED", str(e))
            return
        await websocket.send_json(WsPublished(channel=envelope.channel, topic=envelope.topic, message_id=envelope.message_id, notified=notified).model_dump())

    async def handle_raw(raw_text: str) -> None:
        # tolerate invalid JSON and keep connection open
        try:
            obj = json.loads(raw_text)
        except ValueError:
            await send_error("INVALID_ARGUMENT", "invalid JSON")
            return

        if not isinstance(obj, dict):
            await send_error("INVALID_ARGUMENT", "message must be a JSON object")
            return

        t = obj.get("type")
        try:
            if t == "subscribe":
                await handle_subscribe(WsSubscribe.model_validate(obj))
            elif t == "unsubscribe":
                await handle_unsubscribe(WsUnsubscribe.model_validate(obj))
            elif t == "publish":
                await handle_publish(WsPublish.model_validate(obj))
            else:
                await send_error("INVALID_ARGUMENT", f"unknown message type: {t!r}")
        except (ValidationError, BusError) as e:
            await send_error("INVALID_ARGUMENT", str(e))

    # Main loop: ensure we never call websocket.receive_* concurrently
    recv_task: Optional[asyncio.Task] = None
    out_task: Optional[asyncio.Task] = None

    try:
        while True:
            if recv_task is None:
                recv_task = asyncio.create_task(websocket.receive_text())
            if out_task is None:
                out_task = asyncio.create_task(outbox.get())

            done, _pending = await asyncio.wait([recv_task, out_task], return_when=asyncio.FIRST_COMPLETED)

            if out_task in done:
                frame = out_task.result()
                out_task = None
                await websocket.send_json(frame)

            if recv_task in done:
                raw = recv_task.result()
                recv_task = None
                await handle_raw(raw)

    except WebSocketDisconnect:
        pass
    finally:
        for handle in handles.values():
            handle.unsubscribe()
        for t in [recv_task, out_task]:
            if t and not t.done():
                t.cancel()
