from __future__ import annotations

from typing import Any, List, Literal, Optional

from pydantic import BaseModel, Field


# -------------------------
# HTTP envelopes & errors
# -------------------------

class OkEnvelope(BaseModel):
    status: Literal["ok"] = "ok"
    trace_id: str
    data: Any


class ErrorEnvelope(BaseModel):
    status: Literal["error"] = "error"
    code: str
    message: str
    trace_id: str
    data: Any = Field(default_factory=dict)


# -------------------------
# Channels & publishing
# -------------------------

class ChannelItem(BaseModel):
    name: str
    subscriptions: int


class ChannelListResult(BaseModel):
    items: List[ChannelItem]


class PublishRequest(BaseModel):
    topic: str
    data: Any = None


class PublishResult(BaseModel):
    channel: str
    topic: str
    message_id: str
    notified: int


class EnvelopeRecord(BaseModel):
    """Wire form of events.models.Envelope."""

    topic: str
    channel: str
    data: Any = None
    timestamp: float
    sequence: int
    message_id: str


# -------------------------
# WebSocket messages
# -------------------------

class WsSubscribe(BaseModel):
    type: Literal["subscribe"] = "subscribe"
    channel: Optional[str] = None
    pattern: str


class WsUnsubscribe(BaseModel):
    type: Literal["unsubscribe"] = "unsubscribe"
    subscription_id: str


class WsPublish(BaseModel):
    type: Literal["publish"] = "publish"
    channel: Optional[str] = None
    topic: str
    data: Any = None


class WsSubscribed(BaseModel):
    type: Literal["subscribed"] = "subscribed"
    subscription_id: str
    channel: str
    pattern: str


class WsUnsubscribed(BaseModel):
    type: Literal["unsubscribed"] = "unsubscribed"
    subscription_id: str
    removed: bool


class WsPublished(BaseModel):
    type: Literal["published"] = "published"
    channel: str
    topic: str
    message_id: str
    notified: int


class WsEnvelope(BaseModel):
    type: Literal["envelope"] = "envelope"
    subscription_id: str
    envelope: EnvelopeRecord


class WsError(BaseModel):
    type: Literal["error"] = "error"
    code: str
    message: str
