from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from ..common.auth import require_bearer
from ..common.errors import ApiError, BusClosedError, ConfigurationError, DispatchError, PayloadError
from ..common.time_util import utc_now_iso
from ..common.trace import new_trace_id
from ..events.bus import MessageBus

from ..models import (
    ChannelItem,
    ChannelListResult,
    OkEnvelope,
    PublishRequest,
    PublishResult,
)

router = APIRouter()


def ok(trace_id: str, data: dict):
    return OkEnvelope(trace_id=trace_id, data=data)


@router.get("/health")
def health_check():
    # Health endpoint must be public (no auth)
    trace_id = new_trace_id()
    return ok(trace_id, {"service": "topic_hub", "time_utc": utc_now_iso()}).model_dump()


@router.get("/channels")
def list_channels(request: Request, _: None = Depends(require_bearer)):
    trace_id = new_trace_id()
    bus: MessageBus = request.app.state.bus
    items = [ChannelItem(name=name, subscriptions=bus.subscription_count(name)) for name in bus.channels()]
    return ok(trace_id, ChannelListResult(items=items).model_dump()).model_dump()


@router.post("/channels/{channel}/publish")
def publish(request: Request, channel: str, body: PublishRequest, _: None = Depends(require_bearer)):
    trace_id = new_trace_id()
    bus: MessageBus = request.app.state.bus
    try:
        envelope, notified = bus.publish_envelope(channel, body.topic, body.data)
    except (ConfigurationError, PayloadError) as e:
        raise ApiError(code="INVALID_ARGUMENT", message=str(e), http_status=400)
    except BusClosedError as e:
        raise ApiError(code="UNAVAILABLE", message=str(e), http_status=503)
    except DispatchError as e:
        raise ApiError(
            code="SUBSCRIBER_FAILED",
            message=str(e),
            http_status=500,
            data={"notified": e.notified, "errors": [err.to_dict() for err in e.errors]},
        )
    result = PublishResult(channel=envelope.channel, topic=envelope.topic, message_id=envelope.message_id, notified=notified)
    return ok(trace_id, result.model_dump()).model_dump()
