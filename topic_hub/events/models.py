from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Mapping

from ..common.errors import PayloadError


@dataclass(frozen=True)
class Envelope:
    """Message delivered to subscribers along with the payload.

    Note:
    - The envelope is immutable; `data` is expected to be plain data
      (dict / list / str / int / float / bool / None) so the envelope can cross
      a thread or socket boundary via `to_dict()`.
    - `sequence` is bus-wide and strictly increasing; use it to order envelopes
      that share a timestamp.
    """

    topic: str
    channel: str
    data: Any
    timestamp: float
    sequence: int
    message_id: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Envelope":
        return cls(
            topic=str(raw["topic"]),
            channel=str(raw["channel"]),
            data=raw.get("data"),
            timestamp=float(raw["timestamp"]),
            sequence=int(raw["sequence"]),
            message_id=str(raw["message_id"]),
        )


_SCALARS = (str, int, float, bool, type(None))


def ensure_plain_data(value: Any, *, path: str = "data") -> None:
    """Raise PayloadError if `value` holds anything but plain data."""
    if isinstance(value, _SCALARS):
        return
    if isinstance(value, (list, tuple)):
        for i, item in enumerate(value):
            ensure_plain_data(item, path=f"{path}[{i}]")
        return
    if isinstance(value, dict):
        for k, v in value.items():
            if not isinstance(k, str):
                raise PayloadError(f"{path}: mapping keys must be str, got {type(k).__name__}")
            ensure_plain_data(v, path=f"{path}.{k}")
        return
    raise PayloadError(f"{path}: {type(value).__name__} is not plain data")
