"""Message dataclasses for the ISAAC JSON streaming protocol.

Outbound requests (``observe`` and ``feedback``) are strict: they are built by
this client and always serialize to the exact on-the-wire key names.  Inbound
responses are parsed permissively into a single :class:`ServerResponse`
record: unknown keys are ignored and missing keys stay ``None`` so callers can
tell "not sent" apart from an explicit zero.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from numbers import Real
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

SUBPROTOCOL = "isaac-json-protocol"
DEFAULT_PORT = 2459

OBSERVE_TYPE = "observe"
FEEDBACK_TYPE = "feedback"

# Servers in the wild spell this key both "observe id" and "observer id"; the
# client only ever writes the former.
OBSERVER_ID_KEY = "observe id"
ROTATION_ABSOLUTE_KEY = "rotation absolute"
POSITION_ABSOLUTE_KEY = "position absolute"
FRAMEBUFFER_WIDTH_KEY = "framebuffer width"
FRAMEBUFFER_HEIGHT_KEY = "framebuffer height"

MATRIX4_LENGTH = 16
MATRIX3_LENGTH = 9
VECTOR3_LENGTH = 3


class DecodeFailure(ValueError):
    """Raised when an inbound message or payload cannot be decoded."""


def _strip_none(mapping: Dict[str, Any]) -> Dict[str, Any]:
    """Return *mapping* without keys whose value is ``None``."""

    return {key: value for key, value in mapping.items() if value is not None}


def _dumps(payload: Mapping[str, Any]) -> str:
    return json.dumps(payload, separators=(",", ":"))


def _as_list(values: Optional[Tuple[float, ...]]) -> Optional[list]:
    return list(values) if values is not None else None


def _float_tuple(values: Optional[Sequence[Any]], length: int, field_name: str) -> Optional[Tuple[float, ...]]:
    if values is None:
        return None
    if isinstance(values, (str, bytes, bytearray)):
        raise ValueError(f"{field_name} must be a sequence of {length} numbers")
    try:
        result = tuple(float(v) for v in values)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{field_name} must be a sequence of {length} numbers") from exc
    if len(result) != length:
        raise ValueError(f"{field_name} must have {length} values, got {len(result)}")
    return result


# --- permissive inbound coercion -------------------------------------------------
# A present key with an unexpected JSON type is treated like a missing key.


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def _as_float(value: Any) -> Optional[float]:
    if not _is_number(value):
        return None
    try:
        return float(value)
    except OverflowError:
        return None


def _opt_int(data: Mapping[str, Any], key: str) -> Optional[int]:
    value = data.get(key)
    if value is None:
        return None
    number = _as_float(value)
    if number is not None and number.is_integer():
        return int(value)
    logger.debug("ignoring non-integer %r=%r", key, value)
    return None


def _opt_float(data: Mapping[str, Any], key: str) -> Optional[float]:
    value = data.get(key)
    if value is None:
        return None
    number = _as_float(value)
    if number is not None:
        return number
    logger.debug("ignoring non-numeric %r=%r", key, value)
    return None


def _opt_bool(data: Mapping[str, Any], key: str) -> Optional[bool]:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    logger.debug("ignoring non-boolean %r=%r", key, value)
    return None


def _opt_str(data: Mapping[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, str):
        return value
    logger.debug("ignoring non-string %r", key)
    return None


def _opt_floats(data: Mapping[str, Any], key: str) -> Optional[Tuple[float, ...]]:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, list):
        numbers = tuple(_as_float(v) for v in value)
        if None not in numbers:
            return numbers
    logger.debug("ignoring malformed %r array", key)
    return None


@dataclass(frozen=True, slots=True)
class StreamDescriptor:
    """A stream advertised by the server in a session-info response."""

    name: str
    id: int

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "id": self.id}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Optional["StreamDescriptor"]:
        if not isinstance(data, Mapping):
            return None
        name = _opt_str(data, "name")
        stream_id = _opt_int(data, "id")
        if name is None or stream_id is None:
            logger.debug("ignoring incomplete stream descriptor %r", data)
            return None
        return cls(name=name, id=stream_id)


def _opt_streams(data: Mapping[str, Any]) -> Optional[Tuple[StreamDescriptor, ...]]:
    value = data.get("streams")
    if value is None:
        return None
    if not isinstance(value, list):
        logger.debug("ignoring non-array 'streams'")
        return None
    streams = (StreamDescriptor.from_dict(item) for item in value)
    return tuple(s for s in streams if s is not None)


@dataclass(slots=True)
class ObserveRequest:
    """One-shot subscription to a server stream; every field is always sent."""

    stream: int = 0
    dropable: bool = False
    observer_id: int = 0
    type: str = field(default=OBSERVE_TYPE, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "stream": int(self.stream),
            "dropable": bool(self.dropable),
            OBSERVER_ID_KEY: int(self.observer_id),
        }

    def to_json(self) -> str:
        return _dumps(self.to_dict())


@dataclass(slots=True)
class FeedbackMessage:
    """Sparse camera-state update.

    Only the camera fields that were supplied are written; unset fields are
    omitted from the wire form rather than sent as ``null``.
    """

    observer_id: int = 0
    projection: Optional[Tuple[float, ...]] = None
    modelview: Optional[Tuple[float, ...]] = None
    rotation_absolute: Optional[Tuple[float, ...]] = None
    position_absolute: Optional[Tuple[float, ...]] = None
    type: str = field(default=FEEDBACK_TYPE, init=False)

    def __post_init__(self) -> None:
        self.projection = _float_tuple(self.projection, MATRIX4_LENGTH, "projection")
        self.modelview = _float_tuple(self.modelview, MATRIX4_LENGTH, "modelview")
        self.rotation_absolute = _float_tuple(self.rotation_absolute, MATRIX3_LENGTH, "rotation_absolute")
        self.position_absolute = _float_tuple(self.position_absolute, VECTOR3_LENGTH, "position_absolute")

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "type": self.type,
            OBSERVER_ID_KEY: int(self.observer_id),
            "projection": _as_list(self.projection),
            "modelview": _as_list(self.modelview),
            ROTATION_ABSOLUTE_KEY: _as_list(self.rotation_absolute),
            POSITION_ABSOLUTE_KEY: _as_list(self.position_absolute),
        }
        return _strip_none(payload)

    def to_json(self) -> str:
        return _dumps(self.to_dict())


@dataclass(slots=True)
class ServerResponse:
    """Any message sent by the server.

    Covers both the session-info message (scene name, node count, available
    streams, volume extents and camera defaults) and frame messages
    (framebuffer size plus a base64 image payload).
    """

    type: Optional[str] = None
    name: Optional[str] = None
    id: Optional[int] = None
    nodes: Optional[int] = None
    streams: Optional[Tuple[StreamDescriptor, ...]] = None
    width: Optional[int] = None
    height: Optional[int] = None
    depth: Optional[int] = None
    dimension: Optional[int] = None
    projection: Optional[Tuple[float, ...]] = None
    position: Optional[Tuple[float, ...]] = None
    distance: Optional[float] = None
    rotation: Optional[Tuple[float, ...]] = None
    interpolation: Optional[bool] = None
    step: Optional[float] = None
    framebuffer_width: Optional[int] = None
    framebuffer_height: Optional[int] = None
    payload: Optional[str] = None

    @property
    def framebuffer_size(self) -> Optional[Tuple[int, int]]:
        if self.framebuffer_width is None or self.framebuffer_height is None:
            return None
        return (self.framebuffer_width, self.framebuffer_height)

    @property
    def has_payload(self) -> bool:
        return bool(self.payload)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ServerResponse":
        if not isinstance(data, Mapping):
            raise DecodeFailure("server message must be a JSON object")
        if data.get("type") is None:
            logger.debug("server message without 'type'")
        return cls(
            type=_opt_str(data, "type"),
            name=_opt_str(data, "name"),
            id=_opt_int(data, "id"),
            nodes=_opt_int(data, "nodes"),
            streams=_opt_streams(data),
            width=_opt_int(data, "width"),
            height=_opt_int(data, "height"),
            depth=_opt_int(data, "depth"),
            dimension=_opt_int(data, "dimension"),
            projection=_opt_floats(data, "projection"),
            position=_opt_floats(data, "position"),
            distance=_opt_float(data, "distance"),
            rotation=_opt_floats(data, "rotation"),
            interpolation=_opt_bool(data, "interpolation"),
            step=_opt_float(data, "step"),
            framebuffer_width=_opt_int(data, FRAMEBUFFER_WIDTH_KEY),
            framebuffer_height=_opt_int(data, FRAMEBUFFER_HEIGHT_KEY),
            payload=_opt_str(data, "payload"),
        )


def encode_observe(stream_id: int = 0, dropable: bool = False, observer_id: int = 0) -> str:
    return ObserveRequest(stream=stream_id, dropable=dropable, observer_id=observer_id).to_json()


def encode_feedback(
    observer_id: int = 0,
    *,
    projection: Optional[Sequence[float]] = None,
    modelview: Optional[Sequence[float]] = None,
    rotation_absolute: Optional[Sequence[float]] = None,
    position_absolute: Optional[Sequence[float]] = None,
) -> str:
    """Serialize a feedback message holding only the supplied camera fields."""

    return FeedbackMessage(
        observer_id=observer_id,
        projection=projection,
        modelview=modelview,
        rotation_absolute=rotation_absolute,
        position_absolute=position_absolute,
    ).to_json()


def decode_response(text: str | bytes | bytearray) -> ServerResponse:
    """Parse one inbound message.

    Raises :class:`DecodeFailure` when the text is not valid JSON or does not
    hold a JSON object.  Field-level problems never raise.
    """

    try:
        data = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise DecodeFailure(f"malformed JSON: {exc}") from exc
    except RecursionError as exc:
        raise DecodeFailure("JSON nested too deeply") from exc
    return ServerResponse.from_dict(data)


__all__ = [
    "DEFAULT_PORT",
    "FEEDBACK_TYPE",
    "FRAMEBUFFER_HEIGHT_KEY",
    "FRAMEBUFFER_WIDTH_KEY",
    "OBSERVER_ID_KEY",
    "OBSERVE_TYPE",
    "POSITION_ABSOLUTE_KEY",
    "ROTATION_ABSOLUTE_KEY",
    "SUBPROTOCOL",
    "DecodeFailure",
    "FeedbackMessage",
    "ObserveRequest",
    "ServerResponse",
    "StreamDescriptor",
    "decode_response",
    "encode_feedback",
    "encode_observe",
]
