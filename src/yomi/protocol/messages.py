"""Typed request/response messages for the conversion engine protocol.

Requests are built by yomi and serialized with ``to_payload``; responses
are validated at the boundary by ``parse_response`` so the rest of the
code never touches loosely-typed dicts. Unknown message types and missing
or mistyped fields raise ``ProtocolError``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Sequence, Union

from ..errors import ProtocolError


class AdjustDirection(str, Enum):
    SHRINK = "shrink"
    EXTEND = "extend"


@dataclass(frozen=True)
class SegmentInfo:
    """One segment as the engine describes it."""

    reading: str
    candidates: tuple[str, ...]
    length: int
    start: int = 0


# --- Requests (yomi -> engine) ---


class _Request:
    type = ""

    def fields(self) -> dict:
        return {}

    def to_payload(self, seq: int, session_id: str | None = None) -> dict:
        return to_payload(self, seq, session_id)


@dataclass(frozen=True)
class InitRequest(_Request):
    # Nested capability configuration, e.g. {"zenzai": {"enabled": True}}
    capabilities: dict = field(default_factory=dict)

    type = "init"

    def fields(self) -> dict:
        return {name: dict(config) for name, config in self.capabilities.items()}


@dataclass(frozen=True)
class ShutdownRequest(_Request):
    type = "shutdown"


@dataclass(frozen=True)
class ConvertRequest(_Request):
    reading: str
    cursor: int | None = None
    live: bool = False

    type = "convert"

    def fields(self) -> dict:
        return {
            "reading": self.reading,
            "cursor": self.cursor,
            "options": {"live": self.live},
        }


@dataclass(frozen=True)
class CommitRequest(_Request):
    reading: str
    candidate: str

    type = "commit"

    def fields(self) -> dict:
        return {"reading": self.reading, "candidate": self.candidate}


@dataclass(frozen=True)
class AdjustSegmentRequest(_Request):
    reading: str
    segments: Sequence[Any]
    segment_index: int  # 0-based, as the engine expects
    direction: AdjustDirection

    type = "adjust_segment"

    def __post_init__(self):
        try:
            object.__setattr__(self, "direction", AdjustDirection(self.direction))
        except ValueError as e:
            raise ProtocolError(f"Invalid direction: {self.direction!r}") from e

    def fields(self) -> dict:
        return {
            "reading": self.reading,
            "segments": [
                {
                    "reading": seg.reading,
                    "start": seg.start,
                    "length": seg.length,
                    "candidates": list(seg.candidates),
                }
                for seg in self.segments
            ],
            "segment_index": self.segment_index,
            "direction": self.direction.value,
        }


Request = Union[InitRequest, ShutdownRequest, ConvertRequest, CommitRequest, AdjustSegmentRequest]


def to_payload(request: Request, seq: int, session_id: str | None = None) -> dict:
    """Build the wire dict for ``request`` tagged with ``seq``."""
    payload = {"type": request.type, "seq": seq}
    if session_id is not None:
        payload["session_id"] = session_id
    payload.update(request.fields())
    return payload


# --- Responses (engine -> yomi) ---


@dataclass(frozen=True)
class InitResult:
    seq: int
    session_id: str
    version: str
    capabilities: dict = field(default_factory=dict)


@dataclass(frozen=True)
class ConvertResult:
    seq: int
    candidates: tuple[str, ...]
    segments: tuple[SegmentInfo, ...] = ()
    session_id: str | None = None


@dataclass(frozen=True)
class CommitResult:
    seq: int
    success: bool
    session_id: str | None = None


@dataclass(frozen=True)
class AdjustSegmentResult:
    seq: int
    segments: tuple[SegmentInfo, ...]
    session_id: str | None = None


@dataclass(frozen=True)
class ShutdownResult:
    seq: int


@dataclass(frozen=True)
class ErrorResponse:
    seq: int
    error: str
    session_id: str | None = None


Response = Union[InitResult, ConvertResult, CommitResult, AdjustSegmentResult, ShutdownResult, ErrorResponse]


def _require(message: dict, key: str, kind: type, where: str | None = None):
    where = where or str(message.get("type"))
    if key not in message:
        raise ProtocolError(f"{where}: missing field {key!r}")
    value = message[key]
    # bool is an int subclass; never accept it where a number is expected
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise ProtocolError(f"{where}: field {key!r} has type {type(value).__name__}")
    return value


def _optional_session_id(message: dict) -> str | None:
    session_id = message.get("session_id")
    if session_id is not None and not isinstance(session_id, str):
        raise ProtocolError("session_id must be a string")
    return session_id


def _strings(message: dict, key: str, where: str | None = None) -> tuple[str, ...]:
    values = _require(message, key, list, where)
    if not all(isinstance(value, str) for value in values):
        raise ProtocolError(f"{where or message.get('type')}: {key!r} must contain only strings")
    return tuple(values)


def _segments(message: dict, key: str) -> tuple[SegmentInfo, ...]:
    where = f"{message.get('type')} segment"
    segments = []
    start = 0
    for raw in _require(message, key, list):
        if not isinstance(raw, dict):
            raise ProtocolError(f"{where} must be an object")
        length = _require(raw, "length", int, where)
        seg_start = raw.get("start", start)
        if isinstance(seg_start, bool) or not isinstance(seg_start, int):
            raise ProtocolError(f"{where}: start must be an integer")
        segments.append(
            SegmentInfo(
                reading=_require(raw, "reading", str, where),
                candidates=_strings(raw, "candidates", where),
                length=length,
                start=seg_start,
            )
        )
        start = seg_start + length
    return tuple(segments)


def parse_response(message: dict) -> Response:
    """Validate a decoded JSON object and return the matching response type."""
    kind = message.get("type")
    seq = _require(message, "seq", int)

    if kind == "init_result":
        known = {"type", "seq", "session_id", "version"}
        return InitResult(
            seq=seq,
            session_id=_require(message, "session_id", str),
            version=_require(message, "version", str),
            capabilities={k: v for k, v in message.items() if k not in known},
        )
    if kind == "convert_result":
        return ConvertResult(
            seq=seq,
            candidates=_strings(message, "candidates"),
            segments=_segments(message, "segments") if message.get("segments") is not None else (),
            session_id=_optional_session_id(message),
        )
    if kind == "commit_result":
        return CommitResult(
            seq=seq,
            success=_require(message, "success", bool),
            session_id=_optional_session_id(message),
        )
    if kind == "adjust_segment_result":
        return AdjustSegmentResult(
            seq=seq,
            segments=_segments(message, "segments"),
            session_id=_optional_session_id(message),
        )
    if kind == "shutdown_result":
        return ShutdownResult(seq=seq)
    if kind == "error":
        return ErrorResponse(
            seq=seq,
            error=_require(message, "error", str),
            session_id=_optional_session_id(message),
        )

    raise ProtocolError(f"Unknown message type: {kind!r}")
