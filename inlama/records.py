"""Incremental parser for newline-delimited generate responses."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .errors import RecordDecodeError

logger = logging.getLogger(__name__)

# Diagnostic counters/durations the endpoint attaches to records.
# Tolerated when present, never required.
OPTIONAL_INT_FIELDS = (
    "total_duration",
    "load_duration",
    "prompt_eval_count",
    "prompt_eval_duration",
    "eval_count",
    "eval_duration",
)


@dataclass(frozen=True)
class ResponseRecord:
    """One decoded line of a streamed generate response."""

    model: str
    created_at: str
    response: str
    done: bool
    context: List[int] = field(default_factory=list)
    done_reason: Optional[str] = None
    total_duration: Optional[int] = None
    load_duration: Optional[int] = None
    prompt_eval_count: Optional[int] = None
    prompt_eval_duration: Optional[int] = None
    eval_count: Optional[int] = None
    eval_duration: Optional[int] = None


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _require(payload: Dict[str, Any], name: str, kind: type) -> Any:
    if name not in payload:
        raise RecordDecodeError(f"missing field '{name}'")
    value = payload[name]
    if not isinstance(value, kind):
        raise RecordDecodeError(f"field '{name}' must be {kind.__name__}")
    return value


def decode_record(span: bytes) -> ResponseRecord:
    """Decode a single line (without its newline) into a ResponseRecord."""
    try:
        text = span.decode("utf-8")
    except UnicodeDecodeError as e:
        raise RecordDecodeError(f"invalid UTF-8: {e}") from e

    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise RecordDecodeError(f"invalid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise RecordDecodeError("record is not a JSON object")

    model = _require(payload, "model", str)
    created_at = _require(payload, "created_at", str)
    response = _require(payload, "response", str)
    done = _require(payload, "done", bool)

    context = payload.get("context")
    if context is None:
        context = []
    elif not isinstance(context, list) or not all(_is_int(v) for v in context):
        raise RecordDecodeError("field 'context' must be a list of integers")

    done_reason = payload.get("done_reason")
    if done_reason is not None and not isinstance(done_reason, str):
        raise RecordDecodeError("field 'done_reason' must be str")

    extras = {}
    for name in OPTIONAL_INT_FIELDS:
        value = payload.get(name)
        if value is not None and not _is_int(value):
            raise RecordDecodeError(f"field '{name}' must be an integer")
        extras[name] = value

    return ResponseRecord(
        model=model,
        created_at=created_at,
        response=response,
        done=done,
        context=list(context),
        done_reason=done_reason,
        **extras,
    )


class RecordParser:
    """
    Splits a fragmented byte stream into ResponseRecords.

    Bytes after the last newline are held until the next feed(). Lines that
    fail to decode are skipped and counted, so stray transport output never
    aborts a turn. One parser serves exactly one response stream.
    """

    def __init__(self) -> None:
        self.buffer = bytearray()
        self.decoded = 0
        self.skipped = 0

    def feed(self, data: bytes) -> List[ResponseRecord]:
        """Consume a network fragment and return the records it completed."""
        self.buffer.extend(data)

        records: List[ResponseRecord] = []
        start = 0
        while True:
            end = self.buffer.find(b"\n", start)
            if end == -1:
                break
            span = bytes(self.buffer[start:end])
            start = end + 1
            if not span.strip():
                continue
            try:
                record = decode_record(span)
            except RecordDecodeError as e:
                self.skipped += 1
                logger.debug(f"⏭️ Skipping undecodable response line ({e}): {span[:200]!r}")
                continue
            self.decoded += 1
            records.append(record)

        if start:
            del self.buffer[:start]
        if self.buffer:
            logger.debug(f"{len(self.buffer)} bytes remaining in parse buffer")
        return records

    def close(self) -> int:
        """Signal end of stream; drop any partial record and return its size."""
        leftover = len(self.buffer)
        if leftover:
            logger.debug(f"⏭️ Dropping {leftover} trailing bytes of a truncated record")
        self.buffer.clear()
        return leftover


__all__ = ["ResponseRecord", "RecordParser", "decode_record"]
