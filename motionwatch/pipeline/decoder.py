# motionwatch/pipeline/decoder.py
from __future__ import annotations
import json
from enum import Enum

from pydantic import ValidationError

from motionwatch.common.schemas import MotionEvent

# substrings the daemon writes to stderr
READY_MARKER = "Started motion-httpd server"
PERMISSION_MARKER = "Permission denied"


class EventDecodeError(ValueError):
    """A daemon stdout line that is not a usable event."""

    def __init__(self, line: str, reason: str):
        super().__init__(f"{reason}: {line[:200]!r}")
        self.line = line
        self.reason = reason


class DaemonSignal(str, Enum):
    READY = "ready"
    PERMISSION_DENIED = "permission_denied"
    OTHER = "other"


def decode_line(line: str | bytes) -> MotionEvent:
    """
    Parse one stdout line into a MotionEvent.
    Unknown or missing "action" decodes fine (action=None); anything that is not a
    JSON object, or has unusable fields, raises EventDecodeError.
    """
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")
    text = line.strip()
    if not text:
        raise EventDecodeError(line, "empty line")

    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise EventDecodeError(text, f"invalid JSON ({e.msg})") from e

    if not isinstance(payload, dict):
        raise EventDecodeError(text, "not a JSON object")

    try:
        return MotionEvent.model_validate(payload)
    except ValidationError as e:
        reasons = "; ".join(err["msg"] for err in e.errors())
        raise EventDecodeError(text, f"schema mismatch ({reasons})") from e


def classify_stderr(line: str | bytes) -> DaemonSignal:
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")
    if PERMISSION_MARKER in line:
        return DaemonSignal.PERMISSION_DENIED
    if READY_MARKER in line:
        return DaemonSignal.READY
    return DaemonSignal.OTHER
