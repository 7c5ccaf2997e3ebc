"""Helpers for building/parsing channel frames."""

from __future__ import annotations

import json
import secrets
import string
import time
import uuid
from typing import Any, Dict, Optional

from pydantic import BaseModel

from shared.models.frames import (
    CommandMessage,
    ErrorFrame,
    JoinFrame,
    MessageFrame,
    ProgressData,
    ProgressFrame,
    ProgressMessage,
)

CHANNEL_ALPHABET = string.ascii_lowercase + string.digits
DEFAULT_CHANNEL_LENGTH = 8


class FrameDecodeError(ValueError):
    """Raised when inbound data is not a JSON object."""


def _dump(model: BaseModel) -> Dict[str, Any]:
    return model.model_dump(by_alias=True, exclude_none=True, mode="json")


def generate_channel_name(length: int = DEFAULT_CHANNEL_LENGTH) -> str:
    """Random lowercase alphanumeric channel identifier."""

    return "".join(secrets.choice(CHANNEL_ALPHABET) for _ in range(length))


def generate_request_id() -> str:
    return uuid.uuid4().hex


def now_ms() -> int:
    return int(time.time() * 1000)


def build_join_frame(channel: str) -> Dict[str, Any]:
    return _dump(JoinFrame(channel=channel.strip()))


def build_command_frame(
    request_id: str,
    channel: Optional[str],
    command: str,
    params: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    inner = CommandMessage(id=request_id, command=command, params=params or {})
    frame = MessageFrame(id=request_id, channel=channel, message=_dump(inner))
    return _dump(frame)


def build_response_frame(request_id: str, channel: Optional[str], result: Any) -> Dict[str, Any]:
    # ``result`` is kept even when None so the receiver can tell a reply from noise.
    frame = MessageFrame(id=request_id, channel=channel, message={"id": request_id, "result": result})
    return frame.model_dump(by_alias=True, exclude_none=False, mode="json")


def build_error_frame(request_id: Optional[str], error: str) -> Dict[str, Any]:
    return _dump(ErrorFrame(id=request_id, error=error))


def build_progress_frame(data: ProgressData, channel: Optional[str]) -> Dict[str, Any]:
    frame = ProgressFrame(
        id=data.command_id,
        channel=channel,
        message=ProgressMessage(id=data.command_id, data=data),
    )
    return _dump(frame)


def encode_frame(frame: Dict[str, Any]) -> str:
    return json.dumps(frame)


def decode_frame(raw: str | bytes) -> Dict[str, Any]:
    """Parse one inbound text frame into a dict."""

    try:
        if isinstance(raw, (bytes, bytearray)):
            raw = raw.decode("utf-8")
        data = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise FrameDecodeError(f"invalid JSON frame: {exc}") from exc
    if not isinstance(data, dict):
        raise FrameDecodeError(f"frame must be a JSON object, got {type(data).__name__}")
    return data
