from __future__ import annotations

import enum
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class FrameType(str, enum.Enum):
    """Discriminant carried in the top-level ``type`` field of a frame."""

    join = "join"
    system = "system"
    message = "message"
    progress_update = "progress_update"
    command_progress = "command_progress"
    error = "error"


class ProgressStatus(str, enum.Enum):
    started = "started"
    in_progress = "in_progress"
    completed = "completed"
    error = "error"


class JoinFrame(BaseModel):
    """Channel join request sent right after the socket opens."""

    type: Literal["join"] = "join"
    channel: str


class JoinAck(BaseModel):
    """Inner payload of a ``system`` frame acknowledging a join."""

    model_config = ConfigDict(extra="allow")

    result: Any = None


class SystemFrame(BaseModel):
    """Server system frame; used to acknowledge channel joins."""

    model_config = ConfigDict(extra="allow")

    type: Literal["system"] = "system"
    channel: Optional[str] = None
    message: Any = None

    def ack(self) -> Optional[JoinAck]:
        if isinstance(self.message, dict):
            return JoinAck.model_validate(self.message)
        return None

    @property
    def succeeded(self) -> bool:
        ack = self.ack()
        return bool(ack is not None and ack.result)


class CommandMessage(BaseModel):
    """Inner payload of a command invocation."""

    id: str
    command: str
    params: Dict[str, Any] = Field(default_factory=dict)


class ResponseMessage(BaseModel):
    """Inner payload of a command response (``result`` or ``error``)."""

    id: str
    result: Any = None
    error: Optional[str] = None

    @field_validator("error", mode="before")
    @classmethod
    def _stringify_error(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)


class MessageFrame(BaseModel):
    """Channel-addressed envelope wrapping commands and responses."""

    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    type: Literal["message"] = "message"
    channel: Optional[str] = None
    message: Dict[str, Any]


class ProgressData(BaseModel):
    """Progress update about a long-running command."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    command_id: str = Field(alias="commandId")
    command_type: str = Field(alias="commandType")
    status: ProgressStatus
    progress: int = Field(ge=0, le=100)
    total_items: Optional[int] = Field(default=None, alias="totalItems")
    processed_items: Optional[int] = Field(default=None, alias="processedItems")
    message: Optional[str] = None
    current_chunk: Optional[int] = Field(default=None, alias="currentChunk")
    total_chunks: Optional[int] = Field(default=None, alias="totalChunks")
    chunk_size: Optional[int] = Field(default=None, alias="chunkSize")
    payload: Optional[Dict[str, Any]] = None
    timestamp: int

    @property
    def finished(self) -> bool:
        return self.status in (ProgressStatus.completed, ProgressStatus.error)


class ProgressMessage(BaseModel):
    id: Optional[str] = None
    type: Literal["progress_update"] = "progress_update"
    data: ProgressData


class ProgressFrame(BaseModel):
    """Progress envelope relayed over the channel."""

    id: str
    type: Literal["progress_update"] = "progress_update"
    channel: Optional[str] = None
    message: ProgressMessage


class ErrorFrame(BaseModel):
    """Fire-and-forget error reply for a command id."""

    id: Optional[str] = None
    error: str
