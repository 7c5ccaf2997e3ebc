from .frames import (
    CommandMessage,
    ErrorFrame,
    FrameType,
    JoinAck,
    JoinFrame,
    MessageFrame,
    ProgressData,
    ProgressFrame,
    ProgressMessage,
    ProgressStatus,
    ResponseMessage,
    SystemFrame,
)

__all__ = [
    "CommandMessage",
    "ErrorFrame",
    "FrameType",
    "JoinAck",
    "JoinFrame",
    "MessageFrame",
    "ProgressData",
    "ProgressFrame",
    "ProgressMessage",
    "ProgressStatus",
    "ResponseMessage",
    "SystemFrame",
]
