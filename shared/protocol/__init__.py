from .frames import (
    CHANNEL_ALPHABET,
    DEFAULT_CHANNEL_LENGTH,
    FrameDecodeError,
    build_command_frame,
    build_error_frame,
    build_join_frame,
    build_progress_frame,
    build_response_frame,
    decode_frame,
    encode_frame,
    generate_channel_name,
    generate_request_id,
    now_ms,
)

__all__ = [
    "CHANNEL_ALPHABET",
    "DEFAULT_CHANNEL_LENGTH",
    "FrameDecodeError",
    "build_command_frame",
    "build_error_frame",
    "build_join_frame",
    "build_progress_frame",
    "build_response_frame",
    "decode_frame",
    "encode_frame",
    "generate_channel_name",
    "generate_request_id",
    "now_ms",
]
