"""Wire protocol for cloud variables: frame codec and outbound queue."""

from .codec import (
    Message,
    Method,
    VarUpdate,
    decode_frame,
    decode_payload,
    encode_message,
    split_frames,
)
from .queue import OutboundQueue

__all__ = [
    "Message",
    "Method",
    "OutboundQueue",
    "VarUpdate",
    "decode_frame",
    "decode_payload",
    "encode_message",
    "split_frames",
]
