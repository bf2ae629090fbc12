"""Wire codec for cloud variable frames.

Each frame is one compact JSON object terminated by a newline. A single
transport delivery may carry several frames.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..exceptions import MalformedFrameError

logger = logging.getLogger(__name__)

Value = str | int | float


class Method(Enum):
    """Command carried by a frame."""

    HANDSHAKE = "handshake"
    CREATE = "create"
    SET = "set"
    RENAME = "rename"
    DELETE = "delete"


# Structural operations survive a disconnect; plain sets do not.
QUEUEABLE_METHODS = frozenset({Method.CREATE, Method.RENAME, Method.DELETE})


@dataclass(frozen=True)
class Message:
    """An outgoing command."""

    method: Method
    user: str
    project_id: str
    name: str | None = None
    value: Value | None = None
    new_name: str | None = None

    @property
    def queueable(self) -> bool:
        return self.method in QUEUEABLE_METHODS

    def to_dict(self) -> dict[str, Any]:
        """Convert to the canonical wire object, omitting absent fields."""
        data: dict[str, Any] = {
            "method": self.method.value,
            "user": self.user,
            "project_id": self.project_id,
        }
        if self.name is not None:
            data["name"] = self.name
        if self.new_name is not None:
            data["new_name"] = self.new_name
        if self.value is not None:
            data["value"] = self.value
        return data

    def to_frame(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, separators=(",", ":")) + "\n"


@dataclass(frozen=True)
class VarUpdate:
    """A variable change delivered to the runtime.

    The empty update (``name is None``) is falsy and means "nothing to apply".
    """

    name: str | None
    value: Any = None

    @classmethod
    def empty(cls) -> "VarUpdate":
        return cls(name=None)

    def __bool__(self) -> bool:
        return self.name is not None


def encode_message(
    method: Method | str,
    user: str,
    project_id: str,
    name: str | None = None,
    value: Value | None = None,
    new_name: str | None = None,
) -> Message:
    """Build a Message from a method and its arguments."""
    return Message(
        method=Method(method),
        user=user,
        project_id=project_id,
        name=name,
        value=value,
        new_name=new_name,
    )


def split_frames(payload: str) -> list[str]:
    """Split a delivery into frames, dropping empty segments."""
    return [frame for frame in payload.split("\n") if frame]


def decode_frame(frame: str) -> VarUpdate:
    """Decode a single frame into an update.

    Raises:
        MalformedFrameError: If the frame is not a JSON object.
    """
    try:
        data = json.loads(frame)
    except json.JSONDecodeError as e:
        raise MalformedFrameError(frame, str(e)) from e

    if not isinstance(data, dict):
        raise MalformedFrameError(frame, "not an object")

    if data.get("method") == Method.SET.value:
        return VarUpdate(name=data.get("name"), value=data.get("value"))

    logger.debug(f"Ignoring frame with method {data.get('method')!r}")
    return VarUpdate.empty()


def decode_payload(payload: str) -> list[VarUpdate]:
    """Decode every frame in a delivery, in order."""
    return [decode_frame(frame) for frame in split_frames(payload)]
