"""
Shared protocol definitions for ShellSight.
Defines the messages exchanged between the replay server and its clients.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional
import json
import math


class MessageType(Enum):
    # Server -> Client
    START = "start"
    OUTPUT = "output"
    END = "end"
    STOPPED = "stopped"
    ERROR = "error"
    PONG = "pong"


class ClientAction(Enum):
    REPLAY = "replay"
    STOP = "stop"
    PING = "ping"


def coerce_speed(value, default: float = 1.0) -> float:
    """Parse a playback speed, falling back to ``default`` for anything not positive."""
    try:
        speed = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(speed) or speed <= 0:
        return default
    return speed


@dataclass
class ServerMessage:
    message_type: MessageType
    data: Optional[str] = None
    message: Optional[str] = None
    code: Optional[int] = None
    duration: Optional[float] = None
    speed: Optional[float] = None

    @classmethod
    def start(cls, duration: float, speed: float) -> "ServerMessage":
        return cls(
            MessageType.START,
            duration=duration,
            speed=speed,
            message=f"Starting replay at {speed:g}x speed...",
        )

    @classmethod
    def output(cls, text: str) -> "ServerMessage":
        return cls(MessageType.OUTPUT, data=text)

    @classmethod
    def end(cls, code: int = 0) -> "ServerMessage":
        return cls(MessageType.END, code=code)

    @classmethod
    def stopped(cls) -> "ServerMessage":
        return cls(MessageType.STOPPED, message="Replay stopped")

    @classmethod
    def error(cls, message: str) -> "ServerMessage":
        return cls(MessageType.ERROR, message=message)

    @classmethod
    def pong(cls) -> "ServerMessage":
        return cls(MessageType.PONG)

    def to_dict(self) -> dict:
        d = {"type": self.message_type.value}
        for name in ("data", "message", "code", "duration", "speed"):
            value = getattr(self, name)
            if value is not None:
                d[name] = value
        return d


@dataclass
class ClientRequest:
    action: ClientAction
    folder: Optional[str] = None
    speed: Optional[float] = None
    user: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "ClientRequest":
        if not isinstance(data, dict):
            raise ValueError("Message must be a JSON object")

        try:
            action = ClientAction(data.get("action"))
        except ValueError:
            raise ValueError(f"Unknown action: {data.get('action')}")

        folder = data.get("folder")
        speed = data.get("speed")
        user = data.get("user")
        if action == ClientAction.REPLAY and not folder:
            raise ValueError("Replay request requires a folder")
        if folder is not None and not isinstance(folder, str):
            raise ValueError("Folder must be a string")
        if user is not None and not isinstance(user, str):
            raise ValueError("User must be a string")

        return cls(
            action=action,
            folder=folder or None,
            speed=coerce_speed(speed) if speed is not None else None,
            user=user or None,
        )

    @classmethod
    def from_json(cls, raw: str) -> "ClientRequest":
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON: {e}")
        return cls.from_dict(data)
