from .protocol import (
    MessageType,
    ClientAction,
    ServerMessage,
    ClientRequest,
    coerce_speed,
)

__all__ = [
    "MessageType",
    "ClientAction",
    "ServerMessage",
    "ClientRequest",
    "coerce_speed",
]
