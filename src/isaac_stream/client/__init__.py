"""isaac-stream client components for receiving rendered streams."""

from __future__ import annotations

from importlib import import_module
from typing import Any

__all__ = [
    "ConnectionManager",
    "ConnectionState",
    "FrameDispatcher",
    "FrameMailbox",
    "FrameWatermark",
    "IsaacClient",
    "PayloadDecoder",
]


def _lazy_attr(name: str) -> Any:
    module_map = {
        "ConnectionManager": ("isaac_stream.client.connection", "ConnectionManager"),
        "ConnectionState": ("isaac_stream.client.connection", "ConnectionState"),
        "FrameDispatcher": ("isaac_stream.client.dispatcher", "FrameDispatcher"),
        "FrameMailbox": ("isaac_stream.client.mailbox", "FrameMailbox"),
        "FrameWatermark": ("isaac_stream.client.mailbox", "FrameWatermark"),
        "IsaacClient": ("isaac_stream.client.session", "IsaacClient"),
        "PayloadDecoder": ("isaac_stream.client.payload", "PayloadDecoder"),
    }
    if name not in module_map:
        raise AttributeError(name)
    module_path, attr = module_map[name]
    module = import_module(module_path)
    return getattr(module, attr)


def __getattr__(name: str) -> Any:  # pragma: no cover - trivial delegation
    return _lazy_attr(name)
