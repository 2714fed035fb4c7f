"""Runtime configuration for the ISAAC stream client.

Only the host part of the endpoint is configurable; the scheme and port are
fixed by the protocol.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Mapping, Optional

from isaac_stream.protocol import DEFAULT_PORT
from isaac_stream.utils.env import env_bool, env_float, env_int, env_str

DEFAULT_HOST = "127.0.0.1"
SCHEME = "ws"


def build_endpoint(host: str) -> str:
    return f"{SCHEME}://{host}:{DEFAULT_PORT}"


@dataclass
class ClientConfig:
    host: str = DEFAULT_HOST
    stream: int = 0
    dropable: bool = False
    observer_id: int = 0
    connect_timeout_s: float = 5.0
    swap_rb: bool = True

    @property
    def endpoint(self) -> str:
        return build_endpoint(self.host)

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_env(env: Optional[Mapping[str, str]] = None) -> "ClientConfig":
        return ClientConfig(
            host=env_str("ISAAC_HOST", DEFAULT_HOST, env) or DEFAULT_HOST,
            stream=env_int("ISAAC_STREAM", 0, env),
            dropable=env_bool("ISAAC_DROPABLE", False, env),
            observer_id=env_int("ISAAC_OBSERVER_ID", 0, env),
            connect_timeout_s=env_float("ISAAC_CONNECT_TIMEOUT", 5.0, env),
            swap_rb=env_bool("ISAAC_SWAP_RB", True, env),
        )
