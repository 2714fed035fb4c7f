from __future__ import annotations

from isaac_stream.client.config import ClientConfig, build_endpoint


def test_defaults() -> None:
    cfg = ClientConfig.from_env({})

    assert cfg.host == "127.0.0.1"
    assert cfg.endpoint == "ws://127.0.0.1:2459"
    assert (cfg.stream, cfg.dropable, cfg.observer_id) == (0, False, 0)
    assert cfg.swap_rb is True


def test_from_env_mapping() -> None:
    cfg = ClientConfig.from_env(
        {
            "ISAAC_HOST": "render01",
            "ISAAC_STREAM": "3",
            "ISAAC_DROPABLE": "yes",
            "ISAAC_OBSERVER_ID": "12",
            "ISAAC_CONNECT_TIMEOUT": "1.5",
            "ISAAC_SWAP_RB": "0",
        }
    )

    assert cfg.as_dict() == {
        "host": "render01",
        "stream": 3,
        "dropable": True,
        "observer_id": 12,
        "connect_timeout_s": 1.5,
        "swap_rb": False,
    }
    assert cfg.endpoint == "ws://render01:2459"


def test_from_env_ignores_garbage() -> None:
    cfg = ClientConfig.from_env({"ISAAC_HOST": "", "ISAAC_STREAM": "two", "ISAAC_DROPABLE": "maybe"})

    assert cfg.host == "127.0.0.1"
    assert cfg.stream == 0
    assert cfg.dropable is False


def test_build_endpoint_fixes_scheme_and_port() -> None:
    assert build_endpoint("localhost") == "ws://localhost:2459"
