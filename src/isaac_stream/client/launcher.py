"""
Headless viewer for an ISAAC streaming server.

Connects, subscribes to a stream and logs the frames it receives.  After every
applied frame the current camera state is fed back to the server, which keeps
the remote renderer in step with this (static) viewer.
"""

from __future__ import annotations

import argparse
import logging
import time
from pathlib import Path
from typing import Optional, Sequence

from PIL import Image

from isaac_stream.client.camera import rotation_from_quaternion
from isaac_stream.client.config import ClientConfig
from isaac_stream.client.mailbox import FrameMailbox, FrameWatermark, StreamedFrame
from isaac_stream.client.payload import swap_channels
from isaac_stream.client.session import IsaacClient
from isaac_stream.utils.env import env_bool

logger = logging.getLogger(__name__)

_IDENTITY_ROTATION = rotation_from_quaternion((0.0, 0.0, 0.0, 1.0))


def save_frame(frame: StreamedFrame, path: Path, swapped: bool) -> None:
    """Write *frame* as an image; *swapped* frames are converted back to RGB."""

    pixels = swap_channels(frame.pixels) if swapped else frame.pixels
    Image.fromarray(pixels).save(path)


def run_headless_client(
    config: ClientConfig,
    *,
    frames: Optional[int] = None,
    dump: Optional[Path] = None,
    position: Optional[Sequence[float]] = None,
    feedback: bool = True,
    idle_timeout: float = 30.0,
    client: Optional[IsaacClient] = None,
    mailbox: Optional[FrameMailbox] = None,
) -> int:
    """Observe one stream until *frames* frames are applied or the server closes.

    Returns the process exit code: 1 when the connection cannot be opened.
    """

    mailbox = mailbox or FrameMailbox()
    watermark = FrameWatermark()
    client = client or IsaacClient(config)
    client.register_payload_handler(mailbox)
    client.connection.on_close = lambda code, reason, remote: mailbox.close()

    client.connect()
    if not client.wait_for_connection():
        return 1

    applied = 0
    with client:
        client.observe()
        while frames is None or applied < frames:
            frame = mailbox.take(timeout=idle_timeout)
            if frame is None:
                if mailbox.closed or not client.connection.is_open:
                    logger.info("connection closed; stopping")
                    break
                logger.warning("no frame for %.0fs", idle_timeout)
                continue
            if not watermark.accept(frame.timestamp):
                logger.debug("skipping stale frame ts=%d", frame.timestamp)
                continue
            applied += 1
            logger.info(
                "frame %d: %dx%d payload=%d chars dropped=%d",
                applied,
                frame.width,
                frame.height,
                len(frame.payload),
                mailbox.dropped,
            )
            if dump is not None:
                try:
                    save_frame(frame, dump, swapped=config.swap_rb)
                except OSError:
                    logger.warning("could not write frame to %s", dump, exc_info=True)
            if feedback:
                client.send_feedback(rotation_absolute=_IDENTITY_ROTATION)
                if position is not None:
                    client.send_feedback(position_absolute=position)
    logger.info(
        "received %d messages, applied %d frames (%d decode failures, %d superseded)",
        client.messages_received,
        applied,
        client.decode_failures,
        mailbox.dropped,
    )
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    defaults = ClientConfig.from_env()
    parser = argparse.ArgumentParser(description="Headless ISAAC stream viewer")
    parser.add_argument('--host', default=defaults.host, help='ISAAC server host (env ISAAC_HOST)')
    parser.add_argument('--stream', type=int, default=defaults.stream, help='Stream id to observe')
    parser.add_argument('--dropable', action='store_true', default=defaults.dropable,
                        help='Let the server drop frames for this observer')
    parser.add_argument('--observer-id', type=int, default=defaults.observer_id)
    parser.add_argument('--timeout', type=float, default=defaults.connect_timeout_s,
                        help='Seconds to wait for the connection to open')
    parser.add_argument('--frames', type=int, default=None, help='Stop after N applied frames')
    parser.add_argument('--dump', type=Path, default=None, help='Save the latest frame to this image file')
    parser.add_argument('--position', type=float, nargs=3, default=None, metavar=('X', 'Y', 'Z'),
                        help='Camera position to send as feedback')
    parser.add_argument('--no-feedback', action='store_true', help='Do not send camera feedback')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')
    args = parser.parse_args(argv)

    debug = args.debug or env_bool('ISAAC_CLIENT_DEBUG', False)
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format='[%(asctime)s] %(name)s - %(levelname)s - %(message)s',
    )

    config = ClientConfig(
        host=args.host,
        stream=args.stream,
        dropable=args.dropable,
        observer_id=args.observer_id,
        connect_timeout_s=args.timeout,
        swap_rb=defaults.swap_rb,
    )
    logger.info("Launching headless ISAAC client for %s", config.endpoint)
    started = time.perf_counter()
    try:
        return run_headless_client(
            config,
            frames=args.frames,
            dump=args.dump,
            position=args.position,
            feedback=not args.no_feedback,
        )
    except KeyboardInterrupt:
        return 0
    finally:
        logger.info("client ran for %.1fs", time.perf_counter() - started)


if __name__ == "__main__":
    raise SystemExit(main())
