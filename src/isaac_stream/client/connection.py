from __future__ import annotations

import asyncio
import logging
import threading
from contextlib import suppress
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedError, InvalidHandshake

from isaac_stream.protocol import SUBPROTOCOL
from isaac_stream.utils.env import env_bool

logger = logging.getLogger(__name__)

ABNORMAL_CLOSURE = 1006


def _maybe_enable_debug_logger() -> bool:
    if not env_bool("ISAAC_CLIENT_DEBUG", False):
        return False
    pkg_logger = logging.getLogger("isaac_stream")
    has_local = any(getattr(h, "_isaac_stream_local", False) for h in pkg_logger.handlers)
    if not has_local:
        handler = logging.StreamHandler()
        fmt = "[%(asctime)s] %(name)s - %(levelname)s - %(message)s"
        handler.setFormatter(logging.Formatter(fmt))
        handler.setLevel(logging.DEBUG)
        setattr(handler, "_isaac_stream_local", True)
        pkg_logger.addHandler(handler)
    pkg_logger.setLevel(logging.DEBUG)
    pkg_logger.propagate = False
    return True


_CLIENT_DEBUG = _maybe_enable_debug_logger()


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


@dataclass
class TransportLoop:
    loop: asyncio.AbstractEventLoop | None = None
    websocket: Any = None
    outbox: asyncio.Queue[str] | None = None
    close_requested: bool = False


class ConnectionManager:
    """Owns the WebSocket to the ISAAC server and its connection state.

    The socket lives on a private asyncio loop in a daemon thread.  Transport
    events (open, message, close, error) are reported on that thread through
    the ``on_*`` callbacks; a callback that raises is logged and otherwise
    ignored.  There is no reconnection: once closed, the manager stays closed
    until :meth:`connect` is called again.
    """

    def __init__(
        self,
        *,
        subprotocol: str = SUBPROTOCOL,
        on_open: Optional[Callable[[], None]] = None,
        on_message: Optional[Callable[[str], None]] = None,
        on_close: Optional[Callable[[int, str, bool], None]] = None,
        on_error: Optional[Callable[[BaseException], None]] = None,
        open_timeout: float = 10.0,
    ) -> None:
        self.subprotocol = subprotocol
        self.on_open = on_open
        self.on_message = on_message
        self.on_close = on_close
        self.on_error = on_error
        self.open_timeout = float(open_timeout)
        self.endpoint: str | None = None
        self._state = ConnectionState.DISCONNECTED
        self._last_error: BaseException | None = None
        self._cond = threading.Condition()
        self._transport = TransportLoop()
        self._thread: threading.Thread | None = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def last_error(self) -> BaseException | None:
        return self._last_error

    @property
    def is_open(self) -> bool:
        return self._state is ConnectionState.OPEN

    # --- consumer API ------------------------------------------------------------------
    def connect(self, endpoint: str) -> None:
        """Start opening *endpoint* in the background and return immediately."""

        with self._cond:
            if self._state in (ConnectionState.CONNECTING, ConnectionState.OPEN):
                logger.warning("connect(%s) ignored; connection is %s", endpoint, self._state.value)
                return
            self._state = ConnectionState.CONNECTING
            self._last_error = None
            self.endpoint = endpoint
        transport = TransportLoop()
        self._transport = transport
        thread = threading.Thread(
            target=self._run,
            args=(endpoint, transport),
            name="isaac-transport",
            daemon=True,
        )
        self._thread = thread
        thread.start()

    def wait_until_open(self, timeout: float | None = None) -> bool:
        """Block until the connection is open or has failed; True when open."""

        with self._cond:
            self._cond.wait_for(
                lambda: self._state is not ConnectionState.CONNECTING or self._last_error is not None,
                timeout,
            )
            return self._state is ConnectionState.OPEN

    def send(self, text: str) -> bool:
        """Queue *text* for delivery; a no-op with a warning unless open.

        Thread-safe: messages are handed to a single sender task on the
        transport loop, so concurrent callers never interleave writes.
        """

        transport = self._transport
        loop = transport.loop
        outbox = transport.outbox
        if self._state is not ConnectionState.OPEN or loop is None or outbox is None:
            logger.warning("send ignored; connection is %s", self._state.value)
            return False
        try:
            loop.call_soon_threadsafe(outbox.put_nowait, text)
        except RuntimeError:
            logger.warning("send ignored; transport loop has stopped")
            return False
        return True

    def close(self, code: int = 1000, reason: str = "") -> None:
        """Request a local close; the close transition follows asynchronously."""

        transport = self._transport
        transport.close_requested = True
        loop = transport.loop
        if loop is None:
            return

        def _schedule_close() -> None:
            ws = transport.websocket
            if ws is not None:
                loop.create_task(ws.close(code=code, reason=reason))

        try:
            loop.call_soon_threadsafe(_schedule_close)
        except RuntimeError:
            logger.debug("close: transport loop already stopped", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    # --- transport loop ----------------------------------------------------------------
    def _run(self, endpoint: str, transport: TransportLoop) -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        transport.loop = loop
        try:
            loop.run_until_complete(self._serve(endpoint, transport))
        finally:
            transport.loop = None
            transport.websocket = None
            transport.outbox = None
            loop.close()

    async def _serve(self, endpoint: str, transport: TransportLoop) -> None:
        logger.info("Connecting to %s (subprotocol %s)", endpoint, self.subprotocol)
        try:
            ws = await websockets.connect(
                endpoint,
                subprotocols=[self.subprotocol],
                max_size=None,
                open_timeout=self.open_timeout,
            )
        except Exception as exc:
            self._handle_error(exc)
            self._handle_close(ABNORMAL_CLOSURE, str(exc) or exc.__class__.__name__, False)
            return

        outbox: asyncio.Queue[str] = asyncio.Queue()
        transport.websocket = ws
        transport.outbox = outbox
        if transport.close_requested:
            await ws.close()
        else:
            self._handle_open(ws.subprotocol)

        sender = asyncio.create_task(self._sender(ws, outbox))
        try:
            async for message in ws:
                self._handle_message(message)
        except Exception as exc:
            self._handle_error(exc)
        finally:
            sender.cancel()
            with suppress(asyncio.CancelledError):
                await sender
            transport.websocket = None
            transport.outbox = None
            with suppress(Exception):
                await ws.close()

        code = ws.close_code if ws.close_code is not None else ABNORMAL_CLOSURE
        self._handle_close(code, ws.close_reason or "", not transport.close_requested)

    async def _sender(self, ws: Any, outbox: asyncio.Queue[str]) -> None:
        while True:
            msg = await outbox.get()
            try:
                await ws.send(msg)
            except ConnectionClosed:
                logger.debug("sender stopped; connection closed")
                return
            except Exception:
                logger.warning("send failed", exc_info=True)

    # --- transport callbacks -----------------------------------------------------------
    def _handle_open(self, subprotocol: str | None = None) -> None:
        with self._cond:
            self._state = ConnectionState.OPEN
            self._cond.notify_all()
        if subprotocol != self.subprotocol:
            logger.warning("server did not confirm subprotocol %s (got %s)", self.subprotocol, subprotocol)
        logger.info("Connected to %s", self.endpoint)
        self._invoke("on_open", self.on_open)

    def _handle_close(self, code: int, reason: str, remote: bool) -> None:
        with self._cond:
            self._state = ConnectionState.CLOSED
            self._cond.notify_all()
        logger.info(
            "Connection closed by %s; code=%s reason=%s",
            "remote peer" if remote else "us",
            code,
            reason or "-",
        )
        self._invoke("on_close", self.on_close, code, reason, remote)

    def _handle_message(self, message: str | bytes) -> None:
        if isinstance(message, (bytes, bytearray, memoryview)):
            try:
                message = bytes(message).decode("utf-8")
            except UnicodeDecodeError:
                logger.warning("dropping non-UTF-8 binary message (%d bytes)", len(message))
                return
        self._invoke("on_message", self.on_message, message)

    def _handle_error(self, exc: BaseException) -> None:
        msg = str(exc) or exc.__class__.__name__
        if isinstance(exc, (EOFError, ConnectionRefusedError, asyncio.TimeoutError)):
            logger.info("ISAAC server unavailable (%s)", msg)
        elif isinstance(exc, InvalidHandshake):
            logger.info("ISAAC handshake failed (%s)", msg)
        elif isinstance(exc, ConnectionClosedError):
            logger.info("ISAAC connection lost (%s)", msg)
        elif isinstance(exc, OSError):
            logger.info("ISAAC socket error (%s)", msg)
        else:
            logger.error("ISAAC transport error", exc_info=exc)
        with self._cond:
            self._last_error = exc
            self._cond.notify_all()
        self._invoke("on_error", self.on_error, exc)

    def _invoke(self, name: str, callback: Optional[Callable[..., None]], *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.warning("%s callback failed", name, exc_info=True)
