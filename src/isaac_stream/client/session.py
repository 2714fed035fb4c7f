from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Sequence, Tuple

from isaac_stream.client.camera import flatten_matrix3, flatten_matrix4, flatten_vector3
from isaac_stream.client.config import ClientConfig, build_endpoint
from isaac_stream.client.connection import ConnectionManager, ConnectionState
from isaac_stream.client.dispatcher import FrameDispatcher, PayloadHandler
from isaac_stream.client.payload import PayloadDecoder
from isaac_stream.protocol import (
    DecodeFailure,
    ServerResponse,
    StreamDescriptor,
    decode_response,
    encode_feedback,
    encode_observe,
)

logger = logging.getLogger(__name__)


class IsaacClient:
    """Client for a remote ISAAC in-situ visualization server.

    Connects over WebSocket, subscribes to a rendered stream and hands decoded
    frames to registered payload handlers.  Camera feedback is fire-and-forget:
    it is sent only while the connection is open and silently skipped (with a
    warning) otherwise.

    Usage:
        client = IsaacClient()
        client.register_payload_handler(on_frame)
        client.connect()
        if client.wait_for_connection():
            client.observe()
            client.set_projection(camera.projection)
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        *,
        connection: Optional[ConnectionManager] = None,
        dispatcher: Optional[FrameDispatcher] = None,
        clock: Callable[[], int] = time.monotonic_ns,
    ) -> None:
        self.config = config or ClientConfig.from_env()
        self.connection = connection or ConnectionManager()
        self.connection.on_message = self._on_message
        self.dispatcher = dispatcher or FrameDispatcher(PayloadDecoder(swap_rb=self.config.swap_rb))
        self._clock = clock
        self._session_info: Optional[ServerResponse] = None
        self.messages_received = 0
        self.decode_failures = 0

    # --- connection --------------------------------------------------------------------
    @property
    def state(self) -> ConnectionState:
        return self.connection.state

    def connect(self, host: Optional[str] = None) -> None:
        self.connection.connect(build_endpoint(host or self.config.host))

    def wait_for_connection(self, timeout: Optional[float] = None) -> bool:
        if timeout is None:
            timeout = self.config.connect_timeout_s
        ok = self.connection.wait_until_open(timeout)
        if ok:
            logger.info("Connected to ISAAC host %s", self.connection.endpoint)
        else:
            logger.warning(
                "ISAAC host %s not reachable (state=%s)",
                self.connection.endpoint,
                self.connection.state.value,
            )
        return ok

    def close(self) -> None:
        self.connection.close()

    def __enter__(self) -> "IsaacClient":
        return self

    def __exit__(self, *exc) -> bool:
        self.close()
        self.connection.join(timeout=2.0)
        return False

    # --- outbound ----------------------------------------------------------------------
    def observe(self, stream: Optional[int] = None, dropable: Optional[bool] = None) -> bool:
        stream_id = self.config.stream if stream is None else int(stream)
        drop = self.config.dropable if dropable is None else bool(dropable)
        logger.info("Observing stream %d (dropable=%s)", stream_id, drop)
        return self.connection.send(encode_observe(stream_id, drop, self.config.observer_id))

    def send_feedback(
        self,
        *,
        projection: Optional[Sequence[float]] = None,
        modelview: Optional[Sequence[float]] = None,
        rotation_absolute: Optional[Sequence[float]] = None,
        position_absolute: Optional[Sequence[float]] = None,
    ) -> bool:
        text = encode_feedback(
            self.config.observer_id,
            projection=projection,
            modelview=modelview,
            rotation_absolute=rotation_absolute,
            position_absolute=position_absolute,
        )
        return self.connection.send(text)

    def set_projection(self, matrix) -> bool:
        return self.send_feedback(projection=flatten_matrix4(matrix))

    def set_modelview(self, matrix) -> bool:
        return self.send_feedback(modelview=flatten_matrix4(matrix))

    def set_rotation(self, matrix) -> bool:
        return self.send_feedback(rotation_absolute=flatten_matrix3(matrix))

    def set_position(self, vector) -> bool:
        return self.send_feedback(position_absolute=flatten_vector3(vector))

    # --- inbound -----------------------------------------------------------------------
    def register_payload_handler(self, handler: PayloadHandler) -> None:
        self.dispatcher.register_payload_handler(handler)

    def unregister_payload_handler(self, handler: PayloadHandler) -> bool:
        return self.dispatcher.unregister_payload_handler(handler)

    @property
    def current_framebuffer_width(self) -> int:
        return self.dispatcher.current_framebuffer_width

    @property
    def current_framebuffer_height(self) -> int:
        return self.dispatcher.current_framebuffer_height

    @property
    def session_info(self) -> Optional[ServerResponse]:
        """Latest response that listed the server's streams."""

        return self._session_info

    @property
    def streams(self) -> Tuple[StreamDescriptor, ...]:
        info = self._session_info
        if info is None or info.streams is None:
            return ()
        return info.streams

    def _on_message(self, text: str) -> None:
        timestamp = self._clock()
        self.messages_received += 1
        try:
            response = decode_response(text)
        except DecodeFailure as exc:
            self.decode_failures += 1
            logger.warning("dropping server message: %s", exc)
            return
        if response.streams is not None:
            self._session_info = response
            logger.info(
                "session info: name=%s nodes=%s streams=%s",
                response.name,
                response.nodes,
                [(s.id, s.name) for s in response.streams],
            )
        self.dispatcher.deliver(response, timestamp)
