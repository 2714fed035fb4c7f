"""Frame dispatch for decoded server responses.

Tracks the server's framebuffer size and fans decoded frames out to the
payload handlers registered by the consuming host.  Handlers run inline on
the transport thread in registration order; staleness checks are left to the
handlers since only they know which frame they applied last.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional

import numpy as np

from isaac_stream.client.payload import PayloadDecoder
from isaac_stream.protocol import DecodeFailure, ServerResponse

logger = logging.getLogger(__name__)

# (response, raw payload string, monotonic arrival timestamp in ns, pixels)
PayloadHandler = Callable[[ServerResponse, str, int, np.ndarray], None]


class FrameDispatcher:
    def __init__(self, decoder: Optional[PayloadDecoder] = None) -> None:
        self._decoder = decoder if decoder is not None else PayloadDecoder()
        self._handlers: List[PayloadHandler] = []
        self._handlers_lock = threading.Lock()
        self._width = 0
        self._height = 0
        self.frames_delivered = 0
        self.frames_dropped = 0

    @property
    def current_framebuffer_width(self) -> int:
        return self._width

    @property
    def current_framebuffer_height(self) -> int:
        return self._height

    @property
    def dimensions_known(self) -> bool:
        return self._width > 0 and self._height > 0

    def register_payload_handler(self, handler: PayloadHandler) -> None:
        with self._handlers_lock:
            self._handlers.append(handler)

    def unregister_payload_handler(self, handler: PayloadHandler) -> bool:
        with self._handlers_lock:
            try:
                self._handlers.remove(handler)
            except ValueError:
                return False
        return True

    def update_dimensions(self, response: ServerResponse) -> bool:
        """Adopt the response's framebuffer size when both values are positive."""

        w = response.framebuffer_width
        h = response.framebuffer_height
        if w is None or h is None or w <= 0 or h <= 0:
            return False
        if (w, h) != (self._width, self._height):
            logger.info("framebuffer size %dx%d -> %dx%d", self._width, self._height, w, h)
        self._width = w
        self._height = h
        return True

    def deliver(self, response: ServerResponse, timestamp: int) -> int:
        """Process one decoded response; returns the number of handlers invoked."""

        self.update_dimensions(response)
        payload = response.payload
        if not payload:
            return 0
        if not self.dimensions_known:
            logger.debug("payload received before framebuffer size; dropping frame")
            self.frames_dropped += 1
            return 0

        with self._handlers_lock:
            handlers = tuple(self._handlers)
        if not handlers:
            return 0

        try:
            pixels = self._decoder.decode(payload, self._width, self._height)
        except DecodeFailure as exc:
            logger.warning("dropping frame: %s", exc)
            self.frames_dropped += 1
            return 0

        invoked = 0
        for handler in handlers:
            try:
                handler(response, payload, timestamp, pixels)
            except Exception:
                logger.warning("payload handler %r failed", handler, exc_info=True)
            invoked += 1
        self.frames_delivered += 1
        return invoked
