"""Consumer-side helpers for applying streamed frames.

The dispatcher runs payload handlers inline on the transport thread.  Hosts
that render on their own thread can post frames into a :class:`FrameMailbox`
and drain it from the render loop; :class:`FrameWatermark` rejects frames that
arrive after a newer one was already applied.
"""

from __future__ import annotations

from dataclasses import dataclass
import threading
from typing import Optional

import numpy as np

from isaac_stream.protocol import ServerResponse


class FrameWatermark:
    """Tracks the arrival timestamp of the last applied frame."""

    def __init__(self) -> None:
        self._latest: Optional[int] = None
        self._lock = threading.Lock()

    @property
    def latest(self) -> Optional[int]:
        return self._latest

    def is_stale(self, timestamp: int) -> bool:
        latest = self._latest
        return latest is not None and timestamp < latest

    def accept(self, timestamp: int) -> bool:
        """Record *timestamp* as applied unless an older-than-latest frame."""

        with self._lock:
            if self._latest is not None and timestamp < self._latest:
                return False
            self._latest = timestamp
            return True

    def reset(self) -> None:
        with self._lock:
            self._latest = None


@dataclass(frozen=True)
class StreamedFrame:
    response: ServerResponse
    payload: str
    timestamp: int
    pixels: np.ndarray

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])


class FrameMailbox:
    """Single-slot, latest-wins hand-off between the transport and a worker.

    Usable directly as a payload handler.  A frame posted before the previous
    one was taken replaces it and counts as dropped.
    """

    def __init__(self) -> None:
        self._frame: Optional[StreamedFrame] = None
        self._closed = False
        self._cond = threading.Condition()
        self.dropped = 0
        self.posted = 0

    def __call__(self, response: ServerResponse, payload: str, timestamp: int, pixels: np.ndarray) -> None:
        self.put(StreamedFrame(response, payload, timestamp, pixels))

    def put(self, frame: StreamedFrame) -> None:
        with self._cond:
            if self._frame is not None:
                self.dropped += 1
            self._frame = frame
            self.posted += 1
            self._cond.notify_all()

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Wake any waiting :meth:`take`; a pending frame can still be taken."""

        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def take(self, timeout: Optional[float] = None) -> Optional[StreamedFrame]:
        """Return the pending frame, waiting up to *timeout* seconds for one.

        Returns ``None`` on timeout, or straight away once closed and empty.
        """

        with self._cond:
            self._cond.wait_for(lambda: self._frame is not None or self._closed, timeout)
            frame, self._frame = self._frame, None
            return frame
