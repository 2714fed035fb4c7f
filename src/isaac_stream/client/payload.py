from __future__ import annotations

import base64
import binascii
import logging
from io import BytesIO
from typing import Optional, Union

import numpy as np
from PIL import Image

from isaac_stream.protocol import DecodeFailure

logger = logging.getLogger(__name__)

DATA_URI_SCHEME = "data:"

BufferLike = Union[bytes, bytearray, memoryview, np.ndarray]


def strip_data_uri(payload: str) -> str:
    """Drop a ``data:<mime>;base64,`` header if present.

    Everything up to and including the first comma is removed.  Strings that
    do not start with the data scheme are returned unchanged, so calling this
    on an already stripped payload is a no-op.
    """

    if not payload.startswith(DATA_URI_SCHEME):
        return payload
    _, sep, body = payload.partition(",")
    if not sep:
        return payload
    return body


def swap_channels(buffer: BufferLike) -> np.ndarray:
    """Swap the first and third element of every 3-element pixel.

    Converts between RGB and BGR ordering.  Returns a new contiguous array
    with the same shape as the input (1-D for bytes-like input); the input is
    never modified.  Applying it twice yields the original values.
    """

    arr = buffer if isinstance(buffer, np.ndarray) else np.frombuffer(buffer, dtype=np.uint8)
    if arr.size % 3 != 0:
        raise ValueError(f"buffer length {arr.size} is not a multiple of 3")
    triplets = arr.reshape(-1, 3)
    return np.ascontiguousarray(triplets[:, ::-1]).reshape(arr.shape)


class PayloadDecoder:
    """Turns a frame payload string into an ``(height, width, 3)`` uint8 array.

    Parameters
    - swap_rb: apply :func:`swap_channels` to the decoded RGB pixels so the
      buffer comes out in BGR order (matches hosts that upload the raw
      server ordering).
    """

    def __init__(self, swap_rb: bool = True) -> None:
        self.swap_rb = bool(swap_rb)
        self._logged_once = False

    def decode(self, payload: str, width: Optional[int] = None, height: Optional[int] = None) -> np.ndarray:
        """Decode *payload*, optionally checking it against the framebuffer size.

        Raises :class:`DecodeFailure` for malformed base64, undecodable image
        data, or an image whose size differs from ``width`` x ``height``.
        """

        body = strip_data_uri(payload).strip()
        try:
            raw = base64.b64decode(body, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise DecodeFailure(f"malformed base64 payload: {exc}") from exc

        try:
            with Image.open(BytesIO(raw)) as img:
                rgb = img.convert("RGB")
        except (OSError, ValueError, Image.DecompressionBombError) as exc:
            raise DecodeFailure(f"undecodable image payload: {exc}") from exc

        img_w, img_h = rgb.size
        if (width is not None and img_w != width) or (height is not None and img_h != height):
            raise DecodeFailure(
                f"image is {img_w}x{img_h}, framebuffer is {width}x{height}"
            )

        if self.swap_rb:
            pixels = swap_channels(np.asarray(rgb, dtype=np.uint8))
        else:
            pixels = np.array(rgb, dtype=np.uint8)

        if not self._logged_once:
            logger.info(
                "first payload decoded: %dx%d (%s, %d bytes, swap_rb=%s)",
                img_w,
                img_h,
                img.format or "unknown",
                len(raw),
                self.swap_rb,
            )
            self._logged_once = True
        return pixels
