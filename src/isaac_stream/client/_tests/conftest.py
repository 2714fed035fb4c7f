from __future__ import annotations

import base64
from io import BytesIO

import pytest
from PIL import Image


def encode_image(width: int, height: int, color=(200, 30, 10), fmt: str = "PNG", prefix: bool = True) -> str:
    img = Image.new("RGB", (width, height), color)
    buf = BytesIO()
    img.save(buf, format=fmt)
    body = base64.b64encode(buf.getvalue()).decode("ascii")
    if prefix:
        return f"data:image/{fmt.lower()};base64,{body}"
    return body


@pytest.fixture
def make_payload():
    return encode_image
