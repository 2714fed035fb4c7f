from __future__ import annotations

import json

import pytest

from isaac_stream.protocol import (
    OBSERVER_ID_KEY,
    DecodeFailure,
    FeedbackMessage,
    ObserveRequest,
    ServerResponse,
    StreamDescriptor,
    decode_response,
    encode_feedback,
    encode_observe,
)

_MAT4 = [float(i) for i in range(16)]
_MAT3 = [1.0, 0.0, 0.0, 0.0, 1.0, 0.0, 0.0, 0.0, 1.0]
_VEC3 = [0.0, 0.2, 5.0]

_FEEDBACK_WIRE_KEYS = {
    "projection": "projection",
    "modelview": "modelview",
    "rotation_absolute": "rotation absolute",
    "position_absolute": "position absolute",
}
_FEEDBACK_VALUES = {
    "projection": _MAT4,
    "modelview": _MAT4,
    "rotation_absolute": _MAT3,
    "position_absolute": _VEC3,
}


def test_observe_request_has_all_fields() -> None:
    data = json.loads(encode_observe(0, False, 0))

    assert data == {"type": "observe", "stream": 0, "dropable": False, OBSERVER_ID_KEY: 0}


def test_observe_request_values() -> None:
    data = ObserveRequest(stream=3, dropable=True, observer_id=7).to_dict()

    assert data["type"] == "observe"
    assert data["stream"] == 3
    assert data["dropable"] is True
    assert data["observe id"] == 7


def test_feedback_without_camera_fields() -> None:
    data = json.loads(encode_feedback(2))

    assert data == {"type": "feedback", "observe id": 2}


@pytest.mark.parametrize(
    "fields",
    [
        ("projection",),
        ("modelview",),
        ("rotation_absolute",),
        ("position_absolute",),
        ("rotation_absolute", "position_absolute"),
        ("projection", "modelview", "rotation_absolute", "position_absolute"),
    ],
)
def test_feedback_contains_exactly_supplied_fields(fields) -> None:
    kwargs = {name: _FEEDBACK_VALUES[name] for name in fields}
    data = json.loads(encode_feedback(0, **kwargs))

    expected = {"type", "observe id"} | {_FEEDBACK_WIRE_KEYS[name] for name in fields}
    assert set(data) == expected
    for name in fields:
        assert data[_FEEDBACK_WIRE_KEYS[name]] == pytest.approx(_FEEDBACK_VALUES[name])
    assert None not in data.values()


def test_feedback_rejects_wrong_lengths() -> None:
    with pytest.raises(ValueError):
        FeedbackMessage(projection=_MAT3)
    with pytest.raises(ValueError):
        FeedbackMessage(rotation_absolute=_MAT4)
    with pytest.raises(ValueError):
        FeedbackMessage(position_absolute=[1.0, 2.0])
    with pytest.raises(ValueError):
        FeedbackMessage(position_absolute="abc")


def test_feedback_coerces_values_to_float() -> None:
    message = FeedbackMessage(position_absolute=(1, 2, 3))

    assert message.position_absolute == (1.0, 2.0, 3.0)
    assert json.loads(message.to_json())["position absolute"] == [1.0, 2.0, 3.0]


def test_decode_frame_message() -> None:
    text = json.dumps(
        {
            "type": "period",
            "framebuffer width": 800,
            "framebuffer height": 600,
            "payload": "data:image/jpeg;base64,AAAA",
        }
    )

    response = decode_response(text)

    assert response.type == "period"
    assert response.framebuffer_width == 800
    assert response.framebuffer_height == 600
    assert response.framebuffer_size == (800, 600)
    assert response.payload == "data:image/jpeg;base64,AAAA"
    assert response.has_payload


def test_decode_session_info_message() -> None:
    text = json.dumps(
        {
            "type": "register",
            "name": "heat",
            "id": 4,
            "nodes": 16,
            "streams": [{"name": "jpeg", "id": 0}, {"name": "raw", "id": 1}],
            "width": 64,
            "height": 32,
            "depth": 16,
            "dimension": 3,
            "projection": [1] * 16,
            "position": [0.0, 0.0, 0.0],
            "distance": 4.5,
            "rotation": [1, 0, 0, 0, 1, 0, 0, 0, 1],
            "interpolation": True,
            "step": 0.5,
        }
    )

    response = decode_response(text)

    assert response.name == "heat"
    assert response.id == 4
    assert response.nodes == 16
    assert response.streams == (StreamDescriptor("jpeg", 0), StreamDescriptor("raw", 1))
    assert (response.width, response.height, response.depth) == (64, 32, 16)
    assert response.dimension == 3
    assert response.projection == tuple([1.0] * 16)
    assert response.distance == 4.5
    assert response.rotation[4] == 1.0
    assert response.interpolation is True
    assert response.step == 0.5
    assert response.framebuffer_size is None
    assert not response.has_payload


def test_decode_ignores_unknown_fields() -> None:
    response = decode_response('{"type": "exit", "future field": {"x": 1}, "metadata": [1, 2]}')

    assert response.type == "exit"
    assert response == ServerResponse(type="exit")


def test_missing_fields_are_unset_not_zero() -> None:
    missing = decode_response('{"type": "period"}')
    zero = decode_response('{"type": "period", "framebuffer width": 0, "framebuffer height": 0}')

    assert missing.framebuffer_width is None
    assert missing.framebuffer_height is None
    assert zero.framebuffer_width == 0
    assert zero.framebuffer_height == 0


def test_wrongly_typed_fields_are_left_unset() -> None:
    response = decode_response(
        '{"type": "period", "framebuffer width": "wide", "nodes": true, '
        '"streams": [{"name": "ok", "id": 1}, {"name": 3}], "projection": [1, "x"], "payload": 12}'
    )

    assert response.type == "period"
    assert response.framebuffer_width is None
    assert response.nodes is None
    assert response.streams == (StreamDescriptor("ok", 1),)
    assert response.projection is None
    assert response.payload is None


def test_decode_accepts_bytes() -> None:
    response = decode_response(b'{"type": "period", "framebuffer width": 2}')

    assert response.framebuffer_width == 2


@pytest.mark.parametrize("text", ["{not json", "", '{"type": "period"', "\xff"])
def test_malformed_json_raises_decode_failure(text) -> None:
    with pytest.raises(DecodeFailure):
        decode_response(text)


@pytest.mark.parametrize("text", ["[1, 2]", '"frame"', "42", "null"])
def test_non_object_json_raises_decode_failure(text) -> None:
    with pytest.raises(DecodeFailure):
        decode_response(text)


def test_decode_failure_is_value_error() -> None:
    assert issubclass(DecodeFailure, ValueError)


def test_out_of_range_numbers_are_left_unset() -> None:
    huge = "1" + "0" * 400
    response = decode_response(
        '{"type": "period", "framebuffer width": ' + huge + ', "framebuffer height": 600, '
        '"distance": ' + huge + ', "position": [0, ' + huge + ', 1], '
        '"streams": [{"name": "big", "id": ' + huge + '}, {"name": "ok", "id": 2}]}'
    )

    assert response.type == "period"
    assert response.framebuffer_width is None
    assert response.framebuffer_height == 600
    assert response.distance is None
    assert response.position is None
    assert response.streams == (StreamDescriptor("ok", 2),)


def test_deeply_nested_json_raises_decode_failure() -> None:
    depth = 100000
    with pytest.raises(DecodeFailure):
        decode_response("[" * depth + "]" * depth)
