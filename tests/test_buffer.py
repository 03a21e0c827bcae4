from __future__ import annotations

import numpy as np
import pytest

from asi_pipe.buffer import AccumulationBuffer
from asi_pipe.errors import InvalidDimensions


def _frame(v: int, shape=(1, 4, 3)) -> np.ndarray:
    return np.full(shape, v, dtype=np.uint16)


def test_doubling_growth():
    buf = AccumulationBuffer(growth="double")
    caps = []
    for i in range(9):
        buf.append(_frame(i), {"i": i})
        caps.append(buf.capacity)
    assert caps == [1, 2, 4, 4, 8, 8, 8, 8, 16]
    assert buf.images.shape == (1, 4, 3, 9)
    assert [m["i"] for m in buf.metadata] == list(range(9))


def test_chunk_growth():
    buf = AccumulationBuffer(growth="chunk", chunk_size=20)
    for i in range(21):
        buf.append(_frame(i))
    assert buf.capacity == 40
    assert len(buf) == 21


def test_reserve_never_shrinks():
    buf = AccumulationBuffer((1, 4, 3), np.uint16, capacity=10)
    assert buf.capacity == 10
    buf.reserve(5)
    assert buf.capacity == 10


def test_trim_then_append_keeps_frames():
    buf = AccumulationBuffer(growth="double")
    for i in range(5):
        buf.append(_frame(i), i)
    out = buf.trim()
    assert out.shape == (1, 4, 3, 5)
    assert buf.capacity == 5
    assert out.flags["C_CONTIGUOUS"]

    buf.append(_frame(5), 5)
    assert [int(buf.images[0, 0, 0, k]) for k in range(6)] == list(range(6))
    assert buf.metadata == list(range(6))


def test_trim_to_fewer_frames():
    buf = AccumulationBuffer()
    for i in range(4):
        buf.append(_frame(i), i)
    buf.trim(2)
    assert len(buf) == 2
    assert buf.metadata == [0, 1]
    with pytest.raises(ValueError):
        buf.trim(3)


def test_extend_block():
    buf = AccumulationBuffer()
    block = np.stack([_frame(i) for i in range(3)], axis=-1)
    buf.extend(block, ["a", "b", "c"])
    buf.extend(block, ["d", "e", "f"])
    assert buf.images.shape == (1, 4, 3, 6)
    assert int(buf.images[0, 0, 0, 4]) == 1

    with pytest.raises(ValueError):
        buf.extend(block, ["only one"])


def test_two_dimensional_frame_gets_channel_axis():
    buf = AccumulationBuffer()
    buf.append(np.zeros((4, 3), np.uint8))
    assert buf.images.shape == (1, 4, 3, 1)


def test_shape_and_dtype_mismatch():
    buf = AccumulationBuffer()
    buf.append(_frame(0))
    with pytest.raises(InvalidDimensions):
        buf.append(_frame(0, shape=(3, 4, 3)))
    with pytest.raises(InvalidDimensions):
        buf.append(np.zeros((1, 4, 3), np.uint8))
    # a rejected block leaves the buffer untouched
    with pytest.raises(InvalidDimensions):
        buf.extend(np.zeros((1, 5, 3, 2), np.uint16), [None, None])
    assert len(buf) == 1


def test_empty_buffer_images():
    buf = AccumulationBuffer((3, 4, 2), np.uint8)
    assert buf.images.shape == (3, 4, 2, 0)
    assert buf.trim().shape == (3, 4, 2, 0)


def test_invalid_growth_mode():
    with pytest.raises(ValueError):
        AccumulationBuffer(growth="linear")
