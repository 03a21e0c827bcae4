"""Growable frame store.

Frame counts are not known until a file has been opened (a PGM stream holds
an unknown number of frames; an HDF5 cube declares its own length), so frames
are collected into a 4-D array ``(channels, width, height, capacity)`` that
grows only occasionally:

* ``growth="double"`` - capacity doubles whenever an append would overflow
  (batch accumulation across files, pre-sized with :meth:`reserve`);
* ``growth="chunk"`` - capacity grows by a fixed ``chunk_size`` (PGM streams,
  where frames arrive one at a time).

The frame shape and dtype are fixed by construction or by the first frame.
"""

from __future__ import annotations

from typing import Any, Iterable, Sequence

import numpy as np

from .errors import InvalidDimensions


GROWTH_MODES = ("double", "chunk")


class AccumulationBuffer:
    def __init__(
        self,
        frame_shape: Sequence[int] | None = None,
        dtype: Any = None,
        *,
        growth: str = "double",
        chunk_size: int = 20,
        capacity: int = 0,
    ):
        if growth not in GROWTH_MODES:
            raise ValueError(f"growth must be one of {GROWTH_MODES}, got {growth!r}")
        if int(chunk_size) <= 0:
            raise ValueError("chunk_size must be > 0")
        self.growth = growth
        self.chunk_size = int(chunk_size)
        self.frame_shape: tuple[int, ...] | None = tuple(int(v) for v in frame_shape) if frame_shape else None
        self.dtype: np.dtype | None = np.dtype(dtype) if dtype is not None else None
        self.count = 0
        self._data: np.ndarray | None = None
        self._metadata: list[Any] = []
        if capacity and self.frame_shape is not None and self.dtype is not None:
            self.reserve(capacity)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def capacity(self) -> int:
        return 0 if self._data is None else int(self._data.shape[-1])

    @property
    def images(self) -> np.ndarray:
        """View of the filled part, shape ``(*frame_shape, count)``."""
        if self._data is None:
            shape = (*(self.frame_shape or (0, 0, 0)), 0)
            return np.zeros(shape, dtype=self.dtype or np.uint8)
        return self._data[..., : self.count]

    @property
    def metadata(self) -> list[Any]:
        return list(self._metadata)

    def __len__(self) -> int:
        return self.count

    # ------------------------------------------------------------------
    # Capacity management
    # ------------------------------------------------------------------

    def reserve(self, capacity: int) -> None:
        """Make room for at least ``capacity`` frames. Never shrinks."""
        capacity = int(capacity)
        if capacity <= self.capacity:
            return
        if self.frame_shape is None or self.dtype is None:
            raise ValueError("frame shape and dtype must be known before reserving")
        new = np.zeros((*self.frame_shape, capacity), dtype=self.dtype)
        if self._data is not None and self.count:
            new[..., : self.count] = self._data[..., : self.count]
        self._data = new

    def _ensure_room(self, n_more: int) -> None:
        needed = self.count + n_more
        if needed <= self.capacity:
            return
        cap = self.capacity
        if self.growth == "chunk":
            while cap < needed:
                cap += self.chunk_size
        else:
            cap = max(cap, 1)
            while cap < needed:
                cap *= 2
        self.reserve(cap)

    def _check_frame(self, shape: tuple[int, ...], dtype: np.dtype) -> None:
        if self.frame_shape is None:
            self.frame_shape = shape
        if self.dtype is None:
            self.dtype = dtype
        if shape != self.frame_shape:
            raise InvalidDimensions(
                "Frame shape does not match the frames already collected",
                context={"expected": self.frame_shape, "got": shape},
            )
        if dtype != self.dtype:
            raise InvalidDimensions(
                "Frame sample type does not match the frames already collected",
                context={"expected": str(self.dtype), "got": str(dtype)},
            )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def append(self, frame: np.ndarray, metadata: Any = None) -> None:
        """Append one frame of shape ``(channels, width, height)``.

        A 2-D ``(width, height)`` array is taken as a single-channel frame.
        """
        a = np.asarray(frame)
        if a.ndim == 2:
            a = a[np.newaxis, ...]
        if a.ndim != 3:
            raise InvalidDimensions("Frame must be 3-D (channels, width, height)", context={"ndim": a.ndim})
        self._check_frame(tuple(a.shape), a.dtype)
        self._ensure_room(1)
        self._data[..., self.count] = a
        self._metadata.append(metadata)
        self.count += 1

    def extend(self, block: np.ndarray, metadata: Iterable[Any]) -> None:
        """Append a block of shape ``(channels, width, height, n)`` in one copy."""
        a = np.asarray(block)
        meta = list(metadata)
        if a.ndim != 4:
            raise InvalidDimensions("Block must be 4-D (channels, width, height, frames)", context={"ndim": a.ndim})
        n = int(a.shape[-1])
        if n != len(meta):
            raise ValueError(f"block holds {n} frames but {len(meta)} metadata records were given")
        self._check_frame(tuple(a.shape[:-1]), a.dtype)
        if n == 0:
            return
        self._ensure_room(n)
        self._data[..., self.count : self.count + n] = a
        self._metadata.extend(meta)
        self.count += n

    def trim(self, count: int | None = None) -> np.ndarray:
        """Shrink storage to exactly ``count`` frames (default: the filled count).

        Returns the trimmed array. Later appends grow the storage again and keep
        every retained frame.
        """
        count = self.count if count is None else int(count)
        if count < 0 or count > self.count:
            raise ValueError(f"cannot trim to {count} frames, buffer holds {self.count}")
        if self._data is None:
            return self.images
        self._data = np.ascontiguousarray(self._data[..., :count])
        del self._metadata[count:]
        self.count = count
        return self._data
