"""Per-frame metadata records and timestamp helpers.

:data:`FrameMetadata` is the union of the three source-specific records;
``record.kind`` tells them apart.
"""

from __future__ import annotations

from .frame_meta import (
    CCDGeometry,
    FrameMetadata,
    HDF5Meta,
    PGMMeta,
    PNGMeta,
    parse_utc,
    timing_fields,
)

__all__ = [
    "CCDGeometry",
    "FrameMetadata",
    "HDF5Meta",
    "PGMMeta",
    "PNGMeta",
    "parse_utc",
    "timing_fields",
]
