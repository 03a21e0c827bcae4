"""Container decoders.

One decoder per container family, all returning :class:`DecodedFile`:

* :class:`PGMDecoder` - ``.pgm`` / ``.pgm.gz`` streams,
* :class:`PNGFrameDecoder` - bare ``.png`` or PNG tar archives
  (via :class:`ArchiveExtractor`),
* :class:`HDF5FrameDecoder` - ``.h5`` cubes.
"""

from __future__ import annotations

from .archive import ArchiveExtractionContext, ArchiveExtractor
from .base import DecodedFile
from .hdf5 import HDF5FrameDecoder
from .pgm import PGMDecoder, PGMHeader, encode_frame, parse_comment_metadata
from .png import PNGFrameDecoder, parse_png_filename, read_png_frame

__all__ = [
    "ArchiveExtractionContext",
    "ArchiveExtractor",
    "DecodedFile",
    "HDF5FrameDecoder",
    "PGMDecoder",
    "PGMHeader",
    "encode_frame",
    "parse_comment_metadata",
    "PNGFrameDecoder",
    "parse_png_filename",
    "read_png_frame",
]
