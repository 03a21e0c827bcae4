"""PNG frame decoder (TREx RGB before 2023, SMILE ASI).

Input is either a bare ``.png`` frame or a tar archive of frames. PNG files
carry no acquisition metadata of their own; everything is encoded in the
frame filename::

    YYYYMMDD_HHMMSS_mmm_SITE_DEVICE_EXPMS.MODE.png
    20210315_060003_123_gill_rgb-04_3000ms.burst.png

(an underscore instead of the dot before MODE is accepted as well).
"""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from pathlib import Path
import re
from typing import Any

import numpy as np
from PIL import Image, UnidentifiedImageError

from ..buffer import AccumulationBuffer
from ..dataset.classify import is_tar_archive
from ..errors import ArchiveCorrupt, UnrecognizedFilenameFormat
from ..metadata import PNGMeta, timing_fields
from ..options import DecodeOptions, DecoderCapabilities
from .archive import ArchiveExtractor
from .base import DecodedFile, file_size


log = logging.getLogger(__name__)

_MIN_TOKENS = 7
_EXPOSURE_RE = re.compile(r"^(\d+(?:\.\d+)?)([a-z]*)$")
_UNIT_SECONDS = {"": 1e-3, "ms": 1e-3, "msec": 1e-3, "s": 1.0, "sec": 1.0, "us": 1e-6}


def parse_png_filename(name: str) -> dict[str, Any]:
    """Split a PNG frame filename into its metadata tokens.

    Returns ``start`` (aware UTC datetime), ``site_uid``, ``imager_uid``,
    ``exposure_s`` and ``mode_uid``. Raises
    :class:`~asi_pipe.errors.UnrecognizedFilenameFormat` when fewer than seven
    tokens are present or a token does not parse.
    """

    base = Path(name).name
    stem = base[:-4] if base.lower().endswith(".png") else base
    tokens = stem.split("_")
    if "." in tokens[-1]:
        exp, mode = tokens[-1].split(".", 1)
        tokens = tokens[:-1] + [exp, mode]
    if len(tokens) < _MIN_TOKENS:
        raise UnrecognizedFilenameFormat(
            "PNG frame filename has too few tokens", path=base, context={"tokens": len(tokens)}
        )
    date_tok, time_tok, ms_tok, site, device, exp_tok, mode = tokens[:_MIN_TOKENS]

    try:
        if not (re.fullmatch(r"\d{8}", date_tok) and re.fullmatch(r"\d{6}", time_tok) and re.fullmatch(r"\d{1,3}", ms_tok)):
            raise ValueError("date/time tokens")
        start = datetime(
            int(date_tok[0:4]),
            int(date_tok[4:6]),
            int(date_tok[6:8]),
            int(time_tok[0:2]),
            int(time_tok[2:4]),
            int(time_tok[4:6]),
            int(ms_tok) * 1000,
            tzinfo=timezone.utc,
        )
    except ValueError:
        raise UnrecognizedFilenameFormat(
            "PNG frame filename has an invalid timestamp",
            path=base,
            context={"date": date_tok, "time": time_tok, "ms": ms_tok},
        ) from None

    m = _EXPOSURE_RE.match(exp_tok.lower())
    if not m or m.group(2) not in _UNIT_SECONDS:
        raise UnrecognizedFilenameFormat(
            "PNG frame filename has an invalid exposure token", path=base, context={"exposure": exp_tok}
        )
    exposure_s = float(m.group(1)) * _UNIT_SECONDS[m.group(2)]

    return {
        "start": start,
        "site_uid": site.lower(),
        "imager_uid": device.lower(),
        "exposure_s": exposure_s,
        "mode_uid": mode.lower(),
    }


def read_png_frame(path: str | Path) -> np.ndarray:
    """Read one PNG into ``(channels, width, height)``, flipped vertically.

    The flip (every channel along its height axis) is part of reading: these
    cameras write PNG rows bottom-up relative to the PGM families.
    """

    try:
        with Image.open(path) as im:
            if im.mode in ("P", "RGBA", "LA", "CMYK", "YCbCr"):
                im = im.convert("RGB")
            arr = np.asarray(im)
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise ArchiveCorrupt("Unreadable PNG frame", path=path, context={"error": str(e)}) from e

    if arr.dtype.kind in "iu" and arr.dtype.itemsize > 2:
        # 16-bit grey may come back as 32-bit "I" mode
        arr = arr.astype(np.uint16)
    elif arr.dtype == np.bool_:
        arr = arr.astype(np.uint8)

    if arr.ndim == 2:
        chw = arr.T[np.newaxis, ...]
    else:
        chw = np.transpose(arr, (2, 1, 0))
    return np.ascontiguousarray(np.flip(chw, axis=2))


class PNGFrameDecoder:
    """Decode a bare PNG or a PNG tar archive into frames + :class:`PNGMeta`."""

    def __init__(
        self,
        options: DecodeOptions | None = None,
        capabilities: DecoderCapabilities | None = None,
        *,
        tmp_root: str | Path | None = None,
        keep_extracted: bool = False,
    ):
        self.options = options or DecodeOptions()
        self.extractor = ArchiveExtractor(capabilities, tmp_root=tmp_root)
        self.keep_extracted = bool(keep_extracted)

    def build_metadata(self, frame_name: str, source: Path) -> PNGMeta:
        opts = self.options
        if opts.no_metadata:
            return PNGMeta(source_path=str(source))
        tok = parse_png_filename(frame_name)
        start_string, start_epoch = timing_fields(tok["start"])
        if opts.minimal_metadata:
            return PNGMeta(
                source_path=str(source),
                exposure_start_string=start_string,
                exposure_start_epoch=start_epoch,
                exposure_duration_request=tok["exposure_s"],
                exposure_duration_actual=tok["exposure_s"],
            )
        return PNGMeta(
            source_path=str(source),
            site_uid=tok["site_uid"],
            imager_uid=tok["imager_uid"],
            exposure_start_string=start_string,
            exposure_start_epoch=start_epoch,
            exposure_duration_request=tok["exposure_s"],
            exposure_duration_actual=tok["exposure_s"],
            mode_uid=tok["mode_uid"],
        )

    def _decode_frames(self, source: Path, frames: list[Path]) -> DecodedFile:
        buf = AccumulationBuffer(growth="double")
        for p in frames:
            frame = read_png_frame(p)
            meta = self.build_metadata(p.name, source)
            if buf.count == 0:
                buf.frame_shape = tuple(frame.shape)
                buf.dtype = frame.dtype
                buf.reserve(len(frames))
            buf.append(frame, meta)
        images = buf.trim()
        log.debug("%s: %d PNG frame(s), shape %s", source.name, buf.count, buf.frame_shape)
        return DecodedFile(path=source, images=images, metadata=buf.metadata, n_bytes=file_size(source))

    def decode_file(self, path: str | Path) -> DecodedFile:
        path = Path(path)
        if not is_tar_archive(path):
            return self._decode_frames(path, [path])
        with self.extractor.extract(
            path,
            first_only=self.options.first_frame_only,
            keep=self.keep_extracted,
        ) as ctx:
            return self._decode_frames(path, ctx.files)
