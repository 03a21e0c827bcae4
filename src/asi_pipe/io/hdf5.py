"""HDF5 cube decoder (TREx RGB since 2023, TREx RGB 557.7 nm).

Layout of one file::

    /data/images            (n_frames, height, width[, channels])
    /data/timestamp         (n_frames,) strings, e.g. "2023-02-01 06:00:03.123456 UTC"
    /metadata/file          attributes valid for the whole file
    /metadata/frame/frame0  attributes of frame 0
    /metadata/frame/frame1  ...

Images are returned frame-last as ``(channels, width, height, n_frames)`` and
flipped along the height axis, the same as PNG frames, so every container
feeding one dataset lands in the same orientation before the dataset flip.
File and frame attributes are merged per frame (frame attributes win) and
the fields every consumer needs are promoted into :class:`HDF5Meta`; all
other attributes end up in ``HDF5Meta.comments``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping

import h5py
import numpy as np

from ..errors import ArchiveCorrupt, InvalidDimensions, MissingRequiredAttribute, MissingTimeInformation
from ..metadata import CCDGeometry, HDF5Meta, parse_utc, timing_fields
from ..options import DecodeOptions
from .base import DecodedFile, file_size


log = logging.getLogger(__name__)

IMAGES_PATH = "data/images"
TIMESTAMP_PATH = "data/timestamp"
FILE_META_PATH = "metadata/file"
FRAME_META_FMT = "metadata/frame/frame{}"

REQUIRED_ATTRS = ("site_unique_id", "imager_unique_id", "geographic_latitude", "geographic_longitude")
# exposure length has been written under two names over the years
EXPOSURE_ATTRS = ("image_request_exposure_length_ms", "exposure_length_ms")
EFFECTIVE_EXPOSURE_ATTRS = ("image_effective_exposure_length_ms",)
CCD_ATTRS = {
    "ccd_xsize": "xsize",
    "ccd_ysize": "ysize",
    "ccd_xcenter": "xcenter",
    "ccd_ycenter": "ycenter",
    "ccd_xoffset": "xoffset",
    "ccd_yoffset": "yoffset",
    "ccd_xbin": "xbin",
    "ccd_ybin": "ybin",
}
_PROMOTED = set(REQUIRED_ATTRS) | set(EXPOSURE_ATTRS) | set(EFFECTIVE_EXPOSURE_ATTRS) | set(CCD_ATTRS)


def attr_value(v: Any) -> Any:
    """Normalize an h5py attribute value to plain Python (str, int, float, list)."""

    if isinstance(v, bytes):
        return v.decode("utf-8", errors="replace")
    if isinstance(v, np.ndarray):
        if v.ndim == 0 or v.size == 1:
            return attr_value(v.reshape(-1)[0])
        return [attr_value(x) for x in v.reshape(-1)]
    if isinstance(v, np.generic):
        return attr_value(v.item())
    return v


def read_attrs(obj: Any) -> dict[str, Any]:
    return {str(k): attr_value(v) for k, v in obj.attrs.items()}


def _first(attrs: Mapping[str, Any], names: tuple[str, ...]) -> Any:
    for n in names:
        if n in attrs:
            return attrs[n]
    return None


def _as_int(v: Any) -> int | None:
    try:
        return int(float(v))
    except (TypeError, ValueError):
        return None


def to_frame_last(raw: np.ndarray, *, path: Path) -> np.ndarray:
    """``(n, height, width[, channels])`` -> ``(channels, width, height, n)``."""

    if raw.ndim == 3:
        return np.ascontiguousarray(np.transpose(raw, (2, 1, 0))[np.newaxis, ...])
    if raw.ndim == 4:
        return np.ascontiguousarray(np.transpose(raw, (3, 2, 1, 0)))
    raise InvalidDimensions("/data/images must be 3-D or 4-D", path=path, context={"shape": raw.shape})


class HDF5FrameDecoder:
    def __init__(self, options: DecodeOptions | None = None):
        self.options = options or DecodeOptions()

    def _timestamps(self, f: h5py.File, n: int, path: Path) -> list[tuple[str, float]]:
        if TIMESTAMP_PATH not in f:
            raise MissingRequiredAttribute("HDF5 file has no frame timestamps", missing_keys=["/" + TIMESTAMP_PATH], path=path)
        raw = f[TIMESTAMP_PATH][:n]
        out: list[tuple[str, float]] = []
        for i, v in enumerate(raw):
            s = attr_value(v)
            try:
                out.append(timing_fields(parse_utc(str(s))))
            except ValueError:
                raise MissingTimeInformation(
                    "Unparseable frame timestamp", path=path, context={"frame": i, "value": s}
                ) from None
        if len(out) < n:
            raise MissingTimeInformation(
                "Fewer timestamps than frames", path=path, context={"frames": n, "timestamps": len(out)}
            )
        return out

    def _frame_meta(
        self,
        merged: Mapping[str, Any],
        timing: tuple[str, float],
        path: Path,
        index: int,
    ) -> HDF5Meta:
        exp_ms = _first(merged, EXPOSURE_ATTRS)
        eff_ms = _first(merged, EFFECTIVE_EXPOSURE_ATTRS)
        try:
            requested = float(exp_ms) / 1000.0 if exp_ms is not None else 0.0
            actual = float(eff_ms) / 1000.0 if eff_ms is not None else requested
        except (TypeError, ValueError):
            raise MissingRequiredAttribute(
                "Exposure length is not numeric", path=path, context={"frame": index, "value": exp_ms}
            ) from None
        start_string, start_epoch = timing

        if self.options.minimal_metadata:
            return HDF5Meta(
                source_path=str(path),
                exposure_start_string=start_string,
                exposure_start_epoch=start_epoch,
                exposure_duration_request=requested,
                exposure_duration_actual=actual,
            )

        missing = [k for k in REQUIRED_ATTRS if k not in merged]
        if missing:
            raise MissingRequiredAttribute(
                "HDF5 frame metadata lacks required attributes", missing_keys=missing, path=path, context={"frame": index}
            )
        try:
            lat = float(merged["geographic_latitude"])
            lon = float(merged["geographic_longitude"])
        except (TypeError, ValueError):
            raise MissingRequiredAttribute(
                "Geographic coordinates are not numeric",
                path=path,
                context={"lat": merged["geographic_latitude"], "lon": merged["geographic_longitude"]},
            ) from None

        ccd = CCDGeometry(**{field: _as_int(merged.get(attr)) for attr, field in CCD_ATTRS.items()})
        return HDF5Meta(
            source_path=str(path),
            site_uid=str(merged["site_unique_id"]).strip().lower(),
            imager_uid=str(merged["imager_unique_id"]).strip().lower(),
            exposure_start_string=start_string,
            exposure_start_epoch=start_epoch,
            exposure_duration_request=requested,
            exposure_duration_actual=actual,
            ccd=None if ccd.is_empty else ccd,
            geographic_latitude=lat,
            geographic_longitude=lon,
            comments={k: v for k, v in merged.items() if k not in _PROMOTED},
        )

    def decode_file(self, path: str | Path) -> DecodedFile:
        path = Path(path)
        opts = self.options
        try:
            f = h5py.File(path, "r")
        except OSError as e:
            raise ArchiveCorrupt("Unreadable HDF5 file", path=path, context={"error": str(e)}) from e

        with f:
            if IMAGES_PATH not in f:
                raise MissingRequiredAttribute("HDF5 file has no image cube", missing_keys=["/" + IMAGES_PATH], path=path)
            ds = f[IMAGES_PATH]
            if ds.ndim not in (3, 4):
                raise InvalidDimensions("/data/images must be 3-D or 4-D", path=path, context={"shape": ds.shape})
            n_total = int(ds.shape[0])
            n = min(1, n_total) if opts.first_frame_only else n_total
            # rows are stored top-down; PNG frames get the same flip in read_png_frame
            images = np.ascontiguousarray(np.flip(to_frame_last(np.asarray(ds[:n]), path=path), axis=2))

            if opts.no_metadata:
                metadata = [HDF5Meta(source_path=str(path)) for _ in range(n)]
            else:
                timing = self._timestamps(f, n, path)
                file_attrs = read_attrs(f[FILE_META_PATH]) if FILE_META_PATH in f else {}
                metadata = []
                for i in range(n):
                    grp = FRAME_META_FMT.format(i)
                    frame_attrs = read_attrs(f[grp]) if grp in f else {}
                    merged = {**file_attrs, **frame_attrs}
                    metadata.append(self._frame_meta(merged, timing[i], path, i))

        log.debug("%s: %d/%d HDF5 frame(s), images %s", path.name, n, n_total, images.shape)
        return DecodedFile(path=path, images=images, metadata=metadata, n_bytes=file_size(path))
