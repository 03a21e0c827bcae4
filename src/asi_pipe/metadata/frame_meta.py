from __future__ import annotations

"""Per-frame metadata records.

Each source container yields its own record type:

* :class:`PGMMeta` - parsed from free-text PGM comments (+ filename override),
* :class:`PNGMeta` - derived purely from the PNG member filename,
* :class:`HDF5Meta` - promoted from the HDF5 attribute tree.

They share a small set of fields (:class:`_CommonMeta`) so downstream code
(calibration, keograms) can read timing and identifiers without caring where
a frame came from. ``kind`` tags the variant.

All durations are in seconds. ``exposure_start_epoch`` is POSIX seconds
(UTC), ``exposure_start_string`` the same instant as an ISO-like string with
microsecond precision.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
import re
from typing import Any, ClassVar, Mapping, Union


# -----------------------------
# Time helpers
# -----------------------------


_TIME_FORMATS = (
    "%Y-%m-%d %H:%M:%S.%f",
    "%Y-%m-%d %H:%M:%S",
    "%Y%m%d %H%M%S.%f",
    "%Y%m%d %H%M%S",
)


def parse_utc(text: str) -> datetime:
    """Parse the timestamp spellings used across imager families.

    Accepts ``2014-03-10 06:00:03.123 UTC``, ``2014-03-10T06:00:03``,
    nanosecond fractions (truncated to microseconds) and lower-cased
    ``utc`` suffixes. Raises ``ValueError`` if nothing matches.
    """

    s = str(text).strip()
    s = re.sub(r"\s*utc\s*$", "", s, flags=re.IGNORECASE)
    s = re.sub(r"(?<=\d)[Tt](?=\d)", " ", s).strip()
    s = re.sub(r"\s+", " ", s)
    # strptime %f takes at most 6 digits
    m = re.match(r"^(.*\.\d{6})\d+$", s)
    if m:
        s = m.group(1)
    for fmt in _TIME_FORMATS:
        try:
            return datetime.strptime(s, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    raise ValueError(f"Unrecognized timestamp: {text!r}")


def timing_fields(dt: datetime) -> tuple[str, float]:
    """Return ``(exposure_start_string, exposure_start_epoch)`` for ``dt``."""

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.%f"), dt.timestamp()


# -----------------------------
# Records
# -----------------------------


@dataclass(frozen=True)
class CCDGeometry:
    """Sensor readout geometry. Any field may be unknown (``None``)."""

    xsize: int | None = None
    ysize: int | None = None
    xcenter: int | None = None
    ycenter: int | None = None
    xoffset: int | None = None
    yoffset: int | None = None
    xbin: int | None = None
    ybin: int | None = None

    @property
    def is_empty(self) -> bool:
        return all(v is None for v in self.__dict__.values())

    @property
    def binning_key(self) -> str:
        return f"{self.xbin or 1}x{self.ybin or 1}"


@dataclass(frozen=True)
class _CommonMeta:
    kind: ClassVar[str] = ""

    source_path: str = ""
    site_uid: str | None = None
    imager_uid: str | None = None
    exposure_start_string: str | None = None
    exposure_start_epoch: float | None = None
    exposure_duration_request: float | None = None
    exposure_duration_actual: float | None = None

    @property
    def exposure_start(self) -> datetime | None:
        if self.exposure_start_epoch is None:
            return None
        return datetime.fromtimestamp(self.exposure_start_epoch, tz=timezone.utc)

    @property
    def has_timing(self) -> bool:
        return self.exposure_start_epoch is not None


@dataclass(frozen=True)
class PGMMeta(_CommonMeta):
    kind: ClassVar[str] = "pgm"

    ccd: CCDGeometry | None = None
    # "filename=comment", "filename!=comment", "filename", "comment" or "";
    # "site:..;imager:.." when the two ids differ
    uid_provenance: str = ""
    comments: str = ""


@dataclass(frozen=True)
class PNGMeta(_CommonMeta):
    kind: ClassVar[str] = "png"

    mode_uid: str | None = None


@dataclass(frozen=True)
class HDF5Meta(_CommonMeta):
    kind: ClassVar[str] = "hdf5"

    ccd: CCDGeometry | None = None
    geographic_latitude: float | None = None
    geographic_longitude: float | None = None
    comments: Mapping[str, Any] = field(default_factory=dict)


FrameMetadata = Union[PGMMeta, PNGMeta, HDF5Meta]
