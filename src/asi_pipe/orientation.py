"""Dataset-specific orientation normalization.

Every instrument family writes its pixels in its own orientation. After
decoding, imagery is flipped into one canonical orientation using the static
table below. Skymaps (per-pixel az/el lookup tables built elsewhere) have
their own column because they are produced in a different orientation from
the raw images.

A wrong entry here never raises; it silently mirrors every frame of a
dataset. tests/test_orientation.py pins each row.

Axis convention: images are ``(channels, width, height[, frames])``.
``VERTICAL`` reverses the height axis, ``HORIZONTAL`` the width axis.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging

import numpy as np


log = logging.getLogger(__name__)


class Flip(str, Enum):
    NONE = "none"
    VERTICAL = "vertical"
    HORIZONTAL = "horizontal"
    BOTH = "both"

    @property
    def flips_vertical(self) -> bool:
        return self in (Flip.VERTICAL, Flip.BOTH)

    @property
    def flips_horizontal(self) -> bool:
        return self in (Flip.HORIZONTAL, Flip.BOTH)


@dataclass(frozen=True)
class Orientation:
    images: Flip
    skymap: Flip


ORIENTATION_TABLE: dict[str, Orientation] = {
    "THEMIS_ASI_RAW": Orientation(images=Flip.VERTICAL, skymap=Flip.VERTICAL),
    "REGO_RAW": Orientation(images=Flip.BOTH, skymap=Flip.BOTH),
    "TREX_NIR_RAW": Orientation(images=Flip.VERTICAL, skymap=Flip.VERTICAL),
    "TREX_BLUE_RAW": Orientation(images=Flip.VERTICAL, skymap=Flip.VERTICAL),
    # PNG and HDF5 frames are already flipped along the height axis at read time
    "TREX_RGB_RAW_NOMINAL": Orientation(images=Flip.NONE, skymap=Flip.VERTICAL),
    "TREX_RGB_RAW_BURST": Orientation(images=Flip.NONE, skymap=Flip.VERTICAL),
    "TREX_RGB5577_RAW": Orientation(images=Flip.NONE, skymap=Flip.VERTICAL),
    "SMILE_ASI_RAW": Orientation(images=Flip.NONE, skymap=Flip.VERTICAL),
}


def apply_flip(arr: np.ndarray, flip: Flip, *, width_axis: int, height_axis: int) -> np.ndarray:
    """Return a contiguous copy of ``arr`` flipped as ``flip`` says."""

    out = arr
    if flip.flips_vertical:
        out = np.flip(out, axis=height_axis)
    if flip.flips_horizontal:
        out = np.flip(out, axis=width_axis)
    return np.ascontiguousarray(out)


class OrientationNormalizer:
    """Apply :data:`ORIENTATION_TABLE` to decoded images and skymap arrays."""

    def __init__(self, table: dict[str, Orientation] | None = None):
        self.table = dict(ORIENTATION_TABLE if table is None else table)

    def lookup(self, dataset_name: str) -> Orientation | None:
        return self.table.get(str(dataset_name or "").strip().upper())

    def normalize_images(self, dataset_name: str, images: np.ndarray) -> np.ndarray:
        """Normalize a ``(channels, width, height[, frames])`` array."""

        orient = self.lookup(dataset_name)
        if orient is None:
            log.warning("No orientation entry for dataset %r; images left as decoded", dataset_name)
            return images
        a = np.asarray(images)
        if a.ndim not in (3, 4):
            raise ValueError(f"images must be 3-D or 4-D, got shape {a.shape}")
        return apply_flip(a, orient.images, width_axis=1, height_axis=2)

    def normalize_skymap(self, dataset_name: str, arr: np.ndarray) -> np.ndarray:
        """Normalize a skymap-like array whose last two axes are ``(width, height)``."""

        orient = self.lookup(dataset_name)
        if orient is None:
            log.warning("No orientation entry for dataset %r; skymap left as is", dataset_name)
            return arr
        a = np.asarray(arr)
        if a.ndim < 2:
            raise ValueError(f"skymap array must be at least 2-D, got shape {a.shape}")
        return apply_flip(a, orient.skymap, width_axis=a.ndim - 2, height_axis=a.ndim - 1)
