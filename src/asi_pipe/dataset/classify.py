"""Deterministic file-format classification.

The container format is decided from the file name alone (no sniffing), in
the same way the archive names its files:

* ``*.pgm``, ``*.pgm.gz`` -> PGM stream (one or many frames)
* ``*.png``, ``*.png.tar``, ``*.tar``, ``*.tar.gz`` -> PNG frames, bare or tarred
* ``*.h5``, ``*.hdf5`` -> HDF5 cube
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path


class FileFormat(str, Enum):
    """Canonical container format."""

    PGM = "pgm"
    PNG = "png"
    HDF5 = "hdf5"
    UNKNOWN = "unknown"


# longest suffix first
_SUFFIXES: tuple[tuple[str, FileFormat], ...] = (
    (".pgm.gz", FileFormat.PGM),
    (".png.tar", FileFormat.PNG),
    (".tar.gz", FileFormat.PNG),
    (".pgm", FileFormat.PGM),
    (".png", FileFormat.PNG),
    (".tar", FileFormat.PNG),
    (".hdf5", FileFormat.HDF5),
    (".h5", FileFormat.HDF5),
)


def classify_path(path: str | Path) -> FileFormat:
    """Return the container format of ``path`` judged by its suffix."""

    name = Path(path).name.lower()
    for suffix, fmt in _SUFFIXES:
        if name.endswith(suffix):
            return fmt
    return FileFormat.UNKNOWN


def is_tar_archive(path: str | Path) -> bool:
    name = Path(path).name.lower()
    return name.endswith(".tar") or name.endswith(".tar.gz")


def is_gzipped(path: str | Path) -> bool:
    return Path(path).name.lower().endswith(".gz")


def strip_known_suffix(name: str) -> str:
    """Drop the container suffix (``.pgm.gz``, ``.png.tar``, ...) from a basename."""

    low = name.lower()
    for suffix, _fmt in _SUFFIXES:
        if low.endswith(suffix):
            return name[: -len(suffix)]
    return name
