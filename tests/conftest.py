from __future__ import annotations

"""Synthetic raw-file writers shared by the decoder tests.

Every writer produces files in the exact container layout the imagers emit,
into pytest's ``tmp_path``.
"""

import gzip
import io
import tarfile
from pathlib import Path

import numpy as np
import pytest

from asi_pipe.io.pgm import PGMHeader, encode_frame


def themis_comments(
    *,
    start: str = "2014-03-10 06:00:03.123",
    site: str = "gill",
    imager: str = "themis19",
    width: int = 8,
    height: int = 6,
    msec: int = 1000,
    end: str | None = None,
) -> tuple[str, ...]:
    lines = [
        f'"Image request start" {start} UTC',
        f'"Site unique ID" {site}',
        f'"Imager unique ID" {imager}',
        '"CCD xsize" 1024',
        '"CCD ysize" 1024',
        '"CCD xcenter" 512',
        '"CCD ycenter" 511',
        f'"Exposure options" width={width} height={height} xoffset=4 yoffset=2 xbin=2 ybin=2 msec={msec}',
    ]
    if end is not None:
        lines.append(f'"Image request end" {end} UTC')
    return tuple(lines)


def make_frame(width: int = 8, height: int = 6, *, seed: int = 0, maxval: int = 255) -> np.ndarray:
    rng = np.random.default_rng(seed)
    dtype = np.uint8 if maxval <= 255 else np.uint16
    return rng.integers(0, maxval + 1, size=(1, width, height)).astype(dtype)


def write_pgm(
    path: Path,
    frames: list[np.ndarray],
    *,
    magic: str = "P5",
    maxval: int = 255,
    comments: list[tuple[str, ...]] | None = None,
) -> Path:
    chunks = []
    for i, fr in enumerate(frames):
        header = PGMHeader(
            magic=magic,
            width=fr.shape[1],
            height=fr.shape[2],
            maxval=maxval,
            comments=(comments[i] if comments else themis_comments(width=fr.shape[1], height=fr.shape[2])),
        )
        chunks.append(encode_frame(fr, header))
    payload = b"".join(chunks)
    if path.name.endswith(".gz"):
        with gzip.open(path, "wb") as f:
            f.write(payload)
    else:
        path.write_bytes(payload)
    return path


def png_bytes(arr: np.ndarray) -> bytes:
    from PIL import Image

    buf = io.BytesIO()
    Image.fromarray(arr).save(buf, format="PNG")
    return buf.getvalue()


def png_name(second: int, *, ms: int = 0, site: str = "gill", device: str = "rgb-04", exp: str = "3000ms", mode: str = "burst") -> str:
    return f"20210315_0600{second:02d}_{ms:03d}_{site}_{device}_{exp}.{mode}.png"


def write_png_tar(path: Path, members: dict[str, bytes], *, order: list[str] | None = None) -> Path:
    with tarfile.open(path, "w") as tf:
        for name in order or list(members):
            data = members[name]
            info = tarfile.TarInfo(name=name)
            info.size = len(data)
            tf.addfile(info, io.BytesIO(data))
    return path


def rgb_image(height: int = 6, width: int = 8, *, seed: int = 0) -> np.ndarray:
    rng = np.random.default_rng(seed)
    return rng.integers(0, 256, size=(height, width, 3)).astype(np.uint8)


def write_h5(
    path: Path,
    *,
    n_frames: int = 5,
    height: int = 6,
    width: int = 8,
    channels: int | None = 3,
    file_attrs: dict | None = None,
    frame_attrs: list[dict] | None = None,
    timestamps: list[str] | None = None,
    with_timestamps: bool = True,
    images: np.ndarray | None = None,
) -> Path:
    import h5py

    shape = (n_frames, height, width) if channels is None else (n_frames, height, width, channels)
    if images is None:
        images = (np.arange(int(np.prod(shape))) % 251).astype(np.uint8).reshape(shape)
    if timestamps is None:
        timestamps = [f"2023-02-01 06:00:{3 * i:02d}.250000 UTC" for i in range(n_frames)]
    if file_attrs is None:
        file_attrs = {
            "site_unique_id": "gill",
            "imager_unique_id": "rgb-04",
            "geographic_latitude": 56.3494,
            "geographic_longitude": -94.6548,
            "image_request_exposure_length_ms": 3000,
            "project_unique_id": "trex",
        }
    with h5py.File(path, "w") as f:
        f.create_dataset("data/images", data=images)
        if with_timestamps:
            f.create_dataset("data/timestamp", data=np.array([t.encode("utf-8") for t in timestamps]))
        g = f.create_group("metadata/file")
        for k, v in file_attrs.items():
            g.attrs[k] = v
        for i in range(n_frames):
            fg = f.create_group(f"metadata/frame/frame{i}")
            for k, v in (frame_attrs[i] if frame_attrs else {}).items():
                fg.attrs[k] = v
    return path


@pytest.fixture
def pgm_writer():
    return write_pgm


@pytest.fixture
def png_tar_writer():
    return write_png_tar


@pytest.fixture
def h5_writer():
    return write_h5
