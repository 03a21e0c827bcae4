"""PGM stream decoder (THEMIS, REGO, TREx NIR/Blue).

A raw PGM file from these imagers is one or more complete PGM images written
back to back, optionally gzip-compressed (``.pgm.gz``, typically one minute of
frames). Each image is::

    P5                      <- magic: P2 (ASCII samples) or P5 (binary)
    #"Site unique ID" gill  <- comments, anywhere between header tokens
    256 256                 <- width height
    65535                   <- maxval; one whitespace byte follows
    <pixels>                <- height rows of width samples

Binary samples are 8-bit when ``maxval <= 255`` and big-endian 16-bit
otherwise.

The comment block is the only place acquisition parameters are recorded, so
it is kept and scanned for labelled fields (see
:func:`parse_comment_metadata`). Site/imager identifiers from the filename
take precedence over the comment values: some archived files carry comments
copied from another site.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import gzip
import logging
from pathlib import Path
import re
from typing import Any, BinaryIO
import zlib

import numpy as np

from ..buffer import AccumulationBuffer
from ..dataset.classify import is_gzipped, strip_known_suffix
from ..errors import (
    InvalidDimensions,
    InvalidMagicNumber,
    MissingTimeInformation,
    TruncatedHeader,
    TruncatedPixelData,
)
from ..metadata import CCDGeometry, PGMMeta, parse_utc, timing_fields
from ..options import DecodeOptions
from .base import DecodedFile, file_size


log = logging.getLogger(__name__)

_MAGICS = (b"P2", b"P5")
_WHITESPACE = b" \t\r\n\v\f"
_MAX_MAXVAL = 65535


@dataclass(frozen=True)
class PGMHeader:
    magic: str
    width: int
    height: int
    maxval: int
    comments: tuple[str, ...] = field(default_factory=tuple)

    @property
    def sample_dtype(self) -> np.dtype:
        return np.dtype(np.uint8) if self.maxval <= 255 else np.dtype(np.uint16)

    @property
    def comment_text(self) -> str:
        return "\n".join(self.comments)


# -----------------------------
# Comment metadata
# -----------------------------


def _label(name: str) -> str:
    return r'"?' + re.escape(name) + r'"?\s*[:=]?\s*'


_TIME_RE = r"(\d{4}-\d{2}-\d{2}[ t]+\d{2}:\d{2}:\d{2}(?:\.\d+)?)\s*utc"
_UID_RE = r"([a-z0-9][a-z0-9_\-]*)"

_COMMENT_PATTERNS: dict[str, re.Pattern[str]] = {
    "request_start": re.compile(_label("image request start") + _TIME_RE),
    "request_end": re.compile(_label("image request end") + _TIME_RE),
    "site_uid": re.compile(_label("site unique id") + _UID_RE),
    "imager_uid": re.compile(_label("imager unique id") + _UID_RE),
    "ccd_xsize": re.compile(_label("ccd xsize") + r"(\d+)"),
    "ccd_ysize": re.compile(_label("ccd ysize") + r"(\d+)"),
    "ccd_xcenter": re.compile(_label("ccd xcenter") + r"(\d+)"),
    "ccd_ycenter": re.compile(_label("ccd ycenter") + r"(\d+)"),
}
_EXPOSURE_BLOCK = re.compile(r'"?exposure options"?\s*[:=]?([^"]*)')
_EXPOSURE_FIELD = re.compile(r"\b(width|height|xoffset|yoffset|xbin|ybin|msec)\s*=\s*(\d+)")


def parse_comment_metadata(comment_text: str) -> dict[str, Any]:
    """Scan PGM comment text for labelled acquisition fields.

    Matching is case-insensitive. Returns a flat dict holding only the fields
    that were found: ``request_start``/``request_end`` (strings),
    ``site_uid``/``imager_uid``, ``ccd_*`` ints and the ``exposure options``
    entries (``width``, ``height``, ``xoffset``, ``yoffset``, ``xbin``,
    ``ybin``, ``msec``) as ints.
    """

    text = str(comment_text or "").lower()
    out: dict[str, Any] = {}
    for key, pat in _COMMENT_PATTERNS.items():
        m = pat.search(text)
        if not m:
            continue
        v = m.group(1).strip()
        out[key] = int(v) if key.startswith("ccd_") else v
    m = _EXPOSURE_BLOCK.search(text)
    if m:
        for name, value in _EXPOSURE_FIELD.findall(m.group(1)):
            out.setdefault(name, int(value))
    return out


def filename_uids(path: str | Path) -> tuple[str | None, str | None]:
    """Return ``(site_uid, imager_uid)`` from ``YYYYMMDD_HHMM_SITE_DEVICE_...``.

    ``(None, None)`` when the name does not follow the archive grammar.
    """

    stem = strip_known_suffix(Path(path).name)
    tokens = stem.split("_")
    if len(tokens) < 4 or not re.fullmatch(r"\d{8}", tokens[0]) or not re.fullmatch(r"\d{4}", tokens[1]):
        return None, None
    return tokens[2].lower() or None, tokens[3].lower() or None


def _resolve_uid(from_name: str | None, from_comment: str | None) -> tuple[str | None, str]:
    if from_name and from_comment:
        return from_name, "filename=comment" if from_name == from_comment else "filename!=comment"
    if from_name:
        return from_name, "filename"
    if from_comment:
        return from_comment, "comment"
    return None, ""


# -----------------------------
# Encoding (round-trip / fixtures)
# -----------------------------


def encode_frame(frame: np.ndarray, header: PGMHeader) -> bytes:
    """Serialize one ``(1, width, height)`` frame with ``header``'s fields.

    Inverse of :meth:`PGMDecoder.read_frame` for the pixel section; the header
    is written in canonical layout (one token group per line).
    """

    a = np.asarray(frame)
    if a.ndim == 3:
        a = a[0]
    if a.shape != (header.width, header.height):
        raise InvalidDimensions(
            "Frame does not match header dimensions",
            context={"frame": a.shape, "header": (header.width, header.height)},
        )
    rows = a.T  # (height, width)
    parts = [header.magic.encode("ascii") + b"\n"]
    for c in header.comments:
        parts.append(b"#" + c.encode("latin-1") + b"\n")
    parts.append(f"{header.width} {header.height}\n{header.maxval}\n".encode("ascii"))
    if header.magic == "P5":
        dt = np.dtype("u1") if header.maxval <= 255 else np.dtype(">u2")
        parts.append(rows.astype(dt).tobytes())
    else:
        lines = (" ".join(str(int(v)) for v in row) for row in rows)
        parts.append(("\n".join(lines) + "\n").encode("ascii"))
    return b"".join(parts)


# -----------------------------
# Decoder
# -----------------------------


class PGMDecoder:
    """Read every PGM frame (or only the first) from a ``.pgm``/``.pgm.gz`` file."""

    def __init__(self, options: DecodeOptions | None = None, *, chunk_size: int = 20):
        self.options = options or DecodeOptions()
        self.chunk_size = int(chunk_size)

    # --- header grammar ---

    @staticmethod
    def _read_comment(stream: BinaryIO) -> str:
        buf = bytearray()
        while True:
            c = stream.read(1)
            if not c or c == b"\n":
                break
            buf += c
        return buf.decode("latin-1").rstrip("\r")

    def _read_token(self, stream: BinaryIO, comments: list[str] | None, *, path: Path | None) -> bytes:
        """Next whitespace-delimited token; ``#`` comments are collected when allowed.

        The single whitespace byte ending the token is consumed.
        """
        token = bytearray()
        while True:
            c = stream.read(1)
            if not c:
                if token:
                    return bytes(token)
                raise TruncatedHeader("End of stream inside PGM header", path=path)
            if c == b"#" and comments is not None:
                comments.append(self._read_comment(stream))
                if token:
                    return bytes(token)
                continue
            if c in _WHITESPACE:
                if token:
                    return bytes(token)
                continue
            token += c

    def _read_int_token(self, stream: BinaryIO, comments: list[str], name: str, *, path: Path | None) -> int:
        tok = self._read_token(stream, comments, path=path)
        try:
            return int(tok)
        except ValueError:
            raise InvalidDimensions(
                f"Non-integer PGM header value for {name}", path=path, context={name: tok[:16]}
            ) from None

    @staticmethod
    def _read_magic(stream: BinaryIO) -> bytes | None:
        c = stream.read(1)
        while c and c in _WHITESPACE:
            c = stream.read(1)
        if not c:
            return None
        return c + stream.read(1)

    def read_header(self, stream: BinaryIO, *, path: Path | None = None) -> PGMHeader | None:
        """Parse magic + header tokens. ``None`` at a clean end of stream."""

        magic = self._read_magic(stream)
        if magic is None:
            return None
        if len(magic) < 2:
            raise TruncatedHeader("End of stream inside PGM magic number", path=path)
        if magic not in _MAGICS:
            raise InvalidMagicNumber(
                "PGM magic number must be P2 or P5", path=path, context={"magic": magic.decode("latin-1")}
            )

        comments: list[str] = []
        width = self._read_int_token(stream, comments, "width", path=path)
        height = self._read_int_token(stream, comments, "height", path=path)
        maxval = self._read_int_token(stream, comments, "maxval", path=path)

        if width <= 0 or height <= 0 or not (0 < maxval <= _MAX_MAXVAL):
            raise InvalidDimensions(
                "Invalid PGM dimensions",
                path=path,
                context={"width": width, "height": height, "maxval": maxval},
            )
        return PGMHeader(
            magic=magic.decode("ascii"),
            width=width,
            height=height,
            maxval=maxval,
            comments=tuple(comments),
        )

    # --- pixel data ---

    def _read_pixels(self, stream: BinaryIO, header: PGMHeader, *, path: Path | None) -> np.ndarray:
        n = header.width * header.height
        if header.magic == "P5":
            wire = np.dtype("u1") if header.maxval <= 255 else np.dtype(">u2")
            raw = stream.read(n * wire.itemsize)
            if len(raw) < n * wire.itemsize:
                raise TruncatedPixelData(
                    "PGM pixel data ended early",
                    path=path,
                    context={"expected_bytes": n * wire.itemsize, "got_bytes": len(raw)},
                )
            samples = np.frombuffer(raw, dtype=wire).astype(header.sample_dtype)
            if n and int(samples.max()) > header.maxval:
                raise TruncatedPixelData(
                    "PGM sample exceeds maxval",
                    path=path,
                    context={"value": int(samples.max()), "maxval": header.maxval},
                )
        else:
            values = np.empty(n, dtype=header.sample_dtype)
            for i in range(n):
                try:
                    tok = self._read_token(stream, None, path=path)
                except TruncatedHeader:
                    raise TruncatedPixelData(
                        "PGM ASCII pixel data ended early", path=path, context={"expected": n, "got": i}
                    ) from None
                try:
                    v = int(tok)
                except ValueError:
                    raise TruncatedPixelData(
                        "Invalid sample in PGM ASCII pixel data", path=path, context={"index": i}
                    ) from None
                if not 0 <= v <= header.maxval:
                    raise TruncatedPixelData(
                        "PGM sample outside 0..maxval", path=path, context={"index": i, "value": v, "maxval": header.maxval}
                    )
                values[i] = v
            samples = values
        # rows of width samples -> (1, width, height)
        return samples.reshape(header.height, header.width).T[np.newaxis, ...]

    def read_frame(self, stream: BinaryIO, *, path: Path | None = None) -> tuple[np.ndarray, PGMHeader] | None:
        """Read one frame. Returns ``None`` when the stream is exhausted."""

        header = self.read_header(stream, path=path)
        if header is None:
            return None
        return self._read_pixels(stream, header, path=path), header

    # --- metadata ---

    def build_metadata(self, header: PGMHeader, path: Path) -> PGMMeta:
        opts = self.options
        if opts.no_metadata:
            return PGMMeta(source_path=str(path))

        fields = parse_comment_metadata(header.comment_text)
        start_raw = fields.get("request_start")
        if not start_raw:
            raise MissingTimeInformation("PGM comments carry no image request start time", path=path)
        try:
            start = parse_utc(start_raw)
        except ValueError:
            raise MissingTimeInformation(
                "Unparseable image request start time", path=path, context={"value": start_raw}
            ) from None
        start_string, start_epoch = timing_fields(start)

        requested = fields["msec"] / 1000.0 if "msec" in fields else None
        actual = requested
        if fields.get("request_end"):
            try:
                actual = parse_utc(fields["request_end"]).timestamp() - start_epoch
            except ValueError:
                log.debug("Ignoring unparseable image request end in %s", path.name)

        if opts.minimal_metadata:
            return PGMMeta(
                source_path=str(path),
                exposure_start_string=start_string,
                exposure_start_epoch=start_epoch,
                exposure_duration_request=requested,
                exposure_duration_actual=actual,
            )

        name_site, name_imager = filename_uids(path)
        site_uid, site_src = _resolve_uid(name_site, fields.get("site_uid"))
        imager_uid, imager_src = _resolve_uid(name_imager, fields.get("imager_uid"))
        provenance = site_src if site_src == imager_src else f"site:{site_src};imager:{imager_src}"

        ccd = CCDGeometry(
            xsize=fields.get("ccd_xsize"),
            ysize=fields.get("ccd_ysize"),
            xcenter=fields.get("ccd_xcenter"),
            ycenter=fields.get("ccd_ycenter"),
            xoffset=fields.get("xoffset"),
            yoffset=fields.get("yoffset"),
            xbin=fields.get("xbin"),
            ybin=fields.get("ybin"),
        )
        return PGMMeta(
            source_path=str(path),
            site_uid=site_uid,
            imager_uid=imager_uid,
            exposure_start_string=start_string,
            exposure_start_epoch=start_epoch,
            exposure_duration_request=requested,
            exposure_duration_actual=actual,
            ccd=None if ccd.is_empty else ccd,
            uid_provenance=provenance,
            comments=header.comment_text,
        )

    # --- file level ---

    def _open(self, path: Path) -> BinaryIO:
        if is_gzipped(path):
            return gzip.open(path, "rb")
        return open(path, "rb")

    def decode_file(self, path: str | Path) -> DecodedFile:
        path = Path(path)
        buf = AccumulationBuffer(growth="chunk", chunk_size=self.chunk_size)
        try:
            with self._open(path) as f:
                while True:
                    res = self.read_frame(f, path=path)
                    if res is None:
                        break
                    frame, header = res
                    buf.append(frame, self.build_metadata(header, path))
                    if self.options.first_frame_only:
                        break
        except EOFError as e:
            # gzip member cut short
            raise TruncatedPixelData("Compressed PGM stream ended early", path=path, context={"error": str(e)}) from e
        except zlib.error as e:
            raise TruncatedPixelData("Compressed PGM stream is corrupt", path=path, context={"error": str(e)}) from e

        if buf.count == 0:
            raise TruncatedHeader("File holds no PGM frame", path=path)

        warnings: list[str] = []
        mismatched = [m for m in buf.metadata if "filename!=comment" in getattr(m, "uid_provenance", "")]
        if mismatched:
            first = mismatched[0]
            msg = (
                f"{path.name}: comment site/imager ids disagree with the filename in "
                f"{len(mismatched)}/{buf.count} frames; using filename ids "
                f"site={first.site_uid} imager={first.imager_uid}"
            )
            log.warning(msg)
            warnings.append(msg)

        images = buf.trim()
        return DecodedFile(
            path=path,
            images=images,
            metadata=buf.metadata,
            n_bytes=file_size(path),
            warnings=tuple(warnings),
        )
