"""Top-level ingestion: many raw files in, one :class:`FrameSet` out.

Per input file (strictly in caller order):

1. classify the container by suffix,
2. decode it with the matching decoder,
3. append its frames and metadata to the batch buffer.

A file that fails to decode is recorded in ``FrameSet.failures`` and skipped;
the batch goes on. Only two conditions are terminal: no input file exists
(:class:`~asi_pipe.errors.NoFilesFound`) and no input file could be decoded
(:class:`~asi_pipe.errors.IngestionFailed`).

After the last file the buffer is trimmed to the real frame count and the
dataset orientation is applied.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import os
from pathlib import Path
from typing import Any, Iterable, Sequence
import zlib

import numpy as np

from .buffer import AccumulationBuffer
from .config import ConfigError, IngestConfig
from .dataset import DatasetDescriptor, FileFormat, classify_path, get_dataset
from .errors import DecodeError, IngestionFailed, NoFilesFound, ReadError, UnrecognizedFileFormat
from .io import DecodedFile, HDF5FrameDecoder, PGMDecoder, PNGFrameDecoder
from .log import timer
from .metadata import FrameMetadata
from .options import DecodeOptions, DecoderCapabilities
from .orientation import OrientationNormalizer
from .version import as_report_fields


log = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileFailure:
    path: Path
    error_code: str
    message: str
    structural: bool = False


@dataclass(frozen=True)
class FileStat:
    path: Path
    file_format: FileFormat
    n_frames: int
    n_bytes: int


@dataclass(frozen=True)
class FrameSet:
    """Decoded, oriented frames plus one metadata record per frame.

    ``images`` is ``(channels, width, height, n_frames)``; ``metadata[i]``
    describes ``images[..., i]``.
    """

    images: np.ndarray
    metadata: list[FrameMetadata]
    dataset: DatasetDescriptor
    failures: list[FileFailure] = field(default_factory=list)
    file_stats: list[FileStat] = field(default_factory=list)
    warnings: tuple[str, ...] = ()

    def __post_init__(self):
        if self.images.ndim != 4:
            raise ValueError(f"images must be 4-D, got shape {self.images.shape}")
        if self.images.shape[-1] != len(self.metadata):
            raise ValueError(
                f"{self.images.shape[-1]} frames but {len(self.metadata)} metadata records"
            )

    @property
    def n_frames(self) -> int:
        return int(self.images.shape[-1])

    @property
    def n_bytes(self) -> int:
        return sum(s.n_bytes for s in self.file_stats)

    @property
    def timestamps(self) -> list[float | None]:
        return [m.exposure_start_epoch for m in self.metadata]

    @property
    def problematic_files(self) -> list[Path]:
        return [f.path for f in self.failures]

    def frame(self, i: int) -> np.ndarray:
        """One frame, ``(channels, width, height)``."""
        return self.images[..., i]

    def summary(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "dataset": self.dataset.name,
            "n_files": len(self.file_stats),
            "n_frames": self.n_frames,
            "n_bytes": self.n_bytes,
            "n_failures": len(self.failures),
            "frame_shape": list(self.images.shape[:-1]),
            "dtype": str(self.images.dtype),
        }
        out.update(as_report_fields())
        return out


def _existing_files(files: Iterable[Path]) -> list[Path]:
    keep: list[Path] = []
    for p in files:
        if not p.is_file():
            log.warning("Skipping missing file %s", p)
            continue
        if not os.access(p, os.R_OK):
            log.warning("Skipping unreadable file %s", p)
            continue
        keep.append(p)
    return keep


class IngestionOrchestrator:
    """Classify, decode and accumulate a list of raw imager files."""

    def __init__(
        self,
        options: DecodeOptions | None = None,
        capabilities: DecoderCapabilities | None = None,
        *,
        pgm_chunk_size: int = 20,
        tmp_dir: str | Path | None = None,
        keep_extracted: bool = False,
        normalizer: OrientationNormalizer | None = None,
    ):
        self.options = options or DecodeOptions()
        self.capabilities = capabilities or DecoderCapabilities.detect()
        self.normalizer = normalizer or OrientationNormalizer()
        self._decoders: dict[FileFormat, Any] = {
            FileFormat.PGM: PGMDecoder(self.options, chunk_size=pgm_chunk_size),
            FileFormat.PNG: PNGFrameDecoder(
                self.options,
                self.capabilities,
                tmp_root=tmp_dir,
                keep_extracted=keep_extracted,
            ),
            FileFormat.HDF5: HDF5FrameDecoder(self.options),
        }

    def decode_one(self, path: Path) -> tuple[FileFormat, DecodedFile]:
        fmt = classify_path(path)
        decoder = self._decoders.get(fmt)
        if decoder is None:
            raise UnrecognizedFileFormat("File suffix matches no known container", path=path)
        try:
            return fmt, decoder.decode_file(path)
        except (OSError, EOFError, zlib.error) as e:
            raise ReadError("I/O error while decoding", path=path, context={"error": str(e)}) from e

    def run(self, dataset_name: str, files: Sequence[str | Path]) -> FrameSet:
        dataset = get_dataset(dataset_name)
        paths = [Path(p) for p in files]
        if not self.options.assume_files_exist:
            paths = _existing_files(paths)
        if not paths:
            raise NoFilesFound("None of the requested files exist", context={"dataset": dataset.name, "requested": len(files)})

        buf = AccumulationBuffer(growth="double")
        failures: list[FileFailure] = []
        stats: list[FileStat] = []
        warnings: list[str] = []

        with timer(f"decode {dataset.name} ({len(paths)} files)", log) as t:
            for idx, path in enumerate(paths):
                try:
                    fmt, decoded = self.decode_one(path)
                    if buf.count == 0 and decoded.n_frames:
                        buf.frame_shape = tuple(decoded.images.shape[:-1])
                        buf.dtype = decoded.images.dtype
                        buf.reserve(decoded.n_frames * (len(paths) - idx))
                    buf.extend(decoded.images, decoded.metadata)
                except DecodeError as e:
                    log.warning("Skipping %s: %s", path.name, e)
                    failures.append(
                        FileFailure(path=path, error_code=e.code, message=str(e), structural=e.structural)
                    )
                    continue
                stats.append(FileStat(path=path, file_format=fmt, n_frames=decoded.n_frames, n_bytes=decoded.n_bytes))
                warnings.extend(decoded.warnings)
                log.debug("%s: %d frame(s), %d bytes", path.name, decoded.n_frames, decoded.n_bytes)

            if not stats:
                raise IngestionFailed(
                    f"No file of {dataset.name} could be decoded ({len(failures)} failure(s))",
                    failures=failures,
                )

            images = self.normalizer.normalize_images(dataset.name, buf.trim())
            frame_set = FrameSet(
                images=images,
                metadata=buf.metadata,
                dataset=dataset,
                failures=failures,
                file_stats=stats,
                warnings=tuple(warnings),
            )

        log.info(
            "%s: %d frame(s) from %d file(s), %d bytes, %d failure(s) in %.2f s",
            dataset.name,
            frame_set.n_frames,
            len(stats),
            frame_set.n_bytes,
            len(failures),
            t.elapsed,
        )
        return frame_set


def decode(
    dataset_name: str,
    files: Sequence[str | Path] | str | Path,
    options: DecodeOptions | None = None,
    *,
    capabilities: DecoderCapabilities | None = None,
    **kwargs: Any,
) -> FrameSet:
    """Decode raw imager ``files`` of ``dataset_name`` into a :class:`FrameSet`.

    Extra keyword arguments go to :class:`IngestionOrchestrator`
    (``pgm_chunk_size``, ``tmp_dir``, ``keep_extracted``).
    """
    if isinstance(files, (str, Path)):
        files = [files]
    return IngestionOrchestrator(options, capabilities, **kwargs).run(dataset_name, list(files))


def decode_config(config: IngestConfig) -> FrameSet:
    """Run the ingestion described by a loaded :class:`~asi_pipe.config.IngestConfig`."""
    if not config.dataset:
        raise ConfigError("Config names no dataset", path=config.config_path)
    if not config.files:
        raise NoFilesFound("Config lists no files", path=config.config_path, context={"dataset": config.dataset})
    return decode(
        config.dataset,
        list(config.files),
        config.options,
        capabilities=config.capabilities,
        **config.orchestrator_kwargs(),
    )
