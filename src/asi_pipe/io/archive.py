"""Scoped extraction of PNG frames from tar archives.

TREx RGB and SMILE raw files are tar archives of individually named PNG
frames (one minute per archive). Members are extracted into a private
temporary directory that lives exactly as long as one file's decode:

    with extractor.extract(archive, first_only=True) as ctx:
        for p in ctx.files:
            ...

Leaving the ``with`` block removes every extracted file and the directory,
on success and on failure alike, unless the caller asked to keep them.
"""

from __future__ import annotations

import logging
from pathlib import Path
import shutil
import tarfile
import tempfile
import warnings
import zlib

from ..errors import ArchiveCorrupt, UnsupportedCapability
from ..options import DecoderCapabilities


log = logging.getLogger(__name__)


class ArchiveExtractionContext:
    """Temporary directory plus the files extracted into it.

    ``files`` are the frames the caller should consume (sorted by name);
    ``extracted`` is everything written to disk, which can be more when a full
    extraction was needed to reach the first member.
    """

    def __init__(self, tmp_dir: Path, *, keep: bool = False):
        self.tmp_dir = Path(tmp_dir)
        self.keep = bool(keep)
        self.files: list[Path] = []
        self.extracted: list[Path] = []
        self.closed = False

    def __enter__(self) -> ArchiveExtractionContext:
        return self

    def __exit__(self, exc_type, exc, tb):
        self.cleanup()
        return False

    def cleanup(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self.keep:
            log.debug("Keeping %d extracted file(s) in %s", len(self.extracted), self.tmp_dir)
            return
        try:
            shutil.rmtree(self.tmp_dir)
        except FileNotFoundError:
            pass
        except OSError as e:
            log.warning("Could not remove temporary directory %s: %s", self.tmp_dir, e)


def _validate_member_paths(names: list[str], dest: Path, *, archive: Path) -> None:
    base = dest.resolve()
    for name in names:
        resolved = (base / name).resolve()
        if base not in resolved.parents and resolved != base:
            raise ArchiveCorrupt("Unsafe archive member path", path=archive, context={"member": name})


def _filter_kwargs() -> dict[str, str]:
    # extraction filters exist on current interpreters; older ones reject the kwarg
    return {"filter": "data"} if hasattr(tarfile, "data_filter") else {}


class ArchiveExtractor:
    """Extract PNG members of a tar archive into an :class:`ArchiveExtractionContext`."""

    def __init__(self, capabilities: DecoderCapabilities | None = None, *, tmp_root: str | Path | None = None):
        self.capabilities = capabilities or DecoderCapabilities.detect()
        self.tmp_root = str(tmp_root) if tmp_root is not None else None
        self._fallback_warned = False

    def _warn_fallback(self, archive: Path) -> None:
        if self._fallback_warned:
            return
        self._fallback_warned = True
        msg = (
            "Single-member tar extraction is unavailable in this runtime; "
            f"extracting whole archives instead (first: {archive.name})"
        )
        log.warning(msg)
        warnings.warn(msg, UnsupportedCapability, stacklevel=3)

    def extract(
        self,
        archive: str | Path,
        *,
        first_only: bool = False,
        keep: bool = False,
    ) -> ArchiveExtractionContext:
        archive = Path(archive)
        if self.tmp_root is not None:
            Path(self.tmp_root).mkdir(parents=True, exist_ok=True)
        ctx = ArchiveExtractionContext(Path(tempfile.mkdtemp(prefix="asi_", dir=self.tmp_root)), keep=keep)
        try:
            with tarfile.open(archive, "r:*") as tf:
                members = sorted(
                    (m for m in tf.getmembers() if m.isfile() and m.name.lower().endswith(".png")),
                    key=lambda m: (Path(m.name).name, m.name),
                )
                if not members:
                    raise ArchiveCorrupt("Archive holds no PNG frames", path=archive)
                _validate_member_paths([m.name for m in members], ctx.tmp_dir, archive=archive)

                if first_only and self.capabilities.partial_tar_extraction:
                    tf.extract(members[0], path=ctx.tmp_dir, **_filter_kwargs())
                    written = members[:1]
                else:
                    if first_only:
                        self._warn_fallback(archive)
                    tf.extractall(path=ctx.tmp_dir, members=members, **_filter_kwargs())
                    written = members

            ctx.extracted = [ctx.tmp_dir / m.name for m in written]
            ctx.files = ctx.extracted[:1] if first_only else list(ctx.extracted)
        except (tarfile.TarError, EOFError, zlib.error) as e:
            ctx.cleanup()
            raise ArchiveCorrupt("Unreadable tar archive", path=archive, context={"error": str(e)}) from e
        except BaseException:
            ctx.cleanup()
            raise
        log.debug("Extracted %d/%d member(s) of %s", len(ctx.extracted), len(members), archive.name)
        return ctx
