from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import numpy as np

from ..metadata import FrameMetadata


@dataclass(frozen=True)
class DecodedFile:
    """What a decoder hands back for one input file.

    images:
        ``(channels, width, height, n_frames)``, as stored in the source (no
        dataset orientation applied yet).
    metadata:
        one record per frame, same order.
    n_bytes:
        size of the input file on disk.
    """

    path: Path
    images: np.ndarray
    metadata: list[FrameMetadata]
    n_bytes: int
    warnings: tuple[str, ...] = field(default_factory=tuple)

    @property
    def n_frames(self) -> int:
        return int(self.images.shape[-1])


def file_size(path: str | Path) -> int:
    return int(Path(path).stat().st_size)
