from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
import logging
from pathlib import Path
from typing import Any

import yaml

from .classify import FileFormat


log = logging.getLogger(__name__)


@dataclass(frozen=True)
class DatasetDescriptor:
    name: str
    family: str = ""
    description: str = ""
    file_formats: tuple[FileFormat, ...] = ()
    channels: int | None = None
    cadence_s: float | None = None
    known: bool = True


def _resource_path(*parts: str) -> Path:
    # resources live alongside the package inside the installed tree
    here = Path(__file__).resolve().parent.parent
    return here / "resources" / Path(*parts)


def _as_formats(v: Any) -> tuple[FileFormat, ...]:
    out: list[FileFormat] = []
    for item in v or []:
        try:
            out.append(FileFormat(str(item).strip().lower()))
        except ValueError:
            log.warning("Ignoring unknown file format %r in dataset registry", item)
    return tuple(out)


@lru_cache(maxsize=1)
def load_dataset_registry() -> dict[str, DatasetDescriptor]:
    """Load the dataset registry shipped with the package.

    Keys are upper-cased dataset names; entries without an ``id`` are skipped.
    """
    p = _resource_path("datasets.yaml")
    raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}

    entries = raw.get("datasets") if isinstance(raw, dict) else None
    out: dict[str, DatasetDescriptor] = {}
    for it in entries or []:
        if not isinstance(it, dict):
            continue
        name = str(it.get("id") or "").strip().upper()
        if not name:
            continue
        channels = it.get("channels")
        cadence = it.get("cadence_s")
        out[name] = DatasetDescriptor(
            name=name,
            family=str(it.get("family") or ""),
            description=str(it.get("description") or ""),
            file_formats=_as_formats(it.get("file_formats")),
            channels=int(channels) if channels is not None else None,
            cadence_s=float(cadence) if cadence is not None else None,
        )
    return out


def get_dataset(name: str) -> DatasetDescriptor:
    """Return the descriptor for ``name`` (case-insensitive).

    Unknown names are not an error: a bare descriptor with ``known=False`` is
    returned so that new datasets can still be decoded (without orientation
    normalization).
    """
    key = str(name or "").strip().upper()
    reg = load_dataset_registry()
    if key in reg:
        return reg[key]
    log.warning("Dataset %r is not in the registry; decoding without dataset defaults", name)
    return DatasetDescriptor(name=key, known=False)
