from __future__ import annotations

from dataclasses import dataclass, field
import logging
from pathlib import Path
from typing import Any

import yaml

from .errors import DecodeError
from .options import DecodeOptions, DecoderCapabilities
from .schema import IngestConfigModel, schema_validate


log = logging.getLogger(__name__)


class ConfigError(DecodeError):
    code = "ConfigError"


def _norm_path_str(p: str) -> str:
    """Normalize a path string for cross-platform YAML.

    Forward slashes work everywhere; backslashes are literal on POSIX.
    """
    return str(p).replace("\\", "/")


def resolve_path(p: str | Path, *, base_dir: Path) -> Path:
    pp = Path(_norm_path_str(str(p))).expanduser()
    return pp if pp.is_absolute() else (base_dir / pp).resolve()


@dataclass(frozen=True)
class IngestConfig:
    """Resolved ingestion settings, ready to hand to the orchestrator.

    ``log_level`` is for the host application: the library never configures
    logging itself, so pass it to :func:`asi_pipe.log.setup_logging` before
    calling :func:`asi_pipe.ingest.decode_config`.
    """

    options: DecodeOptions = field(default_factory=DecodeOptions)
    capabilities: DecoderCapabilities = field(default_factory=DecoderCapabilities.detect)
    dataset: str | None = None
    files: tuple[Path, ...] = ()
    pgm_chunk_size: int = 20
    tmp_dir: Path | None = None
    keep_extracted: bool = False
    log_level: str = "INFO"
    config_path: Path | None = None

    def orchestrator_kwargs(self) -> dict[str, Any]:
        return {
            "pgm_chunk_size": self.pgm_chunk_size,
            "tmp_dir": self.tmp_dir,
            "keep_extracted": self.keep_extracted,
        }


def config_from_dict(cfg: dict[str, Any], *, base_dir: Path | None = None) -> IngestConfig:
    """Validate a config mapping and build :class:`IngestConfig`.

    Relative ``data_dir``/``tmp_dir`` resolve against ``base_dir`` (the config
    file's directory); relative ``files`` resolve against ``data_dir``.
    """
    report = schema_validate(cfg)
    if not report.ok:
        raise ConfigError("Invalid ingestion config", context={"errors": [e.message for e in report.errors]})
    for w in report.warnings:
        log.warning("Unknown config key %s", w.message)

    model = IngestConfigModel.model_validate(cfg)
    base = Path(base_dir) if base_dir is not None else Path.cwd()
    data_dir = resolve_path(model.data_dir, base_dir=base) if model.data_dir else base

    partial = model.capabilities.partial_tar_extraction
    caps = DecoderCapabilities.detect() if partial is None else DecoderCapabilities(partial_tar_extraction=partial)

    return IngestConfig(
        options=DecodeOptions(
            first_frame_only=model.options.first_frame_only,
            no_metadata=model.options.no_metadata,
            minimal_metadata=model.options.minimal_metadata,
            assume_files_exist=model.options.assume_files_exist,
        ),
        capabilities=caps,
        dataset=model.dataset.strip().upper() if model.dataset else None,
        files=tuple(resolve_path(f, base_dir=data_dir) for f in model.files),
        pgm_chunk_size=model.pgm.chunk_size,
        tmp_dir=resolve_path(model.archive.tmp_dir, base_dir=base) if model.archive.tmp_dir else None,
        keep_extracted=model.archive.keep_extracted,
        log_level=model.logging.level,
        config_path=Path(model.config_path) if model.config_path else None,
    )


def load_config(cfg_path: str | Path) -> IngestConfig:
    """Load a YAML config file into :class:`IngestConfig`.

    Adds ``config_path``/``config_dir`` to the raw document before validation.
    """
    cfg_path = Path(cfg_path).expanduser().resolve()
    cfg_dir = cfg_path.parent
    try:
        raw = yaml.safe_load(cfg_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError("Config file is not valid YAML", path=cfg_path, context={"error": str(e)}) from e
    if not isinstance(raw, dict):
        raise ConfigError("Config file must hold a mapping", path=cfg_path)

    raw["config_path"] = str(cfg_path)
    raw["config_dir"] = str(cfg_dir)
    return config_from_dict(raw, base_dir=cfg_dir)
