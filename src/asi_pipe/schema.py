"""Pydantic schema for ingestion config files (YAML).

The loader (:mod:`asi_pipe.config`) turns a validated document into the
frozen option objects the decoders take. This schema catches wrong types
early and reports likely typos.

Notes
-----
- Extra keys are allowed (forward compatibility) but reported by
  `find_unknown_keys()`.
- `schema_validate()` returns a small report object (ok/errors/warnings) and
  never raises.
"""


from __future__ import annotations


from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


# ---------------------------- report objects ----------------------------


@dataclass(frozen=True)
class SchemaIssue:
    code: str
    message: str
    hint: str = ""


@dataclass(frozen=True)
class SchemaReport:
    ok: bool
    errors: List[SchemaIssue]
    warnings: List[SchemaIssue]


# ------------------------------ pydantic ------------------------------


class OptionsBlock(BaseModel):
    """Per-call decode switches (see :class:`asi_pipe.options.DecodeOptions`)."""

    model_config = ConfigDict(extra="allow")

    first_frame_only: bool = False
    no_metadata: bool = False
    minimal_metadata: bool = False
    assume_files_exist: bool = False


class CapabilitiesBlock(BaseModel):
    """Runtime capability overrides.

    ``partial_tar_extraction: null`` (default) means "detect at startup".
    """

    model_config = ConfigDict(extra="allow")

    partial_tar_extraction: Optional[bool] = None


class PGMBlock(BaseModel):
    model_config = ConfigDict(extra="allow")

    chunk_size: int = Field(default=20, ge=1)


class ArchiveBlock(BaseModel):
    """Where tar members are extracted and whether they survive the decode."""

    model_config = ConfigDict(extra="allow")

    tmp_dir: Optional[str] = None
    keep_extracted: bool = False


class LoggingBlock(BaseModel):
    model_config = ConfigDict(extra="allow")

    level: str = "INFO"

    @field_validator("level")
    @classmethod
    def _upper(cls, v: str) -> str:
        v = str(v).strip().upper()
        if v not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(f"unknown log level {v!r}")
        return v


class IngestConfigModel(BaseModel):
    """Schema for the resolved config dict (after load_config)."""

    model_config = ConfigDict(extra="allow")

    dataset: Optional[str] = None
    data_dir: Optional[str] = None
    files: List[str] = Field(default_factory=list)

    options: OptionsBlock = Field(default_factory=OptionsBlock)
    capabilities: CapabilitiesBlock = Field(default_factory=CapabilitiesBlock)
    pgm: PGMBlock = Field(default_factory=PGMBlock)
    archive: ArchiveBlock = Field(default_factory=ArchiveBlock)
    logging: LoggingBlock = Field(default_factory=LoggingBlock)

    # computed / meta
    config_path: Optional[str] = None
    config_dir: Optional[str] = None


# ----------------------- typo/unknown key support -----------------------


_SECTIONS: Dict[str, type[BaseModel]] = {
    "options": OptionsBlock,
    "capabilities": CapabilitiesBlock,
    "pgm": PGMBlock,
    "archive": ArchiveBlock,
    "logging": LoggingBlock,
}


def find_unknown_keys(cfg: Dict[str, Any]) -> Dict[str, List[str]]:
    """Return unknown keys grouped by section.

    Keys injected by load_config are considered known.
    """

    unknown: Dict[str, List[str]] = {}

    top_unknown = sorted(str(k) for k in cfg.keys() if str(k) not in IngestConfigModel.model_fields)
    if top_unknown:
        unknown["top"] = top_unknown

    for name, block in _SECTIONS.items():
        sec = cfg.get(name)
        if isinstance(sec, dict):
            u = sorted(str(k) for k in sec.keys() if str(k) not in block.model_fields)
            if u:
                unknown[name] = u

    return unknown


def schema_validate(cfg: Dict[str, Any]) -> SchemaReport:
    """Validate a config dict against the pydantic schema.

    Unknown keys are warnings here (a typo in an optional switch silently
    keeps its default, so callers should surface them).
    """

    try:
        IngestConfigModel.model_validate(cfg)
    except ValidationError as e:
        msg = str(e)
        if len(msg) > 2000:
            msg = msg[:2000] + "…"
        return SchemaReport(
            ok=False,
            errors=[SchemaIssue(code="SCHEMA", message=msg, hint="Check config types/sections")],
            warnings=[],
        )

    warnings: List[SchemaIssue] = []
    for sec, keys in find_unknown_keys(cfg).items():
        for k in keys:
            warnings.append(
                SchemaIssue(code="UNKNOWN_KEY", message=f"{sec}: {k}", hint="Remove/rename unknown keys")
            )
    return SchemaReport(ok=True, errors=[], warnings=warnings)
