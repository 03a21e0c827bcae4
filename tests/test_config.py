from __future__ import annotations

from pathlib import Path

import pytest

from asi_pipe.config import ConfigError, config_from_dict, load_config
from asi_pipe.ingest import decode_config
from asi_pipe.schema import find_unknown_keys, schema_validate

from conftest import make_frame, write_pgm


def _write_yaml(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


def test_load_config_resolves_paths(tmp_path):
    cfg_path = _write_yaml(
        tmp_path / "ingest.yaml",
        """
dataset: themis_asi_raw
data_dir: raw
files:
  - 20140310_0600_gill_themis19_full.pgm.gz
options:
  first_frame_only: true
capabilities:
  partial_tar_extraction: false
pgm:
  chunk_size: 40
archive:
  tmp_dir: scratch
logging:
  level: debug
""",
    )
    cfg = load_config(cfg_path)

    assert cfg.dataset == "THEMIS_ASI_RAW"
    assert cfg.files == ((tmp_path / "raw" / "20140310_0600_gill_themis19_full.pgm.gz").resolve(),)
    assert cfg.options.first_frame_only
    assert not cfg.capabilities.partial_tar_extraction
    assert cfg.pgm_chunk_size == 40
    assert cfg.tmp_dir == (tmp_path / "scratch").resolve()
    assert cfg.log_level == "DEBUG"
    assert cfg.config_path == cfg_path.resolve()


def test_defaults_from_empty_document(tmp_path):
    cfg = load_config(_write_yaml(tmp_path / "empty.yaml", ""))
    assert cfg.dataset is None
    assert cfg.files == ()
    assert not cfg.options.no_metadata
    assert cfg.pgm_chunk_size == 20


def test_unknown_keys_are_reported(caplog):
    doc = {"dataset": "REGO_RAW", "optoins": {}, "options": {"first_frame": True}}
    assert find_unknown_keys(doc) == {"top": ["optoins"], "options": ["first_frame"]}

    rep = schema_validate(doc)
    assert rep.ok
    assert {w.code for w in rep.warnings} == {"UNKNOWN_KEY"}

    config_from_dict(doc)
    assert "first_frame" in caplog.text


@pytest.mark.parametrize(
    "doc",
    [
        {"pgm": {"chunk_size": 0}},
        {"options": {"no_metadata": "sometimes"}},
        {"logging": {"level": "LOUD"}},
        {"files": "one.pgm"},
    ],
)
def test_invalid_documents(doc):
    assert not schema_validate(doc).ok
    with pytest.raises(ConfigError):
        config_from_dict(doc)


def test_not_a_mapping(tmp_path):
    with pytest.raises(ConfigError):
        load_config(_write_yaml(tmp_path / "list.yaml", "- a\n- b\n"))


def test_broken_yaml(tmp_path):
    with pytest.raises(ConfigError):
        load_config(_write_yaml(tmp_path / "bad.yaml", "dataset: [unclosed\n"))


def test_decode_config_runs_ingestion(tmp_path):
    raw = tmp_path / "raw"
    raw.mkdir()
    write_pgm(raw / "20140310_0600_gill_themis19_full.pgm.gz", [make_frame(seed=i) for i in range(3)])
    cfg_path = _write_yaml(
        tmp_path / "ingest.yaml",
        "dataset: REGO_RAW\ndata_dir: raw\nfiles: [20140310_0600_gill_themis19_full.pgm.gz]\n"
        "options: {minimal_metadata: true}\n",
    )
    fs = decode_config(load_config(cfg_path))
    assert fs.n_frames == 3
    assert fs.dataset.name == "REGO_RAW"
    assert fs.metadata[0].site_uid is None


def test_decode_config_needs_dataset(tmp_path):
    cfg = load_config(_write_yaml(tmp_path / "x.yaml", "files: [a.pgm]\n"))
    with pytest.raises(ConfigError):
        decode_config(cfg)


def test_log_level_feeds_setup_logging(tmp_path):
    import logging

    from asi_pipe.log import setup_logging

    cfg = load_config(_write_yaml(tmp_path / "x.yaml", "logging:\n  level: warning\n"))
    assert cfg.log_level == "WARNING"

    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        setup_logging(cfg.log_level)
        assert root.level == logging.WARNING
    finally:
        for h in list(root.handlers):
            root.removeHandler(h)
        for h in saved_handlers:
            root.addHandler(h)
        root.setLevel(saved_level)
