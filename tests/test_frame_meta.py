from __future__ import annotations

import logging

import pytest

from asi_pipe.errors import DecodeError, MissingRequiredAttribute, TruncatedPixelData
from asi_pipe.log import timer
from asi_pipe.metadata import CCDGeometry, HDF5Meta, PGMMeta, PNGMeta, parse_utc, timing_fields


@pytest.mark.parametrize(
    "text",
    [
        "2014-03-10 06:00:03.123 UTC",
        "2014-03-10t06:00:03.123 utc",
        "2014-03-10T06:00:03.123000000",
        "20140310 060003.123",
    ],
)
def test_parse_utc_spellings(text):
    s, epoch = timing_fields(parse_utc(text))
    assert s == "2014-03-10T06:00:03.123000"
    assert epoch == pytest.approx(1394431203.123)


def test_parse_utc_rejects_garbage():
    with pytest.raises(ValueError):
        parse_utc("10/03/2014 06:00")


def test_record_kinds_and_common_fields():
    recs = [PGMMeta(source_path="a"), PNGMeta(source_path="b"), HDF5Meta(source_path="c")]
    assert [r.kind for r in recs] == ["pgm", "png", "hdf5"]
    assert not any(r.has_timing for r in recs)

    m = PNGMeta(exposure_start_epoch=1394431203.0)
    assert m.exposure_start.isoformat() == "2014-03-10T06:00:03+00:00"


def test_ccd_geometry():
    assert CCDGeometry().is_empty
    g = CCDGeometry(xbin=2)
    assert not g.is_empty
    assert g.binning_key == "2x1"


def test_decode_error_message_carries_context():
    e = MissingRequiredAttribute("lacks attrs", missing_keys=["site_unique_id"], path="/x/y.h5", context={"frame": 3})
    msg = str(e)
    assert "missing=['site_unique_id']" in msg
    assert "file=y.h5" in msg
    assert "frame=3" in msg
    assert e.reason.startswith("lacks attrs")
    assert isinstance(e, DecodeError) and isinstance(e, RuntimeError)
    assert TruncatedPixelData("x").structural and not e.structural


def test_timer_logs_failure(caplog):
    log = logging.getLogger("asi_pipe.test")
    with caplog.at_level(logging.INFO):
        with pytest.raises(RuntimeError):
            with timer("decode X", log):
                raise RuntimeError("boom")
    assert "decode X failed" in caplog.text


def test_setup_logging_is_idempotent():
    from rich.logging import RichHandler

    from asi_pipe.log import setup_logging

    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        setup_logging("debug")
        setup_logging("not-a-level")
        rich = [h for h in root.handlers if isinstance(h, RichHandler)]
        assert len(rich) == 1
        assert root.level == logging.INFO
        assert logging.getLogger("PIL").level == logging.WARNING
    finally:
        for h in list(root.handlers):
            root.removeHandler(h)
        for h in saved_handlers:
            root.addHandler(h)
        root.setLevel(saved_level)
