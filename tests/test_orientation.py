from __future__ import annotations

"""Each orientation table row is pinned here.

A wrong row never raises, it silently mirrors every frame of a dataset.
"""

import numpy as np
import pytest

from asi_pipe.ingest import decode
from asi_pipe.orientation import ORIENTATION_TABLE, Flip, Orientation, OrientationNormalizer, apply_flip

from conftest import make_frame, png_bytes, png_name, rgb_image, write_h5, write_pgm, write_png_tar


EXPECTED = {
    "THEMIS_ASI_RAW": ("vertical", "vertical"),
    "REGO_RAW": ("both", "both"),
    "TREX_NIR_RAW": ("vertical", "vertical"),
    "TREX_BLUE_RAW": ("vertical", "vertical"),
    "TREX_RGB_RAW_NOMINAL": ("none", "vertical"),
    "TREX_RGB_RAW_BURST": ("none", "vertical"),
    "TREX_RGB5577_RAW": ("none", "vertical"),
    "SMILE_ASI_RAW": ("none", "vertical"),
}


def test_table_rows_are_pinned():
    got = {k: (v.images.value, v.skymap.value) for k, v in ORIENTATION_TABLE.items()}
    assert got == EXPECTED


@pytest.mark.parametrize("name", sorted(EXPECTED))
def test_normalize_images_per_dataset(name):
    imgs = np.arange(2 * 4 * 3 * 2).reshape(2, 4, 3, 2)
    out = OrientationNormalizer().normalize_images(name.lower(), imgs)
    want = imgs
    if EXPECTED[name][0] in ("vertical", "both"):
        want = want[:, :, ::-1, :]
    if EXPECTED[name][0] in ("horizontal", "both"):
        want = want[:, ::-1, :, :]
    np.testing.assert_array_equal(out, want)


@pytest.mark.parametrize("name", sorted(EXPECTED))
def test_normalize_skymap_per_dataset(name):
    sky = np.arange(2 * 4 * 3).reshape(2, 4, 3)
    out = OrientationNormalizer().normalize_skymap(name, sky)
    want = sky[:, :, ::-1]
    if EXPECTED[name][1] == "both":
        want = want[:, ::-1, :]
    np.testing.assert_array_equal(out, want)


def test_unknown_dataset_is_left_alone(caplog):
    imgs = np.zeros((1, 4, 3, 2))
    out = OrientationNormalizer().normalize_images("NOPE_RAW", imgs)
    assert out is imgs
    assert "NOPE_RAW" in caplog.text


def test_apply_flip_horizontal_only():
    a = np.arange(12).reshape(1, 4, 3)
    out = apply_flip(a, Flip.HORIZONTAL, width_axis=1, height_axis=2)
    np.testing.assert_array_equal(out, a[:, ::-1, :])


def test_custom_table():
    norm = OrientationNormalizer({"X": Orientation(images=Flip.HORIZONTAL, skymap=Flip.NONE)})
    assert norm.lookup("x").images is Flip.HORIZONTAL
    assert norm.lookup("THEMIS_ASI_RAW") is None


def test_decode_themis_flips_vertically_rego_both(tmp_path):
    frame = make_frame(8, 6, seed=11)
    p = write_pgm(tmp_path / "20140310_0600_gill_themis19_full.pgm", [frame])

    themis = decode("THEMIS_ASI_RAW", [p])
    rego = decode("REGO_RAW", [p])

    np.testing.assert_array_equal(themis.frame(0), np.flip(frame, axis=2))
    np.testing.assert_array_equal(rego.frame(0), np.flip(np.flip(frame, axis=2), axis=1))
    assert not np.array_equal(themis.frame(0), rego.frame(0))


@pytest.mark.parametrize("dataset", ["TREX_RGB_RAW_NOMINAL", "TREX_RGB5577_RAW"])
def test_png_and_hdf5_containers_agree(tmp_path, dataset):
    arr = rgb_image(seed=4)
    tar = write_png_tar(tmp_path / "20210315_0600_gill_rgb-04_full.png.tar", {png_name(3): png_bytes(arr)})
    h5 = write_h5(tmp_path / "20230201_0600_gill_rgb-04_full.h5", n_frames=1, images=arr[np.newaxis])

    from_png = decode(dataset, [tar])
    from_h5 = decode(dataset, [h5])

    np.testing.assert_array_equal(from_png.frame(0), from_h5.frame(0))
    # bottom row of the stored image first
    np.testing.assert_array_equal(from_h5.frame(0), np.transpose(arr, (2, 1, 0))[:, :, ::-1])
