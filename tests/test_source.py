import sys

import numpy as np
import pytest

from tiffpng.errors import IoError, SourceReadFailed
from tiffpng.formats import Photometric
from tiffpng.io.source import TiffSource, pack_subbyte_row, read_rgba_raster, to_rgba8


def _write_tiff(path, data, **kwargs):
    import tifffile

    tifffile.imwrite(str(path), data, **kwargs)
    return path


def test_descriptor_for_gray8(tmp_path):
    data = np.arange(12, dtype=np.uint8).reshape(3, 4)
    path = _write_tiff(tmp_path / "g.tif", data, photometric="minisblack")

    with TiffSource.open(path) as source:
        desc = source.descriptor
        assert (desc.width, desc.height) == (4, 3)
        assert desc.bits_per_sample == 8
        assert desc.samples_per_pixel == 1
        assert desc.photometric is Photometric.MIN_IS_BLACK
        assert desc.photometric_code == 1
        assert source.sample_format == 1
        assert source.scanline_size == 4
        assert source.read_scanline(0) == bytes([0, 1, 2, 3])
        assert source.read_scanline(2) == bytes([8, 9, 10, 11])


def test_descriptor_for_rgba16(tmp_path):
    data = np.zeros((2, 3, 4), dtype=np.uint16)
    path = _write_tiff(
        tmp_path / "rgba.tif", data, photometric="rgb", extrasamples=["unassalpha"]
    )

    with TiffSource.open(path) as source:
        desc = source.descriptor
        assert desc.photometric is Photometric.RGB
        assert desc.samples_per_pixel == 4
        assert desc.bits_per_sample == 16
        assert len(source.read_scanline(1)) == 3 * 4 * 2


@pytest.mark.parametrize("byteorder", ["<", ">"])
def test_scanlines_are_host_order_whatever_the_file_order(tmp_path, byteorder):
    data = np.asarray([[0x0102, 0xA0B0, 0xFFFE]], dtype=np.uint16)
    path = _write_tiff(tmp_path / "g16.tif", data, photometric="minisblack", byteorder=byteorder)

    with TiffSource.open(path) as source:
        line = source.read_scanline(0)

    expected = data[0].astype("=u2").tobytes()
    assert line == expected
    assert sys.byteorder in ("little", "big")


def test_planar_separate_is_interleaved(tmp_path):
    planes = np.stack(
        [
            np.full((2, 2), 10, dtype=np.uint8),
            np.full((2, 2), 20, dtype=np.uint8),
            np.full((2, 2), 30, dtype=np.uint8),
        ]
    )
    path = _write_tiff(tmp_path / "sep.tif", planes, photometric="rgb", planarconfig="separate")

    with TiffSource.open(path) as source:
        assert source.descriptor.planar_config == 2
        assert source.read_scanline(0) == bytes([10, 20, 30, 10, 20, 30])


def test_gray_alpha_contiguous(tmp_path):
    data = np.zeros((1, 2, 2), dtype=np.uint8)
    data[0, 0] = (5, 255)
    data[0, 1] = (6, 0)
    path = _write_tiff(
        tmp_path / "la.tif",
        data,
        photometric="minisblack",
        planarconfig="contig",
        extrasamples=["unassalpha"],
    )

    with TiffSource.open(path) as source:
        assert source.descriptor.samples_per_pixel == 2
        assert source.read_scanline(0) == bytes([5, 255, 6, 0])


def test_bilevel_rows_are_packed_msb_first(tmp_path):
    data = np.asarray([[1, 0, 1, 1, 0, 0, 0, 0, 1, 1]], dtype=bool)
    path = _write_tiff(tmp_path / "bw.tif", data, photometric="minisblack")

    with TiffSource.open(path) as source:
        assert source.descriptor.bits_per_sample == 1
        assert source.read_scanline(0) == bytes([0b10110000, 0b11000000])


def test_multi_page_uses_first_image(tmp_path):
    import tifffile

    path = tmp_path / "pages.tif"
    with tifffile.TiffWriter(str(path)) as tif:
        tif.write(np.full((2, 2), 7, dtype=np.uint8), photometric="minisblack")
        tif.write(np.full((2, 2), 9, dtype=np.uint8), photometric="minisblack")

    with TiffSource.open(path) as source:
        assert source.read_scanline(1) == bytes([7, 7])


def test_pack_subbyte_row():
    assert pack_subbyte_row(np.asarray([1, 0, 0, 0, 0, 0, 0, 1, 1]), 1) == bytes([0x81, 0x80])
    assert pack_subbyte_row(np.asarray([3, 0, 1, 2, 3]), 2) == bytes([0b11000110, 0b11000000])
    assert pack_subbyte_row(np.asarray([0xF, 0x1, 0xA]), 4) == bytes([0xF1, 0xA0])


def test_open_missing_file_is_io_error(tmp_path):
    with pytest.raises(IoError):
        TiffSource.open(tmp_path / "missing.tif")


def test_open_corrupt_file_is_io_error(tmp_path):
    path = tmp_path / "bad.tif"
    path.write_bytes(b"this is not a tiff file at all")
    with pytest.raises(IoError):
        TiffSource.open(path)


def test_read_scanline_out_of_range(tmp_path):
    path = _write_tiff(tmp_path / "g.tif", np.zeros((2, 2), dtype=np.uint8))
    with TiffSource.open(path) as source:
        with pytest.raises(SourceReadFailed) as exc:
            source.read_scanline(2)
    assert exc.value.row == 2


def test_read_rgba_raster_packs_argb(tmp_path):
    data = np.zeros((1, 2, 3), dtype=np.uint8)
    data[0, 0] = (0x11, 0x22, 0x33)
    data[0, 1] = (0xFF, 0x00, 0x80)
    path = _write_tiff(tmp_path / "rgb.tif", data, photometric="rgb")

    raster = read_rgba_raster(path)

    assert raster.shape == (1, 2)
    assert raster.dtype == np.uint32
    assert int(raster[0, 0]) == 0xFF112233
    assert int(raster[0, 1]) == 0xFFFF0080


def test_read_rgba_raster_keeps_high_byte_of_16bit_gray(tmp_path):
    data = np.asarray([[0x12FF, 0xAB00]], dtype=np.uint16)
    path = _write_tiff(tmp_path / "g16.tif", data, photometric="minisblack")

    raster = read_rgba_raster(path)

    assert int(raster[0, 0]) == 0xFF121212
    assert int(raster[0, 1]) == 0xFFABABAB


def test_read_rgba_raster_corrupt_file(tmp_path):
    path = tmp_path / "bad.tif"
    path.write_bytes(b"II*\x00garbage")
    with pytest.raises(SourceReadFailed) as exc:
        read_rgba_raster(path)
    assert exc.value.row is None


def test_default_bilevel_is_min_is_white(tmp_path):
    path = _write_tiff(tmp_path / "bw.tif", np.zeros((2, 8), dtype=bool))
    with TiffSource.open(path) as source:
        assert source.descriptor.photometric is Photometric.MIN_IS_WHITE


def test_only_the_current_strip_is_kept(tmp_path):
    data = np.arange(64 * 8, dtype=np.uint16).reshape(64, 8)
    path = _write_tiff(tmp_path / "strips.tif", data, photometric="minisblack", rowsperstrip=1)

    with TiffSource.open(path) as source:
        assert source.band_height == 1
        assert source.read_scanline(0) == data[0].astype("=u2").tobytes()
        assert source._band.shape == (1, 8, 1)
        assert source.read_scanline(63) == data[63].astype("=u2").tobytes()
        assert source._band.shape == (1, 8, 1)


def test_multi_row_strips_and_short_last_strip(tmp_path):
    data = np.arange(10 * 3 * 3, dtype=np.uint8).reshape(10, 3, 3)
    path = _write_tiff(tmp_path / "rgb.tif", data, photometric="rgb", rowsperstrip=4)

    with TiffSource.open(path) as source:
        assert source.band_height == 4
        rows = [source.read_scanline(y) for y in range(10)]

    assert rows == [data[y].tobytes() for y in range(10)]


def test_planar_separate_strips_are_interleaved(tmp_path):
    planes = np.arange(3 * 5 * 4, dtype=np.uint8).reshape(3, 5, 4)
    path = _write_tiff(
        tmp_path / "sep.tif", planes, photometric="rgb", planarconfig="separate", rowsperstrip=2
    )

    with TiffSource.open(path) as source:
        rows = [source.read_scanline(y) for y in range(5)]

    interleaved = np.moveaxis(planes, 0, -1)
    assert rows == [interleaved[y].tobytes() for y in range(5)]


def test_tiled_image_rows(tmp_path):
    data = np.arange(20 * 40, dtype=np.uint16).reshape(20, 40)
    path = _write_tiff(tmp_path / "tiled.tif", data, photometric="minisblack", tile=(16, 16))

    with TiffSource.open(path) as source:
        assert source.band_height == 16
        rows = [source.read_scanline(y) for y in range(20)]

    assert rows == [data[y].astype("=u2").tobytes() for y in range(20)]


def test_corrupt_strip_reports_its_row(tmp_path, monkeypatch):
    data = np.ones((8, 4), dtype=np.uint8)
    path = _write_tiff(tmp_path / "g.tif", data, photometric="minisblack", rowsperstrip=1)

    original = TiffSource._read_segment

    def truncated(self, index):
        segment = original(self, index)
        return segment[:1] if index == 5 else segment

    monkeypatch.setattr(TiffSource, "_read_segment", truncated)

    with TiffSource.open(path) as source:
        for y in range(5):
            assert source.read_scanline(y) == bytes([1, 1, 1, 1])
        with pytest.raises(SourceReadFailed) as exc:
            source.read_scanline(5)
    assert exc.value.row == 5


@pytest.mark.parametrize(
    "data,kwargs,expected",
    [
        (
            np.asarray([[0x0100, 0xFFFF]], dtype=np.uint16),
            {"photometric": "minisblack"},
            [0xFF010101, 0xFFFFFFFF],
        ),
        (
            np.asarray([[[0x11, 0x80], [0x22, 0x00]]], dtype=np.uint8),
            {"photometric": "minisblack", "extrasamples": ["unassalpha"], "planarconfig": "contig"},
            [0x80111111, 0x00222222],
        ),
        (
            np.asarray([[[1, 2, 3, 4]]], dtype=np.uint8),
            {"photometric": "rgb", "extrasamples": ["unassalpha"]},
            [0x04010203],
        ),
        (
            np.asarray([[True, False]]),
            {"photometric": "minisblack"},
            [0xFFFFFFFF, 0xFF000000],
        ),
        (
            np.asarray([[True, False]]),
            {"photometric": "miniswhite"},
            [0xFF000000, 0xFFFFFFFF],
        ),
    ],
    ids=["gray16", "gray_alpha8", "rgba8", "bilevel", "bilevel_min_is_white"],
)
def test_rgba_raster_from_decoded_samples(tmp_path, data, kwargs, expected):
    path = _write_tiff(tmp_path / "n.tif", data, **kwargs)

    with TiffSource.open(path) as source:
        raster = source.rgba_raster()

    assert raster.dtype == np.uint32
    assert [int(v) for v in raster.ravel()] == expected


def test_rgba_raster_falls_back_to_pillow_for_palette(tmp_path):
    colormap = np.zeros((3, 256), dtype=np.uint16)
    colormap[1, 1] = 65535
    path = _write_tiff(
        tmp_path / "pal.tif", np.asarray([[0, 1]], dtype=np.uint8), photometric="palette", colormap=colormap
    )

    with TiffSource.open(path) as source:
        raster = source.rgba_raster()

    assert [int(v) for v in raster.ravel()] == [0xFF000000, 0xFF00FF00]


def test_to_rgba8_stretches_subbyte_gray():
    rgba = to_rgba8(np.asarray([[0], [1], [3]]), photometric=Photometric.MIN_IS_BLACK, bits_per_sample=2)
    assert rgba[:, 0].tolist() == [0, 85, 255]
    assert rgba[:, 3].tolist() == [255, 255, 255]
