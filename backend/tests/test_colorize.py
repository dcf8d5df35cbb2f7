import numpy as np
import pytest

from so2view.services.color_stops import ColorScale
from so2view.services.colorize import float_to_rgba

SCALE = ColorScale(palette="RdBu", min_value=1, max_value=20, steps=11, alpha=0.5)


def test_transparent_below_min_nodata_and_nan() -> None:
    data = np.array([[0.0, 0.5, np.nan, 1.0]], dtype=np.float32)
    rgba, _ = float_to_rgba(data, SCALE)

    assert rgba.shape == (4, 1, 4)
    assert rgba.dtype == np.uint8
    np.testing.assert_array_equal(rgba[:, 0, 0], [0, 0, 0, 0])
    np.testing.assert_array_equal(rgba[:, 0, 1], [0, 0, 0, 0])
    np.testing.assert_array_equal(rgba[:, 0, 2], [0, 0, 0, 0])
    np.testing.assert_array_equal(rgba[:, 0, 3], [5, 10, 172, 128])


def test_values_above_max_clamp_to_last_color() -> None:
    data = np.array([[20.0, 35.0]], dtype=np.float32)
    rgba, meta = float_to_rgba(data, SCALE)

    np.testing.assert_array_equal(rgba[:, 0, 0], [178, 10, 28, 128])
    np.testing.assert_array_equal(rgba[:, 0, 1], [178, 10, 28, 128])
    assert meta["min"] == pytest.approx(20.0)
    assert meta["max"] == pytest.approx(35.0)


def test_midpoint_interpolates_between_stops() -> None:
    stops = SCALE.stops()
    data = np.array([[3.0]], dtype=np.float32)
    rgba, _ = float_to_rgba(data, SCALE)

    lo = np.array(stops[1].color[:3], dtype=float)
    hi = np.array(stops[2].color[:3], dtype=float)
    expected = np.rint((lo + hi) / 2).astype(np.uint8)
    np.testing.assert_array_equal(rgba[:3, 0, 0], expected)


def test_custom_nodata_and_meta_without_valid_pixels() -> None:
    data = np.full((2, 2), -9999.0)
    rgba, meta = float_to_rgba(data, SCALE, nodata=-9999.0)

    assert not rgba.any()
    assert meta["min"] is None
    assert meta["max"] is None
    assert len(meta["stops"]) == 11


def test_rejects_non_2d_input() -> None:
    with pytest.raises(ValueError):
        float_to_rgba(np.zeros((2, 2, 2)), SCALE)
