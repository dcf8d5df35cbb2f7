import pytest

from so2view.services.color_stops import (
    ColorScale,
    ColorStop,
    InvalidArgumentError,
    flatten_stops,
    generate_stops,
)


def test_rdbu_example_clamps_first_stop_to_min() -> None:
    stops = generate_stops("RdBu", 1, 20, 11)

    assert len(stops) == 11
    assert [stop.value for stop in stops] == [1, 2, 4, 6, 8, 10, 12, 14, 16, 18, 20]
    assert stops[0].color == (5, 10, 172, 0.5)
    assert stops[-1].color == (178, 10, 28, 0.5)


def test_min_at_or_above_spacing_keeps_zero_first_stop() -> None:
    stops = generate_stops("RdBu", 2, 20, 11)
    assert stops[0].value == 0.0

    stops = generate_stops("RdBu", 3.5, 20, 11)
    assert stops[0].value == 0.0
    assert stops[1].value == 2.0


def test_min_below_spacing_is_used_exactly() -> None:
    stops = generate_stops("RdBu", 0.1, 20, 11)
    assert stops[0].value == 0.1


@pytest.mark.parametrize(
    ("min_value", "max_value", "steps"),
    [(0, 1, 2), (1, 20, 11), (0.1, 20, 11), (5, 7, 3), (0, 100, 64), (30, 40, 5)],
)
def test_stop_count_and_ordering(min_value: float, max_value: float, steps: int) -> None:
    stops = generate_stops("bluered", min_value, max_value, steps)
    values = [stop.value for stop in stops]

    assert len(stops) == steps
    assert all(b >= a for a, b in zip(values[1:], values[2:]))
    assert values[0] >= 0
    assert values[-1] == pytest.approx(max_value)


def test_alpha_is_configurable() -> None:
    stops = generate_stops("RdBu", 1, 20, 11, alpha=0.6)
    assert {stop.color[3] for stop in stops} == {0.6}


def test_palette_lookup_is_case_insensitive() -> None:
    assert generate_stops("rdbu", 1, 20, 11) == generate_stops("RdBu", 1, 20, 11)


@pytest.mark.parametrize(
    ("palette", "min_value", "max_value", "steps", "alpha"),
    [
        ("RdBu", 1, 20, 1, 0.5),
        ("RdBu", 1, 20, 0, 0.5),
        ("RdBu", 1, 20, 5, 0.5),
        ("RdBu", -1, 20, 11, 0.5),
        ("RdBu", 20, 20, 11, 0.5),
        ("RdBu", 1, 20, 11, 1.5),
        ("", 1, 20, 11, 0.5),
        ("not-a-palette", 1, 20, 11, 0.5),
    ],
)
def test_invalid_arguments_raise(palette, min_value, max_value, steps, alpha) -> None:
    with pytest.raises(InvalidArgumentError):
        generate_stops(palette, min_value, max_value, steps, alpha=alpha)


def test_invalid_argument_is_a_value_error() -> None:
    with pytest.raises(ValueError):
        generate_stops("RdBu", 1, 20, 1)


def test_color_scale_and_flatten_agree() -> None:
    scale = ColorScale(palette="RdBu", min_value=1, max_value=20, steps=11, alpha=0.5)
    stops = scale.stops()

    assert stops == generate_stops("RdBu", 1, 20, 11, alpha=0.5)
    flat = flatten_stops(stops)
    assert len(flat) == 22
    assert flat[0] == 1
    assert flat[1] == [5, 10, 172, 0.5]
    assert flat[-2] == 20


def test_css_color() -> None:
    stop = ColorStop(value=1.0, color=(5, 10, 172, 0.5))
    assert stop.css() == "rgba(5, 10, 172, 0.5)"
