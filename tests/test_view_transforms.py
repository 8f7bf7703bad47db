import pytest

from view_transforms import (
    ZOOM_DECREASE, ZOOM_INCREASE, ZOOM_MAX, ZOOM_MIN, ZOOM_RESET, ViewTransformStore,
)


@pytest.fixture()
def transforms(session):
    return ViewTransformStore(session)


def test_defaults(transforms):
    t = transforms.get(0)
    assert (t.pan_x, t.pan_y, t.zoom, t.inverted) == (0.0, 0.0, 1.0, False)


def test_zoom_steps_follow_clamped_formula(transforms):
    expected = 1.0
    for action in [ZOOM_INCREASE] * 5 + [ZOOM_DECREASE] * 12 + [ZOOM_INCREASE] * 30:
        expected += 0.1 if action == ZOOM_INCREASE else -0.1
        expected = round(min(max(expected, ZOOM_MIN), ZOOM_MAX), 2)
        assert transforms.set_zoom(0, action) == expected


def test_zoom_clamps(transforms):
    for _ in range(40):
        transforms.set_zoom(1, ZOOM_INCREASE)
    assert transforms.get(1).zoom == ZOOM_MAX
    for _ in range(40):
        transforms.set_zoom(1, ZOOM_DECREASE)
    assert transforms.get(1).zoom == ZOOM_MIN


def test_zoom_reset_is_exact(transforms):
    for _ in range(7):
        transforms.set_zoom(2, ZOOM_INCREASE)
    assert transforms.set_zoom(2, ZOOM_RESET) == 1.0


def test_unknown_zoom_action(transforms):
    with pytest.raises(ValueError):
        transforms.set_zoom(0, "sideways")


def test_bad_slot_index(transforms):
    with pytest.raises(IndexError):
        transforms.set_zoom(4, ZOOM_INCREASE)


def test_pan_accumulates_and_is_unbounded(transforms):
    transforms.set_pan(3, 5, -7)
    transforms.set_pan(3, 10000, 2)
    t = transforms.get(3)
    assert (t.pan_x, t.pan_y) == (10005, -5)


def test_invert_toggles(transforms):
    assert transforms.toggle_invert(0) is True
    assert transforms.toggle_invert(0) is False


def test_slots_are_independent(transforms):
    transforms.set_zoom(0, ZOOM_INCREASE)
    transforms.set_pan(0, 3, 4)
    transforms.toggle_invert(0)
    other = transforms.get(1)
    assert (other.pan_x, other.pan_y, other.zoom, other.inverted) == (0.0, 0.0, 1.0, False)


def test_reset(transforms):
    transforms.set_zoom(2, ZOOM_INCREASE)
    transforms.set_pan(2, 1, 1)
    transforms.toggle_invert(2)
    transforms.reset(2)
    t = transforms.get(2)
    assert (t.pan_x, t.pan_y, t.zoom, t.inverted) == (0.0, 0.0, 1.0, False)
