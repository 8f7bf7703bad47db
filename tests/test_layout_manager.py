import pytest

from layout_manager import LayoutManager
from models import VIEW_CUSTOM, VIEW_QUAD, VIEW_SINGLE


@pytest.fixture()
def warnings():
    return []


@pytest.fixture()
def layout(session, warnings):
    return LayoutManager(session, on_all_hidden=lambda: warnings.append(True))


def test_remove_scenario(layout, session, warnings):
    assert session.view_mode == VIEW_QUAD
    assert layout.visible_count() == 4

    layout.remove_slot(2)
    assert session.view_mode == VIEW_CUSTOM
    assert layout.visible_indices() == [0, 1, 3]
    assert layout.grid_shape() == (2, 2)
    assert layout.cell_positions() == {0: (0, 0), 1: (0, 1), 3: (1, 0)}

    layout.remove_slot(0)
    layout.remove_slot(1)
    assert warnings == []
    layout.remove_slot(3)
    assert layout.visible_count() == 0
    assert layout.all_hidden
    assert warnings == [True]
    assert layout.slots_to_draw() == []


def test_warning_once_per_transition(layout, warnings):
    for i in range(4):
        layout.remove_slot(i)
    layout.remove_slot(1)
    assert warnings == [True]

    layout.show_slot(1)
    assert not layout.all_hidden
    layout.remove_slot(1)
    assert warnings == [True, True]


def test_removing_hidden_slot_is_noop(layout, session):
    layout.remove_slot(1)
    session.view_mode = VIEW_SINGLE
    layout.remove_slot(1)
    assert session.view_mode == VIEW_SINGLE


def test_removing_active_slot_moves_focus(layout, session):
    session.active_slot = 0
    layout.remove_slot(0)
    assert session.active_slot == 1
    session.active_slot = 3
    layout.remove_slot(1)
    assert session.active_slot == 3


def test_active_slot_kept_when_none_remain(layout, session):
    for i in (1, 2, 3):
        layout.remove_slot(i)
    layout.remove_slot(0)
    assert session.active_slot == 0


def test_grid_shapes(layout, session):
    layout.remove_slot(0)
    layout.remove_slot(1)
    assert layout.grid_shape() == (1, 2)
    assert layout.cell_positions() == {2: (0, 0), 3: (0, 1)}
    layout.remove_slot(2)
    assert layout.grid_shape() == (1, 1)
    layout.remove_slot(3)
    assert layout.grid_shape() == (2, 2)


def test_removal_overrides_single_mode(layout, session):
    layout.set_view_mode(VIEW_SINGLE)
    layout.remove_slot(3)
    assert session.view_mode == VIEW_CUSTOM


def test_single_mode_draws_active_slot(layout, session):
    session.active_slot = 2
    layout.set_view_mode(VIEW_SINGLE)
    assert layout.slots_to_draw() == [2]
    assert layout.grid_shape() == (1, 1)
    assert layout.cell_positions() == {2: (0, 0)}


def test_quad_mode_restores_all_slots(layout, session):
    layout.remove_slot(1)
    layout.remove_slot(2)
    layout.set_view_mode(VIEW_QUAD)
    assert layout.visible_count() == 4
    assert layout.slots_to_draw() == [0, 1, 2, 3]


def test_show_slot_returns_to_quad(layout, session):
    layout.remove_slot(2)
    layout.show_slot(2)
    assert session.view_mode == VIEW_QUAD


def test_unknown_view_mode(layout):
    with pytest.raises(ValueError):
        layout.set_view_mode("mosaic")


def test_single_mode_with_everything_hidden_draws_nothing(layout, session):
    for i in range(4):
        layout.remove_slot(i)
    layout.set_view_mode(VIEW_SINGLE)
    assert layout.slots_to_draw() == []
    assert layout.cell_positions() == {}
