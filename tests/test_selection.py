from __future__ import annotations

import pytest

from fleetview.config import SelectionPolicy
from fleetview.exceptions import UnknownUnitError
from fleetview.state.selection import SelectionController


def test_toggle_same_unit_twice_returns_to_none() -> None:
    selection = SelectionController()

    assert selection.toggle("U1") == "U1"
    assert selection.toggle("U1") is None
    assert selection.selected is None


def test_toggle_other_unit_switches_selection() -> None:
    selection = SelectionController()

    selection.toggle("U1")
    selection.toggle("U2")

    assert selection.selected == "U2"


def test_unknown_unit_is_rejected() -> None:
    selection = SelectionController(is_known=lambda unit_id: unit_id == "U1")

    with pytest.raises(UnknownUnitError) as excinfo:
        selection.toggle("U9")

    assert excinfo.value.unit_id == "U9"
    assert selection.selected is None


def test_deselect_is_allowed_even_when_unit_vanished() -> None:
    known = {"U1"}
    selection = SelectionController(is_known=lambda unit_id: unit_id in known)
    selection.toggle("U1")
    known.clear()

    assert selection.toggle("U1") is None


def test_listeners_fire_only_on_change() -> None:
    seen: list[str | None] = []
    selection = SelectionController()
    remove = selection.add_listener(seen.append)

    selection.toggle("U1")
    selection.clear()
    selection.clear()
    remove()
    selection.toggle("U2")

    assert seen == ["U1", None]


def test_retain_policy_keeps_stale_selection() -> None:
    selection = SelectionController(policy=SelectionPolicy.RETAIN)
    selection.toggle("U1")

    selection.reconcile_membership({"U2"})

    assert selection.selected == "U1"


def test_auto_clear_policy_drops_stale_selection() -> None:
    selection = SelectionController(policy=SelectionPolicy.AUTO_CLEAR)
    selection.toggle("U1")

    selection.reconcile_membership({"U1", "U2"})
    assert selection.selected == "U1"

    selection.reconcile_membership({"U2"})
    assert selection.selected is None
