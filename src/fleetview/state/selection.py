"""Selection controller.

Owns the operator's focus: at most one selected unit id. No other
component writes it; readers get a :class:`SelectionReader` view.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Collection
from typing import Protocol

from fleetview.config import SelectionPolicy
from fleetview.exceptions import UnknownUnitError

_logger = logging.getLogger(__name__)

SelectionListener = Callable[[str | None], None]


class SelectionReader(Protocol):
    """Read-only access to the current selection."""

    @property
    def selected(self) -> str | None: ...


class SelectionController:
    """Single-selection state machine.

    ``is_known`` reports whether a unit id is in the current record set;
    selecting an unknown unit is rejected so a selection always referred to
    a live unit at the time it was made.
    """

    def __init__(
        self,
        *,
        policy: SelectionPolicy = SelectionPolicy.RETAIN,
        is_known: Callable[[str], bool] | None = None,
    ) -> None:
        self._policy = policy
        self._is_known = is_known
        self._selected: str | None = None
        self._listeners: list[SelectionListener] = []

    @property
    def selected(self) -> str | None:
        return self._selected

    @property
    def policy(self) -> SelectionPolicy:
        return self._policy

    def add_listener(self, listener: SelectionListener) -> Callable[[], None]:
        """Register a change listener; returns a function that removes it."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def toggle(self, unit_id: str) -> str | None:
        """Deselect if *unit_id* is selected, otherwise select it."""
        if self._selected == unit_id:
            self._set(None)
            return None
        if self._is_known is not None and not self._is_known(unit_id):
            raise UnknownUnitError(unit_id)
        self._set(unit_id)
        return unit_id

    def clear(self) -> None:
        self._set(None)

    def reconcile_membership(self, unit_ids: Collection[str]) -> None:
        """Apply the selection policy after the record set changed."""
        if self._selected is None or self._selected in unit_ids:
            return
        if self._policy == SelectionPolicy.AUTO_CLEAR:
            _logger.debug("Selected unit %s left the tracking set; clearing", self._selected)
            self._set(None)
        else:
            _logger.debug("Selected unit %s left the tracking set; retaining", self._selected)

    def _set(self, value: str | None) -> None:
        if value == self._selected:
            return
        self._selected = value
        for listener in list(self._listeners):
            listener(value)
