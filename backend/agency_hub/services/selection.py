"""Bulk-selection set for one view."""
import logging
from typing import FrozenSet, Iterable, Set

logger = logging.getLogger(__name__)


class SelectionManager:
    """
    Set of selected record keys, kept consistent across pages.

    Keys are the agency-qualified record keys (see Record.key), so the same
    upstream id from two agencies never collides.
    """

    def __init__(self):
        self._keys: Set[str] = set()

    @property
    def keys(self) -> FrozenSet[str]:
        return frozenset(self._keys)

    def __len__(self) -> int:
        return len(self._keys)

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    def toggle(self, key: str) -> bool:
        """Add or remove one key. Returns True if the key is now selected."""
        if key in self._keys:
            self._keys.discard(key)
            return False
        self._keys.add(key)
        return True

    def is_page_selected(self, page_keys: Iterable[str]) -> bool:
        page = list(page_keys)
        return bool(page) and all(k in self._keys for k in page)

    def is_all_matching_selected(self, matching_keys: Iterable[str]) -> bool:
        # Size equality alone is not enough: keys picked under an older filter
        # can have the same count as the current matching set.
        expected = set(matching_keys)
        return bool(expected) and len(self._keys) == len(expected) and expected <= self._keys

    def select_page(self, page_keys: Iterable[str]) -> None:
        """Toggle-all for the current page: deselect it if fully selected, else select it."""
        page = list(page_keys)
        if self.is_page_selected(page):
            self._keys.difference_update(page)
        else:
            self._keys.update(page)

    def select_all_matching(self, matching_keys: Iterable[str]) -> None:
        self._keys = set(matching_keys)

    def clear(self) -> None:
        self._keys.clear()

    def reconcile(self, current_keys: Iterable[str]) -> int:
        """Drop keys that no longer resolve to a record. Returns how many were dropped."""
        current = set(current_keys)
        stale = self._keys - current
        if stale:
            self._keys -= stale
            logger.debug(f"Dropped {len(stale)} stale selected keys")
        return len(stale)
