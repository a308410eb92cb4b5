"""Append-only, arrival-ordered feed store.

This is the only component allowed to add entries to the conversation
view. Both the push channel and local echoes go through :meth:`FeedStore.append`.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable, Iterator

from pycarfeed.models.feed import FeedEntry

_logger = logging.getLogger(__name__)

FeedSubscriber = Callable[[FeedEntry], None]


class FeedStore:
    """In-memory feed of :class:`FeedEntry` items.

    Entries are kept in append order and stamped with a strictly increasing
    ``sequence_key`` starting at 1. Embedded timestamps are carried but never
    used for ordering, so device/server clock skew cannot reorder the view.
    No deduplication: the same event arriving twice yields two entries.
    """

    def __init__(self) -> None:
        self._entries: list[FeedEntry] = []
        self._sequence = itertools.count(1)
        self._subscribers: list[FeedSubscriber] = []

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[FeedEntry]:
        return iter(self.snapshot())

    @property
    def last_sequence_key(self) -> int | None:
        if not self._entries:
            return None
        return self._entries[-1].sequence_key

    def append(self, entry: FeedEntry) -> int:
        """Stamp *entry* with the next sequence key, store it, notify subscribers."""
        key = next(self._sequence)
        stamped = entry.model_copy(update={"sequence_key": key})
        self._entries.append(stamped)
        _logger.debug(
            "Feed append seq=%d origin=%s car=%s image=%s",
            key,
            stamped.origin,
            stamped.car_identifier,
            stamped.image_ref,
        )

        for callback in list(self._subscribers):
            try:
                callback(stamped)
            except Exception:
                _logger.warning("Feed subscriber %r failed for seq=%d", callback, key, exc_info=True)
        return key

    def snapshot(self) -> tuple[FeedEntry, ...]:
        """All entries in append order."""
        return tuple(self._entries)

    def subscribe(self, callback: FeedSubscriber) -> Callable[[], None]:
        """Call *callback* with every appended entry. Returns an unsubscribe function."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe
