from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from modreq.modreq_datatypes import CacheEntry, CyclicRequireError, EntryState

LOGGER = logging.getLogger("modreq.cache")


class ModuleCache:
    """
    Canonical id -> module state, with at-most-once evaluation.

    Each entry moves absent -> pending -> resolved | failed exactly once and
    is never evicted. A single re-entrant lock is held for the whole load, so:
      - two threads asking for the same unseen id cannot both load it; the
        second waits and sees the settled entry,
      - a require cycle in the loading thread re-enters the lock and finds the
        entry pending, which yields the partial exports instead of recursing.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._entries: Dict[str, CacheEntry] = {}

    def get_or_load(self, id: str, load_fn: Callable[[], Any],
                    partial: Optional[Callable[[], Any]] = None) -> Any:
        entry = self._entries.get(id)
        if entry is not None and entry.state is EntryState.RESOLVED:
            LOGGER.debug("cache hit %s", id)
            return entry.value

        with self._lock:
            entry = self._entries.get(id)
            if entry is None:
                return self._load(id, load_fn, partial)

            match entry.state:
                case EntryState.RESOLVED:
                    LOGGER.debug("cache hit %s", id)
                    return entry.value
                case EntryState.FAILED:
                    LOGGER.debug("cached failure %s", id)
                    raise entry.error.with_traceback(entry.traceback)
                case EntryState.PENDING:
                    # Only the loading thread can get here: it holds the lock.
                    if entry.partial is None:
                        raise CyclicRequireError(id)
                    LOGGER.debug("cyclic require of %s, returning partial exports", id)
                    return entry.partial()

    def _load(self, id: str, load_fn: Callable[[], Any],
              partial: Optional[Callable[[], Any]]) -> Any:
        entry = CacheEntry(id, partial=partial)
        self._entries[id] = entry
        LOGGER.debug("loading %s", id)
        try:
            value = load_fn()
        except Exception as e:
            entry.fail(e)
            raise
        except BaseException:
            # Interrupted, not failed: forget the attempt.
            del self._entries[id]
            raise
        entry.resolve(value)
        return value

    def state(self, id: str) -> Optional[EntryState]:
        """Returns the entry state, or None when `id` was never requested."""
        entry = self._entries.get(id)
        return entry.state if entry is not None else None

    def peek(self, id: str) -> Any:
        """Returns the resolved value for `id` without loading; KeyError otherwise."""
        entry = self._entries.get(id)
        if entry is None or entry.state is not EntryState.RESOLVED:
            raise KeyError(id)
        return entry.value

    def ids(self) -> List[str]:
        return list(self._entries)

    def __contains__(self, id: object) -> bool:
        return id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self):
        return f"<ModuleCache entries={len(self._entries)}>"
