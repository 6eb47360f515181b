"""Per-key mutual exclusion for the checkout write paths.

Reservation arithmetic is serialized per product and order mutation per order
id. Locks are created lazily per key and always acquired in sorted order, so
two callers asking for overlapping key sets can never deadlock. A key's lock
is dropped from the registry once nobody holds or waits for it.
"""

import threading
from contextlib import contextmanager


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.users = 0


class KeyedLocks:
    def __init__(self) -> None:
        self._entries: dict[str, _Entry] = {}
        self._registry_lock = threading.Lock()

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._entries)

    def _checkout(self, key: str) -> _Entry:
        # Counted before acquiring so a waiter keeps the entry alive
        with self._registry_lock:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.users += 1
            return entry

    def _checkin(self, key: str, entry: _Entry) -> None:
        with self._registry_lock:
            entry.users -= 1
            if entry.users == 0 and self._entries.get(key) is entry:
                del self._entries[key]

    @contextmanager
    def hold(self, *keys: str):
        """Acquire the locks for every key (deduplicated, sorted) for the duration of the block."""
        ordered = sorted(set(keys))
        acquired: list[tuple[str, _Entry]] = []
        try:
            for key in ordered:
                entry = self._checkout(key)
                entry.lock.acquire()
                acquired.append((key, entry))
            yield
        finally:
            for key, entry in reversed(acquired):
                entry.lock.release()
                self._checkin(key, entry)

    def reset(self) -> None:
        with self._registry_lock:
            self._entries.clear()


def product_key(product_id) -> str:
    return f"product:{product_id}"


def order_key(order_id) -> str:
    return f"order:{order_id}"


def cart_key(user_id) -> str:
    return f"cart:{user_id}"


def idempotency_key(user_id, key) -> str:
    return f"idempotency:{user_id}:{key}"


def upstream_key(order_id) -> str:
    return f"upstream:{order_id}"


# Process-wide registry shared by the order, webhook and cancellation services
locks = KeyedLocks()
