"""Persistent key-value store contract and an in-memory implementation."""
import json
import logging
from threading import Lock
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)


class LocalStoreFailure(RuntimeError):
    """Raised when the persistent store cannot be read or written."""


class PersistentStore(Protocol):
    """Durable key-value storage used by the availability and focus engines.

    ``version`` 0 means the key is absent. Versions increase by one on every
    successful write, which lets callers do optimistic read-modify-write
    through ``compare_and_set``.
    """

    def get(self, key: str) -> Optional[Any]:
        ...

    def set(self, key: str, value: Any) -> None:
        ...

    def enumerate(self, prefix: str) -> List[str]:
        ...

    def get_versioned(self, key: str) -> Tuple[Optional[Any], int]:
        ...

    def compare_and_set(self, key: str, value: Any, expected_version: int) -> bool:
        ...


class InMemoryStore:
    """Dict-backed store for local runs and tests."""

    def __init__(self):
        self._items: Dict[str, Tuple[str, int]] = {}
        self._lock = Lock()

    def get(self, key: str) -> Optional[Any]:
        value, _ = self.get_versioned(key)
        return value

    def set(self, key: str, value: Any) -> None:
        payload = self._encode(key, value)
        with self._lock:
            _, version = self._items.get(key, (None, 0))
            self._items[key] = (payload, version + 1)

    def enumerate(self, prefix: str) -> List[str]:
        with self._lock:
            return sorted(key for key in self._items if key.startswith(prefix))

    def get_versioned(self, key: str) -> Tuple[Optional[Any], int]:
        with self._lock:
            if key not in self._items:
                return None, 0
            payload, version = self._items[key]
        return json.loads(payload), version

    def compare_and_set(self, key: str, value: Any, expected_version: int) -> bool:
        payload = self._encode(key, value)
        with self._lock:
            _, version = self._items.get(key, (None, 0))
            if version != expected_version:
                logger.debug(
                    f"Version conflict on '{key}': expected {expected_version}, "
                    f"found {version}"
                )
                return False
            self._items[key] = (payload, version + 1)
            return True

    @staticmethod
    def _encode(key: str, value: Any) -> str:
        try:
            return json.dumps(value)
        except (TypeError, ValueError) as e:
            raise LocalStoreFailure(f"Value for '{key}' is not serializable: {e}") from e


def atomic_update(
    store: PersistentStore,
    key: str,
    mutate: Callable[[Optional[Any]], Any],
    max_attempts: int = 10
) -> Any:
    """
    Read-modify-write a key with optimistic concurrency.

    ``mutate`` receives the current value (None if absent) and returns the
    replacement. It may be called several times and must not have side effects.

    Args:
        store: Store supporting get_versioned/compare_and_set
        key: Key to update
        mutate: Function from current value to new value
        max_attempts: Conflicts tolerated before giving up

    Returns:
        The value that was written

    Raises:
        LocalStoreFailure: If every attempt lost the race
    """
    for attempt in range(max_attempts):
        current, version = store.get_versioned(key)
        updated = mutate(current)
        if store.compare_and_set(key, updated, version):
            return updated
        logger.info(
            f"Concurrent update on '{key}' (attempt {attempt + 1}/{max_attempts}), retrying"
        )

    raise LocalStoreFailure(
        f"Gave up updating '{key}' after {max_attempts} conflicting writes"
    )
