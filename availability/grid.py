"""Per-member weekly availability grid."""
import logging
import random
import string
import time
from typing import Iterable, List, Set, Union

from availability.models import (
    DAYS_AHEAD,
    FIRST_HOUR,
    LAST_HOUR,
    InvalidIdentifier,
    InvalidSlotReference,
    TimeSlot,
)
from storage.base import PersistentStore, atomic_update

logger = logging.getLogger(__name__)

GRID_KEY_PREFIX = 'availability'
MEMBER_INDEX_PREFIX = 'availability-members'
USER_ID_KEY = 'profile.userId'
KEY_DELIMITER = ':'

SlotRef = Union[str, TimeSlot]


def validate_id(value: str, kind: str = 'id') -> str:
    """
    Check that an id can be embedded in a colon-delimited store key.

    Raises:
        InvalidIdentifier: If the id is empty, not a string or contains ':'
    """
    if not isinstance(value, str) or not value:
        raise InvalidIdentifier(f"Empty or non-string {kind}: {value!r}")
    if KEY_DELIMITER in value:
        raise InvalidIdentifier(f"{kind} {value!r} contains '{KEY_DELIMITER}'")
    return value


def grid_key(project_id: str, user_id: str) -> str:
    validate_id(project_id, 'project id')
    validate_id(user_id, 'user id')
    return f"{GRID_KEY_PREFIX}:{project_id}:{user_id}"


def project_prefix(project_id: str) -> str:
    validate_id(project_id, 'project id')
    return f"{GRID_KEY_PREFIX}:{project_id}:"


def member_index_key(project_id: str) -> str:
    validate_id(project_id, 'project id')
    return f"{MEMBER_INDEX_PREFIX}:{project_id}"


def generate_user_id() -> str:
    """Generate a per-device user id like ``user_1718000000000_k3j9x0a2b``."""
    alphabet = string.ascii_lowercase + string.digits
    suffix = ''.join(random.choice(alphabet) for _ in range(9))
    return f"user_{int(time.time() * 1000)}_{suffix}"


def resolve_user_id(store: PersistentStore) -> str:
    """
    Return this device's user id, creating and persisting one on first use.

    Args:
        store: Persistent store holding the profile

    Returns:
        User id string
    """
    existing = store.get(USER_ID_KEY)
    if existing:
        return existing

    def _claim(current):
        return current or generate_user_id()

    user_id = atomic_update(store, USER_ID_KEY, _claim)
    logger.info(f"Generated device user id {user_id}")
    return user_id


class AvailabilityGrid:
    """Slots one member marked as available for one project."""

    def __init__(self, project_id: str, user_id: str, slots: Iterable[SlotRef] = ()):
        """
        Raises:
            InvalidIdentifier: If either id contains the key delimiter
            InvalidSlotReference: If a slot key does not parse
        """
        self.project_id = validate_id(project_id, 'project id')
        self.user_id = validate_id(user_id, 'user id')
        self._slots: Set[TimeSlot] = {self._coerce(slot) for slot in slots}

    @staticmethod
    def all_slots() -> List[TimeSlot]:
        """Every cell of the grid in display order: hour rows, then day columns."""
        return [
            TimeSlot(day_offset=day, hour=hour)
            for hour in range(FIRST_HOUR, LAST_HOUR + 1)
            for day in range(DAYS_AHEAD)
        ]

    @property
    def slots(self) -> Set[TimeSlot]:
        return set(self._slots)

    @property
    def slot_keys(self) -> List[str]:
        """Selected slot keys in stable (day, hour) order."""
        return [slot.key for slot in sorted(self._slots)]

    def is_selected(self, slot: SlotRef) -> bool:
        return self._coerce(slot) in self._slots

    def toggle(self, slot: SlotRef) -> bool:
        """
        Flip membership of a slot. Local until commit().

        Args:
            slot: Slot key or TimeSlot

        Returns:
            True if the slot is now selected

        Raises:
            InvalidSlotReference: If the slot key does not parse
        """
        cell = self._coerce(slot)
        if cell in self._slots:
            self._slots.remove(cell)
            return False
        self._slots.add(cell)
        return True

    def commit(self, store: PersistentStore) -> None:
        """
        Persist the full slot set, replacing any previous grid (last writer wins),
        and register the member in the project's member index.

        Raises:
            LocalStoreFailure: If the store write fails
        """
        store.set(grid_key(self.project_id, self.user_id), self.slot_keys)

        def _register(current):
            members = list(current or [])
            if self.user_id not in members:
                members.append(self.user_id)
            return members

        atomic_update(store, member_index_key(self.project_id), _register)
        logger.info(
            f"Committed {len(self._slots)} slots for user {self.user_id} "
            f"in project {self.project_id}"
        )

    @classmethod
    def load(cls, store: PersistentStore, project_id: str, user_id: str) -> 'AvailabilityGrid':
        """
        Load a previously committed grid, or an empty one if none exists.

        Raises:
            LocalStoreFailure: If the store read fails
        """
        stored = store.get(grid_key(project_id, user_id)) or []
        grid = cls(project_id, user_id)
        for key in stored:
            try:
                grid._slots.add(TimeSlot.parse(key))
            except InvalidSlotReference as e:
                logger.warning(f"Skipping stored slot for user {user_id}: {e}")
        return grid

    @staticmethod
    def _coerce(slot: SlotRef) -> TimeSlot:
        if isinstance(slot, TimeSlot):
            return slot
        return TimeSlot.parse(slot)
