"""Data models for team availability."""
from dataclasses import dataclass
from datetime import date
from typing import Optional

FIRST_HOUR = 9
LAST_HOUR = 24
DAYS_AHEAD = 7

NO_MEETING_LABEL = '0000-00-00 00:00'


class InvalidSlotReference(ValueError):
    """Slot key that does not name a cell of the weekly grid."""


class InvalidIdentifier(ValueError):
    """Project or user id that cannot be embedded in a store key."""


@dataclass(frozen=True, order=True)
class TimeSlot:
    """One hour-of-day x day-offset cell, relative to "today".

    Ordering is by day offset, then hour.
    """
    day_offset: int
    hour: int

    def __post_init__(self):
        if not FIRST_HOUR <= self.hour <= LAST_HOUR:
            raise InvalidSlotReference(
                f"Hour {self.hour} outside {FIRST_HOUR}..{LAST_HOUR}"
            )
        if not 0 <= self.day_offset < DAYS_AHEAD:
            raise InvalidSlotReference(
                f"Day offset {self.day_offset} outside 0..{DAYS_AHEAD - 1}"
            )

    @property
    def time_label(self) -> str:
        return f"{self.hour:02d}:00"

    @property
    def key(self) -> str:
        """Composite key, e.g. "09:00-0"."""
        return f"{self.time_label}-{self.day_offset}"

    @classmethod
    def parse(cls, key: str) -> 'TimeSlot':
        """
        Parse a composite "HH:MM-dayOffset" key.

        Args:
            key: Slot key string

        Returns:
            TimeSlot

        Raises:
            InvalidSlotReference: If the key is malformed or out of range
        """
        if not isinstance(key, str):
            raise InvalidSlotReference(f"Slot key must be a string, got {key!r}")

        time_part, sep, day_part = key.partition('-')
        hour_part, colon, minute_part = time_part.partition(':')
        if not sep or not colon or minute_part != '00':
            raise InvalidSlotReference(f"Malformed slot key: {key!r}")
        if not (hour_part.isdigit() and len(hour_part) == 2 and day_part.isdigit()):
            raise InvalidSlotReference(f"Malformed slot key: {key!r}")

        return cls(day_offset=int(day_part), hour=int(hour_part))

    def __str__(self) -> str:
        return self.key


@dataclass
class MeetingProposal:
    """Single proposed meeting time for a project."""
    slot: Optional[TimeSlot]
    meeting_date: Optional[date]
    votes: int
    explicit_label: Optional[str] = None

    @property
    def is_explicit(self) -> bool:
        return self.explicit_label is not None

    @property
    def label(self) -> str:
        """Proposal rendered as "YYYY-MM-DD HH:MM"."""
        if self.explicit_label is not None:
            return self.explicit_label
        return f"{self.meeting_date.isoformat()} {self.slot.time_label}"
