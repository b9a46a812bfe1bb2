"""Overlap aggregation and meeting slot resolution for team availability."""
import logging
from datetime import date, timedelta
from typing import Callable, Dict, List, Optional

from availability.grid import grid_key, member_index_key, project_prefix
from availability.models import (
    DAYS_AHEAD,
    NO_MEETING_LABEL,
    InvalidIdentifier,
    InvalidSlotReference,
    MeetingProposal,
    TimeSlot,
)
from remote.api_client import RemoteClient
from storage.base import PersistentStore

logger = logging.getLogger(__name__)

MAX_EMPHASIS_VOTES = 5
MIN_WEIGHT = 0.3


class OverlapAggregator:
    """Counts, per slot, how many members of a project are available."""

    def __init__(self, store: PersistentStore, use_member_index: bool = False):
        """
        Initialize the aggregator.

        Args:
            store: Persistent store holding committed grids
            use_member_index: Fetch grids through the project's member index
                instead of scanning the availability prefix
        """
        self.store = store
        self.use_member_index = use_member_index

    def aggregate(self, project_id: str) -> Dict[str, int]:
        """
        Build the vote map for a project.

        Every member who ever committed a grid is counted, active or not.

        Args:
            project_id: Project identifier

        Returns:
            Mapping of slot key to number of members selecting it
        """
        votes: Dict[str, int] = {}
        keys = self._grid_keys(project_id)

        for key in keys:
            stored = self.store.get(key)
            if stored is None:
                continue
            if not isinstance(stored, list):
                logger.warning(
                    f"Ignoring grid '{key}': expected a list of slots, "
                    f"got {type(stored).__name__}"
                )
                continue
            for slot_key in stored:
                try:
                    slot = TimeSlot.parse(slot_key)
                except InvalidSlotReference as e:
                    logger.warning(f"Ignoring stored slot in '{key}': {e}")
                    continue
                votes[slot.key] = votes.get(slot.key, 0) + 1

        logger.info(
            f"Aggregated {len(keys)} grids for project {project_id} "
            f"into {len(votes)} voted slots"
        )
        return votes

    def _grid_keys(self, project_id: str) -> List[str]:
        if self.use_member_index:
            members = self.store.get(member_index_key(project_id)) or []
            keys = []
            for user_id in members:
                try:
                    keys.append(grid_key(project_id, user_id))
                except InvalidIdentifier as e:
                    logger.warning(f"Ignoring member index entry: {e}")
            return keys
        return self.store.enumerate(project_prefix(project_id))


class MeetingSlotResolver:
    """Turns a vote map into one calendar-dated meeting proposal."""

    def __init__(self, today: Optional[Callable[[], date]] = None):
        self.today = today or date.today

    def best_slot(self, votes: Dict[str, int]) -> Optional[TimeSlot]:
        """
        Pick the slot with the highest count.

        Ties go to the earliest day offset, then the earliest hour.
        """
        best = None
        best_count = 0
        for slot_key, count in votes.items():
            try:
                slot = TimeSlot.parse(slot_key)
            except InvalidSlotReference as e:
                logger.warning(f"Ignoring vote for invalid slot: {e}")
                continue
            if count > best_count or (count == best_count and best is not None and slot < best):
                best, best_count = slot, count
        return best

    def resolve(
        self,
        votes: Dict[str, int],
        explicit: Optional[str] = None
    ) -> Optional[MeetingProposal]:
        """
        Resolve the best slot to an absolute date.

        Args:
            votes: Vote map from OverlapAggregator
            explicit: Meeting time already set on the project; wins over
                anything derived from votes

        Returns:
            MeetingProposal, or None when there is nothing to propose
        """
        if explicit:
            return MeetingProposal(
                slot=None,
                meeting_date=None,
                votes=0,
                explicit_label=explicit
            )

        slot = self.best_slot(votes)
        if slot is None:
            return None

        meeting_date = self.today() + timedelta(days=slot.day_offset)
        return MeetingProposal(
            slot=slot,
            meeting_date=meeting_date,
            votes=votes[slot.key]
        )


def cell_weight(count: int) -> float:
    """
    Heat-map intensity for a vote count.

    Zero votes get no emphasis (0.0); otherwise 0.3 .. 1.0, saturating at
    five votes.
    """
    if count <= 0:
        return 0.0
    clamped = min(count, MAX_EMPHASIS_VOTES)
    return MIN_WEIGHT + clamped / MAX_EMPHASIS_VOTES * (1.0 - MIN_WEIGHT)


def cell_color(count: int) -> Optional[str]:
    """CSS rgba() colour for a heat-map cell, or None for an empty cell."""
    if count <= 0:
        return None
    clamped = min(count, MAX_EMPHASIS_VOTES)
    green = max(100, 255 - clamped * 30)
    blue = max(100, 255 - clamped * 40)
    return f"rgba(255, {green}, {blue}, {round(cell_weight(count), 2)})"


def week_days(today: Optional[date] = None) -> List[date]:
    """Calendar dates covered by day offsets 0..6."""
    start = today or date.today()
    return [start + timedelta(days=offset) for offset in range(DAYS_AHEAD)]


def fetch_explicit_meeting(client: RemoteClient, project_id: str) -> Optional[str]:
    """
    Read an explicitly scheduled meeting from the project record.

    A failed read is not an error: the caller falls back to local data.
    """
    result = client.fetch(f"/projects/{project_id}")
    if not result.success:
        logger.warning(
            f"Could not read project {project_id}, using local availability only: "
            f"{result.error}"
        )
        return None
    if not isinstance(result.data, dict):
        return None

    explicit = result.data.get('nextMeeting')
    if not explicit or explicit == NO_MEETING_LABEL:
        return None
    return explicit


def next_meeting_label(
    project_id: str,
    store: PersistentStore,
    client: Optional[RemoteClient] = None,
    use_member_index: bool = False,
    today: Optional[Callable[[], date]] = None
) -> str:
    """
    Meeting time to show for a project.

    Explicit project meeting first, then the best voted slot, then the
    "0000-00-00 00:00" placeholder.
    """
    explicit = fetch_explicit_meeting(client, project_id) if client else None
    votes = OverlapAggregator(store, use_member_index=use_member_index).aggregate(project_id)
    proposal = MeetingSlotResolver(today=today).resolve(votes, explicit=explicit)
    return proposal.label if proposal else NO_MEETING_LABEL
