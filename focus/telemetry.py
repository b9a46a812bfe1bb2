"""Focus-time telemetry: delta accounting and a durable retry queue."""
import logging
import time
from typing import Callable, Iterable, List, Optional

from focus.models import (
    STATUS_QUEUED,
    STATUS_SENT,
    STATUS_SKIPPED,
    CheckpointResult,
    FlushResult,
    QueueEntry,
    TelemetryDelta,
)
from remote.api_client import RemoteClient
from storage.base import PersistentStore, atomic_update

logger = logging.getLogger(__name__)

RETRY_QUEUE_KEY = 'telemetry.retryQueue'
TOTAL_FOCUS_TIME_KEY = 'telemetry.totalFocusTime'
FOCUS_SESSIONS_ENDPOINT = '/focus-sessions'


def format_focus_total(seconds: int) -> str:
    """Render cumulative focus time as HH:MM for profile statistics."""
    seconds = max(0, int(seconds))
    hours, remainder = divmod(seconds, 3600)
    return f"{hours:02d}:{remainder // 60:02d}"


class RetryQueue:
    """
    Durable, ordered queue of telemetry payloads that failed to send.

    Every change is an optimistic read-modify-write of the whole queue, so an
    append racing a flush cannot drop either update.
    """

    def __init__(
        self,
        store: PersistentStore,
        key: str = RETRY_QUEUE_KEY,
        wall_clock: Callable[[], float] = time.time
    ):
        self.store = store
        self.key = key
        self._wall_clock = wall_clock

    def entries(self) -> List[QueueEntry]:
        """Current queue contents in enqueue order."""
        items = self.store.get(self.key) or []
        return [QueueEntry.from_item(item) for item in items]

    def append(self, payload: dict) -> QueueEntry:
        """
        Append a payload tagged with a unique enqueue timestamp.

        Returns:
            The entry as stored

        Raises:
            LocalStoreFailure: If the store write fails
        """
        appended = []

        def _append(current):
            items = list(current or [])
            timestamp = int(self._wall_clock() * 1000)
            if items:
                # Timestamps identify entries, keep them strictly increasing
                timestamp = max(timestamp, int(items[-1]['enqueueTimestamp']) + 1)
            entry = QueueEntry(payload=dict(payload), enqueue_timestamp=timestamp)
            appended[:] = [entry]
            items.append(entry.to_item())
            return items

        atomic_update(self.store, self.key, _append)
        entry = appended[0]
        logger.info(
            f"Queued telemetry payload for retry (enqueued at {entry.enqueue_timestamp})"
        )
        return entry

    def remove(self, timestamps: Iterable[int]) -> int:
        """
        Remove entries by enqueue timestamp; entries appended meanwhile survive.

        Returns:
            Number of entries removed
        """
        doomed = set(timestamps)
        if not doomed:
            return 0
        removed = []

        def _remove(current):
            items = list(current or [])
            remaining = [
                item for item in items
                if int(item['enqueueTimestamp']) not in doomed
            ]
            removed[:] = [len(items) - len(remaining)]
            return remaining

        atomic_update(self.store, self.key, _remove)
        return removed[0]

    def __len__(self) -> int:
        return len(self.store.get(self.key) or [])


class SessionTelemetry:
    """
    Reports focus time for one (user, project) pair as incremental deltas.

    The acknowledged baseline only advances on confirmed remote success, so
    a failed delta is re-derived at the next checkpoint. It is also queued
    durably right away, so recovery does not depend on the session running.
    """

    def __init__(
        self,
        store: PersistentStore,
        client: RemoteClient,
        user_id: str,
        project_id: str,
        endpoint: str = FOCUS_SESSIONS_ENDPOINT,
        retry_queue: Optional[RetryQueue] = None
    ):
        self.store = store
        self.client = client
        self.user_id = user_id
        self.project_id = project_id
        self.endpoint = endpoint
        self.retry_queue = retry_queue or RetryQueue(store)
        self.last_acknowledged_seconds = 0

    def checkpoint(self, total_elapsed_seconds: int) -> CheckpointResult:
        """
        Submit focus time accumulated since the last acknowledged checkpoint.

        Args:
            total_elapsed_seconds: Total session focus time so far

        Returns:
            CheckpointResult with status sent, queued or skipped
        """
        total_elapsed_seconds = int(total_elapsed_seconds)
        delta = total_elapsed_seconds - self.last_acknowledged_seconds
        if delta <= 0:
            logger.debug(
                f"Nothing to report for project {self.project_id} "
                f"({total_elapsed_seconds}s, acknowledged {self.last_acknowledged_seconds}s)"
            )
            return CheckpointResult(status=STATUS_SKIPPED)

        payload = TelemetryDelta(
            user_id=self.user_id,
            project_id=self.project_id,
            seconds=delta
        ).to_payload()

        result = self.client.submit(self.endpoint, payload)

        if result.success:
            self.last_acknowledged_seconds = total_elapsed_seconds
            self._add_focus_time(delta)
            logger.info(
                f"Reported {delta}s of focus for user {self.user_id} "
                f"in project {self.project_id}"
            )
            return CheckpointResult(status=STATUS_SENT, delta=delta)

        logger.warning(
            f"Failed to report {delta}s of focus for project {self.project_id}: "
            f"{result.error}"
        )
        self.retry_queue.append(payload)
        return CheckpointResult(status=STATUS_QUEUED, delta=delta, error=result.error)

    def flush_retry_queue(self) -> FlushResult:
        """
        Resubmit every queued payload; drop only the ones that succeeded.

        Returns:
            FlushResult with succeeded and failed counts
        """
        return flush_retry_queue(self.client, self.retry_queue, self.endpoint)

    def total_focus_time(self) -> int:
        """Cumulative acknowledged focus seconds on this device."""
        return int(self.store.get(TOTAL_FOCUS_TIME_KEY) or 0)

    def _add_focus_time(self, seconds: int) -> None:
        atomic_update(
            self.store,
            TOTAL_FOCUS_TIME_KEY,
            lambda current: int(current or 0) + seconds
        )


def flush_retry_queue(
    client: RemoteClient,
    retry_queue: RetryQueue,
    endpoint: str = FOCUS_SESSIONS_ENDPOINT
) -> FlushResult:
    """
    Replay a retry queue against the backend.

    Entries are matched for removal by enqueue timestamp, never by content,
    since two deltas may be identical. Failures stay queued in order.
    """
    entries = retry_queue.entries()
    if not entries:
        return FlushResult(succeeded=0, failed=0)

    logger.info(f"Flushing {len(entries)} queued telemetry payloads")
    delivered = []
    failed = 0

    for entry in entries:
        result = client.submit(endpoint, entry.payload)
        if result.success:
            delivered.append(entry.enqueue_timestamp)
        else:
            failed += 1
            logger.warning(
                f"Retry of entry {entry.enqueue_timestamp} failed: {result.error}"
            )

    retry_queue.remove(delivered)
    logger.info(f"Flush complete: {len(delivered)} delivered, {failed} still queued")
    return FlushResult(succeeded=len(delivered), failed=failed)
