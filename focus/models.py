"""Data models for focus sessions and telemetry."""
from dataclasses import dataclass
from typing import Optional

STATUS_SENT = 'sent'
STATUS_QUEUED = 'queued'
STATUS_SKIPPED = 'skipped'


@dataclass
class TelemetryDelta:
    """Focus seconds not yet acknowledged by the backend."""
    user_id: str
    project_id: str
    seconds: int

    def to_payload(self) -> dict:
        return {
            'userId': self.user_id,
            'projectId': self.project_id,
            'focusSeconds': self.seconds
        }

    @classmethod
    def from_payload(cls, payload: dict) -> 'TelemetryDelta':
        return cls(
            user_id=payload['userId'],
            project_id=payload['projectId'],
            seconds=int(payload['focusSeconds'])
        )


@dataclass
class QueueEntry:
    """Retry queue item; enqueue_timestamp (epoch ms) is its identity."""
    payload: dict
    enqueue_timestamp: int

    def to_item(self) -> dict:
        return {
            'payload': self.payload,
            'enqueueTimestamp': self.enqueue_timestamp
        }

    @classmethod
    def from_item(cls, item: dict) -> 'QueueEntry':
        return cls(
            payload=item['payload'],
            enqueue_timestamp=int(item['enqueueTimestamp'])
        )


@dataclass
class CheckpointResult:
    """Result of a telemetry checkpoint."""
    status: str
    delta: int = 0
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status != STATUS_QUEUED


@dataclass
class FlushResult:
    """Result of replaying the retry queue."""
    succeeded: int
    failed: int
