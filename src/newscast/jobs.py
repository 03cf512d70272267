"""Generation job and its state machine.

A Job is the in-memory handle for one generation attempt. It is never
persisted; its outcome is written back onto the brief by the runner.

    pending -> processing -> generating -> uploading -> completed

failed and cancelled are reachable from any non-terminal state.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class JobState(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    GENERATING = "generating"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class Priority(str, Enum):
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {Priority.HIGH: 0, Priority.NORMAL: 1, Priority.LOW: 2}

# Success path, in order
_SUCCESS_PATH = [
    JobState.PENDING,
    JobState.PROCESSING,
    JobState.GENERATING,
    JobState.UPLOADING,
    JobState.COMPLETED,
]

TERMINAL_STATES = frozenset({JobState.COMPLETED, JobState.FAILED, JobState.CANCELLED})


class InvalidTransitionError(Exception):
    """Raised when a transition would move a job backwards or out of a terminal state."""

    def __init__(self, job_id: str, current: JobState, target: JobState):
        self.job_id = job_id
        self.current = current
        self.target = target
        super().__init__(f"Job {job_id}: cannot move from {current.value} to {target.value}")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def new_job_id() -> str:
    return uuid.uuid4().hex


@dataclass
class Job:
    """Execution handle for one generation of a brief."""

    brief_id: str
    id: str = field(default_factory=new_job_id)
    state: JobState = JobState.PENDING
    progress: int = 0
    retry_count: int = 0  # Chunk retries spent so far
    max_retries: int = 3  # Retries allowed per chunk
    webhook_url: Optional[str] = None
    priority: Priority = Priority.NORMAL
    publish_immediately: bool = False
    created_at: datetime = field(default_factory=_now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def is_cancelled(self) -> bool:
        return self.state == JobState.CANCELLED

    def advance(self, state: JobState, progress: Optional[int] = None) -> None:
        """Move forward along the success path.

        Raises:
            InvalidTransitionError: If the job is terminal or the target is not ahead
        """
        if state not in _SUCCESS_PATH or self.is_terminal:
            raise InvalidTransitionError(self.id, self.state, state)
        if _SUCCESS_PATH.index(state) <= _SUCCESS_PATH.index(self.state):
            raise InvalidTransitionError(self.id, self.state, state)

        self.state = state
        if state == JobState.PROCESSING and self.started_at is None:
            self.started_at = _now()
        if state == JobState.COMPLETED:
            self.completed_at = _now()
            progress = 100
        if progress is not None:
            self.set_progress(progress)

    def set_progress(self, progress: int) -> None:
        """Raise progress; lower values are ignored and cancelled jobs stay frozen."""
        if self.is_cancelled:
            return
        progress = max(0, min(100, int(progress)))
        if progress > self.progress:
            self.progress = progress

    def fail(self, message: str) -> None:
        if self.is_terminal:
            raise InvalidTransitionError(self.id, self.state, JobState.FAILED)
        self.state = JobState.FAILED
        self.error = message
        self.completed_at = _now()

    def cancel(self) -> None:
        if self.is_terminal:
            raise InvalidTransitionError(self.id, self.state, JobState.CANCELLED)
        self.state = JobState.CANCELLED
        self.completed_at = _now()

    def snapshot(self) -> dict[str, Any]:
        """Wire representation sent to observers."""
        return {
            "id": self.id,
            "briefId": self.brief_id,
            "state": self.state.value,
            "progress": self.progress,
            "retryCount": self.retry_count,
            "maxRetries": self.max_retries,
            "priority": self.priority.value,
            "error": self.error,
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
        }
