"""
Run and instance task tracking.

A Run represents one evaluation of the whole instance graph.
An InstanceTask tracks a single instance through
PENDING -> READY -> RUNNING -> DONE | FAILED.
"""

import time
import uuid
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from modtree.core.types import InstanceId
from modtree.exceptions import InternalError


class RunStatus(StrEnum):
    """Run status."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class InstanceState(StrEnum):
    """Instance evaluation state."""

    PENDING = "pending"  # Waiting for dependencies
    READY = "ready"  # Dependencies done, waiting for a worker
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


# Allowed transitions; FAILED is reachable from PENDING for dependents of a failure
_TRANSITIONS: dict[InstanceState, set[InstanceState]] = {
    InstanceState.PENDING: {InstanceState.READY, InstanceState.FAILED},
    InstanceState.READY: {InstanceState.RUNNING, InstanceState.FAILED},
    InstanceState.RUNNING: {InstanceState.DONE, InstanceState.FAILED},
    InstanceState.DONE: set(),
    InstanceState.FAILED: set(),
}


@dataclass
class InstanceTask:
    """Tracks the evaluation of a single instance within a run."""

    instance_id: InstanceId
    state: InstanceState = InstanceState.PENDING

    # Timing
    enqueued_at: float | None = None
    started_at: float | None = None
    completed_at: float | None = None

    # Errors
    error: Exception | None = None
    skipped_reason: str | None = None  # e.g. 'upstream_failed'

    def _transition(self, state: InstanceState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise InternalError(f"Instance '{self.instance_id}' cannot move from {self.state} to {state}")
        self.state = state

    def mark_ready(self) -> None:
        """Mark task as ready to execute (dependencies satisfied)."""
        self._transition(InstanceState.READY)
        self.enqueued_at = time.time()

    def start(self) -> None:
        """Mark task as started."""
        self._transition(InstanceState.RUNNING)
        self.started_at = time.time()

    def complete(self) -> None:
        self._transition(InstanceState.DONE)
        self.completed_at = time.time()

    def fail(self, error: Exception, skipped_reason: str | None = None) -> None:
        self._transition(InstanceState.FAILED)
        self.error = error
        self.skipped_reason = skipped_reason
        self.completed_at = time.time()

    @property
    def is_terminal(self) -> bool:
        return self.state in (InstanceState.DONE, InstanceState.FAILED)

    def get_duration(self) -> float | None:
        """Get task duration in seconds."""
        if self.started_at and self.completed_at:
            return self.completed_at - self.started_at
        elif self.started_at:
            return time.time() - self.started_at
        return None

    def get_summary(self) -> dict[str, Any]:
        """Get task summary."""
        return {
            "instance": str(self.instance_id),
            "state": self.state.value,
            "duration": self.get_duration(),
            "error": str(self.error) if self.error is not None else None,
            "skipped_reason": self.skipped_reason,
        }


@dataclass
class Run:
    """One evaluation of the instance graph."""

    run_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: RunStatus = RunStatus.PENDING
    started_at: float | None = None
    completed_at: float | None = None

    tasks: dict[InstanceId, InstanceTask] = field(default_factory=dict)

    def start(self) -> None:
        """Mark run as started."""
        self.status = RunStatus.RUNNING
        self.started_at = time.time()

    def complete(self, success: bool = True) -> None:
        """Mark run as completed."""
        self.status = RunStatus.COMPLETED if success else RunStatus.FAILED
        self.completed_at = time.time()

    def in_state(self, state: InstanceState) -> list[InstanceId]:
        return [i for i, t in self.tasks.items() if t.state == state]

    def get_duration(self) -> float | None:
        """Get run duration in seconds."""
        if self.started_at and self.completed_at:
            return self.completed_at - self.started_at
        elif self.started_at:
            return time.time() - self.started_at
        return None

    def get_summary(self) -> dict[str, Any]:
        """Get run summary statistics."""
        return {
            "run_id": self.run_id,
            "status": self.status.value,
            "total": len(self.tasks),
            "done": len(self.in_state(InstanceState.DONE)),
            "failed": len(self.in_state(InstanceState.FAILED)),
            "skipped": sum(1 for t in self.tasks.values() if t.skipped_reason is not None),
            "duration": self.get_duration(),
        }
