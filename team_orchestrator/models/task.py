"""
Task module - Individual task structure and lifecycle transitions
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, Optional, Set

from .enums import TaskStatus, Complexity, ErrorKind
from team_orchestrator.utils.exceptions import InvalidStateTransitionError

# Allowed lifecycle moves; reassign() is the only way back to PENDING
_TRANSITIONS = {
    TaskStatus.PENDING: {TaskStatus.IN_PROGRESS, TaskStatus.FAILED, TaskStatus.BLOCKED},
    TaskStatus.IN_PROGRESS: {TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.BLOCKED, TaskStatus.PENDING},
    TaskStatus.BLOCKED: {TaskStatus.PENDING, TaskStatus.FAILED},
    TaskStatus.COMPLETED: set(),
    TaskStatus.FAILED: set(),
}

STARTED_PROGRESS = 5


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


@dataclass
class ErrorInfo:
    """Error kind plus context attached to failed tasks, messages and events."""
    kind: ErrorKind
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "message": self.message, "details": dict(self.details)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ErrorInfo":
        return cls(
            kind=ErrorKind(data["kind"]),
            message=data.get("message", ""),
            details=dict(data.get("details") or {}),
        )

    @classmethod
    def from_value(cls, error: Any, default_kind: ErrorKind = ErrorKind.TASK_FAILED) -> "ErrorInfo":
        """Normalize whatever a worker reported (ErrorInfo, dict, exception, str)."""
        if isinstance(error, ErrorInfo):
            return error
        if isinstance(error, dict):
            raw_kind = error.get("kind")
            details = dict(error.get("details") or {})
            try:
                kind = ErrorKind(raw_kind) if raw_kind else default_kind
            except ValueError:
                # workers may report kinds of their own; keep them as context
                kind = default_kind
                details["reported_kind"] = raw_kind
            return cls(kind=kind, message=str(error.get("message", error)), details=details)
        if isinstance(error, BaseException):
            return cls(kind=default_kind, message=str(error), details={"error_type": type(error).__name__})
        return cls(kind=default_kind, message=str(error) if error is not None else "unknown error")


@dataclass
class Task:
    """Individual unit of work with dependencies and a lifecycle"""
    id: str
    type: str
    description: str
    priority: int = 3
    complexity: str = Complexity.MEDIUM.value
    dependencies: Set[str] = field(default_factory=set)
    assigned_worker: Optional[str] = None
    status: TaskStatus = TaskStatus.PENDING
    progress: int = 0
    result: Optional[Any] = None
    error: Optional[ErrorInfo] = None
    created_at: datetime = field(default_factory=datetime.now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    estimated_duration: float = 0.0  # seconds
    workflow_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.dependencies = set(self.dependencies or ())
        if isinstance(self.status, str):
            self.status = TaskStatus(self.status)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _transition(self, target: TaskStatus) -> None:
        if target not in _TRANSITIONS[self.status]:
            raise InvalidStateTransitionError(self.id, self.status.value, target.value)
        self.status = target

    def start(self, worker_id: Optional[str] = None) -> None:
        self._transition(TaskStatus.IN_PROGRESS)
        if worker_id:
            self.assigned_worker = worker_id
        self.started_at = datetime.now()
        self.progress = max(self.progress, STARTED_PROGRESS)

    def update_progress(self, progress: int) -> bool:
        """
        Record progress while in progress.

        Returns:
            True if the stored progress changed; lower values are ignored.
        """
        if self.status != TaskStatus.IN_PROGRESS:
            raise InvalidStateTransitionError(self.id, self.status.value, "progress_update")
        progress = max(0, min(100, int(progress)))
        if progress <= self.progress:
            return False
        self.progress = progress
        return True

    def complete(self, result: Any = None) -> None:
        self._transition(TaskStatus.COMPLETED)
        self.completed_at = datetime.now()
        self.progress = 100
        self.result = result

    def fail(self, error: ErrorInfo) -> None:
        self._transition(TaskStatus.FAILED)
        self.completed_at = datetime.now()
        self.error = error

    def block(self, error: ErrorInfo) -> None:
        self._transition(TaskStatus.BLOCKED)
        self.error = error

    def reset(self) -> None:
        """Return a blocked or in-progress task to the pending pool (reassign)."""
        self._transition(TaskStatus.PENDING)
        self.assigned_worker = None
        self.error = None
        self.started_at = None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        return self.status in (TaskStatus.COMPLETED, TaskStatus.FAILED)

    @property
    def actual_duration(self) -> Optional[float]:
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    @property
    def preferred_role(self) -> Optional[str]:
        return self.metadata.get("preferred_role")

    def dependencies_met(self, completed_ids: Iterable[str]) -> bool:
        completed = completed_ids if isinstance(completed_ids, (set, frozenset, dict)) else set(completed_ids)
        return all(dep in completed for dep in self.dependencies)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "description": self.description,
            "priority": self.priority,
            "complexity": self.complexity,
            "dependencies": sorted(self.dependencies),
            "assigned_worker": self.assigned_worker,
            "status": self.status.value,
            "progress": self.progress,
            "result": self.result,
            "error": self.error.to_dict() if self.error else None,
            "created_at": _iso(self.created_at),
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "estimated_duration": self.estimated_duration,
            "actual_duration": self.actual_duration,
            "workflow_id": self.workflow_id,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        return cls(
            id=data["id"],
            type=data["type"],
            description=data.get("description", ""),
            priority=int(data.get("priority", 3)),
            complexity=data.get("complexity", Complexity.MEDIUM.value),
            dependencies=set(data.get("dependencies") or ()),
            assigned_worker=data.get("assigned_worker"),
            status=TaskStatus(data.get("status", TaskStatus.PENDING.value)),
            progress=int(data.get("progress", 0)),
            result=data.get("result"),
            error=ErrorInfo.from_dict(data["error"]) if data.get("error") else None,
            created_at=_parse(data.get("created_at")) or datetime.now(),
            started_at=_parse(data.get("started_at")),
            completed_at=_parse(data.get("completed_at")),
            estimated_duration=float(data.get("estimated_duration", 0.0)),
            workflow_id=data.get("workflow_id"),
            metadata=dict(data.get("metadata") or {}),
        )
