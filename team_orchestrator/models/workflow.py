"""
Workflow module - Execution plan for one goal and worker descriptors
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from .enums import WorkflowStatus, WorkerStatus, TaskStatus, Complexity
from .task import Task, _iso, _parse


@dataclass
class Workflow:
    """
    A goal's execution plan. Owns its tasks exclusively.

    `phases` holds the phase templates chosen at planning time (as dicts);
    `tasks` is filled by the scheduler when the plan is distributed.
    """
    id: str
    description: str
    requester_id: str
    complexity: str = Complexity.MEDIUM.value
    category: str = "default"
    phases: List[Dict[str, Any]] = field(default_factory=list)
    tasks: List[Task] = field(default_factory=list)
    status: WorkflowStatus = WorkflowStatus.CREATED
    created_at: datetime = field(default_factory=datetime.now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    updated_at: datetime = field(default_factory=datetime.now)
    estimated_duration: float = 0.0  # seconds

    def __post_init__(self):
        if isinstance(self.status, str):
            self.status = WorkflowStatus(self.status)

    @property
    def task_ids(self) -> List[str]:
        return [task.id for task in self.tasks]

    def count(self, status: TaskStatus) -> int:
        return sum(1 for task in self.tasks if task.status == status)

    @property
    def progress(self) -> int:
        if not self.tasks:
            return 0
        return round(self.count(TaskStatus.COMPLETED) / len(self.tasks) * 100)

    @property
    def current_phase(self) -> Optional[str]:
        """First phase that is not completed, in plan order."""
        for task in self.tasks:
            if task.status != TaskStatus.COMPLETED:
                return task.type
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "requester_id": self.requester_id,
            "complexity": self.complexity,
            "category": self.category,
            "phases": [dict(p) for p in self.phases],
            "tasks": [task.to_dict() for task in self.tasks],
            "status": self.status.value,
            "created_at": _iso(self.created_at),
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "updated_at": _iso(self.updated_at),
            "estimated_duration": self.estimated_duration,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Workflow":
        return cls(
            id=data["id"],
            description=data.get("description", ""),
            requester_id=data.get("requester_id", "system"),
            complexity=data.get("complexity", Complexity.MEDIUM.value),
            category=data.get("category", "default"),
            phases=[dict(p) for p in data.get("phases") or []],
            tasks=[Task.from_dict(t) for t in data.get("tasks") or []],
            status=WorkflowStatus(data.get("status", WorkflowStatus.CREATED.value)),
            created_at=_parse(data.get("created_at")) or datetime.now(),
            started_at=_parse(data.get("started_at")),
            completed_at=_parse(data.get("completed_at")),
            updated_at=_parse(data.get("updated_at")) or datetime.now(),
            estimated_duration=float(data.get("estimated_duration", 0.0)),
        )


@dataclass
class WorkerDescriptor:
    """
    Snapshot of a worker supplied by the team-management collaborator.

    The scheduler only reads these to score candidates.
    """
    id: str
    role: str
    capabilities: Set[str] = field(default_factory=set)
    current_load: int = 0
    status: WorkerStatus = WorkerStatus.IDLE

    def __post_init__(self):
        self.capabilities = set(self.capabilities or ())
        if isinstance(self.status, str):
            self.status = WorkerStatus(self.status)

    @property
    def available(self) -> bool:
        return self.status != WorkerStatus.OFFLINE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role,
            "capabilities": sorted(self.capabilities),
            "current_load": self.current_load,
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkerDescriptor":
        return cls(
            id=data["id"],
            role=data.get("role", "developer"),
            capabilities=set(data.get("capabilities") or ()),
            current_load=int(data.get("current_load", data.get("workload", 0)) or 0),
            status=WorkerStatus(data.get("status", WorkerStatus.IDLE.value)),
        )
