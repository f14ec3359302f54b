"""
State module - Versioned shared-state records and the execution graph state
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, TypedDict

from .task import _iso, _parse


@dataclass
class StateRecord:
    """
    One versioned shared-state entry owned by the StateSynchronizer.

    `version` strictly increases on every accepted write for the key.
    """
    key: str
    value: Any
    version: int = 0
    last_writer: str = "system"
    updated_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "value": self.value,
            "version": self.version,
            "last_writer": self.last_writer,
            "updated_at": _iso(self.updated_at),
        }

    def to_persisted(self) -> Dict[str, Any]:
        """Layout written through the persistence store."""
        return {
            "id": self.key,
            "state": self.value,
            "version": self.version,
            "writer": self.last_writer,
            "timestamp": _iso(self.updated_at),
        }

    @classmethod
    def from_persisted(cls, data: Dict[str, Any]) -> "StateRecord":
        return cls(
            key=data["id"],
            value=data.get("state"),
            version=int(data.get("version", 0)),
            last_writer=data.get("writer", "system"),
            updated_at=_parse(data.get("timestamp")) or datetime.now(),
        )


class ExecutionState(TypedDict):
    """
    State carried through the in-process execution graph for one goal.

    Only plain JSON-like values so the checkpointer can snapshot every step.
    """
    # Goal
    goal: str
    requester_id: str
    category: Optional[str]
    complexity: str

    # Plan
    workflow_id: Optional[str]
    task_ids: List[str]

    # Loop bookkeeping
    iteration_count: int
    max_iterations: int
    assignments: List[Dict[str, Any]]
    messages_delivered: int
    idle_iterations: int
    backoff_waits: int
    last_signature: List[int]

    # Outcome
    status: str
    progress: int
    completed_task_ids: List[str]
    failed_task_ids: List[str]
    blocked_task_ids: List[str]
