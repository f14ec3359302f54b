"""
Standardized Message Formats for the Team Orchestrator

This module defines the two payload families that move through the core:

- Message: typed inter-agent messages carried by the MessageBus
  (assignments, progress reports, task results, broadcasts)
- SystemEvent: observable orchestration events emitted on the EventBus
  (task_ready, task_blocked, message_dead_lettered, state_updated, ...)

Key Principles:
- Messages are owned by the bus until they reach a terminal status
- Every terminal failure produces exactly one SystemEvent
- Both families serialize to plain JSON-like dicts
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Literal, Optional, TypedDict
import uuid

from .enums import MessageStatus
from .task import ErrorInfo, _iso, _parse

SYSTEM_SENDER = "system"
BROADCAST_RECIPIENT = "broadcast"

# Well-known message types exchanged between the scheduler and workers
MSG_TASK_ASSIGNMENT = "task_assignment"
MSG_TASK_RESULT = "task_result"
MSG_TASK_PROGRESS = "task_progress"
MSG_STATE_UPDATE = "state_update"


def generate_message_id() -> str:
    return f"msg_{uuid.uuid4().hex}"


# ============================================================================
# INTER-AGENT MESSAGE
# ============================================================================

@dataclass
class Message:
    """
    Typed message routed by the MessageBus.

    Usage:
        msg = Message(
            type="task_assignment",
            sender="system",
            recipient="claude_leader",
            payload={"task_id": "plan_1_planning_0"},
            priority=5
        )
        bus.publish(msg)
    """
    type: str
    sender: str
    recipient: str
    payload: Dict[str, Any] = field(default_factory=dict)
    priority: int = 3
    id: str = field(default_factory=generate_message_id)
    created_at: datetime = field(default_factory=datetime.now)
    status: MessageStatus = MessageStatus.PENDING
    retry_count: int = 0
    delivered_at: Optional[datetime] = None
    last_error: Optional[ErrorInfo] = None
    next_attempt_at: float = 0.0  # bus clock reading; 0 means "due now"
    correlation_id: Optional[str] = None

    def __post_init__(self):
        if isinstance(self.status, str):
            self.status = MessageStatus(self.status)

    def acknowledge(self) -> None:
        self.status = MessageStatus.DELIVERED
        self.delivered_at = datetime.now()

    def copy_for(self, recipient: str) -> "Message":
        """Fan-out copy: new id, same type/payload/priority, addressed to one recipient."""
        return Message(
            type=self.type,
            sender=self.sender,
            recipient=recipient,
            payload=dict(self.payload),
            priority=self.priority,
            correlation_id=self.id,
        )

    @property
    def is_terminal(self) -> bool:
        return self.status != MessageStatus.PENDING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "from": self.sender,
            "to": self.recipient,
            "payload": dict(self.payload),
            "priority": self.priority,
            "created_at": _iso(self.created_at),
            "status": self.status.value,
            "retry_count": self.retry_count,
            "delivered_at": _iso(self.delivered_at),
            "last_error": self.last_error.to_dict() if self.last_error else None,
            "correlation_id": self.correlation_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        return cls(
            id=data.get("id") or generate_message_id(),
            type=data["type"],
            sender=data.get("from", data.get("sender")),
            recipient=data.get("to", data.get("recipient")),
            payload=dict(data.get("payload") or {}),
            priority=int(data.get("priority", 3)),
            created_at=_parse(data.get("created_at")) or datetime.now(),
            status=MessageStatus(data.get("status", MessageStatus.PENDING.value)),
            retry_count=int(data.get("retry_count", 0)),
            delivered_at=_parse(data.get("delivered_at")),
            last_error=ErrorInfo.from_dict(data["last_error"]) if data.get("last_error") else None,
            correlation_id=data.get("correlation_id"),
        )


def create_message(
    message_type: str,
    sender: str,
    recipient: str,
    payload: Optional[Dict[str, Any]] = None,
    priority: int = 3,
    correlation_id: Optional[str] = None
) -> Message:
    """
    Helper function to create bus messages.

    Args:
        message_type: Message type (e.g., "task_assignment")
        sender: Worker id or "system"
        recipient: Worker id or "broadcast"
        payload: Message data
        priority: 1-5 (5 = most urgent)
        correlation_id: Optional id of the message this one answers

    Returns:
        Message instance in pending status
    """
    return Message(
        type=message_type,
        sender=sender,
        recipient=recipient,
        payload=payload or {},
        priority=priority,
        correlation_id=correlation_id,
    )


# ============================================================================
# SYSTEM EVENTS
# ============================================================================

EventCategory = Literal["task_lifecycle", "messaging", "state_sync", "workflow"]
EventSeverity = Literal["debug", "info", "warning", "error", "critical"]


class SystemEvent(TypedDict):
    """
    Standard event format for observable orchestration events.

    Published by: Scheduler, MessageBus, StateSynchronizer
    Consumed by: Event subscribers (registered via EventBus)
    """
    # Event Identity
    event_id: str                # UUID
    event_type: str              # e.g., "task_ready", "message_dead_lettered"
    event_category: EventCategory

    # Event Source
    source: str                  # Component that emitted the event
    source_task_id: Optional[str]

    # Event Payload
    payload: Dict[str, Any]

    # Event Metadata
    timestamp: str
    severity: EventSeverity

    # Event Propagation
    propagate: bool              # Should event trigger listeners?


# Event Type Registry - Maps event types to their category
EVENT_TYPE_REGISTRY: Dict[str, EventCategory] = {
    # Task Lifecycle Events
    "task_added": "task_lifecycle",
    "task_assigned": "task_lifecycle",
    "task_unassigned": "task_lifecycle",
    "task_ready": "task_lifecycle",
    "task_progress": "task_lifecycle",
    "task_completed": "task_lifecycle",
    "task_failed": "task_lifecycle",
    "task_blocked": "task_lifecycle",
    "task_reassigned": "task_lifecycle",
    "task_purged": "task_lifecycle",

    # Workflow Events
    "plan_created": "workflow",
    "workflow_started": "workflow",
    "workflow_status_updated": "workflow",
    "workflow_completed": "workflow",
    "workflow_archived": "workflow",
    "results_integrated": "workflow",

    # Messaging Events
    "message_published": "messaging",
    "message_broadcasted": "messaging",
    "message_delivered": "messaging",
    "message_delivery_failed": "messaging",
    "message_dead_lettered": "messaging",
    "subscriber_added": "messaging",
    "subscriber_removed": "messaging",
    "history_cleaned": "messaging",

    # State Sync Events
    "state_updated": "state_sync",
    "state_loaded": "state_sync",
    "state_deleted": "state_sync",
    "state_lock_timeout": "state_sync",
    "conflict_manual": "state_sync",
    "conflict_manual_timeout": "state_sync",
    "conflict_resolved": "state_sync",
}


def create_system_event(
    event_type: str,
    source: str,
    payload: Dict[str, Any],
    event_category: Optional[EventCategory] = None,
    source_task_id: Optional[str] = None,
    severity: EventSeverity = "info",
    propagate: bool = True
) -> SystemEvent:
    """
    Helper function to create system events.

    Args:
        event_type: Type of event (e.g., "task_completed")
        source: Component that generated the event
        payload: Event data
        event_category: Category of event (looked up in the registry if None)
        source_task_id: Optional task ID
        severity: Event severity level
        propagate: Whether to propagate to listeners

    Returns:
        SystemEvent instance
    """
    if event_category is None:
        event_category = EVENT_TYPE_REGISTRY.get(event_type, "workflow")

    return SystemEvent(
        event_id=str(uuid.uuid4()),
        event_type=event_type,
        event_category=event_category,
        source=source,
        source_task_id=source_task_id,
        payload=payload,
        timestamp=datetime.now().isoformat(),
        severity=severity,
        propagate=propagate
    )
