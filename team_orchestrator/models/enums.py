"""
Enums module - Status and classification enumeration types
"""

from enum import Enum


class TaskStatus(str, Enum):
    """Enumeration of possible task statuses"""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    BLOCKED = "blocked"


class Complexity(str, Enum):
    """Task and workflow complexity levels"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class WorkflowStatus(str, Enum):
    """Lifecycle of a goal's execution plan"""
    CREATED = "created"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class WorkerStatus(str, Enum):
    """Availability reported by the team-management collaborator"""
    IDLE = "idle"
    BUSY = "busy"
    OFFLINE = "offline"


class MessageStatus(str, Enum):
    """Delivery status of a bus message"""
    PENDING = "pending"
    DELIVERED = "delivered"
    FAILED = "failed"


class ErrorKind(str, Enum):
    """Error taxonomy carried on tasks, messages and failure events"""
    VALIDATION = "validation"
    RECIPIENT_NOT_FOUND = "recipient_not_found"
    TYPE_NOT_SUBSCRIBED = "type_not_subscribed"
    SINK_ERROR = "sink_error"
    LOCK_TIMEOUT = "lock_timeout"
    DEPENDENCY_BLOCKED = "dependency_blocked"
    CANCELLED = "cancelled"
    RETRY_EXHAUSTED = "retry_exhausted"
    TASK_FAILED = "task_failed"


class ConflictStrategy(str, Enum):
    """Shared-state conflict resolution strategies"""
    MERGE = "merge"
    LATEST = "latest"
    MANUAL = "manual"
