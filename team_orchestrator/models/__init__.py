"""
Models module - Data structures and enums for the Team Orchestrator
"""

from .enums import (
    TaskStatus,
    Complexity,
    WorkflowStatus,
    WorkerStatus,
    MessageStatus,
    ErrorKind,
    ConflictStrategy,
)
from .task import Task, ErrorInfo
from .workflow import Workflow, WorkerDescriptor
from .state import StateRecord, ExecutionState

from .messages import (
    Message,
    SystemEvent,
    EVENT_TYPE_REGISTRY,
    SYSTEM_SENDER,
    BROADCAST_RECIPIENT,
    MSG_TASK_ASSIGNMENT,
    MSG_TASK_RESULT,
    MSG_TASK_PROGRESS,
    MSG_STATE_UPDATE,
    create_message,
    create_system_event,
)

__all__ = [
    'TaskStatus',
    'Complexity',
    'WorkflowStatus',
    'WorkerStatus',
    'MessageStatus',
    'ErrorKind',
    'ConflictStrategy',
    'Task',
    'ErrorInfo',
    'Workflow',
    'WorkerDescriptor',
    'StateRecord',
    'ExecutionState',

    # Bus messages and observable events
    'Message',
    'SystemEvent',
    'EVENT_TYPE_REGISTRY',
    'SYSTEM_SENDER',
    'BROADCAST_RECIPIENT',
    'MSG_TASK_ASSIGNMENT',
    'MSG_TASK_RESULT',
    'MSG_TASK_PROGRESS',
    'MSG_STATE_UPDATE',
    'create_message',
    'create_system_event',
]
