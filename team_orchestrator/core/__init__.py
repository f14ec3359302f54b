"""
Core module - Message bus, state synchronizer, scheduler and the orchestrator facade
"""

from .event_bus import EventBus
from .message_bus import MessageBus, Subscription
from .state_sync import StateSynchronizer
from .scheduler import TaskScheduler, AssignmentResult, score_worker
from .workflow import ExecutionGraph
from .orchestrator import Orchestrator

__all__ = [
    'EventBus',
    'MessageBus',
    'Subscription',
    'StateSynchronizer',
    'TaskScheduler',
    'AssignmentResult',
    'score_worker',
    'ExecutionGraph',
    'Orchestrator',
]
