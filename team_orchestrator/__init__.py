"""
Team Orchestrator - Coordination core for a fixed pool of worker agents

Turns a high-level goal into a dependency graph of phase tasks, assigns them
to the best-fitting workers, moves typed messages between workers and keeps
a versioned shared state consistent across them.

Features:
- Phase-catalog decomposition with explicit dependencies and cycle checks
- Role / capability / load scoring for assignment
- Failure propagation: dependents of a failed task are blocked, never run
- Message bus with ordered per-recipient delivery, back-off retries and dead letters
- Versioned shared state with per-key locks and merge / latest / manual resolution
- Pluggable persistence (memory, JSON files, Redis)
- LangGraph execution graph for running one goal in process

Installation:
pip install langgraph python-dotenv redis

Configuration:
    Create a .env file (all settings optional):

    ORCH_BUS_MAX_RETRIES=3
    ORCH_STATE_LOCK_TIMEOUT=10
    ORCH_STORE_BACKEND=file
    ORCH_STORE_PATH=./orchestrator_data

Example:
    >>> from team_orchestrator import Orchestrator, OrchestratorConfig, EnvConfig
    >>>
    >>> EnvConfig.load_env_file()
    >>> orchestrator = Orchestrator(OrchestratorConfig.from_env(), roster_provider=team.get_workers)
    >>> orchestrator.subscribe("claude_dev_1", ["task_assignment"], dev_1.handle)
    >>> final_state = orchestrator.run_goal("claude_leader", "Build a TODO web app",
    ...                                     category="web_application")
    >>> print(final_state["status"], final_state["progress"])
"""

__version__ = "1.0.0"
__all__ = [
    'Orchestrator',
    'TaskScheduler',
    'MessageBus',
    'StateSynchronizer',
    'EventBus',
    'OrchestratorConfig',
    'SchedulingConfig',
    'EnvConfig',
    'Task',
    'TaskStatus',
    'Workflow',
    'WorkerDescriptor',
    'Message',
    'create_message',
]

from team_orchestrator.core import Orchestrator, TaskScheduler, MessageBus, StateSynchronizer, EventBus
from team_orchestrator.config import OrchestratorConfig, SchedulingConfig, EnvConfig
from team_orchestrator.models import Task, TaskStatus, Workflow, WorkerDescriptor, Message, create_message
