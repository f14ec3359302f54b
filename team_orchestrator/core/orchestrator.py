"""
Orchestrator - Facade wiring the message bus, state synchronizer and scheduler

One Orchestrator owns one EventBus, MessageBus, StateSynchronizer and
TaskScheduler. Several instances can live in one process; nothing is
registered globally.

Two ways to drive it:
- start()/stop(): background tickers for delivery, reconciliation,
  scheduling and retention cleanup (workers reply asynchronously)
- run_goal(): the LangGraph ExecutionGraph drives one goal in the calling
  thread until it completes, stalls or hits max_iterations
"""

from typing import Any, Callable, Dict, Iterable, List, Optional, Union
import time

from team_orchestrator.config.orchestrator_config import OrchestratorConfig
from team_orchestrator.config.phase_catalog import SchedulingConfig
from team_orchestrator.core.event_bus import EventBus
from team_orchestrator.core.message_bus import MessageBus, MessageSink, Subscription
from team_orchestrator.core.scheduler import RosterProvider, TaskScheduler
from team_orchestrator.core.state_sync import StateSynchronizer
from team_orchestrator.core.workflow import ExecutionGraph
from team_orchestrator.models import (
    BROADCAST_RECIPIENT,
    MSG_TASK_PROGRESS,
    MSG_TASK_RESULT,
    SYSTEM_SENDER,
    Message,
    Task,
    WorkerDescriptor,
    Workflow,
)
from team_orchestrator.utils.logger import get_logger
from team_orchestrator.utils.store import StateStore, create_store
from team_orchestrator.utils.ticker import PeriodicTicker

logger = get_logger(__name__)


class Orchestrator:
    """
    Coordination core for a fixed pool of worker agents.

    Usage:
        orchestrator = Orchestrator(OrchestratorConfig.from_env(), roster_provider=team.get_workers)
        orchestrator.subscribe("claude_dev_1", ["task_assignment"], dev_1.handle)

        workflow = orchestrator.create_execution_plan("claude_leader", "Build a REST API",
                                                      category="api_service")
        orchestrator.distribute_tasks(workflow)

        with orchestrator:          # start() ... stop()
            ...
    """

    def __init__(
        self,
        config: Optional[OrchestratorConfig] = None,
        scheduling: Optional[SchedulingConfig] = None,
        store: Optional[StateStore] = None,
        roster_provider: Optional[RosterProvider] = None,
        event_bus: Optional[EventBus] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize the orchestrator.

        Args:
            config: Bus, state, scheduler and store settings
            scheduling: Phase catalog (classification, capabilities, categories)
            store: Persistence collaborator; built from config.store when omitted
            roster_provider: Callable returning the current worker descriptors
            event_bus: Shared event bus; a private one is created when omitted
            clock: Monotonic clock for bus back-off (injectable for tests)
        """
        self.config = config or OrchestratorConfig()
        self.event_bus = event_bus or EventBus()
        self.store = store or create_store(self.config.store)
        self.roster_provider = roster_provider

        self.message_bus = MessageBus(self.config.bus, event_bus=self.event_bus, clock=clock)
        self.synchronizer = StateSynchronizer(self.config.state, store=self.store, event_bus=self.event_bus)
        self.scheduler = TaskScheduler(
            config=self.config.scheduler,
            scheduling=scheduling or SchedulingConfig(),
            message_bus=self.message_bus,
            synchronizer=self.synchronizer,
            store=self.store,
            event_bus=self.event_bus,
            roster_provider=roster_provider,
        )

        # workers report task_result / task_progress to "system"
        self.message_bus.subscribe(SYSTEM_SENDER, [MSG_TASK_RESULT, MSG_TASK_PROGRESS],
                                   self.scheduler.handle_message)

        self._tickers: List[PeriodicTicker] = []

        logger.info(
            f"[ORCHESTRATOR] Initialized (store={type(self.store).__name__}, "
            f"max_retries={self.config.bus.max_retries}, lock_timeout={self.config.state.lock_timeout}s)"
        )

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    @property
    def running(self) -> bool:
        return any(ticker.running for ticker in self._tickers)

    def start(self) -> None:
        """Start the background tickers."""
        if self.running:
            logger.warning("[ORCHESTRATOR] Already running")
            return

        self._tickers = [
            PeriodicTicker("bus", self.message_bus.tick, self.config.bus.tick_interval),
            PeriodicTicker("state", self.synchronizer.tick, self.config.state.sync_interval),
            PeriodicTicker("scheduler", self.scheduler.tick, self.config.scheduler.tick_interval),
            PeriodicTicker("cleanup", self.cleanup, self.config.scheduler.cleanup_interval),
        ]
        for ticker in self._tickers:
            ticker.start()
        logger.info("[ORCHESTRATOR] Started")

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Stop the tickers, cancel pending manual resolutions and run a final sync."""
        for ticker in self._tickers:
            ticker.stop(timeout=timeout)
        self._tickers = []
        self.synchronizer.shutdown()
        logger.info("[ORCHESTRATOR] Stopped")

    def close(self) -> None:
        self.stop()
        self.store.close()

    def __enter__(self) -> "Orchestrator":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()

    def tick(self) -> Dict[str, int]:
        """One manual pass of every subsystem, in delivery, scheduling, sync order."""
        delivered = self.message_bus.tick()
        assignments = self.scheduler.tick()
        synced = self.synchronizer.tick()
        return {"delivered": delivered, "assigned": len(assignments), "synced": synced}

    def cleanup(self) -> Dict[str, int]:
        """Retention pass over tasks, workflows and message history."""
        result = self.scheduler.cleanup()
        result["messages_removed"] = self.message_bus.cleanup()
        return result

    # ========================================================================
    # PLANNING & SCHEDULING
    # ========================================================================

    def create_execution_plan(
        self,
        requester_id: str,
        goal_description: str,
        category: Optional[str] = None,
        complexity: str = "medium",
        phases: Optional[List[Any]] = None
    ) -> Workflow:
        return self.scheduler.create_execution_plan(
            requester_id, goal_description, category=category, complexity=complexity, phases=phases
        )

    def distribute_tasks(self, workflow: Union[Workflow, str]) -> List[Task]:
        return self.scheduler.distribute_tasks(workflow)

    def get_next_task(self) -> Optional[Task]:
        return self.scheduler.get_next_task()

    def mark_task_completed(self, task_id: str, result: Any = None) -> bool:
        return self.scheduler.mark_task_completed(task_id, result)

    def mark_task_failed(self, task_id: str, error: Any = None) -> bool:
        return self.scheduler.mark_task_failed(task_id, error)

    def run_goal(
        self,
        requester_id: str,
        goal_description: str,
        category: Optional[str] = None,
        complexity: str = "medium",
        candidates: Optional[Iterable[Union[WorkerDescriptor, Dict[str, Any]]]] = None,
        max_iterations: Optional[int] = None,
        poll_interval: float = 0.0,
        thread_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Plan, distribute and drive one goal to an end state in the calling thread.

        Returns:
            Final ExecutionState (status is completed, stalled or max_iterations)
        """
        graph = ExecutionGraph(self, candidates=candidates, poll_interval=poll_interval)
        state = graph.initial_state(
            goal=goal_description,
            requester_id=requester_id,
            category=category,
            complexity=complexity,
            max_iterations=max_iterations,
        )
        return graph.run(state, thread_id=thread_id)

    def run_workflow(
        self,
        workflow_id: str,
        candidates: Optional[Iterable[Union[WorkerDescriptor, Dict[str, Any]]]] = None,
        max_iterations: Optional[int] = None,
        poll_interval: float = 0.0
    ) -> Dict[str, Any]:
        """Drive an existing (planned, optionally distributed) workflow to an end state."""
        graph = ExecutionGraph(self, candidates=candidates, poll_interval=poll_interval)
        workflow = self.scheduler.get_workflow(workflow_id)
        state = graph.initial_state(
            goal=workflow.description,
            requester_id=workflow.requester_id,
            category=workflow.category,
            complexity=workflow.complexity,
            workflow_id=workflow_id,
            max_iterations=max_iterations,
        )
        return graph.run(state)

    # ========================================================================
    # MESSAGING
    # ========================================================================

    def subscribe(self, worker_id: str, message_types: Iterable[str], sink: MessageSink) -> Subscription:
        return self.message_bus.subscribe(worker_id, message_types, sink)

    def unsubscribe(self, worker_id: str) -> bool:
        return self.message_bus.unsubscribe(worker_id)

    def publish(self, message: Message) -> str:
        """Queue a message; "broadcast" recipients fan out like broadcast()."""
        if message.recipient == BROADCAST_RECIPIENT:
            self.broadcast(message)
            return message.id
        return self.message_bus.publish(message)

    def broadcast(self, message: Message, roster: Optional[Iterable[str]] = None) -> List[Message]:
        """Broadcast to an explicit roster, the roster provider's workers, or the subscribers."""
        if roster is None and self.roster_provider is not None:
            roster = [
                w["id"] if isinstance(w, dict) else w.id for w in self.roster_provider()
            ]
        return self.message_bus.broadcast(message, roster=roster)

    # ========================================================================
    # SHARED STATE
    # ========================================================================

    def set_state(self, key: str, value: Any, writer_id: str, **kwargs) -> int:
        return self.synchronizer.set_state(key, value, writer_id, **kwargs)

    def get_state(self, key: str, default: Any = None) -> Any:
        return self.synchronizer.get_state(key, default)

    # ========================================================================
    # INTROSPECTION
    # ========================================================================

    def get_workflow_status(self, workflow_id: Optional[str] = None) -> Dict[str, Any]:
        return self.scheduler.get_workflow_status(workflow_id)

    def get_queue_status(self) -> Dict[str, Any]:
        return self.message_bus.get_queue_status()

    def get_message_stats(self) -> Dict[str, Any]:
        return self.message_bus.get_message_stats()

    def get_state_list(self) -> List[Dict[str, Any]]:
        return self.synchronizer.get_state_list()

    def get_status(self) -> Dict[str, Any]:
        """Combined snapshot of every subsystem."""
        return {
            "running": self.running,
            "workflows": self.scheduler.get_workflow_status(),
            "queue": self.message_bus.get_queue_status(),
            "state": self.synchronizer.get_state_stats(),
            "events": self.event_bus.get_statistics(),
        }
