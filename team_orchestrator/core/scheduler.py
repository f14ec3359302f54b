"""
Task Graph Scheduler - Decomposes goals into dependent tasks and assigns them

Responsibilities:
- Decomposition: goal + phase catalog -> Workflow -> ordered, dependent Tasks
- Readiness: a task is ready iff it is pending and every dependency completed
- Selection: highest priority ready task first, FIFO on ties
- Assignment: role / capability / load scoring over the worker roster, then a
  task_assignment message on the bus
- Propagation: completion unblocks dependents (task_ready); failure blocks
  every transitive dependent (task_blocked) and emits one task_failed
- Aggregate progress is published through the state synchronizer

Task failures never raise out of tick() or the result handlers; they are
recorded on the task and propagated to dependents as blocked.
"""

from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple, Union
import threading
import uuid

from team_orchestrator.config.orchestrator_config import SchedulerConfig
from team_orchestrator.config.phase_catalog import PhaseSpec, SchedulingConfig
from team_orchestrator.core.event_bus import EventBus
from team_orchestrator.models.enums import (
    Complexity,
    ErrorKind,
    TaskStatus,
    WorkerStatus,
    WorkflowStatus,
)
from team_orchestrator.models.messages import (
    MSG_TASK_ASSIGNMENT,
    MSG_TASK_PROGRESS,
    MSG_TASK_RESULT,
    SYSTEM_SENDER,
    Message,
    create_message,
)
from team_orchestrator.models.task import ErrorInfo, Task
from team_orchestrator.models.workflow import WorkerDescriptor, Workflow
from team_orchestrator.utils.exceptions import (
    InvalidParameterError,
    InvalidStateTransitionError,
    LockTimeoutError,
    MissingParameterError,
    OrchestratorError,
    StoreError,
    TaskNotFoundError,
    ValidationError,
    WorkflowNotFoundError,
)
from team_orchestrator.utils.logger import get_logger
from team_orchestrator.utils.store import InMemoryStore, StateStore
from team_orchestrator.utils.validation import ensure_valid, validate_task, validate_worker

logger = get_logger(__name__)

WorkerLike = Union[WorkerDescriptor, Dict[str, Any]]
RosterProvider = Callable[[], Iterable[WorkerLike]]

SUCCESS_STATUSES = {"success", "succeeded", "completed", "fulfilled"}
FAILURE_STATUSES = {"failure", "failed", "error", "rejected"}


@dataclass
class AssignmentResult:
    """Outcome of one assignment attempt."""
    task_id: str
    worker_id: Optional[str]
    score: float
    reasoning: str
    message_id: Optional[str] = None
    assigned_at: datetime = field(default_factory=datetime.now)

    @property
    def assigned(self) -> bool:
        return self.worker_id is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.task_id,
            "worker_id": self.worker_id,
            "score": self.score,
            "reasoning": self.reasoning,
            "message_id": self.message_id,
            "assigned_at": self.assigned_at.isoformat(),
        }


# ============================================================================
# SCORING
# ============================================================================

def score_worker(task: Task, worker: WorkerDescriptor, config: SchedulingConfig) -> float:
    """
    Fit of a worker for a task, between 0 and 1.

    role match x role_weight
    + capability overlap ratio x capability_weight
    + inverse load x load_weight

    Offline workers score 0.
    """
    if worker.status == WorkerStatus.OFFLINE:
        return 0.0

    score = 0.0

    preferred_role = task.preferred_role
    if not preferred_role and task.type in config.classification:
        preferred_role = config.classification[task.type].role
    if preferred_role and worker.role == preferred_role:
        score += config.role_weight

    required = config.required_capabilities(task.type)
    matching = [cap for cap in required if cap in worker.capabilities]
    score += (len(matching) / max(len(required), 1)) * config.capability_weight

    load = max(0, min(100, worker.current_load))
    score += ((100 - load) / 100) * config.load_weight

    return min(score, 1.0)


def assignment_reasoning(worker: Optional[WorkerDescriptor], score: float) -> str:
    if worker is None:
        return "No suitable agent found"
    return (
        f"Assigned to {worker.id} (score: {score * 100:.1f}%) - "
        f"Role match: {worker.role}, Workload: {worker.current_load}%"
    )


def summarize_outcomes(successful: int, failed: int) -> str:
    if failed == 0:
        return f"All {successful} tasks completed successfully"
    if successful == 0:
        return f"All {failed} tasks failed"
    return f"{successful} tasks succeeded, {failed} tasks failed"


# ============================================================================
# SCHEDULER
# ============================================================================

class TaskScheduler:
    """
    Owns the task graph of every workflow of one orchestrator.

    Usage:
        scheduler = TaskScheduler(message_bus=bus, synchronizer=sync,
                                  roster_provider=team.get_workers)
        workflow = scheduler.create_execution_plan("claude_leader", "Build a TODO web app",
                                                   category="web_application")
        scheduler.distribute_tasks(workflow)
        scheduler.tick()                                 # assigns ready tasks
        scheduler.mark_task_completed(task_id, {"files": ["app.py"]})
    """

    def __init__(
        self,
        config: Optional[SchedulerConfig] = None,
        scheduling: Optional[SchedulingConfig] = None,
        message_bus: Optional[Any] = None,
        synchronizer: Optional[Any] = None,
        store: Optional[StateStore] = None,
        event_bus: Optional[EventBus] = None,
        roster_provider: Optional[RosterProvider] = None
    ):
        """
        Initialize the scheduler.

        Args:
            config: Tick, retention and progress-key settings
            scheduling: Phase classification, capability and category tables
            message_bus: MessageBus used for task_assignment messages
            synchronizer: StateSynchronizer receiving aggregate progress
            store: Persistence for workflow snapshots and task results
            event_bus: Receiver of task and workflow events
            roster_provider: Callable returning the current worker descriptors
        """
        self.config = config or SchedulerConfig()
        self.scheduling = scheduling or SchedulingConfig()
        self.message_bus = message_bus
        self.synchronizer = synchronizer
        self.store = store or InMemoryStore()
        self.event_bus = event_bus or EventBus()
        self.roster_provider = roster_provider

        self._lock = threading.RLock()
        self._workflows: "OrderedDict[str, Workflow]" = OrderedDict()
        self._tasks: "OrderedDict[str, Task]" = OrderedDict()
        self._completed: Set[str] = set()
        self._last_progress: Dict[str, Dict[str, Any]] = {}

        logger.debug("[SCHEDULER] Initialized")

    # ========================================================================
    # INTERNAL HELPERS
    # ========================================================================

    def _emit_all(self, events: List[Tuple[str, Dict[str, Any], Optional[str], str]]) -> None:
        for event_type, payload, task_id, severity in events:
            self.event_bus.emit(event_type, source="scheduler", payload=payload,
                                source_task_id=task_id, severity=severity)

    def _get_task(self, task_id: str) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def _get_workflow(self, workflow_id: str) -> Workflow:
        workflow = self._workflows.get(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)
        return workflow

    def _persist_workflow(self, workflow: Workflow) -> None:
        try:
            self.store.save_workflow(workflow.id, workflow.to_dict())
        except StoreError as e:
            logger.warning(f"[SCHEDULER] Could not persist workflow {workflow.id}: {e}")

    def _dependents(self, task_id: str) -> List[Task]:
        return [t for t in self._tasks.values() if task_id in t.dependencies]

    def _transitive_dependents(self, task_id: str) -> List[Task]:
        seen: Set[str] = set()
        ordered: List[Task] = []
        frontier = [task_id]
        while frontier:
            current = frontier.pop(0)
            for dependent in self._dependents(current):
                if dependent.id not in seen:
                    seen.add(dependent.id)
                    ordered.append(dependent)
                    frontier.append(dependent.id)
        return ordered

    def _is_ready(self, task: Task) -> bool:
        return task.status == TaskStatus.PENDING and task.dependencies_met(self._completed)

    def _check_acyclic(self, tasks: Dict[str, Task]) -> None:
        """Depth-first search over the dependency edges; raise on a back edge."""
        WHITE, GREY, BLACK = 0, 1, 2
        color = {task_id: WHITE for task_id in tasks}

        def visit(task_id: str, path: List[str]) -> None:
            color[task_id] = GREY
            for dep in sorted(tasks[task_id].dependencies):
                if dep not in tasks:
                    continue
                if color[dep] == GREY:
                    cycle = path[path.index(dep):] + [dep] if dep in path else [task_id, dep]
                    raise ValidationError(
                        f"Dependency cycle detected: {' -> '.join(cycle)}",
                        details={"cycle": cycle}
                    )
                if color[dep] == WHITE:
                    visit(dep, path + [dep])
            color[task_id] = BLACK

        for task_id in tasks:
            if color[task_id] == WHITE:
                visit(task_id, [task_id])

    def _coerce_workers(self, candidates: Optional[Iterable[WorkerLike]]) -> List[WorkerDescriptor]:
        if candidates is None:
            candidates = self.roster_provider() if self.roster_provider else []
        workers = []
        for candidate in candidates:
            worker = WorkerDescriptor.from_dict(candidate) if isinstance(candidate, dict) else candidate
            result = validate_worker(worker)
            if not result:
                logger.warning(f"[SCHEDULER] Ignoring invalid worker descriptor: {result}")
                continue
            workers.append(worker)
        return workers

    # ========================================================================
    # DECOMPOSITION
    # ========================================================================

    def create_execution_plan(
        self,
        requester_id: str,
        goal_description: str,
        category: Optional[str] = None,
        complexity: str = Complexity.MEDIUM.value,
        phases: Optional[List[Union[PhaseSpec, Dict[str, Any], str]]] = None
    ) -> Workflow:
        """
        Create a workflow for a goal from the phase catalog.

        Args:
            requester_id: Worker or caller that asked for the plan
            goal_description: The goal, used in task descriptions
            category: Project category; unknown or None uses "default"
            complexity: low, medium or high
            phases: Explicit phase list from an external analyzer (overrides the catalog)

        Returns:
            Workflow in created status, not yet distributed
        """
        if not requester_id:
            raise MissingParameterError("requester_id", "create_execution_plan")
        if not goal_description or not str(goal_description).strip():
            raise MissingParameterError("goal_description", "create_execution_plan")
        if complexity not in {c.value for c in Complexity}:
            raise InvalidParameterError("complexity", "must be low, medium or high", actual_value=complexity)

        if phases is not None:
            specs = [
                p if isinstance(p, PhaseSpec) else PhaseSpec.from_dict(p) if isinstance(p, dict) else PhaseSpec(p)
                for p in phases
            ]
        else:
            specs = self.scheduling.phases_for(category)
        if not specs:
            raise ValidationError("A workflow needs at least one phase")

        workflow = Workflow(
            id=f"plan_{uuid.uuid4().hex[:12]}",
            description=goal_description,
            requester_id=requester_id,
            complexity=complexity,
            category=category if category in self.scheduling.categories else "default",
            phases=[spec.to_dict() for spec in specs],
            estimated_duration=sum(spec.estimated_hours for spec in specs) * 3600,
        )

        with self._lock:
            self._workflows[workflow.id] = workflow

        logger.info(
            f"[SCHEDULER] Plan {workflow.id} created for {requester_id}: "
            f"{len(specs)} phases ({workflow.category})"
        )
        self._persist_workflow(workflow)
        self._emit_all([(
            "plan_created",
            {"workflow_id": workflow.id, "requester_id": requester_id,
             "category": workflow.category, "phases": [s.name for s in specs]},
            None, "info"
        )])
        return workflow

    def distribute_tasks(self, workflow: Union[Workflow, str]) -> List[Task]:
        """
        Turn a workflow's phases into tasks and add them to the graph.

        Each phase depends on its predecessor unless it names explicit
        depends_on phases.

        Raises:
            ValidationError: Already distributed, unknown depends_on phase,
                duplicate task id or dependency cycle
        """
        workflow_id = workflow if isinstance(workflow, str) else workflow.id
        events = []

        with self._lock:
            workflow = self._get_workflow(workflow_id)
            if workflow.tasks:
                raise ValidationError(
                    f"Workflow {workflow.id} is already distributed",
                    details={"workflow_id": workflow.id}
                )

            specs = [PhaseSpec.from_dict(p) for p in workflow.phases]
            task_ids = [f"{workflow.id}_{spec.name}_{index}" for index, spec in enumerate(specs)]
            id_by_phase: Dict[str, str] = {}
            for spec, task_id in zip(specs, task_ids):
                id_by_phase.setdefault(spec.name, task_id)

            tasks: List[Task] = []
            for index, spec in enumerate(specs):
                if spec.depends_on is None:
                    dependencies = {task_ids[index - 1]} if index > 0 else set()
                else:
                    unknown = [name for name in spec.depends_on if name not in id_by_phase]
                    if unknown:
                        raise ValidationError(
                            f"Phase '{spec.name}' depends on unknown phase(s): {', '.join(unknown)}",
                            details={"phase": spec.name, "unknown": unknown}
                        )
                    dependencies = {id_by_phase[name] for name in spec.depends_on}

                classification = self.scheduling.classify(spec.name)
                task = Task(
                    id=task_ids[index],
                    type=spec.name,
                    description=spec.description or f"{spec.name} for {workflow.description}",
                    priority=classification.priority,
                    complexity=classification.complexity,
                    dependencies=dependencies,
                    estimated_duration=spec.estimated_hours * 3600,
                    workflow_id=workflow.id,
                    metadata={
                        "phase": spec.name,
                        "phase_index": index,
                        "preferred_role": spec.preferred_role or classification.role,
                        "estimated_hours": spec.estimated_hours,
                        "category": workflow.category,
                    },
                )
                ensure_valid(validate_task(task), f"task {task.id}")
                tasks.append(task)

            self._register_tasks(tasks)
            workflow.tasks.extend(tasks)
            workflow.updated_at = datetime.now()

            for task in tasks:
                logger.info(
                    f"[SCHEDULER]   {task.id}: {task.description} -> {task.preferred_role} "
                    f"(priority {task.priority}, deps {sorted(task.dependencies)})"
                )
                events.append(("task_added", {"task_id": task.id, "workflow_id": workflow.id,
                                              "dependencies": sorted(task.dependencies)},
                               task.id, "debug"))

        logger.info(f"[SCHEDULER] Distributed {len(tasks)} tasks for {workflow.id}")
        self._persist_workflow(workflow)
        self._emit_all(events)
        return tasks

    def _register_tasks(self, tasks: List[Task]) -> None:
        # caller holds self._lock
        new_ids = [task.id for task in tasks]
        duplicates = sorted({tid for tid in new_ids if tid in self._tasks or new_ids.count(tid) > 1})
        if duplicates:
            raise ValidationError(
                f"Task with ID {duplicates[0]} already exists",
                details={"duplicates": duplicates}
            )

        known = set(self._tasks) | set(new_ids) | self._completed
        for task in tasks:
            missing = sorted(dep for dep in task.dependencies if dep not in known)
            if missing:
                raise ValidationError(
                    f"Task {task.id} depends on unknown task(s): {', '.join(missing)}",
                    details={"task_id": task.id, "missing": missing}
                )

        graph = dict(self._tasks)
        graph.update({task.id: task for task in tasks})
        self._check_acyclic(graph)

        for task in tasks:
            self._tasks[task.id] = task

    def add_task(self, task: Task, workflow_id: Optional[str] = None) -> Task:
        """
        Add one hand-built task to the graph (optionally to a workflow).

        Raises:
            ValidationError: Malformed task, duplicate id, unknown dependency or cycle
        """
        ensure_valid(validate_task(task), f"task {getattr(task, 'id', '?')}")
        with self._lock:
            workflow = self._get_workflow(workflow_id) if workflow_id else None
            if workflow is not None:
                task.workflow_id = workflow.id
            self._register_tasks([task])
            if workflow is not None:
                workflow.tasks.append(task)
                workflow.updated_at = datetime.now()

        logger.debug(f"[SCHEDULER] Task added: {task.id}")
        self._emit_all([("task_added", {"task_id": task.id, "workflow_id": task.workflow_id,
                                        "dependencies": sorted(task.dependencies)}, task.id, "debug")])
        return task

    # ========================================================================
    # READINESS & SELECTION
    # ========================================================================

    def get_ready_tasks(self) -> List[Task]:
        """Ready tasks, highest priority first, insertion order on ties."""
        with self._lock:
            ready = [task for task in self._tasks.values() if self._is_ready(task)]
        return sorted(ready, key=lambda t: -t.priority)

    def next_ready_task(self) -> Optional[Task]:
        with self._lock:
            best: Optional[Task] = None
            for task in self._tasks.values():
                if self._is_ready(task) and (best is None or task.priority > best.priority):
                    best = task
            return best

    def get_next_task(self) -> Optional[Task]:
        return self.next_ready_task()

    def select_worker(
        self,
        task: Task,
        candidates: Iterable[WorkerDescriptor]
    ) -> Tuple[Optional[WorkerDescriptor], float]:
        """Highest scoring candidate; only a strictly greater score replaces the leader."""
        best_worker: Optional[WorkerDescriptor] = None
        best_score = 0.0
        for worker in candidates:
            if worker.status == WorkerStatus.OFFLINE:
                continue
            score = score_worker(task, worker, self.scheduling)
            if score > best_score:
                best_worker, best_score = worker, score
        return best_worker, best_score

    def assign(
        self,
        task: Union[Task, str],
        candidates: Optional[Iterable[WorkerLike]] = None
    ) -> AssignmentResult:
        """
        Pick the best candidate for a ready task, start it and send the assignment.

        A task nobody scores above zero stays pending and unassigned.

        Raises:
            TaskNotFoundError: Unknown task
            InvalidStateTransitionError: Task is not pending
        """
        task_id = task if isinstance(task, str) else task.id
        workers = self._coerce_workers(candidates)
        events = []

        with self._lock:
            task = self._get_task(task_id)
            if task.status != TaskStatus.PENDING:
                raise InvalidStateTransitionError(task.id, task.status.value, TaskStatus.IN_PROGRESS.value)
            if not task.dependencies_met(self._completed):
                return AssignmentResult(task.id, None, 0.0, "Dependencies not completed")

            worker, score = self.select_worker(task, workers)
            if worker is None:
                logger.debug(f"[SCHEDULER] No suitable worker for {task.id} (candidates={len(workers)})")
                return AssignmentResult(task.id, None, 0.0, assignment_reasoning(None, 0.0))

            reasoning = assignment_reasoning(worker, score)
            task.start(worker.id)
            task.metadata["assignment_score"] = round(score, 4)

            if task.workflow_id in self._workflows:
                workflow = self._workflows[task.workflow_id]
                if workflow.status == WorkflowStatus.CREATED:
                    workflow.status = WorkflowStatus.IN_PROGRESS
                    workflow.started_at = datetime.now()
                    events.append(("workflow_started", {"workflow_id": workflow.id}, None, "info"))
                workflow.updated_at = datetime.now()

            message = create_message(
                MSG_TASK_ASSIGNMENT,
                SYSTEM_SENDER,
                worker.id,
                payload={
                    "task_id": task.id,
                    "workflow_id": task.workflow_id,
                    "type": task.type,
                    "description": task.description,
                    "priority": task.priority,
                    "complexity": task.complexity,
                    "dependencies": sorted(task.dependencies),
                    "estimated_duration": task.estimated_duration,
                    "metadata": dict(task.metadata),
                    "score": score,
                    "reasoning": reasoning,
                },
                priority=task.priority,
            )
            if self.message_bus is not None:
                self.message_bus.publish(message)

            events.append(("task_assigned", {"task_id": task.id, "worker_id": worker.id,
                                             "score": score, "message_id": message.id},
                           task.id, "info"))

        logger.info(f"[SCHEDULER] {task.id} -> {worker.id} ({reasoning})")
        self._emit_all(events)
        return AssignmentResult(task.id, worker.id, score, reasoning, message_id=message.id)

    def tick(self, candidates: Optional[Iterable[WorkerLike]] = None) -> List[AssignmentResult]:
        """
        One scheduling pass: assign every ready task that has a suitable
        worker, then publish aggregate progress.

        Returns:
            The assignments made in this pass
        """
        workers = self._coerce_workers(candidates)
        assignments = []

        for task in self.get_ready_tasks():
            try:
                result = self.assign(task.id, workers)
            except OrchestratorError as e:
                # the task moved on between listing and assigning
                logger.debug(f"[SCHEDULER] Skipped {task.id}: {e}")
                continue
            if result.assigned:
                assignments.append(result)

        self.publish_progress()
        return assignments

    # ========================================================================
    # COMPLETION / FAILURE PROPAGATION
    # ========================================================================

    def mark_task_completed(self, task_id: str, result: Any = None) -> bool:
        """
        Complete a task and unblock its dependents.

        A pending task whose dependencies are all completed is started
        implicitly. Completing an already completed task is a logged no-op.

        Returns:
            False if the task was already completed

        Raises:
            TaskNotFoundError: Unknown task
            InvalidStateTransitionError: Task is failed, blocked, or pending
                with unmet dependencies
        """
        events = []
        with self._lock:
            task = self._get_task(task_id)
            if task.status == TaskStatus.COMPLETED:
                logger.warning(f"[SCHEDULER] Task {task_id} already completed; ignoring")
                return False

            if task.status == TaskStatus.PENDING:
                if not task.dependencies_met(self._completed):
                    raise InvalidStateTransitionError(task.id, "pending (dependencies unmet)",
                                                      TaskStatus.COMPLETED.value)
                task.start()
            task.complete(result)
            self._completed.add(task.id)
            worker_id = task.assigned_worker

            events.append(("task_completed", {"task_id": task.id, "worker_id": worker_id,
                                              "workflow_id": task.workflow_id},
                           task.id, "info"))

            for dependent in self._dependents(task.id):
                if self._is_ready(dependent):
                    events.append(("task_ready", {"task_id": dependent.id,
                                                  "unblocked_by": task.id,
                                                  "workflow_id": dependent.workflow_id},
                                   dependent.id, "info"))

            workflow = self._workflows.get(task.workflow_id) if task.workflow_id else None
            if workflow is not None:
                workflow.updated_at = datetime.now()
                if workflow.tasks and all(t.status == TaskStatus.COMPLETED for t in workflow.tasks):
                    workflow.status = WorkflowStatus.COMPLETED
                    workflow.completed_at = datetime.now()
                    events.append(("workflow_completed", {"workflow_id": workflow.id,
                                                          "total_tasks": len(workflow.tasks)},
                                   None, "info"))

        logger.info(f"[SCHEDULER] Task {task_id} completed by {worker_id or 'unknown'}")
        try:
            self.store.save_result(worker_id, task_id, result)
        except StoreError as e:
            logger.warning(f"[SCHEDULER] Could not persist result of {task_id}: {e}")
        if workflow is not None:
            self._persist_workflow(workflow)
        self._emit_all(events)
        if workflow is not None:
            self.publish_progress([workflow.id])
        return True

    def mark_task_failed(self, task_id: str, error: Any = None) -> bool:
        """
        Fail a task and block every transitive pending or in-progress dependent.

        Emits task_blocked per blocked dependent and one task_failed. No retry.

        Returns:
            False if the task was already terminal
        """
        error_info = ErrorInfo.from_value(error, ErrorKind.TASK_FAILED)
        events = []

        with self._lock:
            task = self._get_task(task_id)
            if task.is_terminal:
                logger.warning(f"[SCHEDULER] Task {task_id} already {task.status.value}; ignoring failure")
                return False

            task.fail(error_info)

            blocked_ids = []
            for dependent in self._transitive_dependents(task.id):
                if dependent.status not in (TaskStatus.PENDING, TaskStatus.IN_PROGRESS):
                    continue
                dependent.block(ErrorInfo(
                    kind=ErrorKind.DEPENDENCY_BLOCKED,
                    message=f"Blocked by failed dependency {task.id}",
                    details={"failed_dependency": task.id},
                ))
                blocked_ids.append(dependent.id)
                logger.warning(f"[SCHEDULER] Task {dependent.id} blocked due to failed dependency {task.id}")
                events.append(("task_blocked", {"task_id": dependent.id,
                                                "blocked_by": task.id,
                                                "error_kind": ErrorKind.DEPENDENCY_BLOCKED.value},
                               dependent.id, "warning"))

            events.append(("task_failed", {
                "task_id": task.id,
                "worker_id": task.assigned_worker,
                "workflow_id": task.workflow_id,
                "error_kind": error_info.kind.value,
                "error": error_info.to_dict(),
                "blocked_tasks": blocked_ids,
            }, task.id, "error"))

            workflow = self._workflows.get(task.workflow_id) if task.workflow_id else None
            if workflow is not None:
                workflow.updated_at = datetime.now()

        logger.error(f"[SCHEDULER] Task {task_id} failed ({error_info.kind.value}): {error_info.message}")
        if workflow is not None:
            self._persist_workflow(workflow)
        self._emit_all(events)
        if workflow is not None:
            self.publish_progress([workflow.id])
        return True

    def cancel_task(self, task_id: str, reason: str = "Cancelled by caller") -> bool:
        """Cooperative cancellation: fail with the cancelled kind."""
        return self.mark_task_failed(task_id, ErrorInfo(ErrorKind.CANCELLED, reason))

    def reassign(
        self,
        task_id: str,
        candidates: Optional[Iterable[WorkerLike]] = None
    ) -> Optional[AssignmentResult]:
        """
        Move a blocked or in-progress task back to pending.

        Args:
            task_id: Task to move
            candidates: If given, assignment is re-run immediately

        Returns:
            The new assignment result, or None if no candidates were given
        """
        with self._lock:
            task = self._get_task(task_id)
            previous_worker = task.assigned_worker
            task.reset()

        logger.info(f"[SCHEDULER] Task {task_id} returned to pending (was {previous_worker or 'unassigned'})")
        self._emit_all([("task_reassigned", {"task_id": task_id, "previous_worker": previous_worker},
                         task_id, "info")])

        if candidates is None:
            return None
        return self.assign(task_id, candidates)

    def handle_worker_offline(
        self,
        worker_id: str,
        candidates: Optional[Iterable[WorkerLike]] = None
    ) -> List[str]:
        """
        Return every in-progress task of an offline worker to the pool.

        Returns:
            Ids of the tasks that were moved
        """
        with self._lock:
            affected = [
                t.id for t in self._tasks.values()
                if t.assigned_worker == worker_id and t.status == TaskStatus.IN_PROGRESS
            ]

        remaining = None
        if candidates is not None:
            remaining = [w for w in self._coerce_workers(candidates) if w.id != worker_id]

        for task_id in affected:
            self.reassign(task_id, remaining)

        if affected:
            logger.warning(f"[SCHEDULER] Worker {worker_id} offline; reassigned {len(affected)} task(s)")
        return affected

    def update_task_progress(self, task_id: str, progress: int) -> bool:
        with self._lock:
            task = self._get_task(task_id)
            changed = task.update_progress(progress)
            current = task.progress
        if changed:
            self._emit_all([("task_progress", {"task_id": task_id, "progress": current},
                             task_id, "debug")])
        return changed

    # ========================================================================
    # INBOUND WORKER MESSAGES
    # ========================================================================

    def handle_task_result(self, payload: Dict[str, Any]) -> bool:
        """
        Route a worker's {taskId, status: success|failure, output|error} report.

        Unknown tasks and impossible transitions are logged and skipped.

        Raises:
            ValidationError: Missing task id or unrecognized status
        """
        task_id = payload.get("taskId") or payload.get("task_id")
        if not task_id:
            raise MissingParameterError("taskId", "task result")
        status = str(payload.get("status", "")).lower()

        try:
            if status in SUCCESS_STATUSES:
                output = payload.get("output", payload.get("result"))
                return self.mark_task_completed(task_id, output)
            if status in FAILURE_STATUSES:
                return self.mark_task_failed(task_id, payload.get("error") or "Task reported failure")
        except (TaskNotFoundError, InvalidStateTransitionError) as e:
            logger.warning(f"[SCHEDULER] Ignoring result for {task_id}: {e}")
            return False

        raise InvalidParameterError("status", "must be success or failure", actual_value=status)

    def handle_task_progress(self, payload: Dict[str, Any]) -> bool:
        task_id = payload.get("taskId") or payload.get("task_id")
        if not task_id:
            raise MissingParameterError("taskId", "task progress")
        if "progress" not in payload:
            raise MissingParameterError("progress", "task progress")
        try:
            return self.update_task_progress(task_id, int(payload["progress"]))
        except (TaskNotFoundError, InvalidStateTransitionError) as e:
            logger.debug(f"[SCHEDULER] Ignoring progress for {task_id}: {e}")
            return False

    def handle_message(self, message: Message) -> None:
        """Bus sink for messages addressed to "system"."""
        if message.type == MSG_TASK_RESULT:
            self.handle_task_result(message.payload)
        elif message.type == MSG_TASK_PROGRESS:
            self.handle_task_progress(message.payload)
        else:
            logger.debug(f"[SCHEDULER] Unhandled system message type: {message.type}")

    # ========================================================================
    # AGGREGATE PROGRESS
    # ========================================================================

    def progress_key(self, workflow_id: str) -> str:
        return f"{self.config.progress_state_key}:{workflow_id}:progress"

    def _progress_snapshot(self, workflow: Workflow) -> Dict[str, Any]:
        return {
            "workflow_id": workflow.id,
            "status": workflow.status.value,
            "progress": workflow.progress,
            "current_phase": workflow.current_phase,
            "total": len(workflow.tasks),
            "completed": workflow.count(TaskStatus.COMPLETED),
            "in_progress": workflow.count(TaskStatus.IN_PROGRESS),
            "failed": workflow.count(TaskStatus.FAILED),
            "blocked": workflow.count(TaskStatus.BLOCKED),
        }

    def publish_progress(self, workflow_ids: Optional[Iterable[str]] = None) -> int:
        """
        Write changed workflow progress to the synchronizer.

        Returns:
            Number of progress records written
        """
        if self.synchronizer is None:
            return 0

        with self._lock:
            ids = list(workflow_ids) if workflow_ids is not None else list(self._workflows.keys())
            changed = []
            for workflow_id in ids:
                workflow = self._workflows.get(workflow_id)
                if workflow is None or not workflow.tasks:
                    continue
                snapshot = self._progress_snapshot(workflow)
                if self._last_progress.get(workflow_id) != snapshot:
                    changed.append((workflow_id, snapshot))

        written = 0
        for workflow_id, snapshot in changed:
            value = dict(snapshot, _timestamp=datetime.now().isoformat())
            try:
                self.synchronizer.set_state(self.progress_key(workflow_id), value, SYSTEM_SENDER)
            except LockTimeoutError as e:
                logger.warning(f"[SCHEDULER] Progress for {workflow_id} not published: {e}")
                continue
            with self._lock:
                self._last_progress[workflow_id] = snapshot
            written += 1
        return written

    # ========================================================================
    # WORKFLOW LIFECYCLE
    # ========================================================================

    def start_workflow(self, workflow_id: str) -> Workflow:
        with self._lock:
            workflow = self._get_workflow(workflow_id)
            workflow.status = WorkflowStatus.IN_PROGRESS
            workflow.started_at = workflow.started_at or datetime.now()
            workflow.updated_at = datetime.now()
        logger.info(f"[SCHEDULER] Workflow {workflow_id} started")
        self._persist_workflow(workflow)
        self._emit_all([("workflow_started", {"workflow_id": workflow_id}, None, "info")])
        return workflow

    def update_workflow_status(self, workflow_id: str, status: Union[WorkflowStatus, str]) -> Workflow:
        try:
            status = WorkflowStatus(status)
        except ValueError:
            raise InvalidParameterError("status", "unknown workflow status", actual_value=status) from None

        with self._lock:
            workflow = self._get_workflow(workflow_id)
            workflow.status = status
            workflow.updated_at = datetime.now()
            if status == WorkflowStatus.COMPLETED:
                workflow.completed_at = datetime.now()
            elif status == WorkflowStatus.IN_PROGRESS and workflow.started_at is None:
                workflow.started_at = datetime.now()

        self._persist_workflow(workflow)
        self._emit_all([("workflow_status_updated", {"workflow_id": workflow_id, "status": status.value},
                         None, "info")])
        return workflow

    def get_workflow(self, workflow_id: str) -> Workflow:
        """Active workflow, or an archived one loaded from the store."""
        with self._lock:
            workflow = self._workflows.get(workflow_id)
        if workflow is not None:
            return workflow

        try:
            record = self.store.load_workflow(workflow_id)
        except StoreError as e:
            logger.warning(f"[SCHEDULER] Could not load workflow {workflow_id}: {e}")
            record = None
        if not record:
            raise WorkflowNotFoundError(workflow_id)
        return Workflow.from_dict(record["data"])

    def get_all_workflows(self) -> List[Workflow]:
        with self._lock:
            return list(self._workflows.values())

    def get_task(self, task_id: str) -> Task:
        with self._lock:
            return self._get_task(task_id)

    def get_active_task_count(self) -> int:
        with self._lock:
            return sum(1 for t in self._tasks.values() if not t.is_terminal)

    # ========================================================================
    # INTROSPECTION
    # ========================================================================

    def get_workflow_status(self, workflow_id: Optional[str] = None) -> Dict[str, Any]:
        """Status of one workflow, or aggregate counts across all tasks."""
        with self._lock:
            if workflow_id is not None:
                workflow = self._get_workflow(workflow_id)
                return {
                    "id": workflow.id,
                    "status": workflow.status.value,
                    "description": workflow.description,
                    "category": workflow.category,
                    "created_at": workflow.created_at.isoformat(),
                    "started_at": workflow.started_at.isoformat() if workflow.started_at else None,
                    "updated_at": workflow.updated_at.isoformat(),
                    "completed_at": workflow.completed_at.isoformat() if workflow.completed_at else None,
                    "total_tasks": len(workflow.tasks),
                    "completed_tasks": workflow.count(TaskStatus.COMPLETED),
                    "pending_tasks": workflow.count(TaskStatus.PENDING),
                    "in_progress_tasks": workflow.count(TaskStatus.IN_PROGRESS),
                    "failed_tasks": workflow.count(TaskStatus.FAILED),
                    "blocked_tasks": workflow.count(TaskStatus.BLOCKED),
                    "progress": workflow.progress,
                    "current_phase": workflow.current_phase,
                }

            counts = {status: 0 for status in TaskStatus}
            for task in self._tasks.values():
                counts[task.status] += 1
            total = len(self._tasks)
            return {
                "total_tasks": total,
                "completed_tasks": counts[TaskStatus.COMPLETED],
                "pending_tasks": counts[TaskStatus.PENDING],
                "in_progress_tasks": counts[TaskStatus.IN_PROGRESS],
                "failed_tasks": counts[TaskStatus.FAILED],
                "blocked_tasks": counts[TaskStatus.BLOCKED],
                "progress": round(counts[TaskStatus.COMPLETED] / total * 100) if total else 0,
                "active_workflows": sum(
                    1 for w in self._workflows.values() if w.status != WorkflowStatus.COMPLETED
                ),
                "timestamp": datetime.now().isoformat(),
            }

    def get_task_graph(self, workflow_id: str) -> Dict[str, Any]:
        workflow = self.get_workflow(workflow_id)
        with self._lock:
            return {
                "workflow_id": workflow.id,
                "tasks": [task.to_dict() for task in workflow.tasks],
                "dependencies": {task.id: sorted(task.dependencies) for task in workflow.tasks},
            }

    def get_task_assignments(self, workflow_id: str) -> Dict[str, List[str]]:
        """Worker id -> task ids currently or previously assigned to it."""
        workflow = self.get_workflow(workflow_id)
        assignments: Dict[str, List[str]] = {}
        with self._lock:
            for task in workflow.tasks:
                if task.assigned_worker:
                    assignments.setdefault(task.assigned_worker, []).append(task.id)
        return assignments

    def integrate_results(
        self,
        integrator_id: str,
        outcomes: Optional[Iterable[Any]] = None,
        workflow_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Summarize task outcomes.

        Args:
            integrator_id: Worker that integrates the results
            outcomes: Tasks or {status, output|value, error|reason} dicts
            workflow_id: Use this workflow's terminal tasks when outcomes is None
        """
        if outcomes is None:
            if workflow_id is None:
                raise MissingParameterError("outcomes", "integrate_results needs outcomes or a workflow_id")
            outcomes = [t for t in self.get_workflow(workflow_id).tasks if t.is_terminal]

        results, failures = [], []
        for outcome in outcomes:
            if isinstance(outcome, Task):
                if outcome.status == TaskStatus.COMPLETED:
                    results.append(outcome.result)
                else:
                    failures.append(outcome.error.to_dict() if outcome.error else outcome.status.value)
                continue
            status = str(outcome.get("status", "")).lower()
            if status in SUCCESS_STATUSES:
                results.append(outcome.get("output", outcome.get("value", outcome.get("result"))))
            else:
                failures.append(outcome.get("error", outcome.get("reason")))

        integration = {
            "success": len(failures) == 0,
            "total": len(results) + len(failures),
            "successful": len(results),
            "failed": len(failures),
            "results": results,
            "failures": failures,
            "summary": summarize_outcomes(len(results), len(failures)),
            "integrated_by": integrator_id,
            "workflow_id": workflow_id,
            "timestamp": datetime.now().isoformat(),
        }
        logger.info(f"[SCHEDULER] {integration['summary']} (integrated by {integrator_id})")
        self._emit_all([("results_integrated", {k: integration[k] for k in
                                                ("success", "total", "successful", "failed",
                                                 "summary", "integrated_by", "workflow_id")},
                         None, "info")])
        return integration

    # ========================================================================
    # RETENTION
    # ========================================================================

    def cleanup(self, retention_hours: Optional[float] = None) -> Dict[str, int]:
        """
        Archive completed workflows and purge terminal tasks past the retention window.

        Completed task ids stay in the completed set so later dependents
        still see them as satisfied.

        Returns:
            {"workflows_archived": n, "tasks_purged": m}
        """
        hours = retention_hours if retention_hours is not None else self.config.retention_hours
        cutoff = datetime.now() - timedelta(hours=hours)
        archived: List[Workflow] = []
        purged: List[str] = []

        with self._lock:
            for workflow in list(self._workflows.values()):
                if (workflow.status == WorkflowStatus.COMPLETED
                        and workflow.completed_at and workflow.completed_at <= cutoff):
                    archived.append(self._workflows.pop(workflow.id))
                    self._last_progress.pop(workflow.id, None)
                    for task in workflow.tasks:
                        if self._tasks.pop(task.id, None) is not None:
                            purged.append(task.id)

            for task in list(self._tasks.values()):
                if task.is_terminal and task.completed_at and task.completed_at <= cutoff:
                    workflow = self._workflows.get(task.workflow_id) if task.workflow_id else None
                    if workflow is None:
                        self._tasks.pop(task.id)
                        purged.append(task.id)

        for workflow in archived:
            self._persist_workflow(workflow)
        events = [("workflow_archived", {"workflow_id": w.id, "tasks": len(w.tasks)}, None, "info")
                  for w in archived]
        if purged:
            events.append(("task_purged", {"task_ids": purged, "count": len(purged)}, None, "debug"))
        self._emit_all(events)

        if archived or purged:
            logger.info(f"[SCHEDULER] Cleanup archived {len(archived)} workflow(s), purged {len(purged)} task(s)")
        return {"workflows_archived": len(archived), "tasks_purged": len(purged)}
