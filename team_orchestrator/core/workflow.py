"""
Workflow module - LangGraph execution graph for running one goal in process
"""

from typing import Any, Dict, Iterable, List, Literal, Optional, Union
import time
import uuid

from langgraph.graph import StateGraph, START, END
from langgraph.checkpoint.memory import MemorySaver

from team_orchestrator.models import ExecutionState, TaskStatus, WorkerDescriptor, WorkflowStatus
from team_orchestrator.utils.logger import get_logger

logger = get_logger(__name__)

# dispatch -> deliver -> sync -> check_completion per iteration, plus plan/distribute
NODES_PER_ITERATION = 4

RUN_COMPLETED = "completed"
RUN_STALLED = "stalled"
RUN_MAX_ITERATIONS = "max_iterations"
RUN_IN_PROGRESS = "in_progress"


class ExecutionGraph:
    """
    Builds and runs the coordination loop for one goal as a LangGraph StateGraph.

    Each iteration assigns ready tasks, delivers bus messages (worker sinks
    run here and may report results back to "system"), reconciles shared
    state and checks whether the workflow finished, stalled or ran out of
    iterations.

    The graph holds no state of its own: every node drives the
    orchestrator's subsystems and records a summary in ExecutionState.
    """

    def __init__(
        self,
        orchestrator: Any,
        candidates: Optional[Iterable[Union[WorkerDescriptor, Dict[str, Any]]]] = None,
        poll_interval: float = 0.0
    ):
        """
        Initialize the execution graph.

        Args:
            orchestrator: The Orchestrator whose subsystems the nodes drive
            candidates: Fixed worker roster; None uses the orchestrator's roster provider
            poll_interval: Seconds to wait on an idle iteration while tasks are still in progress
        """
        self.orchestrator = orchestrator
        self.candidates = list(candidates) if candidates is not None else None
        self.poll_interval = poll_interval
        self.checkpointer = MemorySaver()
        self.app = self.build().compile(checkpointer=self.checkpointer)

    def build(self) -> StateGraph:
        """
        Build the graph.

        Workflow:
        1. Plan -> create the execution plan (skipped for an existing workflow)
        2. Distribute -> phases become dependent tasks
        3. Dispatch -> assign every ready task
        4. Deliver -> one message bus tick
        5. Sync -> one state reconciliation pass
        6. Check Completion -> continue (back to Dispatch) or END

        Returns:
            Configured StateGraph instance
        """
        graph = StateGraph(ExecutionState)

        graph.add_node("plan", self._plan)
        graph.add_node("distribute", self._distribute)
        graph.add_node("dispatch", self._dispatch)
        graph.add_node("deliver", self._deliver)
        graph.add_node("sync", self._sync)
        graph.add_node("check_completion", self._check_completion)

        graph.add_conditional_edges(
            START,
            self._route_entry,
            {
                "plan": "plan",
                "distribute": "distribute",
                "dispatch": "dispatch"
            }
        )
        graph.add_edge("plan", "distribute")
        graph.add_edge("distribute", "dispatch")
        graph.add_edge("dispatch", "deliver")
        graph.add_edge("deliver", "sync")
        graph.add_edge("sync", "check_completion")

        graph.add_conditional_edges(
            "check_completion",
            self._route_after_check,
            {
                "continue": "dispatch",
                "complete": END
            }
        )

        return graph

    # ========================================================================
    # ROUTING
    # ========================================================================

    def _route_entry(self, state: ExecutionState) -> Literal["plan", "distribute", "dispatch"]:
        if not state.get("workflow_id"):
            return "plan"
        if not state.get("task_ids"):
            return "distribute"
        return "dispatch"

    def _route_after_check(self, state: ExecutionState) -> Literal["continue", "complete"]:
        if state.get("status") == RUN_IN_PROGRESS:
            return "continue"
        return "complete"

    # ========================================================================
    # NODES
    # ========================================================================

    def _plan(self, state: ExecutionState) -> Dict[str, Any]:
        workflow = self.orchestrator.scheduler.create_execution_plan(
            state["requester_id"],
            state["goal"],
            category=state.get("category"),
            complexity=state.get("complexity") or "medium"
        )
        return {"workflow_id": workflow.id}

    def _distribute(self, state: ExecutionState) -> Dict[str, Any]:
        tasks = self.orchestrator.scheduler.distribute_tasks(state["workflow_id"])
        return {"task_ids": [task.id for task in tasks], "status": RUN_IN_PROGRESS}

    def _dispatch(self, state: ExecutionState) -> Dict[str, Any]:
        results = self.orchestrator.scheduler.tick(self.candidates)
        return {
            "iteration_count": state.get("iteration_count", 0) + 1,
            "assignments": list(state.get("assignments", [])) + [
                {"task_id": r.task_id, "worker_id": r.worker_id, "score": r.score} for r in results
            ],
        }

    def _deliver(self, state: ExecutionState) -> Dict[str, Any]:
        delivered = self.orchestrator.message_bus.tick()
        return {"messages_delivered": state.get("messages_delivered", 0) + delivered}

    def _sync(self, state: ExecutionState) -> Dict[str, Any]:
        self.orchestrator.synchronizer.tick()
        workflow = self.orchestrator.scheduler.get_workflow(state["workflow_id"])
        return {
            "progress": workflow.progress,
            "completed_task_ids": [t.id for t in workflow.tasks if t.status == TaskStatus.COMPLETED],
            "failed_task_ids": [t.id for t in workflow.tasks if t.status == TaskStatus.FAILED],
            "blocked_task_ids": [t.id for t in workflow.tasks if t.status == TaskStatus.BLOCKED],
        }

    def _check_completion(self, state: ExecutionState) -> Dict[str, Any]:
        """
        Decide the run status after an iteration.

        Stalled means nothing is in progress, nothing is queued on the bus
        and the last iteration changed nothing, e.g. every remaining task is
        blocked or no worker scores above zero.

        An idle iteration spent waiting for a queued message's retry back-off
        sleeps until that message is due and does not count towards
        max_iterations (at most max_iterations such waits per run).
        """
        scheduler = self.orchestrator.scheduler
        bus = self.orchestrator.message_bus
        workflow = scheduler.get_workflow(state["workflow_id"])

        if workflow.status == WorkflowStatus.COMPLETED:
            logger.info(f"[GRAPH] Workflow {workflow.id} completed after {state['iteration_count']} iterations")
            return {"status": RUN_COMPLETED}

        previous = state.get("last_signature")
        signature = [
            len(state.get("assignments", [])),
            state.get("messages_delivered", 0),
            len(state.get("completed_task_ids", [])),
            len(state.get("failed_task_ids", [])),
        ]
        changed = previous != signature
        idle = 0 if changed else state.get("idle_iterations", 0) + 1

        backoff_waits = state.get("backoff_waits", 0)
        wait = bus.seconds_until_due() if idle > 0 else None
        if wait and backoff_waits < state["max_iterations"]:
            logger.debug(f"[GRAPH] Waiting {wait:.2f}s for a message retry")
            time.sleep(wait)
            return {
                "status": RUN_IN_PROGRESS,
                "iteration_count": state["iteration_count"] - 1,
                "backoff_waits": backoff_waits + 1,
                "idle_iterations": idle,
                "last_signature": signature,
            }

        if state["iteration_count"] >= state["max_iterations"]:
            logger.warning(f"[GRAPH] Workflow {workflow.id} hit max iterations ({state['max_iterations']})")
            return {"status": RUN_MAX_ITERATIONS}

        in_progress = workflow.count(TaskStatus.IN_PROGRESS)
        queued = len(bus.get_pending())
        if idle > 0 and in_progress == 0 and queued == 0:
            logger.warning(
                f"[GRAPH] Workflow {workflow.id} stalled at {workflow.progress}% "
                f"(blocked={workflow.count(TaskStatus.BLOCKED)}, failed={workflow.count(TaskStatus.FAILED)})"
            )
            return {"status": RUN_STALLED, "idle_iterations": idle}

        if idle > 0 and self.poll_interval > 0:
            time.sleep(self.poll_interval)

        return {"status": RUN_IN_PROGRESS, "idle_iterations": idle, "last_signature": signature}

    # ========================================================================
    # EXECUTION
    # ========================================================================

    def initial_state(
        self,
        goal: str = "",
        requester_id: str = "system",
        category: Optional[str] = None,
        complexity: str = "medium",
        workflow_id: Optional[str] = None,
        max_iterations: Optional[int] = None
    ) -> Dict[str, Any]:
        task_ids: List[str] = []
        if workflow_id:
            task_ids = self.orchestrator.scheduler.get_workflow(workflow_id).task_ids
        return {
            "goal": goal,
            "requester_id": requester_id,
            "category": category,
            "complexity": complexity,
            "workflow_id": workflow_id,
            "task_ids": task_ids,
            "iteration_count": 0,
            "max_iterations": max_iterations or self.orchestrator.config.max_iterations,
            "assignments": [],
            "messages_delivered": 0,
            "idle_iterations": 0,
            "backoff_waits": 0,
            "last_signature": [],
            "status": RUN_IN_PROGRESS,
            "progress": 0,
            "completed_task_ids": [],
            "failed_task_ids": [],
            "blocked_task_ids": [],
        }

    def run(self, initial_state: Dict[str, Any], thread_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Run the graph to completion.

        Args:
            initial_state: State built by initial_state()
            thread_id: Checkpoint thread (a fresh one per run by default)

        Returns:
            Final ExecutionState
        """
        thread_id = thread_id or f"run_{uuid.uuid4().hex[:8]}"
        # back-off waits may add up to max_iterations uncounted iterations
        recursion_limit = 2 * initial_state["max_iterations"] * NODES_PER_ITERATION + 10
        config = {
            "configurable": {"thread_id": thread_id},
            "recursion_limit": recursion_limit
        }

        logger.info(f"[GRAPH] Starting execution (thread={thread_id}, max_iterations={initial_state['max_iterations']})")

        node_count = 0
        for update in self.app.stream(initial_state, config):
            node_count += 1
            node_name = next(iter(update.keys()))
            logger.debug(f"[GRAPH] Node executed: {node_name}")

        final_state = dict(self.app.get_state(config).values)

        logger.info(
            f"[GRAPH] Finished with status={final_state.get('status')} after {node_count} nodes "
            f"(progress={final_state.get('progress')}%, completed={len(final_state.get('completed_task_ids', []))}, "
            f"failed={len(final_state.get('failed_task_ids', []))}, blocked={len(final_state.get('blocked_task_ids', []))})"
        )
        return final_state
