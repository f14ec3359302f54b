"""
Tests for the task graph scheduler.

Covers:
1. Decomposition of goals into dependent phase tasks
2. Readiness and priority ordering
3. Worker scoring and assignment messages
4. Completion / failure propagation
5. Reassignment, worker loss and result handling
6. Workflow lifecycle, introspection and retention
"""

import pytest

from team_orchestrator.config import SchedulerConfig, SchedulingConfig, StateConfig
from team_orchestrator.core.event_bus import EventBus
from team_orchestrator.core.message_bus import MessageBus
from team_orchestrator.core.scheduler import TaskScheduler, score_worker, summarize_outcomes
from team_orchestrator.core.state_sync import StateSynchronizer
from team_orchestrator.models import (
    ErrorKind,
    Message,
    Task,
    TaskStatus,
    WorkerDescriptor,
    WorkerStatus,
    WorkflowStatus,
    create_message,
)
from team_orchestrator.utils.exceptions import (
    InvalidStateTransitionError,
    TaskNotFoundError,
    ValidationError,
    WorkflowNotFoundError,
)
from team_orchestrator.utils.store import InMemoryStore


LEADER = {"id": "claude_leader", "role": "leader",
          "capabilities": ["planning", "strategic_thinking", "coordination"], "current_load": 0}
RESEARCHER = {"id": "claude_research", "role": "researcher",
              "capabilities": ["research", "analysis"], "current_load": 20}
DEVELOPER = {"id": "claude_dev_1", "role": "developer",
             "capabilities": ["coding", "programming", "testing"], "current_load": 10}
SENIOR = {"id": "claude_senior", "role": "senior_developer",
          "capabilities": ["deployment", "devops", "architecture"], "current_load": 30}
TEAM = [LEADER, RESEARCHER, DEVELOPER, SENIOR]


class SchedulerTestBase:
    """Shared wiring for scheduler tests."""

    def setup_method(self):
        self.events = EventBus()
        self.store = InMemoryStore()
        self.bus = MessageBus(event_bus=self.events)
        self.sync = StateSynchronizer(StateConfig(lock_timeout=1.0), store=self.store, event_bus=self.events)
        self.scheduler = TaskScheduler(
            config=SchedulerConfig(),
            scheduling=SchedulingConfig(),
            message_bus=self.bus,
            synchronizer=self.sync,
            store=self.store,
            event_bus=self.events,
        )

    def plan(self, category=None, phases=None):
        workflow = self.scheduler.create_execution_plan("claude_leader", "Build a TODO app",
                                                        category=category, phases=phases)
        tasks = self.scheduler.distribute_tasks(workflow)
        return workflow, tasks

    def event_types(self, event_type):
        return self.events.get_events(event_type)


class TestDecomposition(SchedulerTestBase):
    """Goal -> workflow -> dependent tasks."""

    def test_default_plan_is_linear_chain(self):
        workflow, tasks = self.plan()

        assert workflow.id.startswith("plan_")
        assert [t.type for t in tasks] == ["planning", "research", "implementation", "testing", "deployment"]
        assert tasks[0].dependencies == set()
        for previous, task in zip(tasks, tasks[1:]):
            assert task.dependencies == {previous.id}

    def test_task_ids_and_descriptions(self):
        workflow, tasks = self.plan()

        assert tasks[2].id == f"{workflow.id}_implementation_2"
        assert tasks[2].description == "implementation for Build a TODO app"
        assert tasks[2].estimated_duration == 4 * 3600
        assert tasks[0].priority == 5
        assert tasks[0].preferred_role == "leader"
        assert tasks[0].metadata["phase_index"] == 0
        assert all(t.workflow_id == workflow.id for t in tasks)

    def test_unknown_category_uses_default(self):
        workflow, tasks = self.plan(category="quantum_gardening")
        assert workflow.category == "default"
        assert len(tasks) == 5

    def test_category_with_explicit_dependencies(self):
        workflow, tasks = self.plan(category="web_application")
        by_type = {t.type: t for t in tasks}

        assert by_type["backend_development"].dependencies == {by_type["requirements_analysis"].id}
        assert by_type["frontend_development"].dependencies == {by_type["ui_design"].id}
        assert by_type["integration"].dependencies == {
            by_type["backend_development"].id,
            by_type["frontend_development"].id,
        }
        assert by_type["testing"].dependencies == {by_type["integration"].id}
        assert workflow.estimated_duration == (4 + 8 + 16 + 12 + 6 + 8 + 4) * 3600

    def test_plan_events_emitted(self):
        workflow, tasks = self.plan()
        assert self.event_types("plan_created")[0]["payload"]["workflow_id"] == workflow.id
        assert len(self.event_types("task_added")) == len(tasks)

    def test_plan_persisted(self):
        workflow, tasks = self.plan()
        record = self.store.load_workflow(workflow.id)
        assert record["version"] == 2  # created, then distributed
        assert len(record["data"]["tasks"]) == len(tasks)

    def test_missing_goal_rejected(self):
        with pytest.raises(ValidationError):
            self.scheduler.create_execution_plan("claude_leader", "   ")

    def test_invalid_complexity_rejected(self):
        with pytest.raises(ValidationError):
            self.scheduler.create_execution_plan("claude_leader", "Goal", complexity="extreme")

    def test_distribute_twice_rejected(self):
        workflow, _ = self.plan()
        with pytest.raises(ValidationError):
            self.scheduler.distribute_tasks(workflow)

    def test_cycle_rejected_and_nothing_registered(self):
        workflow = self.scheduler.create_execution_plan(
            "claude_leader", "Goal",
            phases=[{"name": "a", "depends_on": ["b"]}, {"name": "b", "depends_on": ["a"]}]
        )
        with pytest.raises(ValidationError, match="cycle"):
            self.scheduler.distribute_tasks(workflow)

        assert self.scheduler.get_workflow_status()["total_tasks"] == 0
        assert workflow.tasks == []

    def test_unknown_depends_on_phase_rejected(self):
        workflow = self.scheduler.create_execution_plan(
            "claude_leader", "Goal", phases=[{"name": "a", "depends_on": ["missing"]}]
        )
        with pytest.raises(ValidationError, match="unknown phase"):
            self.scheduler.distribute_tasks(workflow)

    def test_distribute_unknown_workflow(self):
        with pytest.raises(WorkflowNotFoundError):
            self.scheduler.distribute_tasks("plan_missing")


class TestReadiness(SchedulerTestBase):
    """Dependency invariant and priority / FIFO selection."""

    def add_join_tasks(self):
        self.scheduler.add_task(Task(id="planning", type="planning", description="Plan", priority=5))
        self.scheduler.add_task(Task(id="research", type="research", description="Research", priority=4))
        self.scheduler.add_task(Task(id="impl", type="implementation", description="Build", priority=3,
                                     dependencies={"planning", "research"}))

    def test_dependent_task_waits_for_all_predecessors(self):
        self.add_join_tasks()

        assert self.scheduler.next_ready_task().id == "planning"
        assert [t.id for t in self.scheduler.get_ready_tasks()] == ["planning", "research"]

        self.scheduler.mark_task_completed("planning", {"plan": "ok"})
        assert self.scheduler.next_ready_task().id == "research"
        assert "impl" not in [t.id for t in self.scheduler.get_ready_tasks()]

        self.scheduler.mark_task_completed("research", {"notes": []})
        assert self.scheduler.next_ready_task().id == "impl"

        ready_events = self.event_types("task_ready")
        assert [e["payload"]["task_id"] for e in ready_events] == ["impl"]
        assert ready_events[0]["payload"]["unblocked_by"] == "research"

    def test_fifo_on_equal_priority(self):
        for name in ("first", "second", "third"):
            self.scheduler.add_task(Task(id=name, type="implementation", description=name, priority=3))
        assert self.scheduler.get_next_task().id == "first"

    def test_no_ready_task(self):
        assert self.scheduler.next_ready_task() is None

    def test_add_task_rejects_duplicates(self):
        self.scheduler.add_task(Task(id="t1", type="testing", description="Test"))
        with pytest.raises(ValidationError, match="already exists"):
            self.scheduler.add_task(Task(id="t1", type="testing", description="Again"))

    def test_add_task_rejects_unknown_dependency(self):
        with pytest.raises(ValidationError, match="unknown task"):
            self.scheduler.add_task(Task(id="t1", type="testing", description="Test", dependencies={"nope"}))

    def test_add_task_rejects_self_dependency(self):
        with pytest.raises(ValidationError):
            self.scheduler.add_task(Task(id="t1", type="testing", description="Test", dependencies={"t1"}))


class TestScoring:
    """Pure scoring function."""

    def setup_method(self):
        self.config = SchedulingConfig()
        self.task = Task(id="t", type="planning", description="Plan", metadata={"preferred_role": "leader"})

    def test_full_role_match(self):
        worker = WorkerDescriptor.from_dict(LEADER)
        assert score_worker(self.task, worker, self.config) == pytest.approx(1.0)

    def test_partial_capabilities_and_load(self):
        worker = WorkerDescriptor(id="w", role="leader", capabilities={"planning"}, current_load=50)
        expected = 0.5 + (1 / 3) * 0.3 + 0.5 * 0.2
        assert score_worker(self.task, worker, self.config) == pytest.approx(expected)

    def test_role_from_classification_when_no_preference(self):
        task = Task(id="t", type="research", description="Research")
        worker = WorkerDescriptor(id="w", role="researcher", capabilities=set(), current_load=100)
        assert score_worker(task, worker, self.config) == pytest.approx(0.5)

    def test_unknown_type_uses_general_capability(self):
        task = Task(id="t", type="poetry", description="Write")
        worker = WorkerDescriptor(id="w", role="writer", capabilities={"general"}, current_load=100)
        assert score_worker(task, worker, self.config) == pytest.approx(0.3)

    def test_offline_worker_scores_zero(self):
        worker = WorkerDescriptor.from_dict(dict(LEADER, status="offline"))
        assert score_worker(self.task, worker, self.config) == 0.0

    def test_score_is_capped(self):
        config = SchedulingConfig(role_weight=0.6, capability_weight=0.2, load_weight=0.2)
        worker = WorkerDescriptor.from_dict(LEADER)
        assert score_worker(self.task, worker, config) <= 1.0


class TestAssignment(SchedulerTestBase):
    """Assignment of ready tasks to the best worker."""

    def test_assign_publishes_task_assignment(self):
        workflow, tasks = self.plan()

        result = self.scheduler.assign(tasks[0].id, TEAM)

        assert result.assigned
        assert result.worker_id == "claude_leader"
        assert result.reasoning.startswith("Assigned to claude_leader (score: 100.0%)")
        assert tasks[0].status == TaskStatus.IN_PROGRESS
        assert tasks[0].assigned_worker == "claude_leader"

        pending = self.bus.get_pending()
        assert len(pending) == 1
        message = pending[0]
        assert message.id == result.message_id
        assert message.type == "task_assignment"
        assert message.sender == "system"
        assert message.recipient == "claude_leader"
        assert message.payload["task_id"] == tasks[0].id
        assert message.priority == tasks[0].priority

    def test_first_assignment_starts_workflow(self):
        workflow, tasks = self.plan()
        self.scheduler.assign(tasks[0].id, TEAM)
        assert workflow.status == WorkflowStatus.IN_PROGRESS
        assert workflow.started_at is not None
        assert len(self.event_types("workflow_started")) == 1

    def test_no_suitable_worker_leaves_task_pending(self):
        workflow, tasks = self.plan()
        busy = {"id": "w", "role": "writer", "capabilities": [], "current_load": 100}

        result = self.scheduler.assign(tasks[0].id, [busy])

        assert not result.assigned
        assert result.reasoning == "No suitable agent found"
        assert tasks[0].status == TaskStatus.PENDING
        assert self.bus.get_pending() == []

    def test_offline_workers_skipped(self):
        workflow, tasks = self.plan()
        offline_leader = dict(LEADER, status="offline")

        result = self.scheduler.assign(tasks[0].id, [offline_leader, DEVELOPER])
        assert result.worker_id == "claude_dev_1"

    def test_assign_not_ready_task(self):
        workflow, tasks = self.plan()
        result = self.scheduler.assign(tasks[1].id, TEAM)
        assert not result.assigned
        assert tasks[1].status == TaskStatus.PENDING

    def test_assign_non_pending_task_raises(self):
        workflow, tasks = self.plan()
        self.scheduler.assign(tasks[0].id, TEAM)
        with pytest.raises(InvalidStateTransitionError):
            self.scheduler.assign(tasks[0].id, TEAM)

    def test_invalid_worker_descriptor_ignored(self):
        workflow, tasks = self.plan()
        broken = {"id": "broken", "role": "leader", "current_load": 500}
        result = self.scheduler.assign(tasks[0].id, [broken, LEADER])
        assert result.worker_id == "claude_leader"

    def test_tick_assigns_every_ready_task(self):
        self.scheduler.add_task(Task(id="a", type="research", description="A", priority=4))
        self.scheduler.add_task(Task(id="b", type="implementation", description="B", priority=3))
        self.scheduler.add_task(Task(id="c", type="testing", description="C", dependencies={"a"}))

        assignments = self.scheduler.tick(TEAM)

        assert [a.task_id for a in assignments] == ["a", "b"]
        assert self.scheduler.get_task("c").status == TaskStatus.PENDING

    def test_tick_uses_roster_provider(self):
        self.scheduler.roster_provider = lambda: [WorkerDescriptor.from_dict(LEADER)]
        workflow, tasks = self.plan()

        assignments = self.scheduler.tick()
        assert [a.worker_id for a in assignments] == ["claude_leader"]

    def test_tick_without_roster_assigns_nothing(self):
        self.plan()
        assert self.scheduler.tick() == []


class TestCompletionAndFailure(SchedulerTestBase):
    """Completion unblocks, failure blocks transitively."""

    def test_completion_is_idempotent(self):
        workflow, tasks = self.plan()
        self.scheduler.assign(tasks[0].id, TEAM)

        assert self.scheduler.mark_task_completed(tasks[0].id, {"plan": "v1"}) is True
        assert self.scheduler.mark_task_completed(tasks[0].id, {"plan": "v2"}) is False

        assert tasks[0].result == {"plan": "v1"}
        assert len(self.event_types("task_completed")) == 1
        assert len([e for e in self.event_types("task_ready")
                    if e["payload"]["task_id"] == tasks[1].id]) == 1

    def test_completion_saves_result_record(self):
        workflow, tasks = self.plan()
        self.scheduler.assign(tasks[0].id, TEAM)
        self.scheduler.mark_task_completed(tasks[0].id, {"plan": "ok"})

        record = self.store.load_result(tasks[0].id)
        assert record["workerId"] == "claude_leader"
        assert record["taskId"] == tasks[0].id
        assert record["result"] == {"plan": "ok"}

    def test_completing_pending_task_starts_it(self):
        workflow, tasks = self.plan()
        self.scheduler.mark_task_completed(tasks[0].id)
        assert tasks[0].status == TaskStatus.COMPLETED
        assert tasks[0].started_at is not None
        assert tasks[0].progress == 100

    def test_completing_task_with_unmet_dependencies_raises(self):
        workflow, tasks = self.plan()

        with pytest.raises(InvalidStateTransitionError):
            self.scheduler.mark_task_completed(tasks[2].id)

        assert tasks[2].status == TaskStatus.PENDING
        assert self.event_types("task_completed") == []
        assert self.event_types("task_ready") == []

    def test_stray_result_for_waiting_task_is_ignored(self):
        workflow, tasks = self.plan()

        assert self.scheduler.handle_task_result({"taskId": tasks[2].id, "status": "success"}) is False
        assert tasks[2].status == TaskStatus.PENDING

    def test_workflow_completes_when_all_tasks_complete(self):
        workflow, tasks = self.plan(phases=["planning", "implementation"])
        for task in tasks:
            self.scheduler.mark_task_completed(task.id)

        assert workflow.status == WorkflowStatus.COMPLETED
        assert workflow.completed_at is not None
        assert len(self.event_types("workflow_completed")) == 1

    def test_progress_published_to_synchronizer(self):
        workflow, tasks = self.plan()
        self.scheduler.mark_task_completed(tasks[0].id)

        progress = self.sync.get_state(self.scheduler.progress_key(workflow.id))
        assert progress["completed"] == 1
        assert progress["total"] == 5
        assert progress["progress"] == 20
        assert progress["current_phase"] == "research"

    def test_unchanged_progress_not_republished(self):
        workflow, tasks = self.plan()
        self.scheduler.mark_task_completed(tasks[0].id)
        version = self.sync.get_version(self.scheduler.progress_key(workflow.id))

        assert self.scheduler.publish_progress() == 0
        assert self.sync.get_version(self.scheduler.progress_key(workflow.id)) == version

    def test_failure_blocks_transitive_dependents(self):
        workflow, tasks = self.plan()
        self.scheduler.assign(tasks[0].id, TEAM)

        assert self.scheduler.mark_task_failed(tasks[0].id, "LLM quota exceeded") is True

        assert tasks[0].status == TaskStatus.FAILED
        assert tasks[0].error.kind == ErrorKind.TASK_FAILED
        for task in tasks[1:]:
            assert task.status == TaskStatus.BLOCKED
            assert task.error.kind == ErrorKind.DEPENDENCY_BLOCKED
        assert self.scheduler.next_ready_task() is None

        blocked = self.event_types("task_blocked")
        assert [e["payload"]["task_id"] for e in blocked] == [t.id for t in tasks[1:]]

        failed = self.event_types("task_failed")
        assert len(failed) == 1
        assert failed[0]["payload"]["task_id"] == tasks[0].id
        assert failed[0]["payload"]["error_kind"] == "task_failed"
        assert failed[0]["payload"]["worker_id"] == "claude_leader"
        assert failed[0]["payload"]["blocked_tasks"] == [t.id for t in tasks[1:]]

    def test_failure_does_not_touch_unrelated_tasks(self):
        self.scheduler.add_task(Task(id="a", type="research", description="A"))
        self.scheduler.add_task(Task(id="b", type="research", description="B"))
        self.scheduler.add_task(Task(id="c", type="testing", description="C", dependencies={"a"}))

        self.scheduler.mark_task_failed("a", "boom")

        assert self.scheduler.get_task("b").status == TaskStatus.PENDING
        assert self.scheduler.get_task("c").status == TaskStatus.BLOCKED

    def test_failing_terminal_task_is_noop(self):
        workflow, tasks = self.plan()
        self.scheduler.mark_task_completed(tasks[0].id)
        assert self.scheduler.mark_task_failed(tasks[0].id, "late") is False
        assert tasks[0].status == TaskStatus.COMPLETED
        assert self.event_types("task_failed") == []

    def test_completing_blocked_task_raises(self):
        workflow, tasks = self.plan()
        self.scheduler.mark_task_failed(tasks[0].id, "boom")
        with pytest.raises(InvalidStateTransitionError):
            self.scheduler.mark_task_completed(tasks[1].id)

    def test_cancel_task(self):
        workflow, tasks = self.plan()
        self.scheduler.cancel_task(tasks[0].id, "goal withdrawn")
        assert tasks[0].error.kind == ErrorKind.CANCELLED
        assert self.event_types("task_failed")[0]["payload"]["error_kind"] == "cancelled"

    def test_unknown_task(self):
        with pytest.raises(TaskNotFoundError):
            self.scheduler.mark_task_completed("ghost")


class TestReassignment(SchedulerTestBase):
    """Reassign, worker loss and inbound worker reports."""

    def test_reassign_in_progress_task(self):
        workflow, tasks = self.plan()
        self.scheduler.assign(tasks[0].id, TEAM)

        result = self.scheduler.reassign(tasks[0].id, [DEVELOPER])

        assert result.worker_id == "claude_dev_1"
        assert tasks[0].assigned_worker == "claude_dev_1"
        reassigned = self.event_types("task_reassigned")
        assert reassigned[0]["payload"]["previous_worker"] == "claude_leader"

    def test_reassign_without_candidates_returns_to_pending(self):
        workflow, tasks = self.plan()
        self.scheduler.assign(tasks[0].id, TEAM)

        assert self.scheduler.reassign(tasks[0].id) is None
        assert tasks[0].status == TaskStatus.PENDING
        assert tasks[0].assigned_worker is None

    def test_reassign_blocked_task(self):
        workflow, tasks = self.plan()
        self.scheduler.mark_task_failed(tasks[0].id, "boom")
        self.scheduler.reassign(tasks[1].id)
        assert tasks[1].status == TaskStatus.PENDING
        assert tasks[1].error is None

    def test_reassign_completed_task_raises(self):
        workflow, tasks = self.plan()
        self.scheduler.mark_task_completed(tasks[0].id)
        with pytest.raises(InvalidStateTransitionError):
            self.scheduler.reassign(tasks[0].id)

    def test_worker_offline_moves_its_tasks(self):
        self.scheduler.add_task(Task(id="a", type="planning", description="A"))
        self.scheduler.add_task(Task(id="b", type="planning", description="B"))
        self.scheduler.tick([LEADER])

        moved = self.scheduler.handle_worker_offline("claude_leader", TEAM)

        assert sorted(moved) == ["a", "b"]
        for task_id in moved:
            assert self.scheduler.get_task(task_id).assigned_worker != "claude_leader"
            assert self.scheduler.get_task(task_id).status == TaskStatus.IN_PROGRESS

    def test_update_task_progress(self):
        workflow, tasks = self.plan()
        self.scheduler.assign(tasks[0].id, TEAM)

        assert self.scheduler.update_task_progress(tasks[0].id, 40) is True
        assert self.scheduler.update_task_progress(tasks[0].id, 30) is False
        assert tasks[0].progress == 40
        assert self.event_types("task_progress")[0]["payload"]["progress"] == 40

    def test_handle_task_result_success(self):
        workflow, tasks = self.plan()
        self.scheduler.assign(tasks[0].id, TEAM)

        handled = self.scheduler.handle_task_result(
            {"taskId": tasks[0].id, "status": "success", "output": {"files": ["plan.md"]}}
        )

        assert handled is True
        assert tasks[0].status == TaskStatus.COMPLETED
        assert tasks[0].result == {"files": ["plan.md"]}

    def test_handle_task_result_failure(self):
        workflow, tasks = self.plan()
        self.scheduler.assign(tasks[0].id, TEAM)

        self.scheduler.handle_task_result({"taskId": tasks[0].id, "status": "failure", "error": "crashed"})

        assert tasks[0].status == TaskStatus.FAILED
        assert tasks[0].error.message == "crashed"

    def test_handle_task_result_with_unrecognized_error_kind(self):
        workflow, tasks = self.plan()
        self.scheduler.assign(tasks[0].id, TEAM)

        handled = self.scheduler.handle_task_result({
            "taskId": tasks[0].id, "status": "failure",
            "error": {"kind": "timeout", "message": "model call timed out"},
        })

        assert handled is True
        assert tasks[0].status == TaskStatus.FAILED
        assert tasks[0].error.kind == ErrorKind.TASK_FAILED
        assert tasks[0].error.message == "model call timed out"
        assert tasks[0].error.details["reported_kind"] == "timeout"
        assert all(task.status == TaskStatus.BLOCKED for task in tasks[1:])

    def test_handle_task_result_unknown_task_is_skipped(self):
        assert self.scheduler.handle_task_result({"taskId": "ghost", "status": "success"}) is False

    def test_handle_task_result_requires_task_id(self):
        with pytest.raises(ValidationError):
            self.scheduler.handle_task_result({"status": "success"})

    def test_handle_task_result_rejects_unknown_status(self):
        workflow, tasks = self.plan()
        with pytest.raises(ValidationError):
            self.scheduler.handle_task_result({"taskId": tasks[0].id, "status": "maybe"})

    def test_handle_message_routes_progress(self):
        workflow, tasks = self.plan()
        self.scheduler.assign(tasks[0].id, TEAM)

        message = create_message("task_progress", "claude_leader", "system",
                                 {"taskId": tasks[0].id, "progress": 60})
        self.scheduler.handle_message(message)

        assert tasks[0].progress == 60


class TestWorkflowLifecycle(SchedulerTestBase):
    """Workflow status, introspection, integration and retention."""

    def test_start_and_update_status(self):
        workflow, _ = self.plan()
        self.scheduler.start_workflow(workflow.id)
        assert workflow.status == WorkflowStatus.IN_PROGRESS

        self.scheduler.update_workflow_status(workflow.id, "completed")
        assert workflow.status == WorkflowStatus.COMPLETED
        assert workflow.completed_at is not None

    def test_update_status_rejects_unknown(self):
        workflow, _ = self.plan()
        with pytest.raises(ValidationError):
            self.scheduler.update_workflow_status(workflow.id, "paused")

    def test_workflow_status(self):
        workflow, tasks = self.plan()
        self.scheduler.assign(tasks[0].id, TEAM)

        status = self.scheduler.get_workflow_status(workflow.id)

        assert status["id"] == workflow.id
        assert status["total_tasks"] == 5
        assert status["in_progress_tasks"] == 1
        assert status["pending_tasks"] == 4
        assert status["current_phase"] == "planning"

    def test_aggregate_status(self):
        self.plan()
        self.plan()
        status = self.scheduler.get_workflow_status()
        assert status["total_tasks"] == 10
        assert status["active_workflows"] == 2
        assert status["progress"] == 0

    def test_task_graph_and_assignments(self):
        workflow, tasks = self.plan()
        self.scheduler.tick(TEAM)

        graph = self.scheduler.get_task_graph(workflow.id)
        assert graph["workflow_id"] == workflow.id
        assert graph["dependencies"][tasks[1].id] == [tasks[0].id]
        assert len(graph["tasks"]) == 5

        assert self.scheduler.get_task_assignments(workflow.id) == {"claude_leader": [tasks[0].id]}

    def test_all_workflows(self):
        first, _ = self.plan()
        second, _ = self.plan()
        assert [w.id for w in self.scheduler.get_all_workflows()] == [first.id, second.id]

    def test_integrate_results(self):
        outcomes = [
            {"status": "success", "output": {"a": 1}},
            {"status": "failure", "error": "timeout"},
            {"status": "fulfilled", "value": 3},
        ]
        integration = self.scheduler.integrate_results("claude_leader", outcomes)

        assert integration["success"] is False
        assert integration["total"] == 3
        assert integration["successful"] == 2
        assert integration["results"] == [{"a": 1}, 3]
        assert integration["failures"] == ["timeout"]
        assert integration["summary"] == "2 tasks succeeded, 1 tasks failed"
        assert integration["integrated_by"] == "claude_leader"
        assert len(self.event_types("results_integrated")) == 1

    def test_integrate_results_from_workflow(self):
        workflow, tasks = self.plan(phases=["planning", "testing"])
        self.scheduler.mark_task_completed(tasks[0].id, "plan")
        self.scheduler.mark_task_completed(tasks[1].id, "tests")

        integration = self.scheduler.integrate_results("claude_leader", workflow_id=workflow.id)
        assert integration["summary"] == "All 2 tasks completed successfully"
        assert integration["results"] == ["plan", "tests"]

    def test_summaries(self):
        assert summarize_outcomes(0, 2) == "All 2 tasks failed"
        assert summarize_outcomes(3, 0) == "All 3 tasks completed successfully"

    def test_cleanup_archives_completed_workflows(self):
        workflow, tasks = self.plan(phases=["planning"])
        self.scheduler.mark_task_completed(tasks[0].id, "done")

        result = self.scheduler.cleanup(retention_hours=0)

        assert result == {"workflows_archived": 1, "tasks_purged": 1}
        assert self.scheduler.get_all_workflows() == []
        with pytest.raises(TaskNotFoundError):
            self.scheduler.get_task(tasks[0].id)

        archived = self.scheduler.get_workflow(workflow.id)
        assert archived.status == WorkflowStatus.COMPLETED
        assert len(self.event_types("workflow_archived")) == 1

    def test_cleanup_keeps_recent_and_active(self):
        workflow, tasks = self.plan()
        self.scheduler.mark_task_completed(tasks[0].id)

        assert self.scheduler.cleanup() == {"workflows_archived": 0, "tasks_purged": 0}
        assert self.scheduler.get_task(tasks[0].id).status == TaskStatus.COMPLETED

    def test_purged_standalone_dependency_still_satisfied(self):
        self.scheduler.add_task(Task(id="a", type="research", description="A"))
        self.scheduler.mark_task_completed("a")
        self.scheduler.cleanup(retention_hours=0)

        self.scheduler.add_task(Task(id="b", type="testing", description="B", dependencies={"a"}))
        assert self.scheduler.next_ready_task().id == "b"

    def test_get_unknown_workflow(self):
        with pytest.raises(WorkflowNotFoundError):
            self.scheduler.get_workflow("plan_nope")
