"""
Tests for the data models and boundary validation.
"""

import pytest

from team_orchestrator.models import (
    ErrorInfo,
    ErrorKind,
    Message,
    MessageStatus,
    Task,
    TaskStatus,
    WorkerDescriptor,
    WorkerStatus,
    Workflow,
    WorkflowStatus,
    create_message,
    create_system_event,
)
from team_orchestrator.utils.exceptions import InvalidStateTransitionError, ValidationError
from team_orchestrator.utils.validation import (
    ensure_valid,
    validate_message,
    validate_system_event,
    validate_task,
    validate_worker,
)


def make_task(task_id="plan_1_research_1", **kwargs):
    return Task(id=task_id, type="research", description="Research the market", **kwargs)


class TestTaskLifecycle:

    def test_start_sets_worker_and_progress(self):
        task = make_task()
        task.start("claude_researcher")

        assert task.status == TaskStatus.IN_PROGRESS
        assert task.assigned_worker == "claude_researcher"
        assert task.started_at is not None
        assert task.progress == 5

    def test_progress_only_moves_forward(self):
        task = make_task()
        task.start("claude_researcher")

        assert task.update_progress(40) is True
        assert task.update_progress(30) is False
        assert task.update_progress(250) is True
        assert task.progress == 100

    def test_progress_requires_in_progress(self):
        with pytest.raises(InvalidStateTransitionError):
            make_task().update_progress(10)

    def test_complete(self):
        task = make_task()
        task.start("claude_researcher")
        task.complete({"sources": 3})

        assert task.status == TaskStatus.COMPLETED
        assert task.result == {"sources": 3}
        assert task.progress == 100
        assert task.is_terminal
        assert task.actual_duration is not None

    def test_terminal_tasks_do_not_move(self):
        task = make_task()
        task.start()
        task.complete()

        with pytest.raises(InvalidStateTransitionError):
            task.fail(ErrorInfo(ErrorKind.TASK_FAILED, "late failure"))
        with pytest.raises(InvalidStateTransitionError):
            task.start()

    def test_pending_cannot_complete(self):
        with pytest.raises(InvalidStateTransitionError):
            make_task().complete()

    def test_block_then_reset(self):
        task = make_task()
        task.block(ErrorInfo(ErrorKind.DEPENDENCY_BLOCKED, "upstream failed"))
        assert task.status == TaskStatus.BLOCKED

        task.reset()
        assert task.status == TaskStatus.PENDING
        assert task.error is None
        assert task.assigned_worker is None

    def test_dependencies_met(self):
        task = make_task(dependencies={"a", "b"})
        assert not task.dependencies_met({"a"})
        assert task.dependencies_met(["a", "b", "c"])
        assert make_task().dependencies_met(set())

    def test_status_coerced_from_string(self):
        assert make_task(status="blocked").status == TaskStatus.BLOCKED

    def test_serialization(self):
        task = make_task(dependencies={"plan_1_planning_0"}, workflow_id="plan_1",
                         metadata={"preferred_role": "researcher"})
        task.start("claude_researcher")
        task.fail(ErrorInfo(ErrorKind.SINK_ERROR, "worker crashed", {"attempt": 2}))

        data = task.to_dict()
        restored = Task.from_dict(data)

        assert data["status"] == "failed"
        assert data["dependencies"] == ["plan_1_planning_0"]
        assert data["error"] == {"kind": "sink_error", "message": "worker crashed", "details": {"attempt": 2}}
        assert restored.error.kind == ErrorKind.SINK_ERROR
        assert restored.preferred_role == "researcher"
        assert restored.started_at == task.started_at


class TestErrorInfo:

    def test_from_exception(self):
        info = ErrorInfo.from_value(RuntimeError("boom"))
        assert info.kind == ErrorKind.TASK_FAILED
        assert info.message == "boom"
        assert info.details["error_type"] == "RuntimeError"

    def test_from_dict_with_kind(self):
        info = ErrorInfo.from_value({"kind": "lock_timeout", "message": "slow"})
        assert info.kind == ErrorKind.LOCK_TIMEOUT
        assert info.message == "slow"

    def test_unrecognized_kind_falls_back(self):
        info = ErrorInfo.from_value({"kind": "timeout", "message": "slow", "details": {"attempt": 2}},
                                    ErrorKind.CANCELLED)
        assert info.kind == ErrorKind.CANCELLED
        assert info.details == {"attempt": 2, "reported_kind": "timeout"}

    def test_from_string_and_none(self):
        assert ErrorInfo.from_value("nope").message == "nope"
        assert ErrorInfo.from_value(None).message == "unknown error"
        assert ErrorInfo.from_value(None, ErrorKind.CANCELLED).kind == ErrorKind.CANCELLED

    def test_passthrough(self):
        info = ErrorInfo(ErrorKind.VALIDATION, "bad")
        assert ErrorInfo.from_value(info) is info


class TestWorkflow:

    def make_workflow(self):
        tasks = [Task(id=f"plan_1_{name}_{i}", type=name, description=name)
                 for i, name in enumerate(["planning", "research", "testing"])]
        return Workflow(id="plan_1", description="Build a thing", requester_id="claude_leader", tasks=tasks)

    def test_progress_and_current_phase(self):
        workflow = self.make_workflow()
        assert workflow.progress == 0
        assert workflow.current_phase == "planning"

        workflow.tasks[0].start()
        workflow.tasks[0].complete()

        assert workflow.progress == 33
        assert workflow.current_phase == "research"
        assert workflow.count(TaskStatus.COMPLETED) == 1

    def test_all_done(self):
        workflow = self.make_workflow()
        for task in workflow.tasks:
            task.start()
            task.complete()
        assert workflow.progress == 100
        assert workflow.current_phase is None

    def test_empty_workflow_progress(self):
        assert Workflow(id="plan_2", description="", requester_id="x").progress == 0

    def test_round_trip(self):
        workflow = self.make_workflow()
        workflow.status = WorkflowStatus.IN_PROGRESS

        restored = Workflow.from_dict(workflow.to_dict())

        assert restored.status == WorkflowStatus.IN_PROGRESS
        assert restored.task_ids == workflow.task_ids


class TestWorkerDescriptor:

    def test_from_dict_accepts_workload_alias(self):
        worker = WorkerDescriptor.from_dict({"id": "claude_dev_1", "role": "developer",
                                             "capabilities": ["coding"], "workload": 40})
        assert worker.current_load == 40
        assert worker.capabilities == {"coding"}
        assert worker.available

    def test_offline_is_unavailable(self):
        assert not WorkerDescriptor("claude_dev_1", "developer", status="offline").available


class TestMessage:

    def test_copy_for(self):
        original = create_message("announcement", "claude_leader", "broadcast", {"text": "hi"}, priority=4)
        copy = original.copy_for("claude_dev_1")

        assert copy.id != original.id
        assert copy.recipient == "claude_dev_1"
        assert copy.payload == original.payload
        assert copy.payload is not original.payload
        assert copy.priority == 4
        assert copy.correlation_id == original.id
        assert copy.status == MessageStatus.PENDING

    def test_wire_format(self):
        message = create_message("task_result", "claude_dev_1", "system", {"taskId": "t1"})
        data = message.to_dict()

        assert data["from"] == "claude_dev_1"
        assert data["to"] == "system"
        assert data["status"] == "pending"

        restored = Message.from_dict(data)
        assert restored.id == message.id
        assert restored.sender == "claude_dev_1"

    def test_acknowledge(self):
        message = create_message("ping", "a", "b")
        message.acknowledge()
        assert message.status == MessageStatus.DELIVERED
        assert message.delivered_at is not None
        assert message.is_terminal


class TestValidation:

    def test_valid_message(self):
        assert validate_message(create_message("ping", "a", "b"))

    def test_invalid_message_collects_errors(self):
        message = create_message("", "a", "b", priority=9)
        message.payload = "not a dict"

        result = validate_message(message)

        assert not result
        assert len(result.errors) == 3
        with pytest.raises(ValidationError) as exc_info:
            ensure_valid(result, "message")
        assert exc_info.value.details["context"] == "message"

    def test_boolean_priority_rejected(self):
        message = create_message("ping", "a", "b")
        message.priority = True
        assert not validate_message(message)

    def test_task_validation(self):
        assert validate_task(make_task())
        assert not validate_task(make_task(priority=0))
        assert not validate_task(make_task(complexity="extreme"))
        assert not validate_task(make_task(dependencies={"plan_1_research_1"}))

    def test_worker_validation(self):
        assert validate_worker(WorkerDescriptor("claude_dev_1", "developer", current_load=30))
        assert not validate_worker(WorkerDescriptor("claude_dev_1", "developer", current_load=150))
        assert not validate_worker(WorkerDescriptor("", "developer"))

    def test_system_event_validation(self):
        event = create_system_event("task_ready", "scheduler", {"task_id": "t1"})
        assert event["event_category"] == "task_lifecycle"
        assert validate_system_event(event)

        event["severity"] = "catastrophic"
        del event["propagate"]
        result = validate_system_event(event)
        assert not result
        assert len(result.errors) == 2

    def test_worker_status_enum(self):
        assert WorkerDescriptor("w", "developer", status=WorkerStatus.BUSY).status == WorkerStatus.BUSY
