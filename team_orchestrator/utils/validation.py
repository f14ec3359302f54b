"""
Validation Utilities for Orchestration Inputs

Checks applied at the API boundary before anything enters the scheduler,
the message bus or the state synchronizer. Each validator returns a
ValidationResult; use `ensure_valid()` to turn a failed result into a
ValidationError.
"""

from typing import Any, Dict, List, Optional
from datetime import datetime

from team_orchestrator.models.enums import Complexity, WorkerStatus
from team_orchestrator.models.messages import EVENT_TYPE_REGISTRY
from team_orchestrator.utils.exceptions import ValidationError
from team_orchestrator.utils.logger import get_logger

logger = get_logger(__name__)

VALID_COMPLEXITIES = {c.value for c in Complexity}
VALID_SEVERITIES = {"debug", "info", "warning", "error", "critical"}
VALID_CATEGORIES = set(EVENT_TYPE_REGISTRY.values())


# ============================================================================
# VALIDATION RESULTS
# ============================================================================

class ValidationResult:
    """Result of a validation check."""

    def __init__(self, valid: bool, errors: Optional[List[str]] = None):
        self.valid = valid
        self.errors = errors or []

    def __bool__(self) -> bool:
        return self.valid

    def __str__(self) -> str:
        if self.valid:
            return "Validation passed"
        return f"Validation failed: {'; '.join(self.errors)}"


def ensure_valid(result: ValidationResult, context: str) -> None:
    """Raise ValidationError carrying every collected error if the result failed."""
    if result:
        return
    logger.warning(f"[VALIDATION] {context} rejected: {'; '.join(result.errors)}")
    raise ValidationError(
        f"Invalid {context}: {'; '.join(result.errors)}",
        details={"context": context, "errors": list(result.errors)}
    )


# ============================================================================
# MESSAGE VALIDATION
# ============================================================================

def validate_message(message: Any) -> ValidationResult:
    """
    Validate a bus message before it is published.

    Args:
        message: Message instance (anything with the Message attributes)

    Returns:
        ValidationResult with any errors
    """
    errors = []

    for attr in ("id", "type", "sender", "recipient"):
        value = getattr(message, attr, None)
        if not isinstance(value, str) or not value.strip():
            errors.append(f"'{attr}' must be a non-empty string")

    payload = getattr(message, "payload", None)
    if not isinstance(payload, dict):
        errors.append("'payload' must be a dict")

    priority = getattr(message, "priority", None)
    if not isinstance(priority, int) or isinstance(priority, bool) or not 1 <= priority <= 5:
        errors.append(f"'priority' must be an integer between 1 and 5, got {priority!r}")

    return ValidationResult(valid=len(errors) == 0, errors=errors)


# ============================================================================
# TASK VALIDATION
# ============================================================================

def validate_task(task: Any) -> ValidationResult:
    """
    Validate a task before it is added to a workflow graph.

    Args:
        task: Task instance

    Returns:
        ValidationResult with any errors
    """
    errors = []

    if not isinstance(getattr(task, "id", None), str) or not task.id.strip():
        errors.append("'id' must be a non-empty string")

    if not isinstance(getattr(task, "type", None), str) or not task.type.strip():
        errors.append("'type' must be a non-empty string")

    priority = getattr(task, "priority", None)
    if not isinstance(priority, int) or not 1 <= priority <= 5:
        errors.append(f"'priority' must be between 1 and 5, got {priority!r}")

    complexity = getattr(task, "complexity", None)
    if complexity not in VALID_COMPLEXITIES:
        errors.append(f"Invalid complexity: {complexity!r}")

    dependencies = getattr(task, "dependencies", set())
    if getattr(task, "id", None) in dependencies:
        errors.append("task cannot depend on itself")

    if getattr(task, "estimated_duration", 0) < 0:
        errors.append("'estimated_duration' cannot be negative")

    return ValidationResult(valid=len(errors) == 0, errors=errors)


# ============================================================================
# WORKER VALIDATION
# ============================================================================

def validate_worker(worker: Any) -> ValidationResult:
    """
    Validate a worker descriptor supplied by the roster provider.

    Args:
        worker: WorkerDescriptor instance

    Returns:
        ValidationResult with any errors
    """
    errors = []

    if not isinstance(getattr(worker, "id", None), str) or not worker.id.strip():
        errors.append("'id' must be a non-empty string")

    if not isinstance(getattr(worker, "role", None), str):
        errors.append("'role' must be a string")

    load = getattr(worker, "current_load", None)
    if not isinstance(load, (int, float)) or not 0 <= load <= 100:
        errors.append(f"'current_load' must be between 0 and 100, got {load!r}")

    status = getattr(worker, "status", None)
    if status not in set(WorkerStatus):
        errors.append(f"Invalid status: {status!r}")

    return ValidationResult(valid=len(errors) == 0, errors=errors)


# ============================================================================
# EVENT VALIDATION
# ============================================================================

def validate_system_event(event: Dict[str, Any]) -> ValidationResult:
    """
    Validate SystemEvent schema.

    Args:
        event: Event dict to validate

    Returns:
        ValidationResult with any errors
    """
    errors = []

    required_fields = {
        "event_id", "event_type", "event_category", "source",
        "payload", "timestamp", "severity", "propagate"
    }

    missing_fields = required_fields - set(event.keys())
    if missing_fields:
        errors.append(f"Missing required fields: {', '.join(sorted(missing_fields))}")

    if "event_category" in event and event["event_category"] not in VALID_CATEGORIES:
        errors.append(f"Invalid event_category: {event['event_category']}")

    if "severity" in event and event["severity"] not in VALID_SEVERITIES:
        errors.append(f"Invalid severity: {event['severity']}")

    if "timestamp" in event and not _is_valid_iso8601(event["timestamp"]):
        errors.append(f"Invalid timestamp format: {event.get('timestamp')}")

    if "propagate" in event and not isinstance(event["propagate"], bool):
        errors.append("'propagate' must be boolean")

    return ValidationResult(valid=len(errors) == 0, errors=errors)


# ============================================================================
# HELPERS
# ============================================================================

def _is_valid_iso8601(timestamp: Any) -> bool:
    """Check if timestamp is valid ISO 8601 format."""
    if not isinstance(timestamp, str):
        return False
    try:
        datetime.fromisoformat(timestamp.replace('Z', '+00:00'))
        return True
    except ValueError:
        return False
