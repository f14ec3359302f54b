"""
Standardized Exception Hierarchy for the Team Orchestrator

This module provides the exception hierarchy used across the scheduler,
message bus, state synchronizer and persistence stores.

Exception Categories:
- Configuration Errors: Invalid settings or phase catalogs
- Validation Errors: Malformed Task/Workflow/Message input (never retried)
- Lookup Errors: Unknown task or workflow identifiers
- Delivery Errors: Delivery-time failures that feed the bus retry policy
- State Errors: Lock contention, version conflicts, conflict resolution
- Store Errors: Persistence collaborator failures

Usage:
    from team_orchestrator.utils.exceptions import (
        OrchestratorError,
        InvalidParameterError,
        LockTimeoutError
    )

    if not 1 <= priority <= 5:
        raise InvalidParameterError("priority", "must be between 1 and 5", actual_value=priority)

    try:
        synchronizer.set_state("progress", 40, "worker_1")
    except LockTimeoutError as e:
        logger.warning(f"State write contended: {e.to_dict()}")
"""

from typing import Optional, Any, Dict


# ============================================================================
# Base Exception
# ============================================================================

class OrchestratorError(Exception):
    """
    Base exception for all orchestration errors.

    All custom exceptions inherit from this class so callers can catch the
    whole family at the API boundary.
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize base exception.

        Args:
            message: Human-readable error message
            error_code: Optional error code for categorization
            details: Optional dictionary with additional error context
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details
        }

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# ============================================================================
# Configuration Errors
# ============================================================================

class ConfigurationError(OrchestratorError):
    """Raised when there's an issue with configuration or settings."""

    def __init__(
        self,
        setting_name: str,
        message: str,
        expected_value: Optional[Any] = None,
        actual_value: Optional[Any] = None
    ):
        details = {"setting_name": setting_name}
        if expected_value is not None:
            details["expected_value"] = str(expected_value)
        if actual_value is not None:
            details["actual_value"] = str(actual_value)

        super().__init__(
            message=f"Configuration error for '{setting_name}': {message}",
            error_code="CONFIG_ERROR",
            details=details
        )
        self.setting_name = setting_name


# ============================================================================
# Validation Errors
# ============================================================================

class ValidationError(OrchestratorError):
    """Malformed input rejected synchronously at the API boundary."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, error_code=error_code or "VALIDATION_ERROR", details=details)


class InvalidParameterError(ValidationError):
    """Raised when a parameter value is invalid."""

    def __init__(
        self,
        parameter_name: str,
        message: str,
        expected_type: Optional[str] = None,
        actual_value: Optional[Any] = None
    ):
        details = {"parameter_name": parameter_name}
        if expected_type:
            details["expected_type"] = expected_type
        if actual_value is not None:
            details["actual_value"] = str(actual_value)

        super().__init__(
            message=f"Invalid parameter '{parameter_name}': {message}",
            error_code="INVALID_PARAM",
            details=details
        )
        self.parameter_name = parameter_name


class MissingParameterError(ValidationError):
    """Raised when a required parameter is missing."""

    def __init__(self, parameter_name: str, context: Optional[str] = None):
        message = f"Required parameter '{parameter_name}' is missing"
        if context:
            message += f" ({context})"

        super().__init__(
            message=message,
            error_code="MISSING_PARAM",
            details={"parameter_name": parameter_name, "context": context}
        )
        self.parameter_name = parameter_name


class InvalidStateTransitionError(ValidationError):
    """Raised when a task is asked to make a transition its lifecycle forbids."""

    def __init__(self, entity_id: str, current_status: str, target_status: str):
        super().__init__(
            message=(
                f"Cannot move '{entity_id}' from {current_status} to {target_status}"
            ),
            error_code="INVALID_TRANSITION",
            details={
                "entity_id": entity_id,
                "current_status": current_status,
                "target_status": target_status
            }
        )
        self.entity_id = entity_id
        self.current_status = current_status
        self.target_status = target_status


# ============================================================================
# Lookup Errors
# ============================================================================

class NotFoundError(OrchestratorError):
    """Base class for unknown identifiers."""
    pass


class TaskNotFoundError(NotFoundError):
    """Raised when a task id is not known to the scheduler."""

    def __init__(self, task_id: str):
        super().__init__(
            message=f"Task {task_id} not found",
            error_code="TASK_NOT_FOUND",
            details={"task_id": task_id}
        )
        self.task_id = task_id


class WorkflowNotFoundError(NotFoundError):
    """Raised when a workflow id is not known to the scheduler."""

    def __init__(self, workflow_id: str):
        super().__init__(
            message=f"Workflow {workflow_id} not found",
            error_code="WORKFLOW_NOT_FOUND",
            details={"workflow_id": workflow_id}
        )
        self.workflow_id = workflow_id


# ============================================================================
# Delivery Errors
# ============================================================================

class DeliveryError(OrchestratorError):
    """Delivery-time failure. Feeds the bus retry policy, never raised to publishers."""

    def __init__(self, message_id: str, recipient: str, message: str, error_code: str):
        super().__init__(
            message=message,
            error_code=error_code,
            details={"message_id": message_id, "recipient": recipient}
        )
        self.message_id = message_id
        self.recipient = recipient


class RecipientNotFoundError(DeliveryError):
    """No subscriber is registered for the message recipient."""

    def __init__(self, message_id: str, recipient: str):
        super().__init__(
            message_id,
            recipient,
            f"Recipient not found: {recipient}",
            "RECIPIENT_NOT_FOUND"
        )


class TypeNotSubscribedError(DeliveryError):
    """The recipient's type filter excludes the message type."""

    def __init__(self, message_id: str, recipient: str, message_type: str):
        super().__init__(
            message_id,
            recipient,
            f"Message type '{message_type}' not subscribed by {recipient}",
            "TYPE_NOT_SUBSCRIBED"
        )
        self.details["message_type"] = message_type
        self.message_type = message_type


class SinkError(DeliveryError):
    """The recipient's sink raised while handling the message."""

    def __init__(self, message_id: str, recipient: str, original_error: Exception):
        super().__init__(
            message_id,
            recipient,
            f"Sink for {recipient} failed: {original_error}",
            "SINK_ERROR"
        )
        self.details["original_error"] = str(original_error)
        self.original_error = original_error


class RetryExhaustedError(OrchestratorError):
    """Raised (or recorded) when a message exhausts its retry budget."""

    def __init__(
        self,
        message_id: str,
        max_retries: int,
        last_error: Optional[str] = None
    ):
        message = f"Message {message_id} failed after {max_retries} attempts"
        if last_error:
            message += f": {last_error}"

        super().__init__(
            message=message,
            error_code="RETRY_EXHAUSTED",
            details={
                "message_id": message_id,
                "max_retries": max_retries,
                "last_error": last_error
            }
        )
        self.message_id = message_id
        self.max_retries = max_retries


# ============================================================================
# State Errors
# ============================================================================

class StateError(OrchestratorError):
    """Base class for shared-state failures."""
    pass


class LockTimeoutError(StateError):
    """The per-key advisory lock could not be acquired within the ceiling."""

    def __init__(self, key: str, timeout_seconds: float):
        super().__init__(
            message=f"Timed out after {timeout_seconds}s waiting for state lock: {key}",
            error_code="LOCK_TIMEOUT",
            details={"key": key, "timeout_seconds": timeout_seconds}
        )
        self.key = key
        self.timeout_seconds = timeout_seconds


class VersionConflictError(StateError):
    """A write carried a stale base version and no resolution strategy."""

    def __init__(self, key: str, base_version: int, current_version: int):
        super().__init__(
            message=(
                f"Version conflict on '{key}': base version {base_version}, "
                f"stored version {current_version}"
            ),
            error_code="VERSION_CONFLICT",
            details={
                "key": key,
                "base_version": base_version,
                "current_version": current_version
            }
        )
        self.key = key
        self.base_version = base_version
        self.current_version = current_version


class ConflictResolutionError(StateError):
    """Unknown strategy or a resolution that could not be produced."""

    def __init__(self, key: str, strategy: str, message: str):
        super().__init__(
            message=f"Conflict resolution failed for '{key}' ({strategy}): {message}",
            error_code="CONFLICT_RESOLUTION_ERROR",
            details={"key": key, "strategy": strategy}
        )
        self.key = key
        self.strategy = strategy


# ============================================================================
# Store Errors
# ============================================================================

class StoreError(OrchestratorError):
    """Raised when the persistence collaborator fails."""

    def __init__(
        self,
        operation: str,
        record_id: str,
        message: str,
        original_error: Optional[Exception] = None
    ):
        details = {"operation": operation, "record_id": record_id}
        if original_error:
            details["original_error"] = str(original_error)
            details["original_error_type"] = type(original_error).__name__

        super().__init__(
            message=f"Store {operation} failed for '{record_id}': {message}",
            error_code="STORE_ERROR",
            details=details
        )
        self.operation = operation
        self.record_id = record_id
        self.original_error = original_error
