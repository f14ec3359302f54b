"""
Utilities module - Logging, exceptions, validation, persistence and tickers

Only the logger and the exception hierarchy are re-exported here; the
other utilities depend on the models package and are imported from their
own modules.
"""

from .logger import get_logger, configure_logging

from .exceptions import (
    # Base
    OrchestratorError,
    # Configuration
    ConfigurationError,
    # Validation
    ValidationError,
    InvalidParameterError,
    MissingParameterError,
    InvalidStateTransitionError,
    # Lookup
    NotFoundError,
    TaskNotFoundError,
    WorkflowNotFoundError,
    # Delivery
    DeliveryError,
    RecipientNotFoundError,
    TypeNotSubscribedError,
    SinkError,
    RetryExhaustedError,
    # State
    StateError,
    LockTimeoutError,
    VersionConflictError,
    ConflictResolutionError,
    # Persistence
    StoreError,
)

__all__ = [
    'get_logger',
    'configure_logging',

    # Exception hierarchy
    'OrchestratorError',
    'ConfigurationError',
    'ValidationError',
    'InvalidParameterError',
    'MissingParameterError',
    'InvalidStateTransitionError',
    'NotFoundError',
    'TaskNotFoundError',
    'WorkflowNotFoundError',
    'DeliveryError',
    'RecipientNotFoundError',
    'TypeNotSubscribedError',
    'SinkError',
    'RetryExhaustedError',
    'StateError',
    'LockTimeoutError',
    'VersionConflictError',
    'ConflictResolutionError',
    'StoreError',
]
