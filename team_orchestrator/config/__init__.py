"""
Configuration module - Settings and configuration management
"""

from .env_config import EnvConfig
from .orchestrator_config import (
    OrchestratorConfig,
    BusConfig,
    StateConfig,
    SchedulerConfig,
    StoreConfig,
)
from .phase_catalog import (
    SchedulingConfig,
    PhaseSpec,
    TaskClassification,
    DEFAULT_CATEGORY,
)

__all__ = [
    'EnvConfig',
    'OrchestratorConfig',
    'BusConfig',
    'StateConfig',
    'SchedulerConfig',
    'StoreConfig',
    'SchedulingConfig',
    'PhaseSpec',
    'TaskClassification',
    'DEFAULT_CATEGORY',
]
