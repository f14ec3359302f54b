"""
Orchestrator configuration - Settings for the bus, synchronizer, scheduler and store
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional
import os

from team_orchestrator.models.enums import ConflictStrategy

STORE_BACKENDS = ("memory", "file", "redis")


@dataclass
class BusConfig:
    """
    Configuration for the inter-agent message bus.

    Attributes:
        tick_interval: Seconds between delivery ticks when running in the background
        max_retries: Delivery attempts before a message is dead-lettered
        retry_base_delay: Back-off unit in seconds (re-queue after retry_count x base)
        history_max_age_hours: Rolling cutoff for message history
    """
    tick_interval: float = 0.1
    max_retries: int = 3
    retry_base_delay: float = 1.0
    history_max_age_hours: float = 24.0

    def __post_init__(self):
        if self.tick_interval <= 0:
            raise ValueError("tick_interval must be positive")
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        if self.retry_base_delay < 0:
            raise ValueError("retry_base_delay cannot be negative")
        if self.history_max_age_hours <= 0:
            raise ValueError("history_max_age_hours must be positive")

    @classmethod
    def from_env(cls, prefix: str = "ORCH_") -> "BusConfig":
        return cls(
            tick_interval=float(os.getenv(f"{prefix}BUS_TICK_INTERVAL", "0.1")),
            max_retries=int(os.getenv(f"{prefix}BUS_MAX_RETRIES", "3")),
            retry_base_delay=float(os.getenv(f"{prefix}BUS_RETRY_BASE_DELAY", "1.0")),
            history_max_age_hours=float(os.getenv(f"{prefix}BUS_HISTORY_MAX_AGE_HOURS", "24")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tick_interval": self.tick_interval,
            "max_retries": self.max_retries,
            "retry_base_delay": self.retry_base_delay,
            "history_max_age_hours": self.history_max_age_hours,
        }


@dataclass
class StateConfig:
    """
    Configuration for the shared-state synchronizer.

    Attributes:
        sync_interval: Seconds between reconciliation passes
        lock_timeout: Ceiling for the per-key advisory lock wait
        manual_resolution_timeout: Bound on waiting for an external resolver
        default_strategy: Strategy used by resolve_conflict() when none is given
    """
    sync_interval: float = 5.0
    lock_timeout: float = 10.0
    manual_resolution_timeout: float = 30.0
    default_strategy: str = ConflictStrategy.MERGE.value

    def __post_init__(self):
        if self.sync_interval <= 0:
            raise ValueError("sync_interval must be positive")
        if self.lock_timeout <= 0:
            raise ValueError("lock_timeout must be positive")
        if self.manual_resolution_timeout <= 0:
            raise ValueError("manual_resolution_timeout must be positive")
        valid = [s.value for s in ConflictStrategy]
        if self.default_strategy not in valid:
            raise ValueError(f"default_strategy must be one of {valid}, got {self.default_strategy}")

    @classmethod
    def from_env(cls, prefix: str = "ORCH_") -> "StateConfig":
        return cls(
            sync_interval=float(os.getenv(f"{prefix}STATE_SYNC_INTERVAL", "5.0")),
            lock_timeout=float(os.getenv(f"{prefix}STATE_LOCK_TIMEOUT", "10.0")),
            manual_resolution_timeout=float(os.getenv(f"{prefix}STATE_MANUAL_TIMEOUT", "30.0")),
            default_strategy=os.getenv(f"{prefix}STATE_DEFAULT_STRATEGY", ConflictStrategy.MERGE.value),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sync_interval": self.sync_interval,
            "lock_timeout": self.lock_timeout,
            "manual_resolution_timeout": self.manual_resolution_timeout,
            "default_strategy": self.default_strategy,
        }


@dataclass
class SchedulerConfig:
    """
    Configuration for the task graph scheduler.

    Attributes:
        tick_interval: Seconds between scheduling ticks
        retention_hours: How long terminal tasks and completed workflows are kept
        cleanup_interval: Seconds between retention cleanup passes
        progress_state_key: Prefix of the synchronizer keys used for aggregate progress
    """
    tick_interval: float = 1.0
    retention_hours: float = 24.0
    cleanup_interval: float = 60.0
    progress_state_key: str = "workflow"

    def __post_init__(self):
        if self.tick_interval <= 0:
            raise ValueError("tick_interval must be positive")
        if self.retention_hours <= 0:
            raise ValueError("retention_hours must be positive")
        if self.cleanup_interval <= 0:
            raise ValueError("cleanup_interval must be positive")

    @classmethod
    def from_env(cls, prefix: str = "ORCH_") -> "SchedulerConfig":
        return cls(
            tick_interval=float(os.getenv(f"{prefix}SCHEDULER_TICK_INTERVAL", "1.0")),
            retention_hours=float(os.getenv(f"{prefix}RETENTION_HOURS", "24")),
            cleanup_interval=float(os.getenv(f"{prefix}CLEANUP_INTERVAL", "60")),
            progress_state_key=os.getenv(f"{prefix}PROGRESS_STATE_KEY", "workflow"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tick_interval": self.tick_interval,
            "retention_hours": self.retention_hours,
            "cleanup_interval": self.cleanup_interval,
            "progress_state_key": self.progress_state_key,
        }


@dataclass
class StoreConfig:
    """
    Configuration for the persistence collaborator.

    Attributes:
        backend: memory, file or redis
        path: Root folder for the file backend
        redis_host / redis_port / redis_db / redis_password: Redis connection
        key_prefix: Namespace prefix for Redis keys
    """
    backend: str = "memory"
    path: str = "./orchestrator_data"
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: Optional[str] = None
    key_prefix: str = "orchestrator"

    def __post_init__(self):
        if self.backend not in STORE_BACKENDS:
            raise ValueError(f"backend must be one of {list(STORE_BACKENDS)}, got {self.backend}")

    @classmethod
    def from_env(cls, prefix: str = "ORCH_") -> "StoreConfig":
        return cls(
            backend=os.getenv(f"{prefix}STORE_BACKEND", "memory"),
            path=os.getenv(f"{prefix}STORE_PATH", "./orchestrator_data"),
            redis_host=os.getenv("REDIS_HOST", "localhost"),
            redis_port=int(os.getenv("REDIS_PORT", "6379")),
            redis_db=int(os.getenv("REDIS_DB", "0")),
            redis_password=os.getenv("REDIS_PASSWORD"),
            key_prefix=os.getenv(f"{prefix}STORE_KEY_PREFIX", "orchestrator"),
        )

    def to_dict(self, include_secrets: bool = False) -> Dict[str, Any]:
        result = {
            "backend": self.backend,
            "path": self.path,
            "redis_host": self.redis_host,
            "redis_port": self.redis_port,
            "redis_db": self.redis_db,
            "key_prefix": self.key_prefix,
        }
        if include_secrets and self.redis_password:
            result["redis_password"] = self.redis_password
        return result


@dataclass
class OrchestratorConfig:
    """
    Configuration settings for one orchestration instance.

    Attributes:
        bus: Message bus settings
        state: State synchronizer settings
        scheduler: Scheduler settings
        store: Persistence collaborator settings
        max_iterations: Iteration ceiling for the in-process execution graph
        log_level: Logging level (default: 'INFO')
    """

    bus: BusConfig = field(default_factory=BusConfig)
    state: StateConfig = field(default_factory=StateConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    max_iterations: int = 200
    log_level: str = "INFO"

    def __post_init__(self):
        """Validate configuration after initialization."""
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")

        if self.log_level not in ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']:
            raise ValueError(f"Invalid log_level: {self.log_level}")

        if isinstance(self.bus, dict):
            self.bus = BusConfig(**self.bus)
        if isinstance(self.state, dict):
            self.state = StateConfig(**self.state)
        if isinstance(self.scheduler, dict):
            self.scheduler = SchedulerConfig(**self.scheduler)
        if isinstance(self.store, dict):
            self.store = StoreConfig(**self.store)

    @classmethod
    def from_env(cls, prefix: str = "ORCH_") -> "OrchestratorConfig":
        """
        Create configuration from environment variables.

        Example:
            export ORCH_BUS_MAX_RETRIES=5
            export ORCH_STATE_LOCK_TIMEOUT=2.5
            export ORCH_STORE_BACKEND=redis
            config = OrchestratorConfig.from_env()
        """
        return cls(
            bus=BusConfig.from_env(prefix),
            state=StateConfig.from_env(prefix),
            scheduler=SchedulerConfig.from_env(prefix),
            store=StoreConfig.from_env(prefix),
            max_iterations=int(os.getenv(f"{prefix}MAX_ITERATIONS", "200")),
            log_level=os.getenv(f"{prefix}LOG_LEVEL", "INFO"),
        )

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> "OrchestratorConfig":
        """
        Create configuration from dictionary.

        Example:
            config = OrchestratorConfig.from_dict({
                "bus": {"max_retries": 5, "retry_base_delay": 0.5},
                "store": {"backend": "file", "path": "./data"},
                "log_level": "DEBUG"
            })
        """
        return cls(**dict(config_dict))

    def to_dict(self, include_secrets: bool = False) -> Dict[str, Any]:
        return {
            "bus": self.bus.to_dict(),
            "state": self.state.to_dict(),
            "scheduler": self.scheduler.to_dict(),
            "store": self.store.to_dict(include_secrets=include_secrets),
            "max_iterations": self.max_iterations,
            "log_level": self.log_level,
        }
