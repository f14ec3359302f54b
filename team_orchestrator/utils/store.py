"""
Persistence Store - Best-effort JSON record storage for workflows, results and state

The orchestration core only needs three record families, each stored as one
JSON-like record per entity:

    workflow: {"id", "data", "version", "timestamp"}
    result:   {"workerId", "taskId", "result", "timestamp"}
    state:    {"id", "state", "version", "writer", "timestamp"}

StateStore is the collaborator interface; InMemoryStore, JsonFileStore and
RedisStore are the shipped backends. `create_store()` builds one from a
StoreConfig.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional
import json
import threading

from team_orchestrator.utils.exceptions import ConfigurationError
from team_orchestrator.utils.logger import get_logger

logger = get_logger(__name__)


def to_json_record(data: Any) -> Any:
    """Normalize a record to what a JSON backend would hand back."""
    return json.loads(json.dumps(data, default=str))


def build_workflow_record(workflow_id: str, data: Dict[str, Any], version: int) -> Dict[str, Any]:
    return {
        "id": workflow_id,
        "data": data,
        "version": version,
        "timestamp": datetime.now().isoformat(),
    }


def build_result_record(worker_id: Optional[str], task_id: str, result: Any) -> Dict[str, Any]:
    return {
        "workerId": worker_id,
        "taskId": task_id,
        "result": result,
        "timestamp": datetime.now().isoformat(),
    }


class StateStore(ABC):
    """
    Persistence collaborator used by the scheduler and the state synchronizer.

    Implementations must be safe to call from several threads. Failures are
    reported as StoreError; missing records load as None.
    """

    # ------------------------------------------------------------------
    # Workflows
    # ------------------------------------------------------------------

    @abstractmethod
    def save_workflow(self, workflow_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """Persist a workflow snapshot, bumping its record version. Returns the record."""

    @abstractmethod
    def load_workflow(self, workflow_id: str) -> Optional[Dict[str, Any]]:
        """Return the stored workflow record or None."""

    # ------------------------------------------------------------------
    # Task results
    # ------------------------------------------------------------------

    @abstractmethod
    def save_result(self, worker_id: Optional[str], task_id: str, result: Any) -> Dict[str, Any]:
        """Persist the result of a completed task. Returns the record."""

    @abstractmethod
    def load_result(self, task_id: str) -> Optional[Dict[str, Any]]:
        """Return the stored result record or None."""

    # ------------------------------------------------------------------
    # Shared state
    # ------------------------------------------------------------------

    @abstractmethod
    def save_state(self, record: Dict[str, Any]) -> None:
        """Persist a state record in the {id, state, version, writer, timestamp} layout."""

    @abstractmethod
    def load_state(self, key: str) -> Optional[Dict[str, Any]]:
        """Return the stored state record or None."""

    @abstractmethod
    def delete_state(self, key: str) -> bool:
        """Remove a state record. Returns False if it did not exist."""

    @abstractmethod
    def list_states(self) -> List[str]:
        """Return every stored state key."""

    def close(self) -> None:
        """Release backend resources."""


class InMemoryStore(StateStore):
    """
    Process-local store. Records are normalized through JSON so callers
    never share mutable structures with the store.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._workflows: Dict[str, Dict[str, Any]] = {}
        self._results: Dict[str, Dict[str, Any]] = {}
        self._states: Dict[str, Dict[str, Any]] = {}

    def save_workflow(self, workflow_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            previous = self._workflows.get(workflow_id)
            version = previous["version"] + 1 if previous else 1
            record = to_json_record(build_workflow_record(workflow_id, data, version))
            self._workflows[workflow_id] = record
            logger.debug(f"[STORE] Saved workflow {workflow_id} (v{version})")
            return to_json_record(record)

    def load_workflow(self, workflow_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._workflows.get(workflow_id)
            return to_json_record(record) if record else None

    def save_result(self, worker_id: Optional[str], task_id: str, result: Any) -> Dict[str, Any]:
        with self._lock:
            record = to_json_record(build_result_record(worker_id, task_id, result))
            self._results[task_id] = record
            return to_json_record(record)

    def load_result(self, task_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._results.get(task_id)
            return to_json_record(record) if record else None

    def save_state(self, record: Dict[str, Any]) -> None:
        with self._lock:
            self._states[record["id"]] = to_json_record(record)

    def load_state(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._states.get(key)
            return to_json_record(record) if record else None

    def delete_state(self, key: str) -> bool:
        with self._lock:
            return self._states.pop(key, None) is not None

    def list_states(self) -> List[str]:
        with self._lock:
            return list(self._states.keys())


def create_store(config: Any = None) -> StateStore:
    """
    Build the persistence backend described by a StoreConfig.

    Args:
        config: StoreConfig (None means in-memory)

    Returns:
        StateStore implementation
    """
    if config is None or config.backend == "memory":
        return InMemoryStore()

    if config.backend == "file":
        from team_orchestrator.utils.file_store import JsonFileStore
        return JsonFileStore(config.path)

    if config.backend == "redis":
        from team_orchestrator.utils.redis_store import RedisStore
        return RedisStore(
            host=config.redis_host,
            port=config.redis_port,
            db=config.redis_db,
            password=config.redis_password,
            key_prefix=config.key_prefix,
        )

    raise ConfigurationError("store.backend", f"Unknown store backend: {config.backend}",
                             expected_value="memory|file|redis", actual_value=config.backend)
