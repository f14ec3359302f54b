"""
JSON File Store - One JSON file per record under a root folder

Folder Structure:
    <root>/
    ├── workflows/      # {id, data, version, timestamp}
    ├── results/        # {workerId, taskId, result, timestamp}
    └── states/         # {id, state, version, writer, timestamp}

Writes go to a temp file in the same folder and are moved into place with
os.replace, so readers never observe a half-written record.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Union
import json
import os
import tempfile
import threading

from team_orchestrator.utils.exceptions import StoreError
from team_orchestrator.utils.logger import get_logger
from team_orchestrator.utils.store import (
    StateStore,
    build_result_record,
    build_workflow_record,
    to_json_record,
)

logger = get_logger(__name__)


class JsonFileStore(StateStore):
    """
    File-backed persistence for a single orchestration process.

    Usage:
        store = JsonFileStore("./orchestrator_data")
        store.save_state({"id": "workflow:plan_1:progress", "state": 40,
                          "version": 3, "writer": "system", "timestamp": "..."})
        record = store.load_state("workflow:plan_1:progress")
    """

    CATEGORIES = ['workflows', 'results', 'states']

    def __init__(self, root_folder: Union[str, Path]):
        """
        Initialize the store and its folder structure.

        Args:
            root_folder: Folder that holds the record categories
        """
        self.root_folder = Path(root_folder).resolve()
        self._lock = threading.RLock()
        self._init_folders()
        logger.info(f"[STORE] JSON file store at {self.root_folder}")

    def _init_folders(self) -> None:
        self.root_folder.mkdir(parents=True, exist_ok=True)
        for category in self.CATEGORIES:
            (self.root_folder / category).mkdir(exist_ok=True)

    def _get_path(self, category: str, record_id: str) -> Path:
        """Get the file path for a record."""
        # Sanitize id for filesystem
        safe_id = "".join(c if c.isalnum() or c in '-_.' else '_' for c in record_id)
        return self.root_folder / category / f"{safe_id}.json"

    def _write(self, category: str, record_id: str, record: Dict[str, Any]) -> None:
        path = self._get_path(category, record_id)
        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".tmp_", suffix=".json")
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(record, f, indent=2, default=str)
            os.replace(tmp_path, path)
        except (OSError, TypeError, ValueError) as e:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            logger.error(f"[STORE] Failed to write {category}/{record_id}: {e}")
            raise StoreError("write", record_id, str(e), original_error=e) from e

    def _read(self, category: str, record_id: str) -> Optional[Dict[str, Any]]:
        path = self._get_path(category, record_id)
        if not path.exists():
            return None
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"[STORE] Failed to read {category}/{record_id}: {e}")
            raise StoreError("read", record_id, str(e), original_error=e) from e

    # ========================================================================
    # WORKFLOWS
    # ========================================================================

    def save_workflow(self, workflow_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            previous = self._read('workflows', workflow_id)
            version = previous["version"] + 1 if previous else 1
            record = to_json_record(build_workflow_record(workflow_id, data, version))
            self._write('workflows', workflow_id, record)
            logger.debug(f"[STORE] Saved workflow {workflow_id} (v{version})")
            return record

    def load_workflow(self, workflow_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            return self._read('workflows', workflow_id)

    # ========================================================================
    # RESULTS
    # ========================================================================

    def save_result(self, worker_id: Optional[str], task_id: str, result: Any) -> Dict[str, Any]:
        with self._lock:
            record = to_json_record(build_result_record(worker_id, task_id, result))
            self._write('results', task_id, record)
            return record

    def load_result(self, task_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            return self._read('results', task_id)

    # ========================================================================
    # STATES
    # ========================================================================

    def save_state(self, record: Dict[str, Any]) -> None:
        with self._lock:
            self._write('states', record["id"], record)

    def load_state(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            return self._read('states', key)

    def delete_state(self, key: str) -> bool:
        with self._lock:
            path = self._get_path('states', key)
            if not path.exists():
                return False
            try:
                path.unlink()
            except OSError as e:
                raise StoreError("delete", key, str(e), original_error=e) from e
            return True

    def list_states(self) -> List[str]:
        """Keys are read back from the records since file names are sanitized."""
        with self._lock:
            keys = []
            for path in sorted((self.root_folder / 'states').glob('*.json')):
                if path.name.startswith('.tmp_'):
                    continue
                try:
                    with open(path, 'r', encoding='utf-8') as f:
                        keys.append(json.load(f)["id"])
                except (OSError, json.JSONDecodeError, KeyError) as e:
                    logger.error(f"[STORE] Failed to read states/{path.name}: {e}")
                    raise StoreError("list", path.stem, str(e), original_error=e) from e
            return keys
