"""
Redis Store - Workflow, result and state records in Redis hashes
"""

import json
import redis
from typing import Any, Dict, List, Optional
from team_orchestrator.utils.exceptions import StoreError
from team_orchestrator.utils.logger import get_logger
from team_orchestrator.utils.store import StateStore, build_result_record, build_workflow_record

logger = get_logger(__name__)


class RedisStore(StateStore):
    """
    Redis-based persistence collaborator.

    Each record family lives in one Redis Hash keyed by record id, with the
    record JSON-serialized as the field value:

        <prefix>:workflows  -> {workflow_id: "{id, data, version, timestamp}"}
        <prefix>:results    -> {task_id: "{workerId, taskId, result, timestamp}"}
        <prefix>:states     -> {key: "{id, state, version, writer, timestamp}"}

    Usage:
        store = RedisStore(host="localhost", port=6379)
        store.save_result("claude_dev_1", "plan_1_testing_3", {"passed": 42})
        record = store.load_result("plan_1_testing_3")
    """

    def __init__(
        self,
        host: str = 'localhost',
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        key_prefix: str = "orchestrator",
        client: Optional[redis.Redis] = None
    ):
        """
        Initialize the Redis store and verify the connection.

        Args:
            host: Redis server host (default: localhost)
            port: Redis server port (default: 6379)
            db: Redis database number (default: 0)
            password: Redis password if authentication required
            key_prefix: Namespace for the three record hashes
            client: Pre-built client (connection parameters are ignored when given)

        Raises:
            StoreError: If Redis cannot be reached
        """
        self.key_prefix = key_prefix
        self.client = client or redis.Redis(
            host=host,
            port=port,
            db=db,
            password=password,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
            health_check_interval=30
        )

        try:
            # Test connection
            self.client.ping()
            logger.info(f"[REDIS] Connected to Redis at {host}:{port} (db={db})")
        except redis.RedisError as e:
            logger.error(f"[REDIS] Connection failed: {str(e)}")
            raise StoreError("connect", f"{host}:{port}", str(e), original_error=e) from e

    def _hash(self, family: str) -> str:
        return f"{self.key_prefix}:{family}"

    def _get(self, family: str, record_id: str) -> Optional[Dict[str, Any]]:
        try:
            raw = self.client.hget(self._hash(family), record_id)
        except redis.RedisError as e:
            logger.error(f"[REDIS] Failed to read {family}/{record_id}: {str(e)}")
            raise StoreError("read", record_id, str(e), original_error=e) from e
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.error(f"[REDIS] JSON deserialization error for {family}/{record_id}: {str(e)}")
            raise StoreError("read", record_id, str(e), original_error=e) from e

    def _put(self, family: str, record_id: str, record: Dict[str, Any]) -> Dict[str, Any]:
        try:
            payload = json.dumps(record, default=str)
            self.client.hset(self._hash(family), record_id, payload)
        except (TypeError, ValueError) as e:
            logger.error(f"[REDIS] JSON serialization error for {family}/{record_id}: {str(e)}")
            raise StoreError("write", record_id, str(e), original_error=e) from e
        except redis.RedisError as e:
            logger.error(f"[REDIS] Failed to write {family}/{record_id}: {str(e)}")
            raise StoreError("write", record_id, str(e), original_error=e) from e
        return json.loads(payload)

    def save_workflow(self, workflow_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        previous = self._get("workflows", workflow_id)
        version = previous["version"] + 1 if previous else 1
        record = self._put("workflows", workflow_id, build_workflow_record(workflow_id, data, version))
        logger.debug(f"[REDIS] Saved workflow {workflow_id} (v{version})")
        return record

    def load_workflow(self, workflow_id: str) -> Optional[Dict[str, Any]]:
        return self._get("workflows", workflow_id)

    def save_result(self, worker_id: Optional[str], task_id: str, result: Any) -> Dict[str, Any]:
        return self._put("results", task_id, build_result_record(worker_id, task_id, result))

    def load_result(self, task_id: str) -> Optional[Dict[str, Any]]:
        return self._get("results", task_id)

    def save_state(self, record: Dict[str, Any]) -> None:
        self._put("states", record["id"], record)

    def load_state(self, key: str) -> Optional[Dict[str, Any]]:
        return self._get("states", key)

    def delete_state(self, key: str) -> bool:
        try:
            return bool(self.client.hdel(self._hash("states"), key))
        except redis.RedisError as e:
            logger.error(f"[REDIS] Failed to delete state {key}: {str(e)}")
            raise StoreError("delete", key, str(e), original_error=e) from e

    def list_states(self) -> List[str]:
        try:
            return list(self.client.hkeys(self._hash("states")))
        except redis.RedisError as e:
            logger.error(f"[REDIS] Failed to list states: {str(e)}")
            raise StoreError("list", self._hash("states"), str(e), original_error=e) from e

    def close(self) -> None:
        """Close Redis connection."""
        try:
            self.client.close()
            logger.info("[REDIS] Connection closed")
        except redis.RedisError as e:
            logger.warning(f"[REDIS] Error closing connection: {str(e)}")
