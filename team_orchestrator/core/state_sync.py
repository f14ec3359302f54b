"""
State Synchronizer - Versioned shared state with conflict resolution

Keeps cross-worker state (current phase, aggregate progress, ...) consistent
across independently-updating writers.

Write path (set_state):
1. Acquire the per-key advisory lock (condition-variable wait, bounded by
   lock_timeout; LockTimeoutError plus a state_lock_timeout event otherwise)
2. Compare the caller's base version with the stored version. A mismatch
   without a strategy raises VersionConflictError; with a strategy the
   stored value ("local") and the incoming value ("remote") are resolved
3. Bump the version, persist through the store, release the lock
4. Emit state_updated

Conflict strategies:
- merge:  shallow dict merge, remote wins on collision, flagged _merged
- latest: compare embedded _timestamp values, higher wins, ties keep local
- manual: emit conflict_manual and wait for submit_resolution(); the wait
          is bounded by manual_resolution_timeout and falls back to latest
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Set, Union
import copy
import threading
import uuid

from team_orchestrator.config.orchestrator_config import StateConfig
from team_orchestrator.core.event_bus import EventBus
from team_orchestrator.models.enums import ConflictStrategy, ErrorKind
from team_orchestrator.models.messages import SYSTEM_SENDER
from team_orchestrator.models.state import StateRecord
from team_orchestrator.utils.exceptions import (
    ConflictResolutionError,
    LockTimeoutError,
    StoreError,
    ValidationError,
    VersionConflictError,
)
from team_orchestrator.utils.logger import get_logger
from team_orchestrator.utils.store import InMemoryStore, StateStore

logger = get_logger(__name__)

StrategyLike = Union[ConflictStrategy, str]


def _timestamp_of(value: Any) -> float:
    """Embedded _timestamp as a sortable number; values without one sort first."""
    if not isinstance(value, dict) or value.get("_timestamp") is None:
        return float("-inf")
    stamp = value["_timestamp"]
    if isinstance(stamp, (int, float)):
        return float(stamp)
    try:
        return datetime.fromisoformat(str(stamp).replace('Z', '+00:00')).timestamp()
    except ValueError:
        return float("-inf")


def merge_values(local: Any, remote: Any) -> Any:
    """Shallow merge; remote wins on key collision. Non-dicts resolve to remote."""
    if not isinstance(local, dict) or not isinstance(remote, dict):
        return copy.deepcopy(remote)
    merged = copy.deepcopy(local)
    merged.update(copy.deepcopy(remote))
    merged["_merged"] = True
    merged["_merge_timestamp"] = datetime.now().isoformat()
    return merged


def latest_value(local: Any, remote: Any) -> Any:
    """Higher embedded _timestamp wins; ties (including neither stamped) keep local."""
    if _timestamp_of(remote) > _timestamp_of(local):
        return copy.deepcopy(remote)
    return copy.deepcopy(local)


class StateSynchronizer:
    """
    Versioned key/value state shared by every worker of one orchestrator.

    Usage:
        sync = StateSynchronizer(StateConfig(lock_timeout=2.0), store=store, event_bus=events)
        v1 = sync.set_state("progress", {"percent": 10}, "claude_dev_1")
        v2 = sync.set_state("progress", {"percent": 20}, "claude_dev_2",
                            base_version=v1 - 1, strategy="merge")
        sync.get_state("progress")
    """

    def __init__(
        self,
        config: Optional[StateConfig] = None,
        store: Optional[StateStore] = None,
        event_bus: Optional[EventBus] = None
    ):
        self.config = config or StateConfig()
        self.store = store or InMemoryStore()
        self.event_bus = event_bus or EventBus()

        self._lock = threading.RLock()
        self._records: Dict[str, StateRecord] = {}
        self._manual_requests: Dict[str, Dict[str, Any]] = {}

        # Per-key advisory locks
        self._key_cond = threading.Condition(threading.Lock())
        self._locked_keys: Set[str] = set()

        self.stats = {
            "writes": 0,
            "conflicts_resolved": 0,
            "version_conflicts": 0,
            "lock_timeouts": 0,
            "manual_timeouts": 0,
            "loaded": 0,
            "store_errors": 0,
        }
        self._closed = False

        logger.debug(f"[STATE] Initialized (lock_timeout={self.config.lock_timeout}s)")

    # ========================================================================
    # PER-KEY LOCKS
    # ========================================================================

    def _acquire(self, key: str, writer_id: str, timeout: Optional[float]) -> None:
        timeout = self.config.lock_timeout if timeout is None else timeout
        with self._key_cond:
            acquired = self._key_cond.wait_for(lambda: key not in self._locked_keys, timeout=timeout)
            if acquired:
                self._locked_keys.add(key)
                return

        with self._lock:
            self.stats["lock_timeouts"] += 1
        error = LockTimeoutError(key, timeout)
        logger.error(f"[STATE] {error.message} (writer={writer_id})")
        self.event_bus.emit(
            "state_lock_timeout", source="state_sync",
            payload={
                "key": key,
                "writer": writer_id,
                "timeout_seconds": timeout,
                "error_kind": ErrorKind.LOCK_TIMEOUT.value,
            },
            severity="error"
        )
        raise error

    def _release(self, key: str) -> None:
        with self._key_cond:
            self._locked_keys.discard(key)
            self._key_cond.notify_all()

    def is_locked(self, key: str) -> bool:
        with self._key_cond:
            return key in self._locked_keys

    # ========================================================================
    # READ / ADOPT
    # ========================================================================

    def _adopt(self, record: StateRecord) -> bool:
        """Replace the local record only with a strictly newer version."""
        with self._lock:
            local = self._records.get(record.key)
            if local is not None and record.version <= local.version:
                return False
            self._records[record.key] = record
            self.stats["loaded"] += 1
        return True

    def _load_from_store(self, key: str) -> Optional[StateRecord]:
        try:
            data = self.store.load_state(key)
        except StoreError as e:
            with self._lock:
                self.stats["store_errors"] += 1
            logger.warning(f"[STATE] Could not load '{key}' from store: {e}")
            return None
        if not data:
            return None

        record = StateRecord.from_persisted(data)
        if self._adopt(record):
            logger.debug(f"[STATE] Loaded '{key}' v{record.version} from store")
            self.event_bus.emit(
                "state_loaded", source="state_sync",
                payload={"key": key, "version": record.version, "writer": record.last_writer},
                severity="debug"
            )
        with self._lock:
            return self._records.get(key)

    def get_record(self, key: str) -> Optional[StateRecord]:
        """Most recently observed record for a key (loaded from the store if unknown)."""
        with self._lock:
            record = self._records.get(key)
        if record is None:
            record = self._load_from_store(key)
        return copy.deepcopy(record) if record else None

    def get_state(self, key: str, default: Any = None) -> Any:
        record = self.get_record(key)
        return record.value if record else default

    def get_version(self, key: str) -> int:
        record = self.get_record(key)
        return record.version if record else 0

    # ========================================================================
    # WRITE
    # ========================================================================

    def set_state(
        self,
        key: str,
        value: Any,
        writer_id: str,
        base_version: Optional[int] = None,
        strategy: Optional[StrategyLike] = None,
        timeout: Optional[float] = None
    ) -> int:
        """
        Write a value under the per-key lock.

        Args:
            key: State key
            value: JSON-like value
            writer_id: Worker id or "system"
            base_version: Version the writer last observed (None = blind write)
            strategy: Conflict strategy applied when base_version is stale
            timeout: Lock wait override in seconds

        Returns:
            The new version

        Raises:
            ValidationError: Malformed key or writer
            LockTimeoutError: The key lock could not be acquired in time
            VersionConflictError: Stale base_version and no strategy
        """
        if not isinstance(key, str) or not key.strip():
            raise ValidationError("state key must be a non-empty string")
        if not isinstance(writer_id, str) or not writer_id.strip():
            raise ValidationError("writer_id must be a non-empty string")
        if strategy is not None:
            strategy = self._coerce_strategy(key, strategy)

        self._acquire(key, writer_id, timeout)
        try:
            with self._lock:
                current = self._records.get(key)
            if current is None:
                current = self._load_from_store(key)
            current_version = current.version if current else 0

            writer = writer_id
            resolved_with: Optional[ConflictStrategy] = None
            if base_version is not None and base_version != current_version:
                if strategy is None:
                    with self._lock:
                        self.stats["version_conflicts"] += 1
                    raise VersionConflictError(key, base_version, current_version)
                logger.info(
                    f"[STATE] Conflict on '{key}': base v{base_version} vs stored v{current_version}, "
                    f"resolving with {strategy.value}"
                )
                value = self._resolve(key, current.value if current else None, value, strategy)
                writer = SYSTEM_SENDER
                resolved_with = strategy

            record = self._write(key, value, writer, current_version)
        finally:
            self._release(key)

        self._emit_updated(record, current_version, resolved_with)
        return record.version

    def _write(self, key: str, value: Any, writer: str, current_version: int) -> StateRecord:
        # caller holds the key lock
        record = StateRecord(
            key=key,
            value=copy.deepcopy(value),
            version=current_version + 1,
            last_writer=writer,
            updated_at=datetime.now(),
        )
        try:
            self.store.save_state(record.to_persisted())
        except StoreError as e:
            with self._lock:
                self.stats["store_errors"] += 1
            logger.error(f"[STATE] Persisting '{key}' v{record.version} failed, kept locally: {e}")

        with self._lock:
            self._records[key] = record
            self.stats["writes"] += 1
        logger.debug(f"[STATE] '{key}' -> v{record.version} by {writer}")
        return record

    def _emit_updated(
        self,
        record: StateRecord,
        previous_version: int,
        resolved_with: Optional[ConflictStrategy]
    ) -> None:
        self.event_bus.emit(
            "state_updated", source="state_sync",
            payload={
                "key": record.key,
                "version": record.version,
                "previous_version": previous_version,
                "writer": record.last_writer,
                "value": copy.deepcopy(record.value),
                "resolved_with": resolved_with.value if resolved_with else None,
            }
        )
        if resolved_with is not None:
            with self._lock:
                self.stats["conflicts_resolved"] += 1
            self.event_bus.emit(
                "conflict_resolved", source="state_sync",
                payload={"key": record.key, "version": record.version, "strategy": resolved_with.value}
            )

    def delete_state(self, key: str) -> bool:
        """Remove a key locally and from the store."""
        self._acquire(key, SYSTEM_SENDER, None)
        try:
            with self._lock:
                existed = self._records.pop(key, None) is not None
            existed = self.store.delete_state(key) or existed
        finally:
            self._release(key)

        if existed:
            logger.info(f"[STATE] Deleted '{key}'")
            self.event_bus.emit("state_deleted", source="state_sync", payload={"key": key})
        return existed

    # ========================================================================
    # CONFLICT RESOLUTION
    # ========================================================================

    def _coerce_strategy(self, key: str, strategy: StrategyLike) -> ConflictStrategy:
        try:
            return ConflictStrategy(strategy)
        except ValueError:
            raise ConflictResolutionError(key, str(strategy), "unknown strategy") from None

    def _resolve(self, key: str, local: Any, remote: Any, strategy: ConflictStrategy) -> Any:
        if strategy == ConflictStrategy.MERGE:
            return merge_values(local, remote)
        if strategy == ConflictStrategy.LATEST:
            return latest_value(local, remote)
        return self._resolve_manually(key, local, remote)

    def _resolve_manually(self, key: str, local: Any, remote: Any) -> Any:
        request_id = f"res_{uuid.uuid4().hex}"
        ready = threading.Event()
        request = {"key": key, "event": ready, "value": None, "created_at": datetime.now()}
        with self._lock:
            self._manual_requests[request_id] = request

        timeout = self.config.manual_resolution_timeout
        logger.info(f"[STATE] Manual resolution requested for '{key}' ({request_id}, {timeout}s)")
        self.event_bus.emit(
            "conflict_manual", source="state_sync",
            payload={
                "request_id": request_id,
                "key": key,
                "local": copy.deepcopy(local),
                "remote": copy.deepcopy(remote),
                "timeout_seconds": timeout,
            },
            severity="warning"
        )

        resolved = ready.wait(timeout)
        with self._lock:
            self._manual_requests.pop(request_id, None)
            if not resolved or request.get("cancelled"):
                self.stats["manual_timeouts"] += 1

        if resolved and not request.get("cancelled"):
            return request["value"]

        fallback = latest_value(local, remote)
        logger.warning(f"[STATE] No manual resolution for '{key}' within {timeout}s, using latest")
        self.event_bus.emit(
            "conflict_manual_timeout", source="state_sync",
            payload={"request_id": request_id, "key": key, "fallback": ConflictStrategy.LATEST.value},
            severity="warning"
        )
        return fallback

    def submit_resolution(self, request_id: str, value: Any) -> bool:
        """
        Supply the value for a pending manual resolution.

        Returns:
            False if the request is unknown or already finished
        """
        with self._lock:
            request = self._manual_requests.get(request_id)
            if request is None or request["event"].is_set():
                return False
            request["value"] = copy.deepcopy(value)
            request["event"].set()
        logger.info(f"[STATE] Manual resolution supplied for '{request['key']}' ({request_id})")
        return True

    def get_pending_resolutions(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [
                {"request_id": rid, "key": req["key"], "created_at": req["created_at"].isoformat()}
                for rid, req in self._manual_requests.items()
            ]

    def resolve_conflict(
        self,
        key: str,
        local: Any,
        remote: Any,
        strategy: Optional[StrategyLike] = None
    ) -> Any:
        """
        Resolve two divergent values and write the result as "system".

        Args:
            key: State key
            local: Value this process observed
            remote: Competing value
            strategy: merge, latest or manual (default from config)

        Returns:
            The resolved value (now stored under a fresh version)
        """
        strategy = self._coerce_strategy(key, strategy or self.config.default_strategy)
        resolved = self._resolve(key, local, remote, strategy)
        version = self.set_state(key, resolved, SYSTEM_SENDER)
        with self._lock:
            self.stats["conflicts_resolved"] += 1
        self.event_bus.emit(
            "conflict_resolved", source="state_sync",
            payload={"key": key, "version": version, "strategy": strategy.value}
        )
        return resolved

    # ========================================================================
    # RECONCILIATION
    # ========================================================================

    def sync_all(self) -> int:
        """
        Re-read every locally known key and adopt strictly newer versions.

        Returns:
            Number of keys that advanced
        """
        with self._lock:
            keys = list(self._records.keys())

        adopted = 0
        for key in keys:
            try:
                data = self.store.load_state(key)
            except StoreError as e:
                with self._lock:
                    self.stats["store_errors"] += 1
                logger.warning(f"[STATE] Reconciliation skipped '{key}': {e}")
                continue
            if not data:
                continue
            record = StateRecord.from_persisted(data)
            if self._adopt(record):
                adopted += 1
                self.event_bus.emit(
                    "state_loaded", source="state_sync",
                    payload={"key": key, "version": record.version, "writer": record.last_writer},
                    severity="debug"
                )

        if adopted:
            logger.info(f"[STATE] Reconciliation adopted {adopted} newer record(s)")
        return adopted

    def tick(self) -> int:
        return self.sync_all()

    # ========================================================================
    # INTROSPECTION / LIFECYCLE
    # ========================================================================

    def get_state_list(self) -> List[Dict[str, Any]]:
        """Summary of every key known locally or in the store, sorted by key."""
        with self._lock:
            summaries = {
                key: {
                    "key": key,
                    "version": record.version,
                    "writer": record.last_writer,
                    "updated_at": record.updated_at.isoformat(),
                }
                for key, record in self._records.items()
            }
        try:
            stored = self.store.list_states()
        except StoreError as e:
            logger.warning(f"[STATE] Could not list stored states: {e}")
            stored = []
        for key in stored:
            if key not in summaries:
                record = self.get_record(key)
                if record:
                    summaries[key] = {
                        "key": key,
                        "version": record.version,
                        "writer": record.last_writer,
                        "updated_at": record.updated_at.isoformat(),
                    }
        return [summaries[key] for key in sorted(summaries)]

    def get_state_stats(self) -> Dict[str, Any]:
        with self._lock:
            writers: Dict[str, int] = {}
            for record in self._records.values():
                writers[record.last_writer] = writers.get(record.last_writer, 0) + 1
            return {
                "total_keys": len(self._records),
                "total_versions": sum(r.version for r in self._records.values()),
                "last_writers": writers,
                "pending_manual_resolutions": len(self._manual_requests),
                **self.stats,
            }

    def shutdown(self) -> None:
        """Final reconciliation pass; pending manual resolutions fall back to latest."""
        if self._closed:
            return
        self._closed = True
        with self._lock:
            for request in self._manual_requests.values():
                request["cancelled"] = True
                request["event"].set()
        self.sync_all()
        logger.info("[STATE] Synchronizer shut down")
