"""
Message Bus - Typed inter-agent delivery with retry and dead-lettering

publish() and broadcast() only enqueue; delivery happens on tick(), driven
either by the orchestrator's background ticker or explicitly by the caller.

Delivery rules:
- Due messages are delivered in publish order
- Messages to one recipient never overtake each other: once a message for a
  recipient is not delivered in a tick (failed or still backing off), later
  messages to that recipient wait for the next tick
- A failed attempt increments retry_count; below max_retries the message is
  re-queued after retry_count x retry_base_delay seconds, otherwise it is
  dead-lettered and one message_dead_lettered event is emitted
- Sinks run outside the bus lock, so a sink may publish new messages
"""

from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Set
import threading
import time

from team_orchestrator.config.orchestrator_config import BusConfig
from team_orchestrator.core.event_bus import EventBus
from team_orchestrator.models.enums import ErrorKind, MessageStatus
from team_orchestrator.models.messages import BROADCAST_RECIPIENT, SYSTEM_SENDER, Message
from team_orchestrator.models.task import ErrorInfo
from team_orchestrator.utils.exceptions import (
    DeliveryError,
    RecipientNotFoundError,
    RetryExhaustedError,
    SinkError,
    TypeNotSubscribedError,
    ValidationError,
)
from team_orchestrator.utils.logger import get_logger
from team_orchestrator.utils.validation import ensure_valid, validate_message

logger = get_logger(__name__)

ALL_TYPES = "*"

MessageSink = Callable[[Message], Any]

_ERROR_KINDS = {
    RecipientNotFoundError: ErrorKind.RECIPIENT_NOT_FOUND,
    TypeNotSubscribedError: ErrorKind.TYPE_NOT_SUBSCRIBED,
    SinkError: ErrorKind.SINK_ERROR,
}


@dataclass
class Subscription:
    """A worker's registration on the bus."""
    worker_id: str
    message_types: Set[str]
    sink: MessageSink
    subscribed_at: datetime = field(default_factory=datetime.now)

    def accepts(self, message_type: str) -> bool:
        return ALL_TYPES in self.message_types or message_type in self.message_types


class MessageBus:
    """
    Publish/subscribe bus owned by one orchestrator instance.

    Usage:
        bus = MessageBus(BusConfig(max_retries=3), event_bus=events)
        bus.subscribe("claude_dev_1", ["task_assignment"], handle_assignment)
        bus.publish(create_message("task_assignment", "system", "claude_dev_1",
                                   {"task_id": "plan_1_implementation_2"}))
        bus.tick()   # delivers due messages
    """

    def __init__(
        self,
        config: Optional[BusConfig] = None,
        event_bus: Optional[EventBus] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize the bus.

        Args:
            config: Retry and history settings
            event_bus: Receiver of message_dead_lettered and related events
            clock: Monotonic seconds source used for back-off scheduling
        """
        self.config = config or BusConfig()
        self.event_bus = event_bus or EventBus()
        self.clock = clock

        self._lock = threading.RLock()
        self._tick_lock = threading.Lock()

        self._subscriptions: Dict[str, Subscription] = {}
        self._pending: "OrderedDict[str, Message]" = OrderedDict()
        self._history: List[Message] = []
        self._dead_letters: List[Message] = []

        self.stats = {
            "published": 0,
            "delivered": 0,
            "failed_attempts": 0,
            "dead_lettered": 0,
            "broadcasts": 0,
        }

        logger.debug(
            f"[BUS] Initialized (max_retries={self.config.max_retries}, "
            f"base_delay={self.config.retry_base_delay}s)"
        )

    # ========================================================================
    # SUBSCRIPTIONS
    # ========================================================================

    def subscribe(self, worker_id: str, message_types: Iterable[str], sink: MessageSink) -> Subscription:
        """
        Register (or replace) a worker's subscription.

        Args:
            worker_id: Recipient id the subscription answers for
            message_types: Accepted message types ("*" accepts every type)
            sink: Callable invoked with each delivered Message

        Returns:
            The Subscription
        """
        if not isinstance(worker_id, str) or not worker_id.strip():
            raise ValidationError("worker_id must be a non-empty string")
        if not callable(sink):
            raise ValidationError(f"sink for {worker_id} must be callable")
        if isinstance(message_types, str):
            message_types = [message_types]

        subscription = Subscription(worker_id=worker_id, message_types=set(message_types), sink=sink)
        with self._lock:
            replaced = worker_id in self._subscriptions
            self._subscriptions[worker_id] = subscription

        logger.info(
            f"[BUS] {'Replaced' if replaced else 'Added'} subscription: {worker_id} -> "
            f"{sorted(subscription.message_types)}"
        )
        self.event_bus.emit(
            "subscriber_added", source="message_bus",
            payload={"worker_id": worker_id, "message_types": sorted(subscription.message_types)},
            severity="debug"
        )
        return subscription

    def unsubscribe(self, worker_id: str) -> bool:
        with self._lock:
            removed = self._subscriptions.pop(worker_id, None) is not None
        if removed:
            logger.info(f"[BUS] Removed subscription: {worker_id}")
            self.event_bus.emit("subscriber_removed", source="message_bus",
                                payload={"worker_id": worker_id}, severity="debug")
        return removed

    def get_subscribers(self) -> List[str]:
        with self._lock:
            return list(self._subscriptions.keys())

    # ========================================================================
    # PUBLISH / BROADCAST
    # ========================================================================

    def _enqueue(self, message: Message) -> None:
        # caller holds self._lock
        message.next_attempt_at = 0.0
        self._history.append(message)
        self._pending[message.id] = message
        self.stats["published"] += 1

    def _check_publishable(self, message: Message) -> None:
        ensure_valid(validate_message(message), "message")
        if message.status != MessageStatus.PENDING:
            raise ValidationError(
                f"Message {message.id} is already {message.status.value}",
                details={"message_id": message.id, "status": message.status.value}
            )

    def publish(self, message: Message) -> str:
        """
        Enqueue a message for delivery on the next tick.

        Messages addressed to "broadcast" are fanned out to the current
        subscribers instead.

        Returns:
            The message id (the original id for broadcasts)

        Raises:
            ValidationError: If the message is malformed or already queued
        """
        self._check_publishable(message)

        if message.recipient == BROADCAST_RECIPIENT:
            self.broadcast(message)
            return message.id

        with self._lock:
            if message.id in self._pending:
                raise ValidationError(
                    f"Message {message.id} is already queued",
                    details={"message_id": message.id}
                )
            self._enqueue(message)
            queue_size = len(self._pending)

        logger.debug(
            f"[BUS] Queued {message.type} {message.id}: {message.sender} -> {message.recipient} "
            f"(queue={queue_size})"
        )
        return message.id

    def broadcast(self, message: Message, roster: Optional[Iterable[str]] = None) -> List[Message]:
        """
        Fan a message out to every roster member except the sender.

        Each copy gets a new id and is recorded in history and queued even if
        the addressee currently has no subscription, so late joiners can
        still query it.

        Args:
            message: Template message (its recipient is ignored)
            roster: Worker ids to address; defaults to the current subscribers
                other than "system"

        Returns:
            The queued copies
        """
        self._check_publishable(message)

        with self._lock:
            if roster is not None:
                recipients = list(roster)
            else:
                recipients = [w for w in self._subscriptions if w != SYSTEM_SENDER]
            copies = []
            for worker_id in dict.fromkeys(recipients):
                if worker_id == message.sender:
                    continue
                copy = message.copy_for(worker_id)
                self._enqueue(copy)
                copies.append(copy)
            self.stats["broadcasts"] += 1

        logger.info(f"[BUS] Broadcast {message.type} from {message.sender} to {len(copies)} recipients")
        self.event_bus.emit(
            "message_broadcasted", source="message_bus",
            payload={
                "message_id": message.id,
                "type": message.type,
                "from": message.sender,
                "recipients": [c.recipient for c in copies],
                "copy_ids": [c.id for c in copies],
            },
            severity="debug"
        )
        return copies

    # ========================================================================
    # DELIVERY
    # ========================================================================

    def _due_messages(self, now: float) -> List[Message]:
        due = []
        waiting: Set[str] = set()
        with self._lock:
            for message in self._pending.values():
                if message.recipient in waiting:
                    continue
                if message.next_attempt_at > now:
                    waiting.add(message.recipient)
                    continue
                due.append(message)
        return due

    def _attempt(self, message: Message) -> Optional[DeliveryError]:
        with self._lock:
            subscription = self._subscriptions.get(message.recipient)

        if subscription is None:
            return RecipientNotFoundError(message.id, message.recipient)
        if not subscription.accepts(message.type):
            return TypeNotSubscribedError(message.id, message.recipient, message.type)

        try:
            subscription.sink(message)
        except Exception as e:
            logger.debug(f"[BUS] Sink for {message.recipient} raised: {e}", exc_info=True)
            return SinkError(message.id, message.recipient, e)
        return None

    def tick(self) -> int:
        """
        Run one delivery pass.

        Returns:
            Number of messages delivered in this pass
        """
        with self._tick_lock:
            now = self.clock()
            delivered = 0
            blocked: Set[str] = set()

            for message in self._due_messages(now):
                if message.recipient in blocked:
                    continue

                error = self._attempt(message)
                if error is None:
                    with self._lock:
                        message.acknowledge()
                        self._pending.pop(message.id, None)
                        self.stats["delivered"] += 1
                    delivered += 1
                    logger.debug(f"[BUS] Delivered {message.type} {message.id} to {message.recipient}")
                    continue

                blocked.add(message.recipient)
                self._handle_failure(message, error, now)

            return delivered

    def _handle_failure(self, message: Message, error: DeliveryError, now: float) -> None:
        kind = _ERROR_KINDS.get(type(error), ErrorKind.SINK_ERROR)
        max_retries = self.config.max_retries

        with self._lock:
            message.retry_count += 1
            message.last_error = ErrorInfo(kind=kind, message=error.message, details=dict(error.details))
            self.stats["failed_attempts"] += 1

            if message.retry_count < max_retries:
                message.next_attempt_at = now + message.retry_count * self.config.retry_base_delay
                logger.warning(
                    f"[BUS] Delivery of {message.id} to {message.recipient} failed "
                    f"({kind.value}), retry {message.retry_count}/{max_retries} "
                    f"in {message.next_attempt_at - now:.2f}s"
                )
                return

            message.status = MessageStatus.FAILED
            self._pending.pop(message.id, None)
            self._dead_letters.append(message)
            self.stats["dead_lettered"] += 1

        exhausted = RetryExhaustedError(message.id, max_retries, last_error=error.message)
        logger.error(f"[BUS] {exhausted.message}; moved to dead letters")
        self.event_bus.emit(
            "message_dead_lettered", source="message_bus",
            payload={
                "message_id": message.id,
                "type": message.type,
                "from": message.sender,
                "to": message.recipient,
                "retry_count": message.retry_count,
                "error_kind": ErrorKind.RETRY_EXHAUSTED.value,
                "last_error_kind": kind.value,
                "error": exhausted.to_dict(),
            },
            severity="error"
        )

    # ========================================================================
    # INTROSPECTION
    # ========================================================================

    def get_dead_letters(self) -> List[Message]:
        with self._lock:
            return list(self._dead_letters)

    def get_pending(self) -> List[Message]:
        with self._lock:
            return list(self._pending.values())

    def seconds_until_due(self) -> Optional[float]:
        """
        Wait until the earliest queued message may be attempted.

        Returns:
            0.0 if a message is due now, None if the queue is empty
        """
        now = self.clock()
        with self._lock:
            if not self._pending:
                return None
            earliest = min(m.next_attempt_at for m in self._pending.values())
        return max(0.0, earliest - now)

    def get_message(self, message_id: str) -> Optional[Message]:
        with self._lock:
            for message in self._history:
                if message.id == message_id:
                    return message
        return None

    def get_history(self, worker_id: Optional[str] = None, limit: Optional[int] = None) -> List[Message]:
        """
        Messages a worker sent or received, oldest first.

        Args:
            worker_id: Filter by sender or recipient (None returns everything)
            limit: Keep only the most recent N
        """
        with self._lock:
            messages = [
                m for m in self._history
                if worker_id is None or m.sender == worker_id or m.recipient == worker_id
            ]
        messages.sort(key=lambda m: m.created_at)
        if limit is not None:
            messages = messages[-limit:] if limit > 0 else []
        return messages

    def get_message_stats(self) -> Dict[str, Any]:
        """Counts by type x status over the retained history."""
        with self._lock:
            by_type: Dict[str, Dict[str, int]] = {}
            by_status = {status.value: 0 for status in MessageStatus}
            for message in self._history:
                counts = by_type.setdefault(message.type, {status.value: 0 for status in MessageStatus})
                counts[message.status.value] += 1
                by_status[message.status.value] += 1

            return {
                "total": len(self._history),
                "by_type": by_type,
                "by_status": by_status,
                "dead_letters": len(self._dead_letters),
                "counters": dict(self.stats),
            }

    def get_queue_status(self) -> Dict[str, Any]:
        now = self.clock()
        with self._lock:
            pending = list(self._pending.values())
            return {
                "pending": len(pending),
                "due": sum(1 for m in pending if m.next_attempt_at <= now),
                "retrying": sum(1 for m in pending if m.retry_count > 0),
                "dead_letters": len(self._dead_letters),
                "subscribers": list(self._subscriptions.keys()),
                "history_size": len(self._history),
                "oldest_pending": pending[0].created_at.isoformat() if pending else None,
            }

    def cleanup(self, max_age_hours: Optional[float] = None) -> int:
        """
        Drop history entries older than the rolling cutoff.

        Dead letters past the same cutoff are dropped too; queued messages
        stay in the queue.

        Returns:
            Number of history entries removed
        """
        hours = max_age_hours if max_age_hours is not None else self.config.history_max_age_hours
        cutoff = datetime.now() - timedelta(hours=hours)

        with self._lock:
            before = len(self._history)
            self._history = [m for m in self._history if m.created_at >= cutoff]
            removed = before - len(self._history)
            self._dead_letters = [m for m in self._dead_letters if m.created_at >= cutoff]

        if removed:
            logger.info(f"[BUS] Cleaned {removed} history entries older than {hours}h")
            self.event_bus.emit("history_cleaned", source="message_bus",
                                payload={"removed": removed, "max_age_hours": hours},
                                severity="debug")
        return removed
