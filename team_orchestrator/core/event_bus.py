"""
Event Bus - Observable orchestration events

Every component of one orchestrator shares one EventBus instance. The
scheduler, the message bus and the state synchronizer emit SystemEvents
(task_ready, task_blocked, message_dead_lettered, state_updated, ...) and
observers subscribe by event type.

Features:
- Per-instance registry (no global bus; several orchestrators may share a process)
- Priority-ordered handlers, "*" wildcard subscriptions and filters
- Handlers run outside the registry lock, so a handler may emit events itself
- A failing handler never propagates into the emitter; the event is recorded
  in the dead letter queue instead
- Bounded event history
"""

from typing import Callable, Optional, Any, Dict, List, Tuple
from datetime import datetime
from collections import defaultdict
from dataclasses import dataclass, field
import threading
import traceback
import uuid

from team_orchestrator.models.messages import (
    EventCategory,
    EventSeverity,
    SystemEvent,
    create_system_event,
)
from team_orchestrator.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class EventSubscription:
    """Represents a subscription to an event type."""
    subscription_id: str
    event_type: str
    handler: Callable[[SystemEvent], Any]
    filter_func: Optional[Callable[[SystemEvent], bool]] = None
    priority: int = 5  # 1=highest, 10=lowest
    active: bool = True
    subscriber_name: str = "unknown"
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())


@dataclass
class EventRecord:
    """Record of an event that was published."""
    event: SystemEvent
    published_at: str
    handlers_notified: List[str]
    handlers_succeeded: List[str]
    handlers_failed: List[str]
    processing_time_ms: int


class EventBus:
    """
    Pub-sub bus for SystemEvents.

    Usage:
        event_bus = EventBus()

        def on_dead_letter(event: SystemEvent):
            print(f"Message {event['payload']['message_id']} dead-lettered")

        event_bus.subscribe(
            event_type="message_dead_lettered",
            handler=on_dead_letter,
            subscriber_name="monitor"
        )

        event_bus.emit("task_ready", source="scheduler",
                       payload={"task_id": "plan_1_research_1"})
    """

    def __init__(self, enable_history: bool = True, history_max_size: int = 1000):
        """
        Initialize the event bus.

        Args:
            enable_history: Whether to keep event history
            history_max_size: Maximum number of events kept in history and
                in the dead letter queue
        """
        self._lock = threading.RLock()
        self.subscriptions: Dict[str, List[EventSubscription]] = defaultdict(list)
        self.wildcard_subscriptions: List[EventSubscription] = []

        # Event history
        self.enable_history = enable_history
        self.history_max_size = history_max_size
        self.event_history: List[EventRecord] = []

        # Dead letter queue for events whose handlers failed
        self.dead_letter_queue: List[Tuple[SystemEvent, str]] = []

        # Statistics
        self.stats = {
            "events_published": 0,
            "events_delivered": 0,
            "events_failed": 0,
            "handlers_executed": 0,
            "handlers_failed": 0
        }

        logger.debug("Event Bus initialized")

    def subscribe(
        self,
        event_type: str,
        handler: Callable[[SystemEvent], Any],
        subscriber_name: str = "unknown",
        filter_func: Optional[Callable[[SystemEvent], bool]] = None,
        priority: int = 5
    ) -> str:
        """
        Subscribe to an event type.

        Args:
            event_type: Type of event to subscribe to (or "*" for all events)
            handler: Function to call when event occurs
            subscriber_name: Name of the subscriber (for logging)
            filter_func: Optional filter function (return True to receive event)
            priority: Handler priority (1=highest, 10=lowest)

        Returns:
            subscription_id: Unique subscription ID (for unsubscribing)
        """
        subscription = EventSubscription(
            subscription_id=str(uuid.uuid4()),
            event_type=event_type,
            handler=handler,
            filter_func=filter_func,
            priority=priority,
            subscriber_name=subscriber_name
        )

        with self._lock:
            if event_type == "*":
                self.wildcard_subscriptions.append(subscription)
                self.wildcard_subscriptions.sort(key=lambda s: s.priority)
                logger.debug(f"Wildcard subscription added: {subscriber_name}")
            else:
                self.subscriptions[event_type].append(subscription)
                # Sort by priority
                self.subscriptions[event_type].sort(key=lambda s: s.priority)
                logger.debug(f"Subscription added: {subscriber_name} -> {event_type}")

        return subscription.subscription_id

    def unsubscribe(self, subscription_id: str) -> bool:
        """
        Unsubscribe from events.

        Args:
            subscription_id: ID returned from subscribe()

        Returns:
            True if subscription was found and removed
        """
        with self._lock:
            for i, sub in enumerate(self.wildcard_subscriptions):
                if sub.subscription_id == subscription_id:
                    self.wildcard_subscriptions.pop(i)
                    logger.debug(f"Wildcard subscription removed: {sub.subscriber_name}")
                    return True

            for event_type, subs in self.subscriptions.items():
                for i, sub in enumerate(subs):
                    if sub.subscription_id == subscription_id:
                        subs.pop(i)
                        logger.debug(f"Subscription removed: {sub.subscriber_name} -> {event_type}")
                        return True

        return False

    def publish(self, event: SystemEvent) -> None:
        """
        Publish an event to all subscribers.

        Args:
            event: Event to publish
        """
        start_time = datetime.now()
        event_type = event['event_type']

        logger.debug(f"[EVENT] {event_type} from {event['source']}: {event['payload']}")

        with self._lock:
            self.stats["events_published"] += 1
            if not event.get('propagate', True):
                return
            typed_subs = list(self.subscriptions.get(event_type, []))
            all_subs = typed_subs + list(self.wildcard_subscriptions)

        handlers_notified = []
        handlers_succeeded = []
        handlers_failed = []

        for subscription in all_subs:
            if not subscription.active:
                continue

            try:
                if subscription.filter_func and not subscription.filter_func(event):
                    continue

                handlers_notified.append(subscription.subscriber_name)
                subscription.handler(event)
                handlers_succeeded.append(subscription.subscriber_name)

            except Exception as e:
                handlers_failed.append(subscription.subscriber_name)
                logger.error(
                    f"Handler {subscription.subscriber_name} failed for event {event_type}: {e}"
                )
                logger.debug(traceback.format_exc())
                with self._lock:
                    self.dead_letter_queue.append((event, str(e)))
                    if len(self.dead_letter_queue) > self.history_max_size:
                        self.dead_letter_queue = self.dead_letter_queue[-self.history_max_size:]

        with self._lock:
            self.stats["handlers_executed"] += len(handlers_succeeded)
            self.stats["handlers_failed"] += len(handlers_failed)
            if handlers_succeeded:
                self.stats["events_delivered"] += 1
            if handlers_failed:
                self.stats["events_failed"] += 1

            if self.enable_history:
                processing_time_ms = int((datetime.now() - start_time).total_seconds() * 1000)
                self.event_history.append(EventRecord(
                    event=event,
                    published_at=start_time.isoformat(),
                    handlers_notified=handlers_notified,
                    handlers_succeeded=handlers_succeeded,
                    handlers_failed=handlers_failed,
                    processing_time_ms=processing_time_ms
                ))

                # Trim history if needed
                if len(self.event_history) > self.history_max_size:
                    self.event_history = self.event_history[-self.history_max_size:]

    def emit(
        self,
        event_type: str,
        source: str,
        payload: Dict[str, Any],
        source_task_id: Optional[str] = None,
        severity: EventSeverity = "info",
        event_category: Optional[EventCategory] = None
    ) -> SystemEvent:
        """Create a SystemEvent and publish it. Returns the event."""
        event = create_system_event(
            event_type=event_type,
            source=source,
            payload=payload,
            event_category=event_category,
            source_task_id=source_task_id,
            severity=severity
        )
        self.publish(event)
        return event

    def get_subscriptions(self, event_type: Optional[str] = None) -> List[EventSubscription]:
        """
        Get all subscriptions, optionally filtered by event type.

        Args:
            event_type: Optional event type to filter by

        Returns:
            List of subscriptions
        """
        with self._lock:
            if event_type:
                return list(self.subscriptions.get(event_type, []))
            all_subs = []
            for subs in self.subscriptions.values():
                all_subs.extend(subs)
            all_subs.extend(self.wildcard_subscriptions)
            return all_subs

    def get_event_history(
        self,
        event_type: Optional[str] = None,
        limit: int = 100
    ) -> List[EventRecord]:
        """
        Get event history, optionally filtered.

        Args:
            event_type: Optional event type to filter by
            limit: Maximum number of records to return

        Returns:
            List of event records (most recent first)
        """
        if not self.enable_history:
            return []

        with self._lock:
            history = self.event_history[::-1]

        if event_type:
            history = [r for r in history if r.event['event_type'] == event_type]

        return history[:limit]

    def get_events(self, event_type: Optional[str] = None) -> List[SystemEvent]:
        """Published events in publish order, optionally filtered by type."""
        with self._lock:
            events = [r.event for r in self.event_history]
        if event_type:
            events = [e for e in events if e['event_type'] == event_type]
        return events

    def get_statistics(self) -> Dict[str, Any]:
        """Get event bus statistics."""
        with self._lock:
            return {
                **self.stats,
                "active_subscriptions": sum(len(subs) for subs in self.subscriptions.values()),
                "wildcard_subscriptions": len(self.wildcard_subscriptions),
                "event_types_registered": len(self.subscriptions),
                "dead_letter_queue_size": len(self.dead_letter_queue),
                "history_size": len(self.event_history)
            }

    def clear_dead_letter_queue(self) -> None:
        """Clear the dead letter queue."""
        with self._lock:
            cleared = len(self.dead_letter_queue)
            self.dead_letter_queue.clear()
        logger.info(f"Dead letter queue cleared ({cleared} events)")
