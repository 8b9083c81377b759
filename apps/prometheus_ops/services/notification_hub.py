import logging
import uuid
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional, Union

from prometheus_client import Counter, Gauge

from ..models.metric_models import utcnow
from ..models.notification_models import (
    SEVERITY_RANK,
    Notification,
    NotificationCreate,
    Severity,
)

logger = logging.getLogger("prometheus_ops.notifications")

NOTIFICATIONS_TOTAL = Counter(
    "prometheus_ops_notifications_total",
    "Total notifications published by the hub",
    ["severity", "category"],
)

NOTIFICATION_SUBSCRIBER_ERRORS_TOTAL = Counter(
    "prometheus_ops_notification_subscriber_errors_total",
    "Subscriber callbacks that raised during broadcast",
)

NOTIFICATION_UNREAD = Gauge(
    "prometheus_ops_notifications_unread",
    "Unread notifications currently held in the log",
)

Subscriber = Callable[[Notification], Any]

_DEFAULT_CAPACITY = 100


class Subscription:
    """Handle returned by NotificationHub.subscribe()."""

    def __init__(self, hub: "NotificationHub", callback: Subscriber) -> None:
        self._hub = hub
        self.callback = callback
        self.active = True

    def unsubscribe(self) -> bool:
        if not self.active:
            return False
        self.active = False
        return self._hub._remove_subscriber(self)

    __call__ = unsubscribe


class NotificationHub:
    """
    In-memory notification log with publish/subscribe delivery.

    The log holds at most ``capacity`` entries, newest first. Subscribers are
    called synchronously on every new notification; one failing subscriber
    never prevents the others from receiving it.
    """

    def __init__(self, capacity: int = _DEFAULT_CAPACITY) -> None:
        self.capacity = max(1, int(capacity))
        self._notifications: Deque[Notification] = deque(maxlen=self.capacity)
        self._subscribers: Dict[int, Subscription] = {}

    # ------------------------------------------------------------------
    # Publish
    # ------------------------------------------------------------------

    def add_notification(self, notification: Union[NotificationCreate, Dict[str, Any]]) -> Notification:
        if isinstance(notification, dict):
            notification = NotificationCreate(**notification)

        full = Notification(
            id=f"notification-{uuid.uuid4().hex[:12]}",
            timestamp=utcnow(),
            read=False,
            **notification.model_dump(),
        )

        # appendleft on a bounded deque drops the oldest entry from the right.
        self._notifications.appendleft(full)
        NOTIFICATIONS_TOTAL.labels(severity=full.severity.value, category=full.category).inc()
        self._refresh_unread_gauge()

        self.broadcast(full)

        if full.severity is Severity.CRITICAL:
            logger.error("Critical notification: %s - %s", full.title, full.message)
        elif full.severity is Severity.WARNING:
            logger.warning("Warning notification: %s - %s", full.title, full.message)
        else:
            logger.info("Info notification: %s - %s", full.title, full.message)

        return full

    def subscribe(self, callback: Subscriber) -> Subscription:
        subscription = Subscription(self, callback)
        self._subscribers[id(subscription)] = subscription
        return subscription

    def _remove_subscriber(self, subscription: Subscription) -> bool:
        return self._subscribers.pop(id(subscription), None) is not None

    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def broadcast(self, notification: Notification) -> None:
        for subscription in list(self._subscribers.values()):
            try:
                subscription.callback(notification)
            except Exception:  # noqa: BLE001
                NOTIFICATION_SUBSCRIBER_ERRORS_TOTAL.inc()
                logger.exception("Error in notification subscriber")

    # ------------------------------------------------------------------
    # Query / mutate
    # ------------------------------------------------------------------

    def get_notifications(
        self,
        severity: Optional[Union[Severity, str]] = None,
        unread_only: bool = False,
        limit: Optional[int] = None,
    ) -> List[Notification]:
        filtered = list(self._notifications)

        if severity:
            max_rank = SEVERITY_RANK[Severity(severity)]
            filtered = [n for n in filtered if SEVERITY_RANK[n.severity] <= max_rank]

        if unread_only:
            filtered = [n for n in filtered if not n.read]

        if limit:
            filtered = filtered[:limit]

        return filtered

    def mark_as_read(self, notification_id: str) -> bool:
        for notification in self._notifications:
            if notification.id == notification_id:
                if not notification.read:
                    notification.read = True
                    notification.read_at = utcnow()
                    self._refresh_unread_gauge()
                return True
        return False

    def mark_all_as_read(self) -> int:
        now = utcnow()
        marked = 0
        for notification in self._notifications:
            if not notification.read:
                notification.read = True
                notification.read_at = now
                marked += 1
        self._refresh_unread_gauge()
        return marked

    def clear_notifications(self) -> None:
        self._notifications.clear()
        self._refresh_unread_gauge()

    def unread_count(self) -> int:
        return sum(1 for n in self._notifications if not n.read)

    def __len__(self) -> int:
        return len(self._notifications)

    def _refresh_unread_gauge(self) -> None:
        NOTIFICATION_UNREAD.set(self.unread_count())

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------

    def notify_system_event(
        self,
        message: str,
        severity: Union[Severity, str] = Severity.INFO,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Notification:
        return self.add_notification(
            NotificationCreate(
                title="System Event",
                message=message,
                severity=Severity(severity),
                category="system",
                metadata=metadata or {},
            )
        )

    def notify_performance_issue(
        self,
        message: str,
        metric: str,
        value: Optional[float] = None,
        threshold: Optional[float] = None,
        severity: Union[Severity, str] = Severity.WARNING,
    ) -> Notification:
        return self.add_notification(
            NotificationCreate(
                title="Performance Alert",
                message=message,
                severity=Severity(severity),
                category="performance",
                metadata={
                    "metric": metric,
                    "threshold": threshold,
                    "currentValue": value,
                },
            )
        )

    def notify_ai_provider_issue(
        self,
        provider: str,
        message: str,
        error_type: Optional[str] = None,
        details: Any = None,
        severity: Union[Severity, str] = Severity.WARNING,
    ) -> Notification:
        return self.add_notification(
            NotificationCreate(
                title=f"AI Provider Alert: {provider}",
                message=message,
                severity=Severity(severity),
                category="ai-provider",
                metadata={
                    "provider": provider,
                    "errorType": error_type,
                    "errorDetails": details,
                },
            )
        )

    def notify_security_event(
        self,
        message: str,
        event_type: Optional[str] = None,
        source: Optional[str] = None,
        details: Any = None,
    ) -> Notification:
        # Security events are always critical regardless of what the caller asks for.
        return self.add_notification(
            NotificationCreate(
                title="Security Alert",
                message=message,
                severity=Severity.CRITICAL,
                category="security",
                metadata={
                    "type": event_type,
                    "source": source,
                    "details": details,
                },
            )
        )

    def notify_automated_response(
        self,
        response_id: str,
        trigger: str,
        action: str,
        success: bool,
        details: Any = None,
    ) -> Notification:
        return self.add_notification(
            NotificationCreate(
                title="Automated Response Triggered",
                message=f'Response "{trigger}" was executed',
                severity=Severity.INFO if success else Severity.WARNING,
                category="automation",
                metadata={
                    "responseId": response_id,
                    "trigger": trigger,
                    "action": action,
                    "success": success,
                    "details": details,
                },
            )
        )
