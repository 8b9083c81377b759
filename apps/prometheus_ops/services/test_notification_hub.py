import pytest

from apps.prometheus_ops.models.notification_models import NotificationCreate, Severity
from apps.prometheus_ops.services.notification_hub import NotificationHub


def _add(hub, title, severity=Severity.INFO):
    return hub.add_notification({"title": title, "message": f"{title} happened", "severity": severity})


def test_new_notification_defaults(notifications):
    n = notifications.add_notification(NotificationCreate(title="Hello", message="world"))

    assert n.id.startswith("notification-")
    assert n.read is False
    assert n.severity is Severity.INFO
    assert n.category == "system"
    assert notifications.get_notifications() == [n]


def test_log_is_capped_at_capacity_newest_first(notifications):
    created = [_add(notifications, f"n{i}") for i in range(101)]

    log = notifications.get_notifications()
    assert len(log) == 100
    assert log[0].id == created[100].id
    assert created[0].id not in {n.id for n in log}


def test_ids_are_unique(notifications):
    ids = {_add(notifications, f"n{i}").id for i in range(50)}
    assert len(ids) == 50


def test_subscribers_receive_every_notification(notifications):
    received = []
    notifications.subscribe(received.append)

    n = _add(notifications, "ping")
    assert received == [n]


def test_failing_subscriber_does_not_block_others(notifications):
    received = []

    def broken(notification):
        raise RuntimeError("subscriber bug")

    notifications.subscribe(broken)
    notifications.subscribe(received.append)

    n = _add(notifications, "ping")

    assert received == [n]
    assert len(notifications) == 1


def test_unsubscribe_stops_delivery(notifications):
    received = []
    subscription = notifications.subscribe(received.append)

    assert subscription.unsubscribe() is True
    assert subscription.unsubscribe() is False
    assert notifications.subscriber_count() == 0

    _add(notifications, "ping")
    assert received == []


def test_severity_filter_includes_more_severe(notifications):
    _add(notifications, "info", Severity.INFO)
    _add(notifications, "warn", Severity.WARNING)
    _add(notifications, "crit", Severity.CRITICAL)

    assert [n.title for n in notifications.get_notifications(severity="critical")] == ["crit"]
    assert [n.title for n in notifications.get_notifications(severity=Severity.WARNING)] == ["crit", "warn"]
    assert len(notifications.get_notifications(severity="info")) == 3


def test_unread_filter_and_limit(notifications):
    first = _add(notifications, "a")
    _add(notifications, "b")
    _add(notifications, "c")

    assert notifications.mark_as_read(first.id) is True
    assert [n.title for n in notifications.get_notifications(unread_only=True)] == ["c", "b"]
    assert [n.title for n in notifications.get_notifications(limit=1)] == ["c"]


def test_mark_as_read(notifications):
    n = _add(notifications, "a")

    assert notifications.mark_as_read(n.id) is True
    stored = notifications.get_notifications()[0]
    assert stored.read is True
    assert stored.read_at is not None
    assert notifications.mark_as_read("notification-missing") is False


def test_mark_all_as_read(notifications):
    for i in range(3):
        _add(notifications, str(i))

    assert notifications.mark_all_as_read() == 3
    assert notifications.unread_count() == 0
    assert notifications.mark_all_as_read() == 0


def test_clear(notifications):
    _add(notifications, "a")
    notifications.clear_notifications()
    assert len(notifications) == 0


def test_security_events_are_always_critical(notifications):
    n = notifications.notify_security_event("Login storm", event_type="auth", source="gateway")
    assert n.severity is Severity.CRITICAL
    assert n.category == "security"
    assert n.metadata == {"type": "auth", "source": "gateway", "details": None}


def test_performance_template(notifications):
    n = notifications.notify_performance_issue("latency high", metric="latency", value=250, threshold=200)
    assert n.severity is Severity.WARNING
    assert n.category == "performance"
    assert n.metadata == {"metric": "latency", "threshold": 200, "currentValue": 250}


def test_provider_template(notifications):
    n = notifications.notify_ai_provider_issue("OpenAI", "timeout", error_type="TimeoutError")
    assert n.title == "AI Provider Alert: OpenAI"
    assert n.category == "ai-provider"
    assert n.metadata["errorType"] == "TimeoutError"


@pytest.mark.parametrize("success, severity", [(True, Severity.INFO), (False, Severity.WARNING)])
def test_automated_response_template(notifications, success, severity):
    n = notifications.notify_automated_response("auto-scale", "High CPU Usage", "Scale up", success)
    assert n.severity is severity
    assert n.category == "automation"
    assert n.message == 'Response "High CPU Usage" was executed'


def test_system_template(notifications):
    n = notifications.notify_system_event("started", metadata={"version": "0.1.0"})
    assert n.title == "System Event"
    assert n.metadata == {"version": "0.1.0"}


def test_capacity_is_configurable():
    hub = NotificationHub(capacity=2)
    for i in range(3):
        _add(hub, str(i))
    assert [n.title for n in hub.get_notifications()] == ["2", "1"]
