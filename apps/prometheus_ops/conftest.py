"""Shared fixtures for the Prometheus Ops tests."""

import os

# Must be set before the app module (and its Settings) is imported.
os.environ.setdefault("PROMETHEUS_OTEL_EXPORT", "false")

from datetime import datetime, timedelta, timezone

import pytest

from apps.prometheus_ops.context import build_context
from apps.prometheus_ops.services.notification_hub import NotificationHub


class FakeClock:
    """Manually advanced clock injected into the engines."""

    def __init__(self, start=None):
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def notifications():
    return NotificationHub()


@pytest.fixture
def context(clock):
    return build_context(clock=clock, action_delay_seconds=0, stream_interval_seconds=0.01)
