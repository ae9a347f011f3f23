"""
Event Bus — Unit Tests
"""

import asyncio

import pytest

from tripmeta.core.types import ServiceKind
from tripmeta.infra.telemetry import (
    ErrorOccurred,
    Event,
    EventBus,
    MetricsCollector,
    ServiceStatusChanged,
)

class TestEventBus:
    def test_delivers_to_subscribers_in_order(self):
        bus = EventBus()
        calls: list[str] = []
        bus.subscribe(ServiceStatusChanged, lambda e: calls.append("first"))
        bus.subscribe(ServiceStatusChanged, lambda e: calls.append("second"))

        delivered = bus.publish(ServiceStatusChanged(ServiceKind.VISION, True))

        assert delivered == 2
        assert calls == ["first", "second"]

    def test_base_class_subscription_receives_all_events(self):
        bus = EventBus()
        seen: list[Event] = []
        bus.subscribe(Event, seen.append)

        bus.publish(ServiceStatusChanged(ServiceKind.SPEECH, False))
        bus.publish(ErrorOccurred("boom"))

        assert [type(e) for e in seen] == [ServiceStatusChanged, ErrorOccurred]

    def test_other_event_types_not_delivered(self):
        bus = EventBus()
        seen: list[Event] = []
        bus.subscribe(ErrorOccurred, seen.append)
        bus.publish(ServiceStatusChanged(ServiceKind.SPEECH, True))
        assert seen == []

    def test_unsubscribe(self):
        bus = EventBus()
        seen: list[Event] = []
        unsubscribe = bus.subscribe(ErrorOccurred, seen.append)
        unsubscribe()
        unsubscribe()
        bus.publish(ErrorOccurred("boom"))
        assert seen == []

    def test_failing_subscriber_is_isolated_and_recorded(self):
        metrics = MetricsCollector()
        bus = EventBus(metrics)
        seen: list[Event] = []

        def broken(event):
            raise ValueError("handler bug")

        bus.subscribe(ErrorOccurred, broken)
        bus.subscribe(ErrorOccurred, seen.append)

        delivered = bus.publish(ErrorOccurred("boom"))

        assert delivered == 1
        assert len(seen) == 1
        failure = bus.recent_failures[-1]
        assert failure.event == "ErrorOccurred"
        assert "handler bug" in failure.error
        assert bus.get_stats()["subscriber_failures"] == 1
        assert metrics.registry.get_sample_value(
            "tripmeta_event_subscriber_failures_total", {"event": "ErrorOccurred"}
        ) == 1.0

    @pytest.mark.asyncio
    async def test_coroutine_subscribers_are_scheduled(self):
        bus = EventBus()
        seen: list[Event] = []

        async def handler(event):
            await asyncio.sleep(0)
            seen.append(event)

        bus.subscribe(ErrorOccurred, handler)
        bus.publish(ErrorOccurred("boom"))
        await bus.drain()

        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_coroutine_subscriber_failure_is_recorded(self):
        bus = EventBus()

        async def handler(event):
            raise RuntimeError("async bug")

        bus.subscribe(ErrorOccurred, handler)
        bus.publish(ErrorOccurred("boom"))
        await bus.drain()
        await asyncio.sleep(0)

        assert len(bus.recent_failures) == 1
        assert "async bug" in bus.recent_failures[0].error

    def test_failure_log_is_bounded(self):
        bus = EventBus(failure_log_size=3)

        def broken(event):
            raise ValueError("x")

        bus.subscribe(ErrorOccurred, broken)
        for _ in range(10):
            bus.publish(ErrorOccurred("boom"))

        assert len(bus.recent_failures) == 3
        assert bus.get_stats()["subscriber_failures"] == 10
