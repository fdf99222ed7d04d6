from __future__ import annotations

import logging

from gatepass.services.notifications import NotificationBus, get_notification_bus, reset_notification_bus


def test_publish_reaches_topic_subscribers_only():
    bus = NotificationBus()
    got: list[tuple[str, dict]] = []
    bus.subscribe("a", lambda topic, payload: got.append((topic, payload)))
    bus.subscribe("b", lambda topic, payload: got.append((topic, payload)))

    assert bus.publish("a", {"n": 1}) == 1
    assert got == [("a", {"n": 1})]


def test_unsubscribe_stops_delivery():
    bus = NotificationBus()
    got: list[dict] = []
    unsubscribe = bus.subscribe("a", lambda topic, payload: got.append(payload))

    unsubscribe()
    unsubscribe()  # idempotent
    assert bus.publish("a", {"n": 1}) == 0
    assert got == []


def test_failing_handler_is_logged_and_isolated(caplog):
    bus = NotificationBus()
    got: list[dict] = []

    def _boom(topic, payload):
        raise RuntimeError("down")

    bus.subscribe("a", _boom)
    bus.subscribe("a", lambda topic, payload: got.append(payload))

    with caplog.at_level(logging.ERROR, logger="gatepass.services.notifications"):
        delivered = bus.publish("a", {"n": 1})

    assert delivered == 1
    assert got == [{"n": 1}]
    assert "Notification handler failed" in caplog.text


def test_module_bus_is_a_singleton_until_reset():
    first = get_notification_bus()
    assert get_notification_bus() is first
    reset_notification_bus()
    assert get_notification_bus() is not first
