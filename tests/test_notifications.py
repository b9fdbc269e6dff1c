# tests/test_notifications.py
"""
NotificationTrigger delivery and its isolation from task writes.

HTTP is served by httpx.MockTransport; nothing leaves the process.
"""

from __future__ import annotations

import json

import httpx

from fleetops.services.lifecycle import TaskLifecycleManager
from fleetops.services.locks import TaskLocks
from fleetops.services.notifications import CREATE, UPDATE, NotificationTrigger, build_event
from fleetops.schemas.fleet_task import FleetTaskUpdate

from tests.factories import ALICE, passengers, task_payload

URL = "http://notifier.test/fleet-tasks"


def _recording_transport(status_code: int = 200):
    received = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append(json.loads(request.content))
        return httpx.Response(status_code, json={"ok": status_code < 400})

    return httpx.MockTransport(handler), received


def _event(**overrides):
    event = {"task_id": 1, "kind": CREATE}
    event.update(overrides)
    return event


# ============================================================================
# notify()
# ============================================================================

async def test_notify_posts_event():
    transport, received = _recording_transport()
    trigger = NotificationTrigger(URL, transport=transport)

    assert await trigger.notify(_event()) is True
    assert received == [_event()]


async def test_notify_reports_http_error_as_false():
    transport, received = _recording_transport(status_code=503)
    trigger = NotificationTrigger(URL, transport=transport)

    assert await trigger.notify(_event()) is False
    assert len(received) == 1


async def test_notify_swallows_transport_failure():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    trigger = NotificationTrigger(URL, transport=httpx.MockTransport(handler))
    assert await trigger.notify(_event()) is False


async def test_notify_swallows_unexpected_errors():
    def handler(request):
        raise RuntimeError("boom")

    trigger = NotificationTrigger(URL, transport=httpx.MockTransport(handler))
    assert await trigger.notify(_event()) is False


async def test_notify_without_url_is_skipped():
    assert await NotificationTrigger(None).notify(_event()) is False


# ============================================================================
# build_event()
# ============================================================================

async def test_event_falls_back_when_names_do_not_resolve(manager):
    task = await manager.create_task(task_payload(project_id=None, pickup_location=None))
    event = build_event(task, UPDATE)

    assert event["company_name"] == "Unknown Company"
    assert event["project_name"] == "No Project"
    assert event["pickup_location"] == "N/A"
    assert event["kind"] == UPDATE
    assert event["task_date"] == "2024-05-01T00:00:00"


# ============================================================================
# lifecycle integration
# ============================================================================

async def test_create_and_update_announce_changes(db):
    transport, received = _recording_transport()
    notifier = NotificationTrigger(URL, transport=transport)
    manager = TaskLifecycleManager(db, notifier=notifier, locks=TaskLocks(), recipient_email="ops@acme.test")

    task = await manager.create_task(task_payload(passengers=passengers(ALICE)))
    await manager.update_task(task.id, FleetTaskUpdate(notes="gate 2"))
    await notifier.drain()

    assert sorted(event["kind"] for event in received) == [CREATE, UPDATE]
    created = next(event for event in received if event["kind"] == CREATE)
    assert created["task_id"] == task.id
    assert created["company_name"] == "Acme Construction"
    assert created["project_name"] == "Tower A"
    assert created["expected_passengers"] == 1
    assert created["recipient_email"] == "ops@acme.test"


async def test_failing_notifier_does_not_fail_the_write(db):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    notifier = NotificationTrigger(URL, transport=httpx.MockTransport(handler))
    manager = TaskLifecycleManager(db, notifier=notifier, locks=TaskLocks())

    task = await manager.create_task(task_payload())
    await notifier.drain()

    assert (await manager.get_task(task.id)).id == task.id
