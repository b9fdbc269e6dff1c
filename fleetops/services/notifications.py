# fleetops/services/notifications.py
"""Task-change notifications.

Dispatch is best effort: ``notify`` reports success as a bool and never
raises, and ``fire`` schedules it in the background so the task
operation that triggered it does not wait on the notifier.
"""
import asyncio
from datetime import datetime
from typing import Any, Dict, Optional, Set

import httpx
import structlog

log = structlog.get_logger()

CREATE = "create"
UPDATE = "update"


def build_event(
    task,
    kind: str,
    company_name: Optional[str] = None,
    project_name: Optional[str] = None,
    recipient_email: Optional[str] = None,
) -> Dict[str, Any]:
    task_date = task.task_date.isoformat() if isinstance(task.task_date, datetime) else task.task_date
    return {
        "task_id": task.id,
        "kind": kind,
        "company_name": company_name or "Unknown Company",
        "project_name": project_name or "No Project",
        "task_date": task_date,
        "vehicle_id": task.vehicle_id,
        "driver_id": task.driver_id,
        "pickup_location": task.pickup_location or "N/A",
        "drop_location": task.drop_location or "N/A",
        "expected_passengers": task.expected_passengers,
        "recipient_email": recipient_email,
    }


class NotificationTrigger:
    def __init__(
        self,
        url: Optional[str],
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.timeout = timeout
        self._transport = transport
        self._pending: Set[asyncio.Task] = set()

    async def notify(self, event: Dict[str, Any]) -> bool:
        if not self.url:
            log.info("notification_skipped", reason="no_notification_url", task_id=event.get("task_id"))
            return False

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.url, json=event)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            log.warning(
                "notification_failed",
                task_id=event.get("task_id"),
                kind=event.get("kind"),
                error=str(exc),
            )
            return False
        except Exception:
            log.exception("notification_failed", task_id=event.get("task_id"), kind=event.get("kind"))
            return False

        log.info("notification_sent", task_id=event.get("task_id"), kind=event.get("kind"))
        return True

    def fire(self, event: Dict[str, Any]) -> asyncio.Task:
        """Schedule ``notify`` without waiting for it."""
        task = asyncio.create_task(self.notify(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self):
        """Wait for every notification scheduled so far."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
