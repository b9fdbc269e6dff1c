# fleetops/dependencies.py
from functools import lru_cache

from fastapi import Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from fleetops.config import get_settings
from fleetops.database import get_database
from fleetops.services.lifecycle import TaskLifecycleManager
from fleetops.services.notifications import NotificationTrigger


@lru_cache()
def get_notifier() -> NotificationTrigger:
    settings = get_settings()
    return NotificationTrigger(settings.NOTIFICATION_URL, timeout=settings.NOTIFICATION_TIMEOUT)


async def get_task_manager(
    db: AsyncIOMotorDatabase = Depends(get_database),
    notifier: NotificationTrigger = Depends(get_notifier),
) -> TaskLifecycleManager:
    return TaskLifecycleManager(
        db,
        notifier=notifier,
        recipient_email=get_settings().NOTIFICATION_RECIPIENT,
        recovery_grace=get_settings().RECOVERY_GRACE_SECONDS,
    )
