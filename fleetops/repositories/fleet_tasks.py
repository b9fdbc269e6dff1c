# fleetops/repositories/fleet_tasks.py
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import DESCENDING, ReturnDocument

from fleetops.models.fleet_task import FleetTaskModel


def _now() -> datetime:
    return datetime.now(timezone.utc)


class FleetTaskRepository:
    """Store access for the ``fleet_tasks`` collection.

    Every write after insert is conditional on the task's ``version`` and
    bumps it, so two writers can never both win against the same snapshot.
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        self.collection = db.fleet_tasks

    async def get(self, task_id: int) -> Optional[FleetTaskModel]:
        doc = await self.collection.find_one({"id": task_id})
        return FleetTaskModel(**doc) if doc else None

    async def exists(self, task_id: int) -> bool:
        return await self.collection.find_one({"id": task_id}, {"_id": 1}) is not None

    async def insert(self, doc: Dict[str, Any]) -> FleetTaskModel:
        now = _now()
        doc = {**doc, "version": 1, "created_at": now, "updated_at": now}
        await self.collection.insert_one(doc)
        return FleetTaskModel(**doc)

    async def update(
        self, task_id: int, changes: Dict[str, Any], expected_version: int
    ) -> Optional[FleetTaskModel]:
        """Apply ``changes`` if the stored version still matches; None otherwise."""
        updated = await self.collection.find_one_and_update(
            {"id": task_id, "version": expected_version},
            {"$set": {**changes, "updated_at": _now()}, "$inc": {"version": 1}},
            return_document=ReturnDocument.AFTER,
        )
        return FleetTaskModel(**updated) if updated else None

    async def set_expected_passengers(self, task_id: int, count: int) -> Optional[FleetTaskModel]:
        updated = await self.collection.find_one_and_update(
            {"id": task_id},
            {"$set": {"expected_passengers": count, "updated_at": _now()}, "$inc": {"version": 1}},
            return_document=ReturnDocument.AFTER,
        )
        return FleetTaskModel(**updated) if updated else None

    async def delete(self, task_id: int) -> bool:
        result = await self.collection.delete_one({"id": task_id})
        return result.deleted_count > 0

    async def find(
        self, query: Dict[str, Any], skip: int = 0, limit: int = 100
    ) -> Tuple[List[FleetTaskModel], int]:
        cursor = (
            self.collection.find(query)
            .sort([("task_date", DESCENDING), ("id", DESCENDING)])
            .skip(skip)
            .limit(limit)
        )
        docs = await cursor.to_list(length=limit)
        total = await self.collection.count_documents(query)
        return [FleetTaskModel(**doc) for doc in docs], total
