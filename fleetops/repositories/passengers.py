# fleetops/repositories/passengers.py
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from fleetops.models.passenger import PassengerAssignmentModel


class PassengerRepository:
    """Store access for ``fleet_task_passengers``.

    Assignments are only ever inserted or deleted, never edited in place.
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        self.collection = db.fleet_task_passengers

    async def get(self, passenger_id: int) -> Optional[PassengerAssignmentModel]:
        doc = await self.collection.find_one({"id": passenger_id})
        return PassengerAssignmentModel(**doc) if doc else None

    async def list_for_task(self, task_id: int) -> List[PassengerAssignmentModel]:
        docs = await (
            self.collection.find({"fleet_task_id": task_id})
            .sort("id", ASCENDING)
            .to_list(length=None)
        )
        return [PassengerAssignmentModel(**doc) for doc in docs]

    async def find_by_identity(self, task_id: int, identity_key: str) -> Optional[PassengerAssignmentModel]:
        doc = await self.collection.find_one({"fleet_task_id": task_id, "identity_key": identity_key})
        return PassengerAssignmentModel(**doc) if doc else None

    async def count_for_task(self, task_id: int) -> int:
        return await self.collection.count_documents({"fleet_task_id": task_id})

    async def insert(self, doc: Dict[str, Any]) -> PassengerAssignmentModel:
        doc = {**doc, "created_at": doc.get("created_at") or datetime.now(timezone.utc)}
        await self.collection.insert_one(doc)
        return PassengerAssignmentModel(**doc)

    async def delete(self, passenger_id: int) -> bool:
        result = await self.collection.delete_one({"id": passenger_id})
        return result.deleted_count > 0

    async def delete_many(self, task_id: int, passenger_ids: Iterable[int]) -> int:
        ids = list(passenger_ids)
        if not ids:
            return 0
        result = await self.collection.delete_many(
            {"fleet_task_id": task_id, "id": {"$in": ids}}
        )
        return result.deleted_count

    async def delete_for_task(self, task_id: int) -> int:
        result = await self.collection.delete_many({"fleet_task_id": task_id})
        return result.deleted_count

    async def set_company(self, task_id: int, company_id: int) -> int:
        result = await self.collection.update_many(
            {"fleet_task_id": task_id}, {"$set": {"company_id": company_id}}
        )
        return result.modified_count

    async def find(
        self, query: Dict[str, Any], skip: int = 0, limit: int = 100
    ) -> Tuple[List[PassengerAssignmentModel], int]:
        docs = await (
            self.collection.find(query)
            .sort("created_at", DESCENDING)
            .skip(skip)
            .limit(limit)
            .to_list(length=limit)
        )
        total = await self.collection.count_documents(query)
        return [PassengerAssignmentModel(**doc) for doc in docs], total
