# fleetops/repositories/operations.py
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, ReturnDocument

from fleetops.database import next_sequence

PENDING = "pending"
COMPLETED = "completed"
FAILED = "failed"
RECOVERING = "recovering"
RECOVERED = "recovered"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _stale(older_than: datetime) -> Dict[str, Any]:
    # writers still inside the window are left alone, as are live claims
    return {
        "$or": [
            {"state": {"$in": [PENDING, FAILED]}, "started_at": {"$lte": older_than}},
            {"state": RECOVERING, "claimed_at": {"$lt": older_than}},
        ]
    }


class OperationLog:
    """Journal of multi-step task writes.

    An entry is opened before the first sub-write and closed after the
    last one. Entries left ``pending`` or ``failed`` past the recovery grace
    period are claimed, one sweep at a time, by the recovery sweep.
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db.task_operations

    async def begin(self, kind: str, task_id: int, **context: Any) -> int:
        op_id = await next_sequence(self.db, "task_operations")
        await self.collection.insert_one({
            "id": op_id,
            "kind": kind,
            "task_id": task_id,
            "state": PENDING,
            "step": None,
            "error": None,
            "context": context,
            "started_at": _now(),
            "finished_at": None,
        })
        return op_id

    async def complete(self, op_id: int) -> bool:
        """Close a pending entry; False if a recovery sweep already claimed it."""
        result = await self.collection.update_one(
            {"id": op_id, "state": PENDING},
            {"$set": {"state": COMPLETED, "finished_at": _now()}},
        )
        return result.modified_count > 0

    async def fail(self, op_id: int, step: str, error: str) -> bool:
        result = await self.collection.update_one(
            {"id": op_id, "state": PENDING},
            {"$set": {"state": FAILED, "step": step, "error": error, "finished_at": _now()}},
        )
        return result.modified_count > 0

    async def mark_recovered(self, op_id: int, outcome: str):
        await self.collection.update_one(
            {"id": op_id},
            {"$set": {"state": RECOVERED, "outcome": outcome, "recovered_at": _now()}},
        )

    async def claim(self, op_id: int, owner: str, older_than: datetime) -> Optional[Dict[str, Any]]:
        """Atomically hand a stale entry to one recovery sweep.

        Returns the claimed entry, or None when the entry finished, is
        too recent, or another sweep holds it.
        """
        return await self.collection.find_one_and_update(
            {"id": op_id, **_stale(older_than)},
            {"$set": {"state": RECOVERING, "owner": owner, "claimed_at": _now()}},
            projection={"_id": 0},
            return_document=ReturnDocument.AFTER,
        )

    async def release(self, op_id: int, owner: str, error: str):
        """Give a claimed entry back so a later sweep can retry it."""
        await self.collection.update_one(
            {"id": op_id, "state": RECOVERING, "owner": owner},
            {"$set": {"state": FAILED, "error": error}, "$unset": {"owner": "", "claimed_at": ""}},
        )

    async def get(self, op_id: int) -> Optional[Dict[str, Any]]:
        return await self.collection.find_one({"id": op_id}, {"_id": 0})

    async def incomplete(self, older_than: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Unfinished entries; with ``older_than``, only those a sweep may claim."""
        if older_than is None:
            query = {"state": {"$in": [PENDING, FAILED, RECOVERING]}}
        else:
            query = _stale(older_than)
        return await (
            self.collection.find(query, {"_id": 0})
            .sort("id", ASCENDING)
            .to_list(length=None)
        )
