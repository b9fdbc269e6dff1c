# fleetops/database.py
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument
import structlog
from fleetops.config import get_settings

settings = get_settings()
log = structlog.get_logger()

COLLECTIONS = (
    "companies",
    "employees",
    "drivers",
    "vehicles",
    "projects",
    "fleet_tasks",
    "fleet_task_passengers",
    "task_operations",
    "counters",
)

class Database:
    client: AsyncIOMotorClient = None
    db = None

db = Database()

async def connect_to_mongo():
    db.client = AsyncIOMotorClient(settings.MONGODB_URI)
    db.db = db.client[settings.MONGODB_DB_NAME]
    log.info("mongo_connected", database=settings.MONGODB_DB_NAME)

async def close_mongo_connection():
    if db.client:
        db.client.close()
        log.info("mongo_closed")

async def get_database():
    return db.db

async def ensure_indexes(database: AsyncIOMotorDatabase):
    # Fleet task indexes
    await database.fleet_tasks.create_index([("id", ASCENDING)], unique=True)
    await database.fleet_tasks.create_index([("company_id", ASCENDING), ("task_date", DESCENDING)])
    await database.fleet_tasks.create_index([("vehicle_id", ASCENDING), ("task_date", DESCENDING)])
    await database.fleet_tasks.create_index([("status", ASCENDING), ("task_date", DESCENDING)])
    await database.fleet_tasks.create_index([("driver_id", ASCENDING)])
    await database.fleet_tasks.create_index([("project_id", ASCENDING)])

    # Passenger indexes; one logical passenger per task
    await database.fleet_task_passengers.create_index([("id", ASCENDING)], unique=True)
    await database.fleet_task_passengers.create_index(
        [("fleet_task_id", ASCENDING), ("identity_key", ASCENDING)], unique=True
    )
    await database.fleet_task_passengers.create_index([("fleet_task_id", ASCENDING), ("status", ASCENDING)])
    await database.fleet_task_passengers.create_index(
        [("worker_employee_id", ASCENDING), ("created_at", DESCENDING)]
    )

    # Operation log
    await database.task_operations.create_index([("id", ASCENDING)], unique=True)
    await database.task_operations.create_index([("state", ASCENDING), ("started_at", ASCENDING)])

    # Lookup collections
    for name in ("companies", "employees", "drivers", "vehicles", "projects"):
        await database[name].create_index([("id", ASCENDING)], unique=True)
    await database.employees.create_index([("company_id", ASCENDING), ("status", ASCENDING)])
    await database.drivers.create_index([("company_id", ASCENDING), ("status", ASCENDING)])
    await database.vehicles.create_index([("company_id", ASCENDING), ("status", ASCENDING)])

async def init_db():
    if not db.client:
        await connect_to_mongo()
    try:
        collections = await db.db.list_collection_names()
        for name in COLLECTIONS:
            if name not in collections:
                await db.db.create_collection(name)

        await ensure_indexes(db.db)

        log.info("database_initialized")
        return True
    except Exception:
        log.exception("database_initialization_failed")
        return False

async def next_sequence(database: AsyncIOMotorDatabase, name: str) -> int:
    """Return the next value of a monotonic integer sequence."""
    counter = await database.counters.find_one_and_update(
        {"_id": name},
        {"$inc": {"seq": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return counter["seq"]

async def bump_sequence(database: AsyncIOMotorDatabase, name: str, floor: int):
    """Make sure the sequence will never hand out a value <= floor."""
    await database.counters.update_one(
        {"_id": name},
        {"$max": {"seq": floor}},
        upsert=True,
    )
