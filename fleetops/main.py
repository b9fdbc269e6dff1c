# fleetops/main.py
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from fleetops.config import get_settings
from fleetops.database import close_mongo_connection, connect_to_mongo, db, init_db
from fleetops.dependencies import get_notifier
from fleetops.logging_config import configure_logging
from fleetops.routes import employee_router, fleet_task_router, passenger_router
from fleetops.services.lifecycle import TaskLifecycleManager

settings = get_settings()
log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    configure_logging(settings.ENVIRONMENT, settings.LOG_LEVEL)
    await connect_to_mongo()
    await init_db()
    if settings.RECOVERY_SWEEP_ON_STARTUP:
        manager = TaskLifecycleManager(db.db, recovery_grace=settings.RECOVERY_GRACE_SECONDS)
        recovered = await manager.recover_incomplete()
        log.info("recovery_sweep_finished", recovered=recovered)
    log.info("fleetops_started", environment=settings.ENVIRONMENT)
    yield
    # Shutdown
    await get_notifier().drain()
    await close_mongo_connection()
    log.info("fleetops_stopped")


app = FastAPI(title="Fleet Transport Scheduling", lifespan=lifespan)

app.include_router(fleet_task_router, prefix=settings.API_PREFIX, tags=["fleet-tasks"])
app.include_router(passenger_router, prefix=settings.API_PREFIX, tags=["fleet-task-passengers"])
app.include_router(employee_router, prefix=settings.API_PREFIX, tags=["employees"])


@app.get("/")
async def root():
    return {"message": "Welcome to the Fleet Transport Scheduling service"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "fleetops.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.RELOAD
    )
