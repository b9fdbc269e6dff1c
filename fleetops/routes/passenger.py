# fleetops/routes/passenger.py
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends

from fleetops.dependencies import get_task_manager
from fleetops.errors import FleetOpsError, PassengerNotFound, to_http_exception
from fleetops.models.passenger import PassengerStatus
from fleetops.routes.paging import page_window
from fleetops.schemas.pagination import Pagination
from fleetops.schemas.passenger import PassengerCreate, PassengerOut, PassengerPage
from fleetops.services.lifecycle import TaskLifecycleManager

router = APIRouter()


@router.post("/fleet-task-passengers", response_model=PassengerOut, status_code=201)
@router.post("/fleet-task-passengers/", response_model=PassengerOut, status_code=201, include_in_schema=False)
async def create_fleet_task_passenger(
    payload: PassengerCreate,
    manager: TaskLifecycleManager = Depends(get_task_manager)
):
    try:
        return await manager.add_passenger(payload)
    except FleetOpsError as exc:
        raise to_http_exception(exc)


@router.get("/fleet-task-passengers", response_model=PassengerPage)
@router.get("/fleet-task-passengers/", response_model=PassengerPage, include_in_schema=False)
async def get_fleet_task_passengers(
    company_id: Optional[int] = None,
    fleet_task_id: Optional[int] = None,
    worker_employee_id: Optional[int] = None,
    status: Optional[PassengerStatus] = None,
    page: int = 1,
    limit: Optional[int] = None,
    manager: TaskLifecycleManager = Depends(get_task_manager)
):
    skip, limit = page_window(page, limit)

    query: Dict[str, Any] = {}
    if company_id is not None:
        query["company_id"] = company_id
    if fleet_task_id is not None:
        query["fleet_task_id"] = fleet_task_id
    if worker_employee_id is not None:
        query["worker_employee_id"] = worker_employee_id
    if status is not None:
        query["status"] = status.value

    passengers, total = await manager.list_passengers(query, skip=skip, limit=limit)
    return PassengerPage(
        data=[PassengerOut.model_validate(p) for p in passengers],
        pagination=Pagination.build(page, limit, total),
    )


@router.get("/fleet-task-passengers/task/{task_id}", response_model=List[PassengerOut])
async def get_passengers_for_task(task_id: int, manager: TaskLifecycleManager = Depends(get_task_manager)):
    return await manager.passengers.list_for_task(task_id)


@router.delete("/fleet-task-passengers/task/{task_id}")
async def delete_passengers_for_task(task_id: int, manager: TaskLifecycleManager = Depends(get_task_manager)):
    removed = await manager.clear_passengers(task_id)
    return {
        "message": f"Deleted {removed} passengers for fleet task {task_id}",
        "deleted_count": removed,
    }


@router.get("/fleet-task-passengers/{passenger_id}", response_model=PassengerOut)
async def get_fleet_task_passenger(passenger_id: int, manager: TaskLifecycleManager = Depends(get_task_manager)):
    passenger = await manager.passengers.get(passenger_id)
    if passenger is None:
        raise to_http_exception(PassengerNotFound(passenger_id))
    return passenger


@router.delete("/fleet-task-passengers/{passenger_id}")
async def delete_fleet_task_passenger(passenger_id: int, manager: TaskLifecycleManager = Depends(get_task_manager)):
    try:
        await manager.remove_passenger(passenger_id)
    except FleetOpsError as exc:
        raise to_http_exception(exc)
    return {"message": "Fleet task passenger deleted successfully", "id": passenger_id}
