# fleetops/routes/fleet_task.py
from datetime import date, datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException

from fleetops.dependencies import get_task_manager
from fleetops.errors import FleetOpsError, create_error_response, to_http_exception
from fleetops.fsm.task_fsm import normalize_status
from fleetops.routes.paging import page_window
from fleetops.schemas.fleet_task import FleetTaskCreate, FleetTaskOut, FleetTaskPage, FleetTaskUpdate, StatusChange
from fleetops.schemas.pagination import Pagination
from fleetops.services.lifecycle import TaskLifecycleManager

router = APIRouter()


def build_task_query(
    company_id: Optional[int] = None,
    status: Optional[str] = None,
    vehicle_id: Optional[int] = None,
    driver_id: Optional[int] = None,
    project_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> Dict[str, Any]:
    query: Dict[str, Any] = {}
    if company_id is not None:
        query["company_id"] = company_id
    if status:
        query["status"] = normalize_status(status).value
    if vehicle_id is not None:
        query["vehicle_id"] = vehicle_id
    if driver_id is not None:
        query["driver_id"] = driver_id
    if project_id is not None:
        query["project_id"] = project_id

    if start_date and end_date and end_date < start_date:
        raise HTTPException(
            status_code=400,
            detail=create_error_response(
                message="Invalid date range",
                details="end_date must not be before start_date",
                example="start_date=2024-01-01&end_date=2024-01-31"
            )
        )
    # task dates are stored as midnight, so both bounds are inclusive
    task_date: Dict[str, datetime] = {}
    if start_date:
        task_date["$gte"] = datetime.combine(start_date, datetime.min.time())
    if end_date:
        task_date["$lte"] = datetime.combine(end_date, datetime.min.time())
    if task_date:
        query["task_date"] = task_date
    return query


@router.post("/fleet-tasks", response_model=FleetTaskOut, status_code=201)
@router.post("/fleet-tasks/", response_model=FleetTaskOut, status_code=201, include_in_schema=False)
async def create_fleet_task(
    payload: FleetTaskCreate,
    manager: TaskLifecycleManager = Depends(get_task_manager)
):
    try:
        task = await manager.create_task(payload)
        return await manager.present(task, include_passengers=True)
    except FleetOpsError as exc:
        raise to_http_exception(exc)


@router.get("/fleet-tasks", response_model=FleetTaskPage)
@router.get("/fleet-tasks/", response_model=FleetTaskPage, include_in_schema=False)
async def get_fleet_tasks(
    company_id: Optional[int] = None,
    status: Optional[str] = None,
    vehicle_id: Optional[int] = None,
    driver_id: Optional[int] = None,
    project_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    page: int = 1,
    limit: Optional[int] = None,
    manager: TaskLifecycleManager = Depends(get_task_manager)
):
    skip, limit = page_window(page, limit)
    query = build_task_query(company_id, status, vehicle_id, driver_id, project_id, start_date, end_date)

    tasks, total = await manager.list_tasks(query, skip=skip, limit=limit)
    data = [await manager.present(task) for task in tasks]
    return FleetTaskPage(data=data, pagination=Pagination.build(page, limit, total))


@router.get("/fleet-tasks/{task_id}", response_model=FleetTaskOut)
async def get_fleet_task(task_id: int, manager: TaskLifecycleManager = Depends(get_task_manager)):
    try:
        task = await manager.get_task(task_id)
    except FleetOpsError as exc:
        raise to_http_exception(exc)
    return await manager.present(task, include_passengers=True)


@router.put("/fleet-tasks/{task_id}", response_model=FleetTaskOut)
async def update_fleet_task(
    task_id: int,
    payload: FleetTaskUpdate,
    manager: TaskLifecycleManager = Depends(get_task_manager)
):
    try:
        task = await manager.update_task(task_id, payload, payload.passengers)
        return await manager.present(task, include_passengers=True)
    except FleetOpsError as exc:
        raise to_http_exception(exc)


@router.patch("/fleet-tasks/{task_id}/status", response_model=FleetTaskOut)
async def change_fleet_task_status(
    task_id: int,
    change: StatusChange,
    manager: TaskLifecycleManager = Depends(get_task_manager)
):
    try:
        task = await manager.set_status(task_id, change.status, change.expected_version)
        return await manager.present(task)
    except FleetOpsError as exc:
        raise to_http_exception(exc)


@router.delete("/fleet-tasks/{task_id}")
async def delete_fleet_task(task_id: int, manager: TaskLifecycleManager = Depends(get_task_manager)):
    try:
        await manager.delete_task(task_id)
    except FleetOpsError as exc:
        raise to_http_exception(exc)
    return {"message": "Fleet task deleted successfully", "id": task_id}
