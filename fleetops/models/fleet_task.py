# fleetops/models/fleet_task.py
from enum import Enum
from typing import Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict

class TaskStatus(str, Enum):
    PLANNED = "PLANNED"
    ONGOING = "ONGOING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

class FleetTaskModel(BaseModel):
    id: int
    company_id: int
    project_id: Optional[int] = None
    driver_id: Optional[int] = None
    vehicle_id: int
    task_date: datetime
    planned_pickup_time: Optional[datetime] = None
    planned_drop_time: Optional[datetime] = None
    actual_start_time: Optional[datetime] = None
    actual_end_time: Optional[datetime] = None
    pickup_location: Optional[str] = None
    drop_location: Optional[str] = None
    pickup_address: Optional[str] = None
    drop_address: Optional[str] = None
    expected_passengers: int = 0
    status: TaskStatus = TaskStatus.PLANNED
    notes: Optional[str] = None
    created_by: Optional[int] = None
    version: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(extra="ignore")
