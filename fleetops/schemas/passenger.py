# fleetops/schemas/passenger.py
from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field
from fleetops.models.passenger import PassengerStatus
from fleetops.schemas.pagination import Pagination

class PassengerIn(BaseModel):
    """One entry of a desired passenger list."""
    worker_employee_id: int = Field(..., gt=0, description="Employee ID of the worker")
    employee_code: str = Field(..., min_length=1)
    employee_name: str = Field(..., min_length=1, max_length=100)
    department: Optional[str] = None
    pickup_location: Optional[str] = None
    drop_location: Optional[str] = None

    model_config = ConfigDict(str_strip_whitespace=True)

class PassengerCreate(PassengerIn):
    company_id: int = Field(..., gt=0)
    fleet_task_id: int = Field(..., gt=0)
    status: PassengerStatus = PassengerStatus.PLANNED
    notes: Optional[str] = None

class PassengerOut(BaseModel):
    id: int
    fleet_task_id: int
    company_id: int
    worker_employee_id: int
    employee_name: str
    employee_code: str
    department: Optional[str] = None
    pickup_location: Optional[str] = None
    drop_location: Optional[str] = None
    status: PassengerStatus
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class PassengerPage(BaseModel):
    data: List[PassengerOut]
    pagination: Pagination
