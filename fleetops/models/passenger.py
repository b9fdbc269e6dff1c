# fleetops/models/passenger.py
from enum import Enum
from typing import Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict

class PassengerStatus(str, Enum):
    PLANNED = "PLANNED"
    PICKED = "PICKED"
    DROPPED = "DROPPED"
    ABSENT = "ABSENT"

class PassengerAssignmentModel(BaseModel):
    id: int
    fleet_task_id: int
    company_id: int
    worker_employee_id: int
    employee_name: str
    employee_code: str
    identity_key: str
    department: Optional[str] = None
    pickup_location: Optional[str] = None
    drop_location: Optional[str] = None
    status: PassengerStatus = PassengerStatus.PLANNED
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(extra="ignore")
