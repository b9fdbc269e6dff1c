# fleetops/schemas/fleet_task.py
from typing import List, Optional
from datetime import datetime, timezone
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from fleetops.models.fleet_task import TaskStatus
from fleetops.schemas.pagination import Pagination
from fleetops.schemas.passenger import PassengerIn, PassengerOut

def to_task_day(value: datetime) -> datetime:
    """Store task dates as midnight of the (UTC) calendar day."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return datetime(value.year, value.month, value.day)

class FleetTaskFields(BaseModel):
    project_id: Optional[int] = Field(None, gt=0)
    driver_id: Optional[int] = Field(None, gt=0)
    planned_pickup_time: Optional[datetime] = None
    planned_drop_time: Optional[datetime] = None
    pickup_location: Optional[str] = None
    drop_location: Optional[str] = None
    pickup_address: Optional[str] = None
    drop_address: Optional[str] = None
    notes: Optional[str] = None

    model_config = ConfigDict(str_strip_whitespace=True)

    @field_validator("planned_pickup_time", "planned_drop_time")
    @classmethod
    def to_naive_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # MongoDB hands datetimes back as naive UTC
        if value is not None and value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    @model_validator(mode="after")
    def check_time_window(self):
        if self.planned_pickup_time and self.planned_drop_time:
            if self.planned_drop_time <= self.planned_pickup_time:
                raise ValueError("Planned drop time must be after planned pickup time")
        return self

class FleetTaskCreate(FleetTaskFields):
    id: Optional[int] = Field(None, gt=0, description="Caller-supplied task ID; generated when omitted")
    company_id: int = Field(..., gt=0)
    vehicle_id: int = Field(..., gt=0)
    task_date: datetime
    created_by: Optional[int] = None
    passengers: List[PassengerIn] = Field(default_factory=list)

    @field_validator("task_date")
    @classmethod
    def normalize_task_date(cls, value: datetime) -> datetime:
        return to_task_day(value)

class FleetTaskUpdate(FleetTaskFields):
    """Partial update. Omitting ``passengers`` leaves assignments untouched;
    an empty list clears them."""
    company_id: Optional[int] = Field(None, gt=0)
    vehicle_id: Optional[int] = Field(None, gt=0)
    task_date: Optional[datetime] = None
    status: Optional[str] = None
    expected_version: Optional[int] = Field(None, ge=1)
    passengers: Optional[List[PassengerIn]] = None

    @field_validator("task_date")
    @classmethod
    def normalize_task_date(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_task_day(value) if value else value

    @model_validator(mode="after")
    def check_required_not_cleared(self):
        for name in ("company_id", "vehicle_id", "task_date"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be cleared")
        return self

class StatusChange(BaseModel):
    status: str = Field(..., min_length=1)
    expected_version: Optional[int] = Field(None, ge=1)

class FleetTaskOut(BaseModel):
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
    expected_passengers: int
    status: TaskStatus
    notes: Optional[str] = None
    created_by: Optional[int] = None
    version: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    company_name: Optional[str] = None
    driver_name: Optional[str] = None
    vehicle_code: Optional[str] = None
    project_name: Optional[str] = None
    passengers: Optional[List[PassengerOut]] = None

    model_config = ConfigDict(from_attributes=True)

class FleetTaskPage(BaseModel):
    data: List[FleetTaskOut]
    pagination: Pagination
