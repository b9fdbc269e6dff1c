# fleetops/models/vehicle.py
from typing import Optional
from pydantic import BaseModel, ConfigDict

class VehicleModel(BaseModel):
    id: int
    company_id: int
    vehicle_code: Optional[str] = None
    registration_no: Optional[str] = None
    vehicle_type: Optional[str] = None
    capacity: Optional[int] = None
    status: str = "AVAILABLE"

    model_config = ConfigDict(extra="ignore")
