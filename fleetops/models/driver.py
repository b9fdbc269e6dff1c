# fleetops/models/driver.py
from typing import Optional
from pydantic import BaseModel, ConfigDict

class DriverModel(BaseModel):
    id: int
    company_id: int
    employee_id: Optional[int] = None
    full_name: str
    license_number: Optional[str] = None
    status: str = "ACTIVE"

    model_config = ConfigDict(extra="ignore")
