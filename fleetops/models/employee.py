# fleetops/models/employee.py
from typing import Optional
from pydantic import BaseModel, ConfigDict

class EmployeeModel(BaseModel):
    id: int
    company_id: int
    employee_code: Optional[str] = None
    full_name: str
    job_title: Optional[str] = None
    department: Optional[str] = None
    role: str = "worker"
    status: str = "ACTIVE"
    phone: Optional[str] = None
    email: Optional[str] = None

    model_config = ConfigDict(extra="ignore")
