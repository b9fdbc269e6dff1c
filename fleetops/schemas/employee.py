# fleetops/schemas/employee.py
from typing import List, Optional
from pydantic import BaseModel, ConfigDict

class WorkerOut(BaseModel):
    id: int
    employee_code: Optional[str] = None
    full_name: str
    job_title: Optional[str] = None
    department: Optional[str] = None
    phone: Optional[str] = None
    status: str

    model_config = ConfigDict(from_attributes=True)

class WorkerList(BaseModel):
    data: List[WorkerOut]
    count: int
