# fleetops/models/company.py
from typing import Optional
from pydantic import BaseModel, ConfigDict

class CompanyModel(BaseModel):
    id: int
    name: str
    tenant_code: Optional[str] = None

    model_config = ConfigDict(extra="ignore")

class ProjectModel(BaseModel):
    id: int
    company_id: Optional[int] = None
    name: str

    model_config = ConfigDict(extra="ignore")
