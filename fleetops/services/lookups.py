# fleetops/services/lookups.py
import re
from typing import Dict, Iterable, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING

from fleetops.models.company import CompanyModel, ProjectModel
from fleetops.models.driver import DriverModel
from fleetops.models.employee import EmployeeModel
from fleetops.models.vehicle import VehicleModel

ACTIVE = re.compile(r"^active$", re.IGNORECASE)
WORKER = re.compile(r"^worker$", re.IGNORECASE)


class EntityLookupGateway:
    """Read-only access to the HR and fleet records a transport task points at."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    async def get_company(self, company_id: int) -> Optional[CompanyModel]:
        doc = await self.db.companies.find_one({"id": company_id})
        return CompanyModel(**doc) if doc else None

    async def get_project(self, project_id: int) -> Optional[ProjectModel]:
        doc = await self.db.projects.find_one({"id": project_id})
        return ProjectModel(**doc) if doc else None

    async def get_vehicle(self, vehicle_id: int) -> Optional[VehicleModel]:
        doc = await self.db.vehicles.find_one({"id": vehicle_id})
        return VehicleModel(**doc) if doc else None

    async def get_driver(self, driver_id: int) -> Optional[DriverModel]:
        doc = await self.db.drivers.find_one({"id": driver_id})
        return DriverModel(**doc) if doc else None

    async def get_employees(self, employee_ids: Iterable[int]) -> Dict[int, EmployeeModel]:
        ids = list(set(employee_ids))
        if not ids:
            return {}
        docs = await self.db.employees.find({"id": {"$in": ids}}).to_list(length=None)
        return {doc["id"]: EmployeeModel(**doc) for doc in docs}

    async def list_eligible_workers(
        self, company_id: int, search: str = ""
    ) -> List[EmployeeModel]:
        """Active employees holding the worker role in a company."""
        query = {
            "company_id": company_id,
            "status": ACTIVE,
            "role": WORKER,
        }
        if search.strip():
            pattern = re.compile(re.escape(search.strip()), re.IGNORECASE)
            query["$or"] = [
                {"full_name": pattern},
                {"job_title": pattern},
                {"employee_code": pattern},
            ]
        docs = await (
            self.db.employees.find(query)
            .sort("full_name", ASCENDING)
            .to_list(length=None)
        )
        return [EmployeeModel(**doc) for doc in docs]
