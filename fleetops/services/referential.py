# fleetops/services/referential.py
from typing import Iterable, Optional

import structlog

from fleetops.errors import (
    MissingCompany,
    MissingDriver,
    MissingEmployee,
    MissingProject,
    MissingVehicle,
)
from fleetops.models.company import CompanyModel
from fleetops.services.lookups import EntityLookupGateway

log = structlog.get_logger()


class ReferentialValidator:
    """Confirms a task's company, driver, vehicle, project and passengers exist.

    Drivers, vehicles and employees must also belong to the task's company.
    Read-only; raises the first failing ``ReferenceValidationError``.
    """

    def __init__(self, lookups: EntityLookupGateway):
        self.lookups = lookups

    async def validate(
        self,
        company_id: int,
        driver_id: Optional[int] = None,
        vehicle_id: Optional[int] = None,
        employee_ids: Optional[Iterable[int]] = None,
        project_id: Optional[int] = None,
    ) -> CompanyModel:
        company = await self.lookups.get_company(company_id)
        if company is None:
            log.info("reference_missing", kind="company", company_id=company_id)
            raise MissingCompany([company_id])

        if driver_id is not None:
            driver = await self.lookups.get_driver(driver_id)
            if driver is None or driver.company_id != company_id:
                log.info("reference_missing", kind="driver", company_id=company_id, driver_id=driver_id)
                raise MissingDriver([driver_id], company_id)

        if vehicle_id is not None:
            vehicle = await self.lookups.get_vehicle(vehicle_id)
            if vehicle is None or vehicle.company_id != company_id:
                log.info("reference_missing", kind="vehicle", company_id=company_id, vehicle_id=vehicle_id)
                raise MissingVehicle([vehicle_id], company_id)

        if project_id is not None:
            project = await self.lookups.get_project(project_id)
            if project is None or (project.company_id is not None and project.company_id != company_id):
                log.info("reference_missing", kind="project", company_id=company_id, project_id=project_id)
                raise MissingProject([project_id], company_id)

        if employee_ids is not None:
            wanted = []
            for employee_id in employee_ids:
                if employee_id not in wanted:
                    wanted.append(employee_id)
            found = await self.lookups.get_employees(wanted)
            missing = [
                employee_id for employee_id in wanted
                if employee_id not in found or found[employee_id].company_id != company_id
            ]
            if missing:
                log.info("reference_missing", kind="employee", company_id=company_id, employee_ids=missing)
                raise MissingEmployee(missing, company_id)

        return company
