# fleetops/routes/employee.py
from fastapi import APIRouter, HTTPException, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from fleetops.database import get_database
from fleetops.errors import create_error_response
from fleetops.schemas.employee import WorkerOut, WorkerList
from fleetops.services.lookups import EntityLookupGateway

router = APIRouter()


@router.get("/employees/company/{company_id}/workers", response_model=WorkerList)
async def get_company_workers(
    company_id: int,
    search: str = "",
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    """Employees who can be put on a fleet task as passengers."""
    lookups = EntityLookupGateway(db)

    company = await lookups.get_company(company_id)
    if company is None:
        raise HTTPException(
            status_code=404,
            detail=create_error_response(
                message="Company not found",
                details=f"No company found with ID: {company_id}",
                example="Please ensure you're using a valid company ID"
            )
        )

    workers = await lookups.list_eligible_workers(company_id, search)
    return WorkerList(
        data=[WorkerOut.model_validate(worker) for worker in workers],
        count=len(workers),
    )
