# fleetops/errors.py
from typing import Any, Dict, Iterable, List, Optional

from fastapi import HTTPException


def create_error_response(
    message: str,
    details: Optional[Any] = None,
    example: Optional[str] = None
) -> Dict[str, Any]:
    """Create a detailed error response"""
    response = {
        "message": message,
        "details": details if details else message
    }
    if example:
        response["example"] = example
    return response


class FleetOpsError(Exception):
    """Base class for every domain error raised by the scheduling core."""


class ReferenceValidationError(FleetOpsError):
    kind = "MissingReference"
    entity = "Entity"

    def __init__(self, missing_ids: Iterable[int], company_id: Optional[int] = None):
        self.missing_ids: List[int] = list(missing_ids)
        self.company_id = company_id
        ids = ", ".join(str(i) for i in self.missing_ids)
        if company_id is None:
            message = f"{self.entity} with ID {ids} does not exist"
        else:
            message = f"{self.entity} with ID {ids} does not exist in company {company_id}"
        super().__init__(message)


class MissingCompany(ReferenceValidationError):
    kind = "MissingCompany"
    entity = "Company"


class MissingDriver(ReferenceValidationError):
    kind = "MissingDriver"
    entity = "Driver"


class MissingVehicle(ReferenceValidationError):
    kind = "MissingVehicle"
    entity = "Fleet vehicle"


class MissingProject(ReferenceValidationError):
    kind = "MissingProject"
    entity = "Project"


class MissingEmployee(ReferenceValidationError):
    kind = "MissingEmployee"
    entity = "Employee"


class InvalidFieldError(FleetOpsError):
    """Required field missing or malformed."""

    kind = "InvalidField"

    def __init__(self, errors: Iterable[str]):
        self.errors = list(errors)
        super().__init__(", ".join(self.errors))


class DuplicateIdentity(FleetOpsError):
    """Different employees share one (employee_code, employee_name) key."""

    kind = "DuplicateIdentity"

    def __init__(self, identity_key: str, employee_ids: Iterable[Optional[int]]):
        self.identity_key = identity_key
        self.employee_ids = list(employee_ids)
        super().__init__(
            f"Passenger identity '{identity_key}' is shared by employees "
            f"{', '.join(str(i) for i in self.employee_ids)}"
        )


class TaskNotFound(FleetOpsError):
    def __init__(self, task_id: int):
        self.task_id = task_id
        super().__init__(f"Fleet task {task_id} not found")


class TaskAlreadyExists(FleetOpsError):
    def __init__(self, task_id: int):
        self.task_id = task_id
        super().__init__(f"Fleet task with ID {task_id} already exists")


class PassengerNotFound(FleetOpsError):
    def __init__(self, passenger_id: int):
        self.passenger_id = passenger_id
        super().__init__(f"Fleet task passenger {passenger_id} not found")


class InvalidTransition(FleetOpsError):
    kind = "InvalidTransition"

    def __init__(self, current, requested, message: Optional[str] = None):
        self.current = current
        self.requested = requested
        super().__init__(
            message or f"Transition from '{current}' to '{requested}' is not allowed"
        )


class VersionConflict(FleetOpsError):
    def __init__(self, task_id: int, expected: Optional[int], actual: Optional[int]):
        self.task_id = task_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Fleet task {task_id} was modified concurrently "
            f"(expected version {expected}, found {actual})"
        )


class PartialFailure(FleetOpsError):
    """A multi-step write failed after some of its sub-writes committed.

    ``step`` names the sub-step that failed; ``compensated`` tells whether
    the compensating action ran to completion. The original error is
    chained as ``__cause__``.
    """

    kind = "PartialFailure"

    def __init__(self, task_id: int, step: str, compensated: bool = False, detail: str = ""):
        self.task_id = task_id
        self.step = step
        self.compensated = compensated
        self.detail = detail
        message = f"Fleet task {task_id}: step '{step}' failed"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


def to_http_exception(exc: FleetOpsError) -> HTTPException:
    """Translate a domain error into the HTTP error the routes return."""
    if isinstance(exc, ReferenceValidationError):
        return HTTPException(
            status_code=400,
            detail=create_error_response(
                message=f"{exc.entity} not found",
                details={"kind": exc.kind, "missing_ids": exc.missing_ids, "reason": str(exc)},
                example="Please ensure every referenced record exists in the task's company",
            ),
        )
    if isinstance(exc, InvalidFieldError):
        return HTTPException(
            status_code=400,
            detail=create_error_response(
                message="Invalid field",
                details=exc.errors,
            ),
        )
    if isinstance(exc, (TaskNotFound, PassengerNotFound)):
        return HTTPException(
            status_code=404,
            detail=create_error_response(
                message="Fleet task not found" if isinstance(exc, TaskNotFound) else "Fleet task passenger not found",
                details=str(exc),
            ),
        )
    if isinstance(exc, InvalidTransition):
        return HTTPException(
            status_code=409,
            detail=create_error_response(
                message="Invalid status transition",
                details={"current": exc.current, "requested": exc.requested, "reason": str(exc)},
                example="PLANNED -> ONGOING -> COMPLETED, or CANCELLED from PLANNED/ONGOING",
            ),
        )
    if isinstance(exc, VersionConflict):
        return HTTPException(
            status_code=409,
            detail=create_error_response(
                message="Version conflict",
                details={"expected_version": exc.expected, "current_version": exc.actual, "reason": str(exc)},
                example="Reload the fleet task and retry with its current version",
            ),
        )
    if isinstance(exc, (DuplicateIdentity, TaskAlreadyExists)):
        return HTTPException(
            status_code=409,
            detail=create_error_response(
                message="Duplicate passenger" if isinstance(exc, DuplicateIdentity) else "Duplicate fleet task",
                details=str(exc),
            ),
        )
    if isinstance(exc, PartialFailure):
        return HTTPException(
            status_code=500,
            detail=create_error_response(
                message="Operation partially applied",
                details={
                    "task_id": exc.task_id,
                    "step": exc.step,
                    "compensated": exc.compensated,
                    "reason": exc.detail,
                },
                example="Retry the request; incomplete writes are repaired by the recovery sweep",
            ),
        )
    return HTTPException(
        status_code=500,
        detail=create_error_response(message="Internal server error", details=str(exc)),
    )
