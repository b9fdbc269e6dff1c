# fleetops/services/lifecycle.py
"""Create, update, delete and status changes of fleet tasks.

Every write path for one task id runs under that task's lock and against
the task's version, validates references before the first write, and
records multi-step writes in the operation log so an interrupted one can
be finished or compensated by ``recover_incomplete``.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

import structlog
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from fleetops.database import bump_sequence, next_sequence
from fleetops.errors import (
    DuplicateIdentity,
    InvalidFieldError,
    PartialFailure,
    PassengerNotFound,
    TaskAlreadyExists,
    TaskNotFound,
    VersionConflict,
)
from fleetops.fsm.task_fsm import INITIAL, normalize_status, transition
from fleetops.models.fleet_task import FleetTaskModel, TaskStatus
from fleetops.models.passenger import PassengerAssignmentModel
from fleetops.repositories import FleetTaskRepository, OperationLog, PassengerRepository
from fleetops.schemas.fleet_task import FleetTaskCreate, FleetTaskOut, FleetTaskUpdate
from fleetops.schemas.passenger import PassengerCreate, PassengerIn, PassengerOut
from fleetops.services import identity
from fleetops.services.locks import TaskLocks, task_locks
from fleetops.services.lookups import EntityLookupGateway
from fleetops.services.notifications import CREATE, UPDATE, NotificationTrigger, build_event
from fleetops.services.reconciler import PassengerReconciler, deduplicate
from fleetops.services.referential import ReferentialValidator

log = structlog.get_logger()


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _status_stamps(status: TaskStatus) -> Dict[str, Any]:
    if status is TaskStatus.ONGOING:
        return {"actual_start_time": _now()}
    if status is TaskStatus.COMPLETED:
        return {"actual_end_time": _now()}
    return {}


async def _no_passengers(task_id: int) -> List[PassengerAssignmentModel]:
    return []


class TaskLifecycleManager:
    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        notifier: Optional[NotificationTrigger] = None,
        locks: TaskLocks = task_locks,
        recipient_email: Optional[str] = None,
        recovery_grace: float = 300.0,
    ):
        self.db = db
        self.tasks = FleetTaskRepository(db)
        self.passengers = PassengerRepository(db)
        self.operations = OperationLog(db)
        self.lookups = EntityLookupGateway(db)
        self.validator = ReferentialValidator(self.lookups)
        self.reconciler = PassengerReconciler(
            self.passengers, lambda: next_sequence(db, "fleet_task_passengers")
        )
        self.notifier = notifier
        self.locks = locks
        self.recipient_email = recipient_email
        self.recovery_grace = recovery_grace
        # identifies this process when it claims log entries
        self.owner = uuid4().hex

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------

    async def get_task(self, task_id: int) -> FleetTaskModel:
        task = await self.tasks.get(task_id)
        if task is None:
            raise TaskNotFound(task_id)
        return task

    async def list_tasks(
        self, query: Dict[str, Any], skip: int = 0, limit: int = 100
    ) -> Tuple[List[FleetTaskModel], int]:
        return await self.tasks.find(query, skip=skip, limit=limit)

    async def present(self, task: FleetTaskModel, include_passengers: bool = False) -> FleetTaskOut:
        """Task plus the display names of what it references."""
        company = await self.lookups.get_company(task.company_id)
        driver = await self.lookups.get_driver(task.driver_id) if task.driver_id else None
        vehicle = await self.lookups.get_vehicle(task.vehicle_id)
        project = await self.lookups.get_project(task.project_id) if task.project_id else None

        out = FleetTaskOut(
            **task.model_dump(),
            company_name=company.name if company else "Unknown Company",
            driver_name=driver.full_name if driver else "Unknown Driver",
            vehicle_code=(vehicle.vehicle_code or vehicle.registration_no or "Unknown") if vehicle else "Unknown Vehicle",
            project_name=project.name if project else "Unknown Project",
        )
        if include_passengers:
            assignments = await self.passengers.list_for_task(task.id)
            out.passengers = [PassengerOut.model_validate(a) for a in assignments]
        return out

    # ------------------------------------------------------------------
    # writes
    # ------------------------------------------------------------------

    async def create_task(
        self,
        payload: FleetTaskCreate,
        desired_passengers: Optional[List[PassengerIn]] = None,
    ) -> FleetTaskModel:
        desired = deduplicate(payload.passengers if desired_passengers is None else desired_passengers)

        company = await self.validator.validate(
            payload.company_id,
            driver_id=payload.driver_id,
            vehicle_id=payload.vehicle_id,
            employee_ids=[p.worker_employee_id for p in desired],
            project_id=payload.project_id,
        )

        if payload.id is not None:
            if await self.tasks.exists(payload.id):
                raise TaskAlreadyExists(payload.id)
            task_id = payload.id
            await bump_sequence(self.db, "fleet_tasks", task_id)
        else:
            task_id = await next_sequence(self.db, "fleet_tasks")

        doc = payload.model_dump(exclude={"id", "passengers"})
        doc.update(id=task_id, status=INITIAL.value, expected_passengers=0)

        async with self.locks.hold(task_id):
            op_id = await self.operations.begin("create", task_id, passengers=len(desired))
            try:
                task = await self.tasks.insert(doc)
            except DuplicateKeyError:
                await self.operations.fail(op_id, "insert_task", "duplicate task id")
                await self.operations.mark_recovered(op_id, "nothing_written")
                raise TaskAlreadyExists(task_id)

            try:
                await self.reconciler.reconcile(
                    task_id,
                    payload.company_id,
                    desired,
                    _no_passengers,
                    pickup_location=payload.pickup_location,
                    drop_location=payload.drop_location,
                )
                task = await self._refresh_passenger_count(task)
            except Exception as exc:
                step = exc.step if isinstance(exc, PartialFailure) else "seed_passengers"
                await self.operations.fail(op_id, step, str(exc))
                compensated = await self._compensate_create(task_id)
                if compensated:
                    await self.operations.mark_recovered(op_id, "compensated")
                raise PartialFailure(task_id, step, compensated=compensated, detail=str(exc)) from exc

            if not await self.operations.complete(op_id):
                # a recovery sweep took the entry over while we were writing
                compensated = await self._compensate_create(task_id)
                raise PartialFailure(
                    task_id, "complete_operation", compensated=compensated,
                    detail="operation was claimed by recovery",
                )

        log.info(
            "fleet_task_created",
            task_id=task_id,
            company_id=task.company_id,
            passengers=task.expected_passengers,
        )
        await self._announce(task, CREATE, company.name)
        return task

    async def update_task(
        self,
        task_id: int,
        payload: FleetTaskUpdate,
        desired_passengers: Optional[List[PassengerIn]] = None,
    ) -> FleetTaskModel:
        """Update fields and, when ``desired_passengers`` is given, the passenger set.

        ``None`` leaves passengers untouched; an empty list removes them all.
        """
        desired = deduplicate(desired_passengers) if desired_passengers is not None else None

        async with self.locks.hold(task_id):
            existing = await self.get_task(task_id)
            self._check_version(existing, payload.expected_version)

            changes = payload.model_dump(
                exclude_unset=True, exclude={"passengers", "expected_version", "status"}
            )

            if payload.status is not None:
                requested = normalize_status(payload.status)
                if requested != existing.status:
                    new_status = transition(existing.status, requested)
                    changes["status"] = new_status.value
                    changes.update(_status_stamps(new_status))

            self._check_time_window(existing, changes)

            company_id = changes.get("company_id", existing.company_id)
            company_changed = company_id != existing.company_id

            def effective(name: str) -> Optional[int]:
                if company_changed or name in changes:
                    return changes.get(name, getattr(existing, name))
                return None

            if desired is not None:
                employee_ids = [p.worker_employee_id for p in desired]
            elif company_changed:
                # kept assignments must belong to the new company too
                current = await self.passengers.list_for_task(task_id)
                employee_ids = [p.worker_employee_id for p in current]
            else:
                employee_ids = None

            company = await self.validator.validate(
                company_id,
                driver_id=effective("driver_id"),
                vehicle_id=effective("vehicle_id"),
                employee_ids=employee_ids,
                project_id=effective("project_id"),
            )

            op_id = None
            if desired is not None:
                op_id = await self.operations.begin("update", task_id, passengers=len(desired))

            task = await self.tasks.update(task_id, changes, existing.version)
            if task is None:
                if op_id is not None:
                    await self.operations.fail(op_id, "update_task", "version conflict")
                    await self.operations.mark_recovered(op_id, "nothing_written")
                current = await self.tasks.get(task_id)
                raise VersionConflict(task_id, existing.version, current.version if current else None)

            if desired is None and company_changed:
                await self.passengers.set_company(task_id, company_id)

            if desired is not None:
                try:
                    if company_changed:
                        # rows of the old company are never matched, replace them all
                        await self.passengers.delete_for_task(task_id)
                    await self.reconciler.reconcile(
                        task_id,
                        company_id,
                        desired,
                        self.passengers.list_for_task,
                        pickup_location=task.pickup_location,
                        drop_location=task.drop_location,
                    )
                    task = await self._refresh_passenger_count(task)
                except Exception as exc:
                    step = exc.step if isinstance(exc, PartialFailure) else "reconcile_passengers"
                    await self.operations.fail(op_id, step, str(exc))
                    log.error("fleet_task_update_incomplete", task_id=task_id, step=step, error=str(exc))
                    try:
                        await self._refresh_passenger_count(task)
                    except Exception as recount_exc:
                        log.error("fleet_task_recount_failed", task_id=task_id, error=str(recount_exc))
                    if isinstance(exc, PartialFailure):
                        raise
                    raise PartialFailure(task_id, step, detail=str(exc)) from exc
                await self.operations.complete(op_id)

        log.info(
            "fleet_task_updated",
            task_id=task_id,
            fields=sorted(changes),
            passengers_reconciled=desired is not None,
        )
        await self._announce(task, UPDATE, company.name)
        return task

    async def delete_task(self, task_id: int) -> FleetTaskModel:
        """Delete the task and every passenger assignment it owns."""
        async with self.locks.hold(task_id):
            existing = await self.get_task(task_id)
            op_id = await self.operations.begin("delete", task_id)
            try:
                removed = await self.passengers.delete_for_task(task_id)
                await self.tasks.delete(task_id)
            except Exception as exc:
                await self.operations.fail(op_id, "delete_task", str(exc))
                log.error("fleet_task_delete_incomplete", task_id=task_id, error=str(exc))
                raise PartialFailure(task_id, "delete_task", detail=str(exc)) from exc
            await self.operations.complete(op_id)

        log.info("fleet_task_deleted", task_id=task_id, passengers_removed=removed)
        return existing

    async def set_status(
        self, task_id: int, requested: Any, expected_version: Optional[int] = None
    ) -> FleetTaskModel:
        async with self.locks.hold(task_id):
            existing = await self.get_task(task_id)
            self._check_version(existing, expected_version)

            new_status = transition(existing.status, requested)
            changes = {"status": new_status.value, **_status_stamps(new_status)}

            task = await self.tasks.update(task_id, changes, existing.version)
            if task is None:
                current = await self.tasks.get(task_id)
                raise VersionConflict(task_id, existing.version, current.version if current else None)

        log.info(
            "fleet_task_status_changed",
            task_id=task_id,
            from_status=existing.status.value,
            to_status=new_status.value,
        )
        return task

    # ------------------------------------------------------------------
    # single passenger writes
    # ------------------------------------------------------------------

    async def add_passenger(self, payload: PassengerCreate) -> PassengerAssignmentModel:
        task_id = payload.fleet_task_id
        async with self.locks.hold(task_id):
            task = await self.get_task(task_id)
            if payload.company_id != task.company_id:
                raise InvalidFieldError(
                    [f"Passenger company {payload.company_id} does not match fleet task company {task.company_id}"]
                )
            await self.validator.validate(payload.company_id, employee_ids=[payload.worker_employee_id])

            key = identity.key_of(payload)
            existing = await self.passengers.find_by_identity(task_id, key)
            if existing is not None:
                raise DuplicateIdentity(key, [existing.worker_employee_id, payload.worker_employee_id])

            code, name = identity.identity_parts(payload)
            doc = payload.model_dump()
            doc.update(
                id=await next_sequence(self.db, "fleet_task_passengers"),
                employee_code=code,
                employee_name=name,
                identity_key=key,
                status=payload.status.value,
                pickup_location=payload.pickup_location or task.pickup_location,
                drop_location=payload.drop_location or task.drop_location,
            )
            try:
                passenger = await self.passengers.insert(doc)
            except DuplicateKeyError:
                raise DuplicateIdentity(key, [payload.worker_employee_id])
            await self._refresh_passenger_count(task)

        log.info("fleet_task_passenger_added", task_id=task_id, passenger_id=passenger.id, identity_key=key)
        return passenger

    async def remove_passenger(self, passenger_id: int) -> PassengerAssignmentModel:
        passenger = await self.passengers.get(passenger_id)
        if passenger is None:
            raise PassengerNotFound(passenger_id)

        async with self.locks.hold(passenger.fleet_task_id):
            if not await self.passengers.delete(passenger_id):
                raise PassengerNotFound(passenger_id)
            task = await self.tasks.get(passenger.fleet_task_id)
            if task is not None:
                await self._refresh_passenger_count(task)

        log.info("fleet_task_passenger_removed", task_id=passenger.fleet_task_id, passenger_id=passenger_id)
        return passenger

    async def clear_passengers(self, task_id: int) -> int:
        """Delete every assignment of ``task_id``; the task itself may already be gone."""
        async with self.locks.hold(task_id):
            removed = await self.passengers.delete_for_task(task_id)
            task = await self.tasks.get(task_id)
            if task is not None:
                await self._refresh_passenger_count(task)

        log.info("fleet_task_passengers_cleared", task_id=task_id, removed=removed)
        return removed

    async def list_passengers(
        self, query: Dict[str, Any], skip: int = 0, limit: int = 100
    ) -> Tuple[List[PassengerAssignmentModel], int]:
        return await self.passengers.find(query, skip=skip, limit=limit)

    async def recover_incomplete(self, grace_seconds: Optional[float] = None) -> int:
        """Finish or compensate multi-step writes that never completed.

        Only entries older than the grace period are touched, and each one
        is claimed first so concurrent sweeps in other processes never act
        on the same entry.
        """
        grace = self.recovery_grace if grace_seconds is None else grace_seconds
        older_than = _now() - timedelta(seconds=grace)
        recovered = 0
        for candidate in await self.operations.incomplete(older_than):
            task_id = candidate["task_id"]
            if self.locks.lock_for(task_id).locked():
                # still running in this process
                continue
            op = await self.operations.claim(candidate["id"], self.owner, older_than)
            if op is None:
                continue
            try:
                if op["kind"] in ("create", "delete"):
                    await self.passengers.delete_for_task(task_id)
                    await self.tasks.delete(task_id)
                    outcome = "purged"
                else:
                    task = await self.tasks.get(task_id)
                    if task is not None:
                        await self._refresh_passenger_count(task)
                    outcome = "recounted"
                await self.operations.mark_recovered(op["id"], outcome)
            except Exception as exc:
                log.error("operation_recovery_failed", op_id=op["id"], task_id=task_id, error=str(exc))
                await self.operations.release(op["id"], self.owner, str(exc))
                continue
            recovered += 1
            log.info("operation_recovered", op_id=op["id"], kind=op["kind"], task_id=task_id, outcome=outcome)
        return recovered

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _check_version(task: FleetTaskModel, expected_version: Optional[int]):
        if expected_version is not None and expected_version != task.version:
            raise VersionConflict(task.id, expected_version, task.version)

    @staticmethod
    def _check_time_window(existing: FleetTaskModel, changes: Dict[str, Any]):
        pickup = changes.get("planned_pickup_time", existing.planned_pickup_time)
        drop = changes.get("planned_drop_time", existing.planned_drop_time)
        if pickup and drop and drop <= pickup:
            raise InvalidFieldError(["Planned drop time must be after planned pickup time"])

    async def _refresh_passenger_count(self, task: FleetTaskModel) -> FleetTaskModel:
        count = await self.passengers.count_for_task(task.id)
        if count == task.expected_passengers:
            return task
        refreshed = await self.tasks.set_expected_passengers(task.id, count)
        return refreshed or task

    async def _compensate_create(self, task_id: int) -> bool:
        try:
            await self.passengers.delete_for_task(task_id)
            await self.tasks.delete(task_id)
        except Exception as exc:
            log.error("fleet_task_compensation_failed", task_id=task_id, error=str(exc))
            return False
        log.warning("fleet_task_creation_compensated", task_id=task_id)
        return True

    async def _announce(self, task: FleetTaskModel, kind: str, company_name: Optional[str]):
        if self.notifier is None:
            return
        project_name = None
        if task.project_id:
            try:
                project = await self.lookups.get_project(task.project_id)
            except Exception as exc:
                log.warning("notification_project_lookup_failed", task_id=task.id, error=str(exc))
                project = None
            project_name = project.name if project else None
        event = build_event(task, kind, company_name, project_name, self.recipient_email)
        self.notifier.fire(event)
