# fleetops/services/reconciler.py
"""Passenger reconciliation.

Given the passenger list a caller wants on a task (desired) and the
assignments currently stored for it (current), compute and apply the
minimal set of inserts and deletes that makes the stored set match the
desired one, compared by identity key (see ``identity.key_of``).

Matching entries are left alone even if fields such as ``department``
differ; assignments are never edited in place.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Sequence

import structlog
from pymongo.errors import DuplicateKeyError

from fleetops.errors import DuplicateIdentity, PartialFailure
from fleetops.models.passenger import PassengerAssignmentModel, PassengerStatus
from fleetops.repositories.passengers import PassengerRepository
from fleetops.schemas.passenger import PassengerIn
from fleetops.services import identity

log = structlog.get_logger()

CurrentFetcher = Callable[[int], Awaitable[List[PassengerAssignmentModel]]]
IdSource = Callable[[], Awaitable[int]]


@dataclass
class ReconciliationPlan:
    task_id: int
    to_create: List[PassengerIn] = field(default_factory=list)
    to_delete: List[PassengerAssignmentModel] = field(default_factory=list)
    to_keep: List[PassengerAssignmentModel] = field(default_factory=list)

    # filled in by execution
    created: List[PassengerAssignmentModel] = field(default_factory=list)
    deleted_count: int = 0

    @property
    def is_noop(self) -> bool:
        return not self.to_create and not self.to_delete

    def summary(self) -> Dict[str, int]:
        return {
            "to_create": len(self.to_create),
            "to_delete": len(self.to_delete),
            "to_keep": len(self.to_keep),
        }


def deduplicate(desired: Optional[Iterable[PassengerIn]]) -> List[PassengerIn]:
    """Drop repeated submissions of the same passenger, first occurrence wins.

    Raises DuplicateIdentity when one identity key is claimed by two
    different worker employee ids.
    """
    unique: Dict[str, PassengerIn] = {}
    for passenger in desired or []:
        key = identity.key_of(passenger)
        seen = unique.get(key)
        if seen is None:
            unique[key] = passenger
        elif seen.worker_employee_id != passenger.worker_employee_id:
            raise DuplicateIdentity(key, [seen.worker_employee_id, passenger.worker_employee_id])
    return list(unique.values())


def plan_reconciliation(
    task_id: int,
    desired: Optional[Iterable[PassengerIn]],
    current: Sequence[PassengerAssignmentModel],
) -> ReconciliationPlan:
    desired_map = {identity.key_of(p): p for p in deduplicate(desired)}

    current_map: Dict[str, PassengerAssignmentModel] = {}
    duplicates: List[PassengerAssignmentModel] = []
    for assignment in current:
        key = identity.key_of(assignment)
        if key in current_map:
            # stored twice; keep the first and drop the rest
            duplicates.append(assignment)
        else:
            current_map[key] = assignment

    plan = ReconciliationPlan(task_id=task_id)
    plan.to_delete = [a for key, a in current_map.items() if key not in desired_map] + duplicates
    plan.to_create = [p for key, p in desired_map.items() if key not in current_map]
    plan.to_keep = [a for key, a in current_map.items() if key in desired_map]
    return plan


class PassengerReconciler:
    def __init__(self, passengers: PassengerRepository, next_id: IdSource):
        self.passengers = passengers
        self.next_id = next_id

    async def reconcile(
        self,
        task_id: int,
        company_id: int,
        desired: Optional[Iterable[PassengerIn]],
        current_fetcher: CurrentFetcher,
        pickup_location: Optional[str] = None,
        drop_location: Optional[str] = None,
    ) -> ReconciliationPlan:
        """Make the stored passengers of ``task_id`` match ``desired``.

        Deletions finish before any creation starts. A failure after the
        first write raises PartialFailure naming the failing step.
        """
        current = await current_fetcher(task_id)
        plan = plan_reconciliation(task_id, desired, current)
        log.info("passenger_reconciliation_planned", task_id=task_id, **plan.summary())

        if plan.is_noop:
            return plan

        await self._apply_deletions(plan)
        await self._apply_creations(plan, company_id, pickup_location, drop_location)

        log.info(
            "passenger_reconciliation_applied",
            task_id=task_id,
            created=len(plan.created),
            deleted=plan.deleted_count,
            kept=len(plan.to_keep),
        )
        return plan

    async def _apply_deletions(self, plan: ReconciliationPlan):
        if not plan.to_delete:
            return
        try:
            plan.deleted_count = await self.passengers.delete_many(
                plan.task_id, [a.id for a in plan.to_delete]
            )
        except Exception as exc:
            log.error("passenger_deletion_failed", task_id=plan.task_id, error=str(exc))
            raise PartialFailure(plan.task_id, "delete_passengers", detail=str(exc)) from exc

    async def _apply_creations(
        self,
        plan: ReconciliationPlan,
        company_id: int,
        pickup_location: Optional[str],
        drop_location: Optional[str],
    ):
        for passenger in plan.to_create:
            try:
                created = await self._create_one(
                    plan.task_id, company_id, passenger, pickup_location, drop_location
                )
            except Exception as exc:
                log.error(
                    "passenger_creation_failed",
                    task_id=plan.task_id,
                    identity_key=identity.key_of(passenger),
                    created_so_far=len(plan.created),
                    deleted=plan.deleted_count,
                    error=str(exc),
                )
                raise PartialFailure(
                    plan.task_id,
                    "create_passengers",
                    detail=f"{len(plan.created)} of {len(plan.to_create)} passengers created: {exc}",
                ) from exc
            plan.created.append(created)

    async def _create_one(
        self,
        task_id: int,
        company_id: int,
        passenger: PassengerIn,
        pickup_location: Optional[str],
        drop_location: Optional[str],
    ) -> PassengerAssignmentModel:
        code, name = identity.identity_parts(passenger)
        key = identity.key_of(passenger)
        doc = {
            "id": await self.next_id(),
            "fleet_task_id": task_id,
            "company_id": company_id,
            "worker_employee_id": passenger.worker_employee_id,
            "employee_code": code,
            "employee_name": name,
            "identity_key": key,
            "department": passenger.department,
            "pickup_location": passenger.pickup_location or pickup_location,
            "drop_location": passenger.drop_location or drop_location,
            "status": PassengerStatus.PLANNED.value,
        }
        try:
            return await self.passengers.insert(doc)
        except DuplicateKeyError:
            # a concurrent writer already stored this passenger
            existing = await self.passengers.find_by_identity(task_id, key)
            if existing is None:
                raise
            log.warning("passenger_already_present", task_id=task_id, identity_key=key)
            return existing
