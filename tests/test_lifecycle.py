# tests/test_lifecycle.py
"""
TaskLifecycleManager against the mongomock database.

Covers create/update/delete with passenger reconciliation, referential
rejection without writes, status changes, version tokens, compensation
after a failed passenger write and the recovery sweep.
"""

from __future__ import annotations

import asyncio
from datetime import datetime

import pytest
from pymongo.errors import PyMongoError

from fleetops.errors import (
    DuplicateIdentity,
    InvalidFieldError,
    InvalidTransition,
    MissingCompany,
    MissingDriver,
    MissingEmployee,
    MissingProject,
    MissingVehicle,
    PartialFailure,
    PassengerNotFound,
    TaskAlreadyExists,
    TaskNotFound,
    VersionConflict,
)
from fleetops.models.fleet_task import TaskStatus
from fleetops.repositories.operations import COMPLETED, FAILED, PENDING, RECOVERED
from fleetops.schemas.fleet_task import FleetTaskUpdate
from fleetops.schemas.passenger import PassengerCreate
from fleetops.services import identity
from fleetops.services.lifecycle import TaskLifecycleManager
from fleetops.services.locks import TaskLocks

from tests.factories import ALICE, BOB, CAROL, FRANK, passenger, passengers, task_payload


# ============================================================================
# Helpers
# ============================================================================

async def _keys_for(manager, task_id) -> set[str]:
    return {identity.key_of(p) for p in await manager.passengers.list_for_task(task_id)}


async def _assert_count_matches(manager, task_id):
    task = await manager.get_task(task_id)
    assert task.expected_passengers == await manager.passengers.count_for_task(task_id)


def _fail_insert_on_call(manager, n: int):
    original = manager.passengers.insert
    calls = {"n": 0}

    async def flaky_insert(doc):
        calls["n"] += 1
        if calls["n"] == n:
            raise PyMongoError("connection reset")
        return await original(doc)

    manager.passengers.insert = flaky_insert


# ============================================================================
# create_task
# ============================================================================

async def test_create_task_with_passengers(manager):
    task = await manager.create_task(task_payload(passengers=passengers(ALICE, BOB)))

    assert task.status == TaskStatus.PLANNED
    assert task.expected_passengers == 2
    assert await _keys_for(manager, task.id) == {"E1::Alice", "E2::Bob"}
    await _assert_count_matches(manager, task.id)


async def test_create_task_stores_midnight_task_date(manager):
    task = await manager.create_task(task_payload())
    stored = await manager.get_task(task.id)
    assert stored.task_date == datetime(2024, 5, 1)


async def test_create_task_ids_are_monotonic(manager):
    first = await manager.create_task(task_payload())
    second = await manager.create_task(task_payload())
    assert second.id > first.id


async def test_create_task_with_caller_supplied_id(manager):
    task = await manager.create_task(task_payload(id=500))
    assert task.id == 500

    following = await manager.create_task(task_payload())
    assert following.id > 500

    with pytest.raises(TaskAlreadyExists):
        await manager.create_task(task_payload(id=500))


async def test_create_deduplicates_repeated_passenger(manager):
    task = await manager.create_task(task_payload(passengers=passengers(ALICE, ALICE)))
    assert task.expected_passengers == 1


async def test_create_sets_passenger_company_and_task(manager):
    task = await manager.create_task(task_payload(passengers=passengers(ALICE)))
    (stored,) = await manager.passengers.list_for_task(task.id)
    assert stored.company_id == 1
    assert stored.fleet_task_id == task.id
    assert stored.pickup_location == "Camp 3"


@pytest.mark.parametrize(
    "overrides, error",
    [
        ({"company_id": 99}, MissingCompany),
        ({"driver_id": 200}, MissingDriver),
        ({"driver_id": 999}, MissingDriver),
        ({"vehicle_id": 400}, MissingVehicle),
        ({"project_id": 11}, MissingProject),
        ({"passengers": [passenger(2001, "E1", "Alice")]}, MissingEmployee),
        ({"passengers": [passenger(*ALICE), passenger(1007, "E1", "Alice")]}, DuplicateIdentity),
    ],
)
async def test_create_rejects_before_any_write(manager, db, overrides, error):
    with pytest.raises(error):
        await manager.create_task(task_payload(**overrides))

    assert await db.fleet_tasks.count_documents({}) == 0
    assert await db.fleet_task_passengers.count_documents({}) == 0
    assert await db.task_operations.count_documents({}) == 0


async def test_missing_employee_lists_every_unresolved_id(manager):
    desired = [passenger(*ALICE), passenger(8001, "X1", "Nobody"), passenger(2001, "E1b", "Alice")]
    with pytest.raises(MissingEmployee) as excinfo:
        await manager.create_task(task_payload(passengers=desired))
    assert excinfo.value.missing_ids == [8001, 2001]


async def test_create_compensates_when_passenger_seeding_fails(manager, db):
    _fail_insert_on_call(manager, 2)

    with pytest.raises(PartialFailure) as excinfo:
        await manager.create_task(task_payload(passengers=passengers(ALICE, BOB, CAROL)))

    failure = excinfo.value
    assert failure.step == "create_passengers"
    assert failure.compensated is True
    assert failure.__cause__ is not None

    assert await db.fleet_tasks.count_documents({}) == 0
    assert await db.fleet_task_passengers.count_documents({}) == 0

    op = await manager.operations.get(1)
    assert op["kind"] == "create"
    assert op["state"] == RECOVERED
    assert op["step"] == "create_passengers"


# ============================================================================
# update_task
# ============================================================================

async def test_update_reconciles_passengers(manager):
    task = await manager.create_task(task_payload(passengers=passengers(ALICE, BOB)))
    bob_id = (await manager.passengers.find_by_identity(task.id, "E2::Bob")).id

    updated = await manager.update_task(task.id, FleetTaskUpdate(), passengers(BOB, CAROL))

    assert await _keys_for(manager, task.id) == {"E2::Bob", "E3::Carol"}
    assert (await manager.passengers.find_by_identity(task.id, "E2::Bob")).id == bob_id
    assert updated.expected_passengers == 2
    await _assert_count_matches(manager, task.id)


async def test_update_without_passengers_leaves_them_untouched(manager):
    task = await manager.create_task(task_payload(passengers=passengers(ALICE, BOB)))

    updated = await manager.update_task(task.id, FleetTaskUpdate(notes="  bring helmets  "), None)

    assert updated.notes == "bring helmets"
    assert await _keys_for(manager, task.id) == {"E1::Alice", "E2::Bob"}
    assert updated.expected_passengers == 2


async def test_update_with_empty_list_clears_passengers(manager):
    task = await manager.create_task(task_payload(passengers=passengers(ALICE, BOB)))

    updated = await manager.update_task(task.id, FleetTaskUpdate(), [])

    assert await manager.passengers.count_for_task(task.id) == 0
    assert updated.expected_passengers == 0


async def test_update_bumps_version(manager):
    task = await manager.create_task(task_payload())
    updated = await manager.update_task(task.id, FleetTaskUpdate(pickup_location="Camp 4"))
    assert updated.version == task.version + 1


async def test_update_status_through_fields(manager):
    task = await manager.create_task(task_payload())
    updated = await manager.update_task(task.id, FleetTaskUpdate(status="in progress"))
    assert updated.status == TaskStatus.ONGOING
    assert updated.actual_start_time is not None


async def test_update_rejects_driver_from_other_company(manager):
    task = await manager.create_task(task_payload())
    with pytest.raises(MissingDriver):
        await manager.update_task(task.id, FleetTaskUpdate(driver_id=200))
    assert (await manager.get_task(task.id)).driver_id == 100


async def test_update_company_revalidates_existing_references(manager):
    task = await manager.create_task(task_payload())
    # driver 100 and vehicle 300 belong to company 1
    with pytest.raises(MissingDriver):
        await manager.update_task(task.id, FleetTaskUpdate(company_id=2))


COMPANY_2 = dict(company_id=2, driver_id=200, vehicle_id=400, project_id=11)


async def test_company_move_rejects_kept_passengers_of_old_company(manager):
    task = await manager.create_task(task_payload(passengers=passengers(ALICE)))

    with pytest.raises(MissingEmployee) as excinfo:
        await manager.update_task(task.id, FleetTaskUpdate(**COMPANY_2))
    assert excinfo.value.missing_ids == [1001]

    unchanged = await manager.get_task(task.id)
    assert unchanged.company_id == 1
    assert unchanged.version == task.version
    assert [p.company_id for p in await manager.passengers.list_for_task(task.id)] == [1]


async def test_company_move_replaces_passengers_with_new_company_workers(manager):
    task = await manager.create_task(task_payload(passengers=passengers(ALICE, BOB)))

    # same code and name as the old Alice, but a company-2 employee
    moved = await manager.update_task(task.id, FleetTaskUpdate(**COMPANY_2), [passenger(2001, "E1", "Alice")])

    assert moved.company_id == 2
    assert moved.expected_passengers == 1
    rows = await manager.passengers.list_for_task(task.id)
    assert [(p.company_id, p.worker_employee_id) for p in rows] == [(2, 2001)]


async def test_company_move_without_passengers(manager):
    task = await manager.create_task(task_payload())

    moved = await manager.update_task(task.id, FleetTaskUpdate(**COMPANY_2))

    assert moved.company_id == 2
    assert moved.expected_passengers == 0


async def test_update_checks_merged_time_window(manager):
    task = await manager.create_task(task_payload())
    with pytest.raises(InvalidFieldError):
        await manager.update_task(task.id, FleetTaskUpdate(planned_drop_time=datetime(2024, 5, 1, 6, 30)))


async def test_update_unknown_task(manager):
    with pytest.raises(TaskNotFound):
        await manager.update_task(404, FleetTaskUpdate(notes="x"))


async def test_update_with_stale_version(manager):
    task = await manager.create_task(task_payload())
    await manager.update_task(task.id, FleetTaskUpdate(notes="first"))

    with pytest.raises(VersionConflict) as excinfo:
        await manager.update_task(task.id, FleetTaskUpdate(notes="second", expected_version=task.version))
    assert excinfo.value.actual == task.version + 1


async def test_store_level_version_guard(manager):
    task = await manager.create_task(task_payload())
    assert await manager.tasks.update(task.id, {"notes": "a"}, task.version) is not None
    assert await manager.tasks.update(task.id, {"notes": "b"}, task.version) is None


async def test_concurrent_updates_are_serialized(manager):
    task = await manager.create_task(task_payload(passengers=passengers(ALICE)))

    await asyncio.gather(
        manager.update_task(task.id, FleetTaskUpdate(), passengers(ALICE, BOB)),
        manager.update_task(task.id, FleetTaskUpdate(), passengers(CAROL, FRANK)),
    )

    # the second writer wins outright; no mixture of both snapshots
    assert await _keys_for(manager, task.id) == {"E3::Carol", "E6::Frank"}
    await _assert_count_matches(manager, task.id)


async def test_update_partial_failure_is_logged_for_recovery(manager):
    task = await manager.create_task(task_payload(passengers=passengers(ALICE, BOB)))
    _fail_insert_on_call(manager, 1)

    with pytest.raises(PartialFailure) as excinfo:
        await manager.update_task(task.id, FleetTaskUpdate(), passengers(BOB, CAROL))
    assert excinfo.value.step == "create_passengers"

    incomplete = await manager.operations.incomplete()
    assert [(op["kind"], op["state"]) for op in incomplete] == [("update", FAILED)]

    # Alice was deleted before Carol's insert failed; the count follows what is stored
    assert (await manager.get_task(task.id)).expected_passengers == 1
    assert await manager.passengers.count_for_task(task.id) == 1

    assert await manager.recover_incomplete(grace_seconds=0) == 1
    await _assert_count_matches(manager, task.id)
    assert await manager.operations.incomplete() == []


# ============================================================================
# delete_task
# ============================================================================

async def test_delete_cascades_to_passengers(manager, db):
    task = await manager.create_task(task_payload(passengers=passengers(ALICE, BOB)))
    other = await manager.create_task(task_payload(passengers=passengers(CAROL)))

    deleted = await manager.delete_task(task.id)

    assert deleted.id == task.id
    assert await manager.tasks.get(task.id) is None
    assert await manager.passengers.list_for_task(task.id) == []
    assert await manager.passengers.count_for_task(other.id) == 1


async def test_delete_unknown_task(manager):
    with pytest.raises(TaskNotFound):
        await manager.delete_task(12345)


async def test_delete_failure_is_retried_by_recovery(manager):
    task = await manager.create_task(task_payload(passengers=passengers(ALICE)))

    async def broken_delete(task_id):
        raise PyMongoError("not primary")

    original_delete = manager.tasks.delete
    manager.tasks.delete = broken_delete
    with pytest.raises(PartialFailure) as excinfo:
        await manager.delete_task(task.id)
    assert excinfo.value.step == "delete_task"

    manager.tasks.delete = original_delete
    assert await manager.recover_incomplete(grace_seconds=0) == 1
    assert await manager.tasks.get(task.id) is None
    assert await manager.passengers.count_for_task(task.id) == 0


# ============================================================================
# set_status
# ============================================================================

async def test_cancel_then_restart_is_rejected(manager):
    task = await manager.create_task(task_payload())

    cancelled = await manager.set_status(task.id, "CANCELLED")
    assert cancelled.status == TaskStatus.CANCELLED

    with pytest.raises(InvalidTransition):
        await manager.set_status(task.id, "ONGOING")
    assert (await manager.get_task(task.id)).status == TaskStatus.CANCELLED


async def test_full_lifecycle_stamps_actual_times(manager):
    task = await manager.create_task(task_payload())

    started = await manager.set_status(task.id, TaskStatus.ONGOING)
    assert started.actual_start_time is not None
    assert started.actual_end_time is None

    finished = await manager.set_status(task.id, "done")
    assert finished.status == TaskStatus.COMPLETED
    assert finished.actual_end_time is not None
    assert finished.version == task.version + 2


async def test_set_status_same_state_is_rejected(manager):
    task = await manager.create_task(task_payload())
    with pytest.raises(InvalidTransition):
        await manager.set_status(task.id, "PLANNED")


async def test_set_status_version_mismatch(manager):
    task = await manager.create_task(task_payload())
    with pytest.raises(VersionConflict):
        await manager.set_status(task.id, "ONGOING", expected_version=task.version + 5)
    assert (await manager.get_task(task.id)).status == TaskStatus.PLANNED


# ============================================================================
# single passenger writes
# ============================================================================

def _passenger_create(task_id: int, who, **extra) -> PassengerCreate:
    employee_id, code, name = who
    return PassengerCreate(
        company_id=1,
        fleet_task_id=task_id,
        worker_employee_id=employee_id,
        employee_code=code,
        employee_name=name,
        **extra,
    )


async def test_add_passenger_refreshes_count(manager):
    task = await manager.create_task(task_payload(passengers=passengers(ALICE)))

    added = await manager.add_passenger(_passenger_create(task.id, BOB))

    assert added.identity_key == "E2::Bob"
    assert added.pickup_location == "Camp 3"
    assert (await manager.get_task(task.id)).expected_passengers == 2


async def test_add_passenger_rejects_duplicate_identity(manager):
    task = await manager.create_task(task_payload(passengers=passengers(ALICE)))
    with pytest.raises(DuplicateIdentity):
        await manager.add_passenger(_passenger_create(task.id, ALICE))


async def test_add_passenger_rejects_company_mismatch(manager):
    task = await manager.create_task(task_payload())
    payload = _passenger_create(task.id, ALICE).model_copy(update={"company_id": 2})
    with pytest.raises(InvalidFieldError):
        await manager.add_passenger(payload)


async def test_add_passenger_to_unknown_task(manager):
    with pytest.raises(TaskNotFound):
        await manager.add_passenger(_passenger_create(777, ALICE))


async def test_remove_passenger_refreshes_count(manager):
    task = await manager.create_task(task_payload(passengers=passengers(ALICE, BOB)))
    alice = await manager.passengers.find_by_identity(task.id, "E1::Alice")

    await manager.remove_passenger(alice.id)

    assert await _keys_for(manager, task.id) == {"E2::Bob"}
    assert (await manager.get_task(task.id)).expected_passengers == 1

    with pytest.raises(PassengerNotFound):
        await manager.remove_passenger(alice.id)


async def test_clear_passengers(manager):
    task = await manager.create_task(task_payload(passengers=passengers(ALICE, BOB)))
    assert await manager.clear_passengers(task.id) == 2
    assert (await manager.get_task(task.id)).expected_passengers == 0


# ============================================================================
# recovery sweep
# ============================================================================

async def test_recovery_purges_interrupted_create(manager, db):
    task = await manager.create_task(task_payload(passengers=passengers(ALICE)))
    # as if the process died right after the task row was written
    op_id = await manager.operations.begin("create", task.id)

    assert (await manager.operations.get(op_id))["state"] == PENDING
    assert await manager.recover_incomplete(grace_seconds=0) == 1

    assert await manager.tasks.get(task.id) is None
    assert await db.fleet_task_passengers.count_documents({"fleet_task_id": task.id}) == 0
    op = await manager.operations.get(op_id)
    assert op["state"] == RECOVERED
    assert op["outcome"] == "purged"


async def test_recovery_skips_operations_in_flight(manager):
    task = await manager.create_task(task_payload())
    await manager.operations.begin("update", task.id)

    async with manager.locks.hold(task.id):
        assert await manager.recover_incomplete(grace_seconds=0) == 0
    assert await manager.recover_incomplete(grace_seconds=0) == 1


async def test_recovery_with_nothing_to_do(manager):
    await manager.create_task(task_payload(passengers=passengers(ALICE)))
    assert await manager.recover_incomplete(grace_seconds=0) == 0


def _pause_passenger_insert(manager):
    original = manager.passengers.insert
    reached, resume = asyncio.Event(), asyncio.Event()

    async def paused_insert(doc):
        reached.set()
        await resume.wait()
        return await original(doc)

    manager.passengers.insert = paused_insert
    return reached, resume


async def test_recovery_leaves_young_entries_alone(manager):
    task = await manager.create_task(task_payload())
    await manager.operations.begin("update", task.id)

    # default grace period
    assert await manager.recover_incomplete() == 0
    assert await manager.recover_incomplete(grace_seconds=0) == 1


async def test_sweep_in_another_process_does_not_purge_running_create(manager, db):
    reached, resume = _pause_passenger_insert(manager)
    creating = asyncio.create_task(manager.create_task(task_payload(passengers=passengers(ALICE, BOB))))
    await reached.wait()

    other_process = TaskLifecycleManager(db, locks=TaskLocks())
    assert await other_process.recover_incomplete() == 0

    resume.set()
    task = await creating

    assert (await manager.get_task(task.id)).expected_passengers == 2
    assert await manager.passengers.count_for_task(task.id) == 2
    assert (await manager.operations.get(1))["state"] == COMPLETED


async def test_create_taken_over_by_recovery_fails_loudly(manager, db):
    reached, resume = _pause_passenger_insert(manager)
    creating = asyncio.create_task(manager.create_task(task_payload(passengers=passengers(ALICE))))
    await reached.wait()

    other_process = TaskLifecycleManager(db, locks=TaskLocks())
    assert await other_process.recover_incomplete(grace_seconds=0) == 1

    resume.set()
    with pytest.raises(PartialFailure) as excinfo:
        await creating
    assert excinfo.value.step == "complete_operation"
    assert excinfo.value.compensated is True

    assert await db.fleet_tasks.count_documents({}) == 0
    assert await db.fleet_task_passengers.count_documents({}) == 0
    op = await manager.operations.get(1)
    assert op["state"] == RECOVERED
    assert op["owner"] == other_process.owner


async def test_concurrent_sweeps_claim_an_entry_once(manager, db):
    task = await manager.create_task(task_payload())
    op_id = await manager.operations.begin("update", task.id)
    other_process = TaskLifecycleManager(db, locks=TaskLocks())

    results = await asyncio.gather(
        manager.recover_incomplete(grace_seconds=0),
        other_process.recover_incomplete(grace_seconds=0),
    )

    assert sorted(results) == [0, 1]
    op = await manager.operations.get(op_id)
    assert op["state"] == RECOVERED
    assert op["owner"] in {manager.owner, other_process.owner}


async def test_failed_recovery_releases_its_claim(manager):
    task = await manager.create_task(task_payload())
    op_id = await manager.operations.begin("delete", task.id)

    async def broken_delete(task_id):
        raise PyMongoError("not primary")

    original_delete = manager.tasks.delete
    manager.tasks.delete = broken_delete
    assert await manager.recover_incomplete(grace_seconds=0) == 0
    op = await manager.operations.get(op_id)
    assert op["state"] == FAILED
    assert "owner" not in op

    manager.tasks.delete = original_delete
    assert await manager.recover_incomplete(grace_seconds=0) == 1
    assert await manager.tasks.get(task.id) is None
