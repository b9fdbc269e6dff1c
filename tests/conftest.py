# tests/conftest.py
"""
Shared fixtures.

The Motor database is an in-memory mongomock-motor database with the
production indexes applied, seeded with two companies and their HR and
fleet records:

    company 1 "Acme Construction": driver 100, vehicle 300, project 10,
                                   workers 1001-1003, 1006
    company 2 "Beta Builders":     driver 200, vehicle 400, project 11,
                                   worker 2001
"""

from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

from fleetops.database import ensure_indexes, get_database
from fleetops.dependencies import get_notifier
from fleetops.main import app
from fleetops.services.lifecycle import TaskLifecycleManager
from fleetops.services.locks import TaskLocks
from fleetops.services.notifications import NotificationTrigger


COMPANIES = [
    {"id": 1, "name": "Acme Construction", "tenant_code": "ACME"},
    {"id": 2, "name": "Beta Builders", "tenant_code": "BETA"},
]

PROJECTS = [
    {"id": 10, "company_id": 1, "name": "Tower A"},
    {"id": 11, "company_id": 2, "name": "Harbour Bridge"},
]

DRIVERS = [
    {"id": 100, "company_id": 1, "full_name": "Dan Driver", "license_number": "DL-100", "status": "ACTIVE"},
    {"id": 200, "company_id": 2, "full_name": "Olga Other", "license_number": "DL-200", "status": "ACTIVE"},
]

VEHICLES = [
    {"id": 300, "company_id": 1, "vehicle_code": "BUS-01", "registration_no": "ABC-123", "capacity": 30},
    {"id": 400, "company_id": 2, "vehicle_code": "VAN-09", "registration_no": "XYZ-999", "capacity": 8},
]

EMPLOYEES = [
    {"id": 1001, "company_id": 1, "employee_code": "E1", "full_name": "Alice",
     "job_title": "Mason", "department": "Site", "role": "worker", "status": "ACTIVE"},
    {"id": 1002, "company_id": 1, "employee_code": "E2", "full_name": "Bob",
     "job_title": "Carpenter", "department": "Site", "role": "worker", "status": "active"},
    {"id": 1003, "company_id": 1, "employee_code": "E3", "full_name": "Carol",
     "job_title": "Welder", "department": "Workshop", "role": "Worker", "status": "ACTIVE"},
    {"id": 1004, "company_id": 1, "employee_code": "E4", "full_name": "Dave",
     "job_title": "Mason", "department": "Site", "role": "worker", "status": "INACTIVE"},
    {"id": 1005, "company_id": 1, "employee_code": "E5", "full_name": "Erin",
     "job_title": "Foreman", "department": "Site", "role": "supervisor", "status": "ACTIVE"},
    {"id": 1006, "company_id": 1, "employee_code": "E6", "full_name": "Frank",
     "job_title": "Electrician", "department": "Electrical", "role": "worker", "status": "ACTIVE"},
    {"id": 2001, "company_id": 2, "employee_code": "E1", "full_name": "Alice",
     "job_title": "Mason", "department": "Site", "role": "worker", "status": "ACTIVE"},
]


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture()
async def db():
    client = AsyncMongoMockClient()
    database = client["fleetops_test"]
    await ensure_indexes(database)

    await database.companies.insert_many([dict(d) for d in COMPANIES])
    await database.projects.insert_many([dict(d) for d in PROJECTS])
    await database.drivers.insert_many([dict(d) for d in DRIVERS])
    await database.vehicles.insert_many([dict(d) for d in VEHICLES])
    await database.employees.insert_many([dict(d) for d in EMPLOYEES])
    return database


@pytest.fixture()
def manager(db) -> TaskLifecycleManager:
    return TaskLifecycleManager(db, locks=TaskLocks())


@pytest.fixture()
async def client(db):
    app.dependency_overrides[get_database] = lambda: db
    app.dependency_overrides[get_notifier] = lambda: NotificationTrigger(None)
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()
