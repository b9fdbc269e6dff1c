# fleetops/routes/__init__.py

from .employee import router as employee_router
from .fleet_task import router as fleet_task_router
from .passenger import router as passenger_router
