from .fleet_tasks import FleetTaskRepository
from .passengers import PassengerRepository
from .operations import OperationLog
