from .pagination import Pagination
from .passenger import PassengerIn, PassengerCreate, PassengerOut, PassengerPage
from .fleet_task import FleetTaskCreate, FleetTaskUpdate, FleetTaskOut, FleetTaskPage, StatusChange
from .employee import WorkerOut, WorkerList
