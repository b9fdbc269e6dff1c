from .fleet_task import FleetTaskModel, TaskStatus
from .passenger import PassengerAssignmentModel, PassengerStatus
from .company import CompanyModel, ProjectModel
from .employee import EmployeeModel
from .driver import DriverModel
from .vehicle import VehicleModel
