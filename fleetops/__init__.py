# fleetops/__init__.py
