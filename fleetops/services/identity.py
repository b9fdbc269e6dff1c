# fleetops/services/identity.py
from typing import Any, Optional, Tuple

SEPARATOR = "::"


def _field(passenger: Any, name: str) -> Optional[str]:
    if isinstance(passenger, dict):
        return passenger.get(name)
    return getattr(passenger, name, None)


def identity_parts(passenger: Any) -> Tuple[str, str]:
    """(employee_code, employee_name), trimmed; case is preserved."""
    code = _field(passenger, "employee_code")
    name = _field(passenger, "employee_name")
    return (str(code).strip() if code is not None else "",
            str(name).strip() if name is not None else "")


def key_of(passenger: Any) -> str:
    """Identity key used to match one passenger across two snapshots.

    Two assignments are the same logical passenger iff code and name match
    exactly; record ids and worker employee ids play no part.
    """
    code, name = identity_parts(passenger)
    return f"{code}{SEPARATOR}{name}"


def equals(a: Any, b: Any) -> bool:
    return key_of(a) == key_of(b)
