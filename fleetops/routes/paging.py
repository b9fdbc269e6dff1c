# fleetops/routes/paging.py
from typing import Optional, Tuple

from fastapi import HTTPException

from fleetops.config import get_settings
from fleetops.errors import create_error_response


def page_window(page: int, limit: Optional[int]) -> Tuple[int, int]:
    """Validate page/limit query values and return (skip, limit)."""
    settings = get_settings()
    if limit is None:
        limit = settings.DEFAULT_PAGE_SIZE

    if page < 1:
        raise HTTPException(
            status_code=400,
            detail=create_error_response(
                message="Invalid page value",
                details="Page numbers start at 1",
                example="Use page=1 for the first page"
            )
        )

    if limit < 1 or limit > settings.MAX_PAGE_SIZE:
        raise HTTPException(
            status_code=400,
            detail=create_error_response(
                message="Invalid limit value",
                details=f"Limit must be between 1 and {settings.MAX_PAGE_SIZE}",
                example="Use limit=10 for 10 items per page"
            )
        )

    return (page - 1) * limit, limit
