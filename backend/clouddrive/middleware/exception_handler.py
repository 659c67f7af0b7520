"""Exception handler for structured error responses."""

import logging
from fastapi import Request
from fastapi.responses import JSONResponse
from ..exceptions import CloudDriveError

logger = logging.getLogger(__name__)


async def clouddrive_exception_handler(request: Request, exc: CloudDriveError) -> JSONResponse:
    """
    Convert a CloudDriveError into its JSON body and status code.

    Client errors are logged at warning level, backend and internal
    failures at error level.
    """
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"CloudDriveError: {exc.error_code.value}",
        extra={
            "error_code": exc.error_code.value,
            "path": request.url.path,
            "method": request.method,
            "details": exc.details,
            "status_code": exc.status_code
        }
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )
