"""HTTP error helpers shared by the routers."""
import logging
from typing import Any

from fastapi import HTTPException, status

logger = logging.getLogger(__name__)

def bad_request(detail: Any) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)

def forbidden(detail: Any = "Not authorized") -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)

def not_found(detail: Any) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail)

def conflict(detail: Any) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)

def server_error(action: str) -> HTTPException:
    """Log the exception being handled and hide it from the client."""
    logger.exception(f"Failed to {action}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Internal server error"
    )

__all__ = ['bad_request', 'forbidden', 'not_found', 'conflict', 'server_error']
