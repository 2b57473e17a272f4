import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError

logger = logging.getLogger(__name__)


class MedLearnError(Exception):
    """Base class for errors surfaced to API clients."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(MedLearnError):
    status_code = 404


class BadInputError(MedLearnError):
    status_code = 400


class UnauthorizedError(MedLearnError):
    status_code = 401


class ForbiddenError(UnauthorizedError):
    # Authenticated, but acting on someone else's record
    status_code = 403


class UpstreamError(MedLearnError):
    status_code = 500


def medlearn_error_handler(request: Request, exc: MedLearnError):
    if exc.status_code >= 500:
        logger.error("Upstream failure on %s: %s", request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.message},
    )


def storage_error_handler(request: Request, exc: PyMongoError):
    logger.exception("Storage error on %s", request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"success": False, "message": "Failed to fetch data"},
    )
