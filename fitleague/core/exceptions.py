from fastapi import Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import IntegrityError

# Starlette renamed the 422 constant; the old name warns on access
HTTP_422_UNPROCESSABLE = 422


class FitLeagueError(Exception):
    """Base class for errors surfaced to callers of the core."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFoundError(FitLeagueError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(FitLeagueError):
    status_code = status.HTTP_409_CONFLICT


class DependencyFailure(FitLeagueError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class BadgeCriteriaError(FitLeagueError, ValueError):
    status_code = HTTP_422_UNPROCESSABLE


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    request_id = getattr(request.state, "request_id", None)
    return JSONResponse(
        status_code=HTTP_422_UNPROCESSABLE,
        content={"detail": jsonable_encoder(exc.errors()), "message": "Validation Error", "request_id": request_id},
    )

async def integrity_exception_handler(request: Request, exc: IntegrityError):
    request_id = getattr(request.state, "request_id", None)
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"detail": "Database conflict. A record with this identifier likely already exists.", "request_id": request_id},
    )

async def fitleague_exception_handler(request: Request, exc: FitLeagueError):
    request_id = getattr(request.state, "request_id", None)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "success": False, "request_id": request_id},
    )
