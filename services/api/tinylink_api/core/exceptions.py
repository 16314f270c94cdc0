"""Domain exceptions and their HTTP mapping."""

import sentry_sdk
import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = structlog.get_logger()


class TinylinkError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code: str = "internal_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidUrlError(TinylinkError):
    """Malformed URL or unsupported scheme."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "invalid_url"


class InvalidInputError(TinylinkError):
    """Invalid argument to a pure helper (empty URL, bad custom code, ...)."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "invalid_input"


class WorkspaceNotFoundError(TinylinkError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "workspace_not_found"


class WorkspaceInactiveError(WorkspaceNotFoundError):
    """Workspace exists but is soft-deleted."""

    error_code = "workspace_inactive"


class ShortCodeTakenError(TinylinkError):
    """Requested custom code already belongs to a different URL."""

    status_code = status.HTTP_409_CONFLICT
    error_code = "short_code_taken"


class CollisionExhaustedError(TinylinkError):
    """Every salted candidate code collided with a different URL."""

    error_code = "collision_exhausted"


class LinkNotFoundError(TinylinkError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "link_not_found"


class LinkExpiredError(TinylinkError):
    status_code = status.HTTP_410_GONE
    error_code = "link_expired"


class LinkExceededClickLimitError(TinylinkError):
    status_code = status.HTTP_410_GONE
    error_code = "link_click_limit_reached"


class PublishFailure(Exception):
    """A click event could not be written to its channel.

    Never leaves the click publisher.
    """


async def tinylink_error_handler(request: Request, exc: TinylinkError) -> JSONResponse:
    """Render a TinylinkError as a JSON error response."""
    if exc.status_code >= 500:
        logger.error(
            "Request failed with server error",
            error_code=exc.error_code,
            error=exc.message,
        )
        sentry_sdk.capture_exception(exc)

    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error_code": exc.error_code},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install the domain exception handler on the app."""
    app.add_exception_handler(TinylinkError, tinylink_error_handler)
