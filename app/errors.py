"""Domain errors and their HTTP mapping."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class MessagingError(Exception):
    """Base class for errors raised by the messaging services."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(MessagingError):
    """Request rejected before any row was written."""

    status_code = status.HTTP_400_BAD_REQUEST


class AuthorizationError(MessagingError):
    """Caller is not a participant, or does not own the row it is mutating."""

    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(MessagingError):
    """An explicitly requested row does not exist."""

    status_code = status.HTTP_404_NOT_FOUND


class DeliveryError(MessagingError):
    """An event could not be handed to the transport.

    Never propagated to the write path; the change notifier logs it.
    """

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


def register_error_handlers(app: FastAPI) -> None:
    """Map domain errors to JSON error responses."""

    @app.exception_handler(MessagingError)
    async def messaging_error_handler(
        request: Request, exc: MessagingError
    ) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        else:
            logger.warning(
                f"{request.method} {request.url.path} rejected "
                f"({exc.status_code}): {exc.message}"
            )
        return JSONResponse(
            status_code=exc.status_code, content={"detail": exc.message}
        )
