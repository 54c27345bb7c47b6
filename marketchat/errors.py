"""Errors raised by the messaging services.

Routers translate these into HTTP responses (see ``register_error_handlers``);
nothing in the service layer retries on its own.
"""

import logging
from contextlib import contextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError


logger = logging.getLogger(__name__)


class ChatError(Exception):

    status_code = 500
    code = "chat_error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.code)
        self.message = message or self.code


class UnauthenticatedError(ChatError):

    status_code = 401
    code = "unauthenticated"


class ValidationError(ChatError):

    status_code = 400
    code = "validation_error"


class StoreUnavailableError(ChatError):

    status_code = 503
    code = "store_unavailable"


class PartialFailureError(ChatError):
    """Some documents of a bulk read-state update could not be written."""

    status_code = 500
    code = "partial_failure"

    def __init__(self, updated: int, failed: int) -> None:
        super().__init__(f"{failed} of {updated + failed} updates failed")
        self.updated = updated
        self.failed = failed


def register_error_handlers(app: FastAPI) -> None:

    @app.exception_handler(ChatError)
    async def _chat_error_handler(request: Request, exc: ChatError):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.code, "detail": exc.message})


@contextmanager
def translate_store_errors(operation: str):
    try:
        yield
    except PyMongoError as exc:
        logger.error("Store operation %s failed: %s", operation, exc)
        raise StoreUnavailableError(f"{operation} failed") from exc
