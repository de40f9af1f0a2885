"""Error taxonomy shared by services and the HTTP layer.

Services raise these; ``register_error_handlers`` turns them into JSON
responses of the form ``{"error": message}`` with the matching status code.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class StorefrontError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailed(StorefrontError):
    status_code = 400


class Unauthorized(StorefrontError):
    status_code = 401


class Forbidden(StorefrontError):
    status_code = 403


class NotFound(StorefrontError):
    status_code = 404


class Conflict(StorefrontError):
    status_code = 409


class GatewayError(StorefrontError):
    """The payment gateway could not be reached or rejected the call."""
    status_code = 500


def _body(request: Request, message: str) -> dict:
    body = {"error": message}
    # Checkout clients branch on isOk for the payment endpoints.
    if request.url.path.endswith(("/createOrder", "/verifyOrder")):
        body["isOk"] = False
    return body


def register_error_handlers(app: FastAPI):
    @app.exception_handler(StorefrontError)
    async def storefront_error_handler(request: Request, exc: StorefrontError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=_body(request, exc.message))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        content = _body(request, "invalid request")
        content["details"] = jsonable_encoder(exc.errors())
        return JSONResponse(status_code=400, content=content)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content=_body(request, "Internal server error"))
