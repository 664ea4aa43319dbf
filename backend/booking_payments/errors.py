# backend/booking_payments/errors.py
import logging
from typing import Any, Dict, List

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .core.exceptions import DomainException

logger = logging.getLogger(__name__)


def _validation_message(errors: List[Dict[str, Any]]) -> str:
    if not errors:
        return "Request validation failed"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg") or "Invalid value"
    return f"{location}: {message}" if location else str(message)


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(DomainException)
    async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"{request.url.path} failed: {exc.code} {exc.message}")
        return JSONResponse(
            jsonable_encoder(exc.to_response_body()),
            status_code=exc.status_code,
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = jsonable_encoder(exc.errors())
        return JSONResponse(
            content={
                "error": "Invalid request",
                "message": _validation_message(errors),
                "details": errors,
            },
            status_code=400,
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"Unhandled error on {request.url.path}")
        return JSONResponse(
            {
                "error": "Internal server error",
                "message": "An unexpected error occurred",
                "code": "internal_server_error",
                "details": {},
            },
            status_code=500,
        )
