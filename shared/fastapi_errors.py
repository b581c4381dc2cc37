"""
FastAPI Error Handlers for Unified Error Handling System.

This module provides exception handlers for FastAPI applications to convert
exceptions into standardized APIErrorResponse format with proper HTTP status
codes and Spanish user messages.

Usage:
    from fastapi import FastAPI
    from shared.fastapi_errors import register_error_handlers

    app = FastAPI()
    register_error_handlers(app)
"""

import logging
from typing import Any

from fastapi import FastAPI, Request, HTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from shared.errors import (
    APIErrorResponse,
    ErrorCategory,
    MaintenanceError,
    get_error_logger,
    map_status_to_category,
    translate_to_spanish,
)


logger = logging.getLogger(__name__)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Convert HTTPException to standardized APIErrorResponse.

    Handles FastAPI HTTPException and converts to consistent format with:
    - Proper error category based on status code
    - Spanish translation of error message
    - Structured logging with request context
    - Unique log reference for correlation
    """
    error_logger = get_error_logger()
    category = map_status_to_category(exc.status_code)

    context: dict[str, Any] = {
        "path": str(request.url.path),
        "method": request.method,
        "status_code": exc.status_code,
    }

    if request.url.query:
        context["query_params"] = str(request.url.query)

    log_ref = error_logger.log_error(
        error=exc,
        category=category,
        endpoint=str(request.url.path),
        method=request.method,
        context=context,
        exc_info=False,  # HTTPException is expected, no stack trace needed
    )

    response = APIErrorResponse(
        success=False,
        error_category=category,
        error_code=f"HTTP_{exc.status_code}",
        message=translate_to_spanish(str(exc.detail)),
        guidance=error_logger.build_guidance(category),
        log_ref=log_ref,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=response.model_dump(),
        headers=getattr(exc, "headers", None),
    )


async def maintenance_exception_handler(request: Request, exc: MaintenanceError) -> JSONResponse:
    """Convert domain errors raised by the consolidation workflow.

    The exception already carries its category, status and Spanish message,
    so the handler only adds the log reference and guidance.
    """
    error_logger = get_error_logger()

    log_ref = error_logger.log_error(
        error=exc,
        category=exc.category,
        endpoint=str(request.url.path),
        method=request.method,
        context={"path": str(request.url.path), **exc.context},
        # Only system-side failures deserve a stack trace
        exc_info=exc.status_code >= 500,
    )

    response = APIErrorResponse(
        success=False,
        error_category=exc.category,
        error_code=exc.error_code,
        message=exc.message,
        guidance=error_logger.build_guidance(exc.category),
        log_ref=log_ref,
        context=jsonable_encoder(exc.context) or None,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=response.model_dump()
    )


async def validation_exception_handler(
    request: Request, exc: ValidationError | RequestValidationError
) -> JSONResponse:
    """Convert Pydantic/request validation errors to standardized APIErrorResponse.

    Handles validation errors and converts to consistent format with:
    - Validation error category
    - Spanish error message with field details
    - List of specific validation errors in context
    """
    error_logger = get_error_logger()

    errors = jsonable_encoder(exc.errors())

    context: dict[str, Any] = {
        "path": str(request.url.path),
        "method": request.method,
        "validation_errors": errors,
    }

    log_ref = error_logger.log_error(
        error=exc,
        category=ErrorCategory.VALIDATION_ERROR,
        endpoint=str(request.url.path),
        method=request.method,
        context=context,
        exc_info=False,  # Validation errors are expected
    )

    if len(errors) == 1:
        error_detail = errors[0]
        field = ".".join(str(loc) for loc in error_detail["loc"])
        message = f"Error de validación en '{field}': {error_detail['msg']}"
    else:
        message = f"Errores de validación en {len(errors)} campos. Verifique los datos proporcionados."

    response = APIErrorResponse(
        success=False,
        error_category=ErrorCategory.VALIDATION_ERROR,
        error_code="VALIDATION_ERROR",
        message=message,
        guidance="Verifique los datos proporcionados y corrija los errores de validación.",
        log_ref=log_ref,
        context={"validation_errors": errors},
    )

    return JSONResponse(
        status_code=400,
        content=response.model_dump()
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Convert general exceptions to standardized APIErrorResponse.

    Handles all unhandled exceptions and converts to consistent format with:
    - Unexpected error category
    - Generic Spanish error message (no internal details)
    - Full stack trace logging
    """
    error_logger = get_error_logger()

    context: dict[str, Any] = {
        "path": str(request.url.path),
        "method": request.method,
        "exception_type": type(exc).__name__,
    }

    log_ref = error_logger.log_error(
        error=exc,
        category=ErrorCategory.UNEXPECTED_ERROR,
        endpoint=str(request.url.path),
        method=request.method,
        context=context,
        exc_info=True,
    )

    response = APIErrorResponse(
        success=False,
        error_category=ErrorCategory.UNEXPECTED_ERROR,
        error_code="INTERNAL_SERVER_ERROR",
        message="Error interno del servidor. Por favor, intente nuevamente.",
        guidance="Si el problema persiste, contacte al soporte técnico.",
        log_ref=log_ref,
    )

    return JSONResponse(
        status_code=500,
        content=response.model_dump()
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register custom error handlers with FastAPI app.

    Registers handlers for:
    - HTTPException (400, 401, 403, 404, etc.)
    - MaintenanceError (workflow/domain errors)
    - ValidationError / RequestValidationError
    - Exception (all unhandled exceptions)
    """
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(MaintenanceError, maintenance_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    logger.info("Registered unified error handlers for FastAPI")
