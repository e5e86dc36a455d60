"""
Domain errors and their HTTP mapping.

Core modules raise these; the handlers registered by
``register_exception_handlers`` turn them into JSON responses of the form
``{"error": {"code", "message", "details"}}``.
"""
from __future__ import annotations
import logging
from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class IneditError(Exception):
	status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
	code: str = "internal_error"

	def __init__(self, message: str, *, details: Optional[Any] = None) -> None:
		super().__init__(message)
		self.message = message
		self.details = details


class NotFoundError(IneditError):
	"""Target row, or every row of a filtered subset, is missing or not owned by the caller."""
	status_code = status.HTTP_404_NOT_FOUND
	code = "not_found"


class ForbiddenError(IneditError):
	status_code = status.HTTP_403_FORBIDDEN
	code = "forbidden"


class ValidationFailedError(IneditError):
	status_code = status.HTTP_400_BAD_REQUEST
	code = "validation_failed"

	def __init__(self, message: str, *, field: Optional[str] = None, reason: Optional[str] = None) -> None:
		details = [{"field": field, "reason": reason or message}] if field else None
		super().__init__(message, details=details)
		self.field = field
		self.reason = reason or message


class InvariantViolationError(IneditError):
	status_code = status.HTTP_409_CONFLICT
	code = "invariant_violation"


class CreditsExhaustedError(IneditError):
	status_code = status.HTTP_429_TOO_MANY_REQUESTS
	code = "credits_exhausted"


class UpstreamFailureError(IneditError):
	"""The generation service failed or returned output we could not use. Callers may try again."""
	status_code = status.HTTP_502_BAD_GATEWAY
	code = "upstream_failure"


def _error_body(code: str, message: str, details: Optional[Any] = None) -> dict:
	body: dict = {"code": code, "message": message}
	if details is not None:
		body["details"] = details
	return {"error": body}


_HTTP_CODES = {
	status.HTTP_401_UNAUTHORIZED: "unauthenticated",
	status.HTTP_403_FORBIDDEN: ForbiddenError.code,
	status.HTTP_404_NOT_FOUND: NotFoundError.code,
	status.HTTP_409_CONFLICT: "conflict",
}


def register_exception_handlers(app: FastAPI) -> None:
	@app.exception_handler(IneditError)
	async def inedit_error_handler(request: Request, exc: IneditError):
		if exc.status_code >= 500:
			logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
		return JSONResponse(status_code=exc.status_code, content=_error_body(exc.code, exc.message, exc.details))

	@app.exception_handler(StarletteHTTPException)
	async def http_error_handler(request: Request, exc: StarletteHTTPException):
		code = _HTTP_CODES.get(exc.status_code, "http_error")
		return JSONResponse(
			status_code=exc.status_code,
			content=_error_body(code, str(exc.detail)),
			headers=getattr(exc, "headers", None),
		)

	@app.exception_handler(RequestValidationError)
	async def request_validation_handler(request: Request, exc: RequestValidationError):
		details = [
			{"field": ".".join(str(p) for p in err.get("loc", ()) if p != "body"), "reason": err.get("msg")}
			for err in exc.errors()
		]
		return JSONResponse(
			status_code=status.HTTP_400_BAD_REQUEST,
			content=_error_body(ValidationFailedError.code, "Invalid request data", details),
		)

	@app.exception_handler(Exception)
	async def unhandled_error_handler(request: Request, exc: Exception):
		logger.error("Unhandled exception on %s %s", request.method, request.url.path, exc_info=exc)
		return JSONResponse(
			status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
			content=_error_body("internal_error", "An internal error occurred"),
		)
