import logging
import re
import uuid
from typing import Any, List, Optional

from fastapi import Body, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import SETTINGS
from models import ErrorResponse, HealthResponse, UpdateRequest, UpdateResponse
from observability import configure_logging, get_request_id, log_event, request_id_ctx
from railway_adapter.adapter import RailwayAdapter, RailwayError, ServiceUpdateError
from railway_adapter.redaction import redact_text


configure_logging(SETTINGS.log_level)
app = FastAPI(title="Railway Image Updater", version="1.0.0")
logger = logging.getLogger("imageupdater.api")
railway = RailwayAdapter(SETTINGS.railway_client_config(), request_id_provider=get_request_id)

logger.info(
    "config.railway loaded api_url=%s registry_credentials=%s timeout=%s",
    SETTINGS.railway_api_url,
    "set" if SETTINGS.registry_credentials_configured else "missing",
    SETTINGS.request_timeout_seconds or "none",
)

if SETTINGS.lambda_enabled:
    from mangum import Mangum

    handler = Mangum(app)


_UUID_HYPHENATED = r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}"
# Hyphenated, urn:uuid: prefixed, braced, or 32 bare hex digits.
_UUID_PATTERN = re.compile(
    rf"(?:urn:uuid:)?{_UUID_HYPHENATED}|\{{{_UUID_HYPHENATED}\}}|[0-9a-f]{{32}}",
    re.IGNORECASE,
)
NO_MATCH_MESSAGE = "No services matched the provided image prefixes"


def error_response(
    status_code: int,
    message: str,
    updated_services: Optional[List[str]] = None,
    headers: Optional[dict] = None,
) -> JSONResponse:
    payload = ErrorResponse(
        error=message,
        request_id=request_id_ctx.get() or str(uuid.uuid4()),
        updated_services=updated_services,
    )
    return JSONResponse(status_code=status_code, content=payload.model_dump(exclude_none=True), headers=headers)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    headers = getattr(exc, "headers", None)
    if exc.status_code == 405:
        allowed = (headers or {}).get("Allow")
        message = f"Method not allowed, use {allowed}" if allowed else "Method not allowed"
        return error_response(405, message, headers=headers)
    return error_response(exc.status_code, str(exc.detail), headers=headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return error_response(400, f"Invalid JSON: {_first_error_detail(exc.errors())}")


@app.middleware("http")
async def attach_request_id(request: Request, call_next):
    request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
    token = request_id_ctx.set(request_id)
    try:
        response = await call_next(request)
    finally:
        request_id_ctx.reset(token)
    response.headers["X-Request-Id"] = request_id
    return response


def _first_error_detail(errors: list) -> str:
    if not errors:
        return "request body could not be decoded"
    error = errors[0]
    ctx_error = (error.get("ctx") or {}).get("error")
    message = error.get("msg") or "invalid value"
    if error.get("type") == "json_invalid" and ctx_error:
        message = f"{message}: {ctx_error}"
    loc = [str(part) for part in error.get("loc") or () if part != "body"]
    if loc and error.get("type") != "json_invalid":
        return f"{'.'.join(loc)}: {message}"
    return message


def _canonical_uuid(value: Optional[str]) -> Optional[str]:
    if not value or not _UUID_PATTERN.fullmatch(value):
        return None
    try:
        return str(uuid.UUID(value))
    except ValueError:
        return None


def _validate_update_request(payload: Any) -> tuple[Optional[UpdateRequest], Optional[str]]:
    if payload is None:
        return None, "Invalid JSON: request body is empty"
    if not isinstance(payload, dict):
        return None, "Invalid JSON: request body must be a JSON object"
    try:
        update_request = UpdateRequest.model_validate(payload)
    except ValidationError as exc:
        return None, f"Invalid JSON: {_first_error_detail(exc.errors())}"

    project_id = _canonical_uuid(update_request.project_id)
    if project_id is None:
        return None, "Invalid project_id: must be a valid UUID"
    environment_id = _canonical_uuid(update_request.environment_id)
    if environment_id is None:
        return None, "Invalid environment_id: must be a valid UUID"
    if not update_request.image_prefixes:
        return None, "image_prefixes cannot be empty"
    if any(not prefix for prefix in update_request.image_prefixes):
        return None, "image_prefixes cannot contain empty values"
    if not update_request.new_version:
        return None, "new_version cannot be empty"
    return update_request.model_copy(update={"project_id": project_id, "environment_id": environment_id}), None


@app.put("/update", response_model=UpdateResponse)
def update_services(payload: Any = Body(None)):
    update_request, validation_error = _validate_update_request(payload)
    if validation_error:
        log_event("update_request_rejected", outcome="REJECTED", summary=validation_error)
        return error_response(400, validation_error)

    log_event(
        "update_request_received",
        project_id=update_request.project_id,
        environment_id=update_request.environment_id,
        image_prefixes=update_request.image_prefixes,
        new_version=update_request.new_version,
    )
    try:
        updated = railway.update_services(
            update_request.environment_id,
            update_request.image_prefixes,
            update_request.new_version,
        )
    except ServiceUpdateError as exc:
        return _update_failed(exc, exc.updated_services)
    except RailwayError as exc:
        return _update_failed(exc, [])

    if not updated:
        log_event("update_completed", outcome="NO_MATCH", environment_id=update_request.environment_id)
        return UpdateResponse(message=NO_MATCH_MESSAGE, updated_services=[])

    log_event(
        "update_completed",
        outcome="SUCCESS",
        environment_id=update_request.environment_id,
        updated_services=updated,
        new_version=update_request.new_version,
    )
    return UpdateResponse(
        message=f"Successfully updated {len(updated)} service(s)",
        updated_services=updated,
    )


def _update_failed(exc: Exception, updated_services: List[str]) -> JSONResponse:
    summary = redact_text(str(exc))
    log_event(
        "update_failed",
        outcome="FAILED",
        summary=summary,
        updated_services=updated_services or None,
    )
    return error_response(500, f"Failed to update services: {summary}", updated_services=list(updated_services))


@app.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse(status="ok")


if __name__ == "__main__":
    import uvicorn

    logger.info("server starting port=%s", SETTINGS.port)
    uvicorn.run(app, host="0.0.0.0", port=SETTINGS.port)
