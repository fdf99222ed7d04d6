import logging

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from gatepass.core.config import require_token_secrets, settings
from gatepass.core.database import get_db
from gatepass.core.errors import AppError, TransientStoreError
from gatepass.core.rate_limit import limiter
from gatepass.routes.admin import router as admin_router
from gatepass.routes.auth import router as auth_router
from gatepass.routes.events import router as events_router
from gatepass.routes.resources import router as resources_router
from gatepass.routes.settings import router as settings_router
from gatepass.routes.tickets import router as tickets_router
from gatepass.routes.users import router as users_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

require_token_secrets()

app = FastAPI(title="Gatepass")
logger.info(
    "Startup config: ENV=%s EMAIL_ENABLED=%s provider=%s RATE_LIMITING=%s",
    settings.ENV,
    settings.EMAIL_ENABLED,
    (settings.EMAIL_PROVIDER or "resend"),
    settings.ENABLE_RATE_LIMITING,
)

_ERROR_CODE_BY_STATUS: dict[int, str] = {
    400: "VALIDATION_ERROR",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
    429: "RATE_LIMITED",
    500: "INTERNAL_ERROR",
}


def _error_code(status_code: int) -> str:
    return _ERROR_CODE_BY_STATUS.get(int(status_code), "HTTP_ERROR")


def _error_response(status_code: int, error: str, message: str, details: dict | None = None, headers=None):
    payload: dict = {"error": error, "message": message}
    if details:
        payload["details"] = details
    return JSONResponse(status_code=status_code, content=payload, headers=headers)


@app.exception_handler(HTTPException)
def http_exception_handler(request: Request, exc: HTTPException):  # noqa: ARG001
    detail = exc.detail
    details: dict | None = None

    if isinstance(detail, str):
        message = detail
    elif isinstance(detail, dict):
        msg = detail.get("message")
        message = msg if isinstance(msg, str) and msg else "Request failed"
        det = detail.get("details")
        details = det if isinstance(det, dict) else None
    else:
        message = str(detail) if detail is not None else "Request failed"

    return _error_response(
        exc.status_code,
        _error_code(exc.status_code),
        message,
        details,
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
def validation_exception_handler(request: Request, exc: RequestValidationError):  # noqa: ARG001
    # Missing/malformed fields are plain 400s, same as domain validation errors.
    errors = [
        {k: v for k, v in err.items() if k in ("type", "loc", "msg")}
        for err in exc.errors()
    ]
    return _error_response(400, "VALIDATION_ERROR", "Invalid request payload", {"errors": errors})


@app.exception_handler(AppError)
def app_error_handler(request: Request, exc: AppError):  # noqa: ARG001
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return _error_response(exc.status_code, exc.error, exc.message, exc.details, headers=headers)


@app.exception_handler(OperationalError)
def operational_error_handler(request: Request, exc: OperationalError):  # noqa: ARG001
    logger.exception("Store operation failed: %s %s", request.method, request.url.path)
    err = TransientStoreError()
    return _error_response(err.status_code, err.error, err.message)


if settings.ENABLE_RATE_LIMITING:
    app.state.limiter = limiter
    app.add_exception_handler(
        RateLimitExceeded,
        lambda request, exc: JSONResponse(  # noqa: ARG005
            status_code=429,
            content={"error": "RATE_LIMITED", "message": "Too many requests"},
        ),
    )

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router)
app.include_router(users_router)
app.include_router(resources_router)
app.include_router(events_router)
app.include_router(tickets_router)
app.include_router(settings_router)
app.include_router(admin_router)


@app.get("/health")
def health_check(db: Session = Depends(get_db)):
    db.execute(text("SELECT 1"))
    return {"status": "ok"}
