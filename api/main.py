import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from core import db
from core.config import SERVICE_NAME, settings
from core.logging_config import configure_logging
from imports import router as imports_router

logger = logging.getLogger(__name__)

_started_at = time.monotonic()

_ERROR_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    413: "PAYLOAD_TOO_LARGE",
    429: "RATE_LIMIT_EXCEEDED",
    500: "INTERNAL_ERROR",
}


@asynccontextmanager
async def lifespan(_: FastAPI):
    configure_logging(settings().log_level)
    logger.info("startup environment=%s port=%s", settings().environment, settings().port)
    # Initialize the DB pool once per process.
    await db.init_pool()
    try:
        yield
    finally:
        await db.close_pool()


app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings().cors_origins,
    allow_credentials=settings().cors_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)

API_PREFIX = f"/{settings().api_version}"

app.include_router(imports_router.router, prefix=f"{API_PREFIX}/import", tags=["import"])


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _error_body(request: Request, status_code: int, message: str, details: str | None = None) -> dict:
    error: dict = {"code": _ERROR_CODES.get(status_code, "UNKNOWN_ERROR"), "message": message}
    if details:
        error["details"] = details
    return {
        "status": "error",
        "error": error,
        "meta": {"timestamp": _now_iso(), "path": request.url.path, "method": request.method},
    }


@app.middleware("http")
async def api_version_header(request: Request, call_next):
    response = await call_next(request)
    if request.url.path == API_PREFIX or request.url.path.startswith(f"{API_PREFIX}/"):
        response.headers["API-Version"] = settings().api_version
    return response


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # Route handlers raise with a ready-made {"error", "message"} body.
    if isinstance(exc.detail, dict):
        return JSONResponse(exc.detail, status_code=exc.status_code, headers=exc.headers)

    if exc.status_code == 404:
        body = _error_body(
            request,
            404,
            "The requested resource was not found",
            details=f"Cannot {request.method} {request.url.path}",
        )
    else:
        body = _error_body(request, exc.status_code, str(exc.detail))
    return JSONResponse(body, status_code=exc.status_code, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Query/path/form parameters that failed FastAPI validation are input rejections.
    problems = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()))
        problems.append(f"{location}: {err.get('msg', 'invalid')}")
    body = _error_body(request, 400, "Invalid request parameters", details="; ".join(problems) or None)
    return JSONResponse(body, status_code=400)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error method=%s path=%s", request.method, request.url.path)
    message = "Internal Server Error" if settings().is_production else (str(exc) or "Internal Server Error")
    return JSONResponse(_error_body(request, 500, message), status_code=500)


@app.get("/health")
async def health() -> dict:
    database = await db.health_check()
    return {
        "status": "success",
        "data": {
            "service": SERVICE_NAME,
            "status": "healthy" if database["status"] == "healthy" else "degraded",
            "timestamp": _now_iso(),
            "uptime": round(time.monotonic() - _started_at, 3),
            "environment": settings().environment,
            "version": settings().api_version,
            "database": database,
        },
    }


@app.get(API_PREFIX)
def api_root() -> dict:
    return {
        "message": SERVICE_NAME,
        "version": settings().api_version,
        "environment": settings().environment,
        "timestamp": _now_iso(),
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=settings().port)
