import logging
import time
from typing import List
from uuid import uuid4

import psycopg2
from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .auth import require_api_key
from .config import Settings, get_settings
from .db import Database, get_database
from .errors import QueryServiceError
from .executor import execute_plan
from .filters import parse_filters_to_plan
from .logging_config import configure_logging, set_request_id
from .resolver import NameMatchReport, find_name_matches
from .schemas import ErrorResponse, HealthResponse, QueryResponse

_settings = get_settings()
configure_logging(_settings.log_level)
log = logging.getLogger("coursequery.api")

app = FastAPI(title="Course Catalog Query API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=False,
    allow_methods=["GET"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or uuid4().hex
    set_request_id(request_id)
    response = await call_next(request)
    response.headers["x-request-id"] = request_id
    return response


@app.on_event("startup")
def startup() -> None:
    try:
        app.state.db = Database.from_settings(get_settings())
    except (QueryServiceError, psycopg2.Error) as exc:
        # Keep serving so /health can report the outage.
        log.error("database pool not created: %s", exc)
        app.state.db = None


@app.on_event("shutdown")
def shutdown() -> None:
    db = getattr(app.state, "db", None)
    if db is not None:
        db.close()


@app.exception_handler(QueryServiceError)
async def service_error_handler(request: Request, exc: QueryServiceError):
    extra = {"path": request.url.path, "status_code": exc.status_code}
    if exc.status_code >= 500:
        log.error("%s: %s", exc.message, exc.detail, extra=extra)
    else:
        log.warning("%s: %s", exc.message, exc.detail, extra=extra)

    content = {"error": exc.message}
    # Driver messages can describe the schema; only dev deployments get them.
    if exc.detail and (
        exc.status_code == 400
        or (exc.status_code >= 500 and get_settings().expose_error_details)
    ):
        content["details"] = exc.detail
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    log.exception("unhandled error", extra={"path": request.url.path, "status_code": 500})
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.get("/health", response_model=HealthResponse)
@app.get("/healthz", response_model=HealthResponse)
def health(request: Request):
    try:
        get_database(request).ping()
    except QueryServiceError as exc:
        log.warning("health check failed: %s", exc.detail)
        return JSONResponse(
            status_code=500,
            content={"status": "unhealthy", "database": "disconnected"},
        )
    return HealthResponse(status="healthy", database="connected")


@app.get(
    "/api/query",
    response_model=QueryResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
        504: {"model": ErrorResponse},
    },
    dependencies=[Depends(require_api_key)],
)
def query_endpoint(
    request: Request,
    db: Database = Depends(get_database),
    settings: Settings = Depends(get_settings),
):
    plan = parse_filters_to_plan(
        request.query_params,
        default_limit=settings.default_limit,
        max_limit=settings.max_limit,
    )

    t0 = time.perf_counter()
    result = execute_plan(db, plan, instructor_source=settings.instructor_source)
    elapsed_ms = round((time.perf_counter() - t0) * 1000, 1)

    log.info(
        "query served",
        extra={
            "path": request.url.path,
            "total_count": result.total_count,
            "returned": len(result.courses),
            "elapsed_ms": elapsed_ms,
        },
    )
    return QueryResponse(
        data=result.courses,
        count=len(result.courses),
        total_count=result.total_count,
        has_more=result.has_more,
        filters_applied=plan.filters_applied,
    )


@app.get(
    "/api/diagnostics/instructor-match",
    response_model=List[NameMatchReport],
    dependencies=[Depends(require_api_key)],
)
def instructor_match(
    instructors: str = Query(..., min_length=1),
    db: Database = Depends(get_database),
):
    """Per instructor name in `instructors`: overlay records matching exactly, and those matching only case/whitespace-insensitively."""
    return find_name_matches(db, instructors)


def run() -> None:
    import os

    import uvicorn

    uvicorn.run(
        "coursequery.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "3000")),
        reload=False,
    )


if __name__ == "__main__":
    run()
