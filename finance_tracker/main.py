"""Main entrypoint and application factory for the Finance Tracker API.

This module initializes the FastAPI application, configures logging, creates the database tables, registers
the error handlers and exposes the Scalar API reference endpoint for interactive OpenAPI documentation. It also
includes the main entrypoint for running the app with Uvicorn.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from scalar_fastapi import get_scalar_api_reference
from sqlalchemy.exc import SQLAlchemyError

from finance_tracker.api.routes import router
from finance_tracker.core.db import Base, SessionLocal, engine
from finance_tracker.core.errors import StoreError
from finance_tracker.core.settings import get_settings
from finance_tracker.core.utils import ROOT_LOGGER, get_logger
from finance_tracker.workers.link_reconciler import run_reconciliation

logger = get_logger(ROOT_LOGGER)
PROJECT_LOGGERS = [ROOT_LOGGER] + [f"{ROOT_LOGGER}.{name}" for name in ("api", "store", "linkage", "reconciler")]


# --- Logging Setup ---
def setup_logging() -> None:
    """Set the level of the project loggers and attach a plain file handler when a log file is configured."""
    settings = get_settings()
    level = settings.log_level.upper()
    file_handler = None
    if settings.log_file:
        Path(settings.log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(settings.log_file)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
    for name in PROJECT_LOGGERS:
        named = get_logger(name)
        named.setLevel(level)
        if file_handler and not any(isinstance(h, logging.FileHandler) for h in named.handlers):
            named.addHandler(file_handler)


setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Lifespan event handler to create the tables and optionally reconcile pending debt links."""
    _ = app  # Silence unused argument warning
    settings = get_settings()
    try:
        Base.metadata.create_all(engine)
    except SQLAlchemyError:
        logger.exception("Failed to create database tables")
        raise
    if settings.reconcile_on_startup:
        summary = run_reconciliation(SessionLocal)
        logger.info(f"Startup reconciliation: {summary.model_dump()}")
    yield


app = FastAPI(
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    title="Finance Tracker API",
    description="""
    The Finance Tracker API records income and expense transactions and debts owed to lenders.

    **Endpoints:**
    - `GET/POST /transactions`, `GET/DELETE /transactions/{id}`: transactions, filtered by `type` and `tag`.
    - `GET /tags`: every tag in use.
    - `GET/POST /debts`, `GET/PUT/DELETE /debts/{id}`: debts; creating one also records a linked expense.
    - `PUT /debts/{id}/toggle`: flip the paid flag.
    - `POST /debts/{id}/link`, `POST /debts/reconcile`: retry linked expenses after a partial failure.
    - `GET /summary`: totals and rows converted into a display currency.
    - `GET /health`: Health check endpoint.
    - `GET /scalar`: Interactive Scalar OpenAPI documentation.
    """,
    version="1.0.0",
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(router)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed request bodies and parameters as 400 Bad Request."""
    logger.warning(f"Rejected {request.method} {request.url.path}: {exc.errors()}")
    details = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors())
    return JSONResponse(status_code=400, content={"detail": f"Invalid fields: {details}"})


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    """Report persistence failures as a generic 500."""
    logger.error(f"Store failure on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": str(exc)})


@app.get("/scalar", include_in_schema=False)
async def scalar_docs() -> HTMLResponse:
    """Return Scalar API reference."""
    return get_scalar_api_reference(openapi_url=app.openapi_url, title=app.title)


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run("finance_tracker.main:app", host=settings.server_host, port=settings.server_port, reload=True)
