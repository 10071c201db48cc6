import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Import all models to ensure they're registered with SQLAlchemy Base
from . import (
    models,  # noqa: F401
    models_invoice,  # noqa: F401
)
from .config import DATABASE_URL
from .database import Database
from .domain.contract_templates.router import router as contract_templates_router
from .domain.contracts.errors import ContractError, ValidationFailed
from .domain.contracts.pdf_service import ContractPDFService
from .domain.contracts.router import router as contracts_router
from .services.notification_service import ContractNotifier

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")


def create_app(
    database: Optional[Database] = None,
    notifier: Optional[ContractNotifier] = None,
    pdf_service: Optional[ContractPDFService] = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Application starting up...")
        owns_database = app.state.database is None
        if owns_database:
            app.state.database = Database(DATABASE_URL)
        try:
            app.state.database.create_all()
            logger.info("Database tables created successfully")
        except Exception as e:
            # Ignore "already exists" errors from race conditions between workers
            error_msg = str(e)
            if "already exists" in error_msg or "duplicate key" in error_msg:
                logger.info("Database tables already exist (created by another worker)")
            else:
                logger.error(f"Failed to create database tables: {e}")
                raise

        yield

        logger.info("Application shutting down...")
        if owns_database:
            app.state.database.dispose()
            app.state.database = None

    app = FastAPI(title="Propodocs Contracts API", version="1.0.0", lifespan=lifespan)
    app.state.database = database
    app.state.notifier = notifier or ContractNotifier()
    app.state.pdf_service = pdf_service or ContractPDFService()

    @app.exception_handler(ContractError)
    async def contract_error_handler(request: Request, exc: ContractError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} - {exc.code}: {exc.message}")
        else:
            logger.info(f"{request.method} {request.url.path} - {exc.code}")
        content = {"detail": exc.message, "code": exc.code}
        if isinstance(exc, ValidationFailed) and exc.errors:
            content["errors"] = exc.errors
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
        return JSONResponse(status_code=422, content={"detail": jsonable_errors(exc)})

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
        allow_headers=["*"],
    )

    app.include_router(contracts_router)
    app.include_router(contract_templates_router)

    @app.get("/health")
    async def health_check():
        return {"status": "healthy"}

    return app


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]


app = create_app()
