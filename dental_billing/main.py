from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from dental_billing.core.config import settings
from dental_billing.core.exceptions import (
    BaseCustomException, create_error_response, handle_database_error
)
from dental_billing.core.logging_config import configure_logging
from dental_billing.api.v1.api import api_router
from dental_billing.domain.audit.service import DatabaseAuditSink
from dental_billing.domain.discounts.registry import DiscountRegistry
from dental_billing.infrastructure.catalog import default_catalog
from dental_billing.infrastructure.database import SessionLocal, close_db
from dental_billing.services.directory_service import build_directory
from dental_billing.services.qr_service import QRServerGenerator


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    yield
    close_db()


app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# Collaborators used by the service dependencies in api/deps.py
app.state.directory = build_directory()
app.state.catalog = default_catalog()
app.state.discounts = DiscountRegistry.from_settings()
app.state.qr_generator = QRServerGenerator()
app.state.audit = DatabaseAuditSink(SessionLocal)

# Set all CORS enabled origins
if settings.BACKEND_CORS_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[str(origin) for origin in settings.BACKEND_CORS_ORIGINS],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.exception_handler(BaseCustomException)
async def billing_exception_handler(request: Request, exc: BaseCustomException):
    return JSONResponse(status_code=exc.status_code, content=create_error_response(exc))


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    error = handle_database_error(exc, f"{request.method} {request.url.path}")
    return JSONResponse(status_code=error.status_code, content=create_error_response(error))


app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/health")
def health_check():
    return {"status": "ok"}
