from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
import logging

from dompet.core.config import get_settings
from dompet.core.database import engine, Base
from dompet.core.logging_config import setup_logging
from dompet.core.scheduler import start_scheduler, shutdown_scheduler

from dompet.features.bills.exceptions import (
    BillError,
    RuleValidationError,
    InvalidRecurrenceError,
    StorageError,
)
from dompet.features.bills.router import router as bills_router
from dompet.features.reminders.router import router as reminders_router
from dompet.features.calendar.router import router as calendar_router

# Registered on Base.metadata for create_all
from dompet.features.bills.models import Bill
from dompet.features.reminders.models import Reminder
from dompet.features.calendar.models import CalendarConnection

setup_logging()
logger = logging.getLogger(__name__)
settings = get_settings()

ERROR_STATUS = {
    RuleValidationError: 422,
    InvalidRecurrenceError: 422,
    StorageError: 503,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        if settings.ENVIRONMENT in ["local", "development", "production"]:
            logger.info(f"Environment: {settings.ENVIRONMENT}. Ensuring tables...")
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        else:
            logger.info(f"Environment: {settings.ENVIRONMENT}. Skipping table creation.")
    except Exception as e:
        logger.error(f"Startup Database Error: {str(e)}")
        logger.exception("Full traceback:")

    try:
        start_scheduler()
    except Exception as e:
        logger.error(f"Failed to start scheduler: {e}")

    yield

    shutdown_scheduler()


app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    lifespan=lifespan
)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BillError)
async def bill_exception_handler(request: Request, exc: BillError):
    status_code = ERROR_STATUS.get(type(exc), 500)
    if status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.url.path}: {exc}")
    else:
        logger.warning(f"{type(exc).__name__} on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error_kind": exc.error_kind},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Global error: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal Server Error", "msg": str(exc)},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.error(f"Validation error: {exc.errors()}")
    return JSONResponse(
        status_code=422,
        content={"detail": jsonable_encoder(exc.errors())},
    )


app.include_router(bills_router, prefix=f"{settings.API_V1_STR}/bills", tags=["bills"])
app.include_router(reminders_router, prefix=f"{settings.API_V1_STR}/reminders", tags=["reminders"])
app.include_router(calendar_router, prefix=f"{settings.API_V1_STR}/calendar", tags=["calendar"])


@app.get("/", tags=["status"])
async def root():
    return {
        "app": settings.PROJECT_NAME,
        "engine": "Dompet Recurring Bills Engine 1.0",
        "status": "Operational",
    }
