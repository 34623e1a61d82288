import logging
import os
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlmodel import Session

import aggregator
from auth import get_current_user_id
from db import create_db_and_tables, engine, get_session
from errors import InternalError, InvalidInput, TimerError
from schemas import AddTimeRequest, ErrorResponse, TodayResponse

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    create_db_and_tables()

    # Stores created before the unique index existed get it added here
    try:
        from migrations.migrate_001_add_user_date_unique import migrate as migrate_001
        migrate_001(engine)
    except Exception as e:
        logger.error(f"Migration 001 failed: {str(e)}")

    logger.info("Database initialized")
    yield


app = FastAPI(title="Doomscroll Timer API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(TimerError)
async def timer_error_handler(request: Request, exc: TimerError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    logger.info(f"Rejected {request.method} {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=400, content={"error": InvalidInput.public_message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Error in {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"error": InternalError.public_message})


def get_reference_date() -> str:
    """The calendar day requests are booked against."""
    return aggregator.current_date()


@app.get("/today", response_model=TodayResponse, responses=ERROR_RESPONSES)
def get_today(
    user_id: str = Depends(get_current_user_id),
    today: str = Depends(get_reference_date),
    session: Session = Depends(get_session),
):
    """Get the authenticated user's tracked time for today."""
    logger.info(f"Today request for user_id: {user_id}, date: {today}")

    total = aggregator.get_today(session, user_id, today)
    return TodayResponse(date=today, total_time_ms=total)


@app.post("/today", response_model=TodayResponse, responses=ERROR_RESPONSES)
def add_time_today(
    request: AddTimeRequest,
    user_id: str = Depends(get_current_user_id),
    today: str = Depends(get_reference_date),
    session: Session = Depends(get_session),
):
    """Add newly elapsed session time to today's total."""
    logger.info(
        f"Add time request for user_id: {user_id}, date: {today}, "
        f"additional_time_ms: {request.additional_time_ms}"
    )

    total = aggregator.apply_delta(session, user_id, today, request.additional_time_ms)
    return TodayResponse(date=today, total_time_ms=total)


@app.get("/")
def root():
    """Root endpoint."""
    return {"message": "Doomscroll Timer API", "docs": "/docs"}
