import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shared.core.database import rental_engine, Base
from shared.exception_handler import setup_exception_handlers
from shared.utils.app_status_code import AppStatusCode
from .core.errors import ErrorCode, RentalDomainError
from .models.rentals import rental_requests, rental_clearances
from .models.financials import payments
from .models.notifications import notifications
from .models.sales import sale_lines
from .router.clearance import clearance_router
from .router.financials import payout_router
from .router.scheduler import scheduler_router

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
)

# (http status, app status code) per domain error
DOMAIN_ERROR_STATUS = {
    ErrorCode.RENTAL_NOT_FOUND: (404, AppStatusCode.NOT_FOUND),
    ErrorCode.CLEARANCE_NOT_FOUND: (404, AppStatusCode.NOT_FOUND),
    ErrorCode.PAYMENT_NOT_FOUND: (404, AppStatusCode.NOT_FOUND),
    ErrorCode.UNAUTHORIZED: (403, AppStatusCode.UNAUTHORIZED_ACTION),
    ErrorCode.PRECONDITION_FAILED: (409, AppStatusCode.PRECONDITION_FAILED),
    ErrorCode.STAGE_CONFLICT: (409, AppStatusCode.STAGE_CONFLICT),
    ErrorCode.DATA_INTEGRITY: (422, AppStatusCode.DATA_INTEGRITY_ERROR),
    ErrorCode.EXTERNAL_SERVICE: (502, AppStatusCode.EXTERNAL_SERVICE_ERROR),
}

app = FastAPI(title="Rental Service API")

# Create all tables
Base.metadata.create_all(bind=rental_engine)

origins = [
    "http://localhost:8080",
    "http://127.0.0.1:8003"
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

setup_exception_handlers(app, RentalDomainError, DOMAIN_ERROR_STATUS)

# Include routers
app.include_router(clearance_router.router)
app.include_router(payout_router.router)
app.include_router(scheduler_router.router)
