# app/main.py
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app.api.v1.api import api_router
from app.core.config import settings
from app.core.limiter import limiter
from app.db.base_class import Base
from app.db.session import engine
from app.services.campaign_jobs import shutdown_job_manager
from app import models  # noqa: F401  (registers every table on Base)

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='[%(asctime)s] %(levelname)s [%(name)s] %(message)s',
)
logger = logging.getLogger(__name__)


# Runs once when the application starts up and once on shutdown.
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables checked and created if necessary.")
    yield
    logger.info("Application shutting down, cancelling running campaign dispatches...")
    shutdown_job_manager()


app = FastAPI(
    title="CRM Campaign Service",
    version="1.0.0",
    description="""
        **CRM Segments & Campaigns Service**

        ## Features

        * **Segments**: Build customer audiences from nested AND/OR rule trees
        * **Audience Preview**: Estimate size and demographics before saving
        * **Campaigns**: Personalized bulk email dispatched in the background
        * **Multi-provider Email**: SMTP, Gmail API, SendGrid, Resend and Brevo
        * **Tracking**: Opens, clicks, feedback and provider delivery receipts
        * **Analytics**: Delivery, open and click rates per campaign and account

        ## Authentication

        Most endpoints require JWT authentication via the `Authorization: Bearer <token>` header.
        Tracking endpoints are public; delivery receipts need the internal API key.
        """,
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

origins = [
    "http://localhost:3000",
    "http://localhost:5173",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,  # Allow specific origins
    allow_credentials=True,  # Allow cookies and authorization headers
    allow_methods=["*"],  # Allow all methods (GET, POST, etc.)
    allow_headers=["*"],  # Allow all headers
)

app.include_router(api_router, prefix="/api/v1")


@app.get("/")
def read_root():
    return {"status": "CRM Campaign Service is running"}
