import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from dotenv import load_dotenv

# Load env from wavscan/.env
package_dir = os.path.dirname(os.path.abspath(__file__))
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv(dotenv_path=os.path.join(package_dir, ".env"))

# Import after dotenv is loaded
from wavscan.core.config import settings, validate_config, cors_origins
from wavscan.core.database import init_engine, create_all_tables, dispose_engine
from wavscan.core.logging import configure_logging
from wavscan.core.middleware.request_id import RequestIdMiddleware
from wavscan.core.validation import validate_env
from wavscan.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    request_validation_handler,
    unhandled_exception_handler,
)
from wavscan.features.billing.reconciler import SubscriptionReconciler
from wavscan.features.billing.stripe_provider import StripeProvider
from wavscan.features.mail.service import Mailer
from wavscan.api import auth, user, billing, history, survey, contact, health

configure_logging(settings.ENV)
validate_env()
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("wavscan")
    logger.info("Starting Wav Social Scan backend...")
    init_engine()
    create_all_tables()
    app.state.mailer = Mailer.from_settings()
    app.state.reconciler = SubscriptionReconciler(StripeProvider())
    try:
        yield
    finally:
        dispose_engine()
        logger.info("Stopping Wav Social Scan backend...")


app = FastAPI(title="Wav Social Scan - Backend", lifespan=lifespan)

# Middlewares
app.add_middleware(RequestIdMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)
app.add_exception_handler(StarletteHTTPException, http_error_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(auth.router)
app.include_router(auth.verify_router)
app.include_router(user.router)
app.include_router(billing.router)
app.include_router(history.router)
app.include_router(survey.router)
app.include_router(contact.router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "wavscan.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=False,
        log_level="info",
        access_log=True,
    )
