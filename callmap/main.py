import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException

# Load env from the project root .env
project_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv(dotenv_path=os.path.join(project_dir, ".env"))

# Import after dotenv is loaded
from callmap.core.config import settings, validate_config  # noqa: E402
from callmap.core.logging import configure_logging  # noqa: E402
from callmap.core.middleware.request_id import RequestIdMiddleware  # noqa: E402
from callmap.core.middleware.security_headers import SecurityHeadersMiddleware  # noqa: E402
from callmap.core.validation import validate_env  # noqa: E402
from callmap.core.errors import (  # noqa: E402
    AppError,
    app_error_handler,
    http_error_handler,
    request_validation_handler,
    unhandled_exception_handler,
)
from callmap.api import admin, analytics, auth, billing, dashboards, health, ops, teams, usage, users  # noqa: E402

configure_logging(settings.ENV)
validate_env()
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("callmap")
    logger.info("Starting CallMap admin backend...")
    try:
        yield
    finally:
        logging.getLogger("callmap").info("Stopping CallMap admin backend...")


app = FastAPI(title="CallMap - Admin Analytics API", lifespan=lifespan)

# Middlewares
app.add_middleware(RequestIdMiddleware)
if settings.SECURITY_HEADERS_ENABLED:
    app.add_middleware(SecurityHeadersMiddleware, production=settings.is_production)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(HTTPException, http_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(admin.router, prefix="/api/admin", tags=["admin"])
app.include_router(analytics.router, prefix="/api/analytics", tags=["analytics"])
app.include_router(usage.router, prefix="/api/usage", tags=["usage"])
app.include_router(billing.router, prefix="/api/billing", tags=["billing"])
app.include_router(dashboards.router, prefix="/api/dashboards", tags=["dashboards"])
app.include_router(teams.router, prefix="/api/teams", tags=["teams"])
app.include_router(users.router, prefix="/api/users", tags=["users"])
app.include_router(ops.router, prefix="/api/ops", tags=["ops"])
app.include_router(health.root_router)
