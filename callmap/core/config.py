import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional


class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # Firebase Admin
    FIREBASE_PROJECT_ID: str = "mindmap-ec9bc"
    FIREBASE_SERVICE_ACCOUNT_KEY: Optional[str] = None  # JSON string
    FIREBASE_SERVICE_ACCOUNT_PATH: Optional[str] = None
    GOOGLE_APPLICATION_CREDENTIALS: Optional[str] = None
    STORE_BACKEND: str = "firestore"  # firestore | memory

    # Session cookie
    SESSION_COOKIE_NAME: str = "callmap_session"
    SESSION_COOKIE_MAX_AGE: int = 60 * 60 * 24 * 5  # 5 days
    LOGIN_SESSION_MAX_AGE: int = 60 * 60 * 8  # 8 hours

    # CSRF
    CSRF_PROTECTION_ENABLED: bool = True
    CSRF_SECRET_COOKIE: str = "csrf_secret"
    CSRF_TOKEN_HEADER: str = "x-csrf-token"

    # Login rate limiting
    LOGIN_RATE_LIMIT_ATTEMPTS: int = 5
    LOGIN_RATE_LIMIT_WINDOW_SECONDS: int = 15 * 60

    # HTTP
    CORS_ORIGINS: str = "http://localhost:3000"  # comma-separated
    SECURITY_HEADERS_ENABLED: bool = True

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        return self.ENV.lower() == "production"

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


settings = Settings()


def has_firebase_credentials(cfg: Optional[Settings] = None) -> bool:
    cfg = cfg or settings
    return bool(
        cfg.FIREBASE_SERVICE_ACCOUNT_KEY
        or cfg.FIREBASE_SERVICE_ACCOUNT_PATH
        or cfg.GOOGLE_APPLICATION_CREDENTIALS
    )


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate required configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only missing keys.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("callmap")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    if not has_firebase_credentials(cfg):
        message = (
            "Missing required configuration: one of FIREBASE_SERVICE_ACCOUNT_KEY, "
            "FIREBASE_SERVICE_ACCOUNT_PATH, GOOGLE_APPLICATION_CREDENTIALS"
        )
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True
