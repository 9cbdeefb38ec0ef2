"""Application configuration.

Environment variables override all defaults.
CRITICAL: SECRET_KEY must be set in .env - startup fails if missing in production.
"""

import os
import warnings
from pathlib import Path
from typing import List

from dotenv import load_dotenv

_BACKEND_DIR = Path(__file__).resolve().parents[2]
load_dotenv(dotenv_path=_BACKEND_DIR / ".env", override=False)


def _env_list(name: str, default: str) -> List[str]:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    DEBUG: bool = ENVIRONMENT == "development"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Server binding for run_server.py
    HOST: str = os.getenv("HOST", "127.0.0.1")
    PORT: int = int(os.getenv("PORT", "8000"))

    # Database Configuration
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./pharmabridge.db")

    # JWT Security - CRITICAL
    SECRET_KEY: str = os.getenv("SECRET_KEY", "")
    if not SECRET_KEY:
        if ENVIRONMENT == "production":
            raise ValueError(
                "SECRET_KEY must be set in production environment. "
                "Generate with: python -c 'import secrets; print(secrets.token_urlsafe(32))'"
            )
        warnings.warn(
            "SECRET_KEY not set in environment. Using development default. "
            "Set SECRET_KEY in .env to a strong random value.",
            RuntimeWarning,
        )
        SECRET_KEY = "development-only-weak-default-change-in-production"

    ALGORITHM: str = "HS256"
    # Sessions last one working day
    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "1440"))

    # bcrypt work factor (tests lower this)
    BCRYPT_ROUNDS: int = int(os.getenv("BCRYPT_ROUNDS", "12"))
    MIN_PASSWORD_LENGTH: int = int(os.getenv("MIN_PASSWORD_LENGTH", "6"))

    # CORS / hosts (specific origins only, no wildcards)
    CORS_ORIGINS: List[str] = _env_list(
        "CORS_ORIGINS",
        "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173,http://127.0.0.1:5173",
    )
    ALLOWED_HOSTS: List[str] = _env_list("ALLOWED_HOSTS", "localhost,127.0.0.1")

    # Superadmin bootstrap credential. Only honoured until the superadmin row exists.
    MAIN_ADMIN_USERNAME: str = os.getenv("MAIN_ADMIN_USERNAME", "superadmin")
    MAIN_ADMIN_PASSWORD: str = os.getenv("MAIN_ADMIN_PASSWORD", "")

    # Delegated identity (Google sign-in for pharmacies)
    GOOGLE_CLIENT_ID: str = os.getenv("GOOGLE_CLIENT_ID", "")
    GOOGLE_TOKENINFO_URL: str = os.getenv(
        "GOOGLE_TOKENINFO_URL", "https://oauth2.googleapis.com/tokeninfo"
    )
    IDENTITY_TIMEOUT_SECONDS: float = float(os.getenv("IDENTITY_TIMEOUT_SECONDS", "10"))

    # Wholesalers are approved at registration unless this is switched on
    WHOLESALER_REQUIRE_APPROVAL: bool = _env_bool("WHOLESALER_REQUIRE_APPROVAL", False)


settings = Settings()
