import os

from dotenv import load_dotenv

load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


APP_ENV = os.getenv("APP_ENV", "development")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./scheduler.db")

CORS_ORIGINS = _get_list(os.getenv("CORS_ORIGINS"), default=["http://localhost:3000"])

DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "America/New_York")
DEFAULT_EVENT_DURATION = int(os.getenv("DEFAULT_EVENT_DURATION", "30"))
SUGGESTION_HORIZON_DAYS = int(os.getenv("SUGGESTION_HORIZON_DAYS", "30"))

# Public endpoints are throttled per client address.
RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))
AVAILABILITY_RATE_LIMIT = int(os.getenv("AVAILABILITY_RATE_LIMIT", "30"))
BOOKING_RATE_LIMIT = int(os.getenv("BOOKING_RATE_LIMIT", "5"))

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
