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
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
SQL_ECHO = _get_bool(os.getenv("SQL_ECHO"), default=False)

DATABASE_URL = os.getenv("DATABASE_URL")

CORS_ALLOWED_ORIGINS = _get_list(
    os.getenv("CORS_ALLOWED_ORIGINS"),
    default=["http://localhost:5173", "http://localhost:8080"],
)

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

DEFAULT_TENANT_ID = os.getenv("DEFAULT_TENANT_ID", "00000000-0000-0000-0000-000000000001")

SLOT_LOCK_EXPIRY_MINUTES = int(os.getenv("SLOT_LOCK_EXPIRY_MINUTES", "10"))
MAX_SLOT_RANGE_DAYS = int(os.getenv("MAX_SLOT_RANGE_DAYS", "31"))
# Schedules are stored as naive wall-clock times in this zone.
CLINIC_TIMEZONE = os.getenv("CLINIC_TIMEZONE", "Asia/Kolkata")

DOUBLETICK_API_KEY = os.getenv("DOUBLETICK_API_KEY", "")
DOUBLETICK_API_URL = os.getenv(
    "DOUBLETICK_API_URL",
    "https://api.doubletick.io/whatsapp/message/sendMessage",
)
DOUBLETICK_TIMEOUT_SECONDS = float(os.getenv("DOUBLETICK_TIMEOUT_SECONDS", "10"))

VIDEO_REMINDER_LEAD_MINUTES = int(os.getenv("VIDEO_REMINDER_LEAD_MINUTES", "15"))
VIDEO_REMINDER_WINDOW_MINUTES = int(os.getenv("VIDEO_REMINDER_WINDOW_MINUTES", "1"))

MEETING_LINK_PREFIX = os.getenv("MEETING_LINK_PREFIX", "https://meet.jit.si/AisurgeonPilot-")


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if not DATABASE_URL:
        raise RuntimeError("DATABASE_URL must be set.")
