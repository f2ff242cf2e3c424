import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int(value: str | None, default: int) -> int:
    if value is None or not value.strip():
        return default
    return int(value)


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if value is None:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


APP_ENV = os.getenv("APP_ENV", "development")
APP_VERSION = os.getenv("APP_VERSION", "1.9.8")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
SQL_ECHO = _get_bool(os.getenv("SQL_ECHO"), default=False)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./sigpef.db")

CORS_ORIGINS = _get_list(os.getenv("CORS_ORIGINS"), ["http://localhost:5173"])

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = _get_int(os.getenv("JWT_EXPIRES_MINUTES"), 60 * 12)

# Pipeline that turns uploaded PDF schedules into appointment rows.
IMPORT_WEBHOOK_URL = os.getenv("IMPORT_WEBHOOK_URL", "")
IMPORT_WEBHOOK_TIMEOUT_SECONDS = _get_int(os.getenv("IMPORT_WEBHOOK_TIMEOUT_SECONDS"), 120)
UNDO_WINDOW_EDITOR_MINUTES = _get_int(os.getenv("UNDO_WINDOW_EDITOR_MINUTES"), 10)
UNDO_WINDOW_ADMIN_MINUTES = _get_int(os.getenv("UNDO_WINDOW_ADMIN_MINUTES"), 60)
RECENT_UPLOADS_LIMIT = _get_int(os.getenv("RECENT_UPLOADS_LIMIT"), 5)
# Shared secret the pipeline sends back when posting extracted rows.
IMPORT_CALLBACK_TOKEN = os.getenv("IMPORT_CALLBACK_TOKEN", "")

LEGACY_SHEET_URL = os.getenv("LEGACY_SHEET_URL", "")
LEGACY_SHEET_TIMEOUT_SECONDS = _get_int(os.getenv("LEGACY_SHEET_TIMEOUT_SECONDS"), 30)

PUBLIC_IP_LOOKUP_URL = os.getenv("PUBLIC_IP_LOOKUP_URL", "https://api.ipify.org?format=json")

APPOINTMENT_FETCH_LIMIT = _get_int(os.getenv("APPOINTMENT_FETCH_LIMIT"), 5000)
LOG_FETCH_LIMIT = _get_int(os.getenv("LOG_FETCH_LIMIT"), 100)
MESSAGE_FETCH_LIMIT = _get_int(os.getenv("MESSAGE_FETCH_LIMIT"), 50)
CHANGE_FEED_HISTORY = _get_int(os.getenv("CHANGE_FEED_HISTORY"), 500)


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if APP_ENV.lower() == "production" and DATABASE_URL.startswith("sqlite"):
        raise RuntimeError("DATABASE_URL must point to Postgres in production.")
