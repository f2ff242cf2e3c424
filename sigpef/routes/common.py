from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError

from sigpef.database import ensure_appointment_schema, ensure_attendance_schema

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and Postgres credentials.'


def database_unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=DATABASE_UNAVAILABLE_DETAIL,
    )


def ensure_database_ready() -> None:
    try:
        ensure_appointment_schema()
        ensure_attendance_schema()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc
