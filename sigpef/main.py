import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from sigpef.core import config
from sigpef.database import Base, engine, ensure_appointment_schema, ensure_attendance_schema
from sigpef.models import appointment, attendance, import_batch, message, user  # noqa: F401
from sigpef.routes import (
    admin_routes,
    appointment_routes,
    attendance_routes,
    auth_routes,
    import_routes,
    legacy_routes,
    message_routes,
    report_routes,
)

logging.basicConfig(level=config.LOG_LEVEL, format='%(asctime)s %(levelname)s %(name)s: %(message)s')

app = FastAPI(title='SIGPEF API', version=config.APP_VERSION)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


@app.on_event('startup')
def initialize_database() -> None:
    config.validate_runtime_config()
    try:
        Base.metadata.create_all(bind=engine)
        ensure_appointment_schema()
        ensure_attendance_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and Postgres credentials.')


@app.get('/')
def root():
    return {'status': 'SIGPEF API Running', 'version': config.APP_VERSION}


app.include_router(auth_routes.router, prefix='/auth')
app.include_router(appointment_routes.router, prefix='/appointments')
app.include_router(attendance_routes.router, prefix='/attendance')
app.include_router(report_routes.router, prefix='/reports')
app.include_router(import_routes.router, prefix='/imports')
app.include_router(admin_routes.router, prefix='/admin')
app.include_router(message_routes.router, prefix='/messages')
app.include_router(legacy_routes.router, prefix='/legacy')
