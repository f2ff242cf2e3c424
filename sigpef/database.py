from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from sigpef.core import config


connect_args = {"check_same_thread": False} if config.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(config.DATABASE_URL, echo=config.SQL_ECHO, connect_args=connect_args)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_appointment_schema_checked = False
_attendance_schema_checked = False


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_appointment_schema() -> None:
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    with _schema_lock:
        if _appointment_schema_checked:
            return

        inspector = inspect(engine)

        if 'pericias' not in inspector.get_table_names():
            _appointment_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('pericias')}
        migration_steps = [
            ('import_batch_id', 'ALTER TABLE pericias ADD COLUMN import_batch_id VARCHAR(64)'),
            ('created_at', 'ALTER TABLE pericias ADD COLUMN created_at TIMESTAMP'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_pericias_data ON pericias(data_pericia)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_pericias_batch ON pericias(import_batch_id)')
            )
            connection.execute(
                text(
                    'CREATE UNIQUE INDEX IF NOT EXISTS uq_pericias_periciado_data '
                    'ON pericias(periciado, data_pericia)'
                )
            )

        _appointment_schema_checked = True


def ensure_attendance_schema() -> None:
    global _attendance_schema_checked

    if _attendance_schema_checked:
        return

    with _schema_lock:
        if _attendance_schema_checked:
            return

        inspector = inspect(engine)

        if 'controle_presenca' not in inspector.get_table_names():
            _attendance_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('controle_presenca')}
        migration_steps = [
            ('vara', 'ALTER TABLE controle_presenca ADD COLUMN vara VARCHAR'),
            ('sala', 'ALTER TABLE controle_presenca ADD COLUMN sala VARCHAR'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_presenca_data ON controle_presenca(data_pericia)')
            )

        _attendance_schema_checked = True
