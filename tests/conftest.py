import os
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from sigpef.auth.capabilities import resolve_capabilities  # noqa: E402
from sigpef.database import Base  # noqa: E402
from sigpef.models import appointment, attendance, import_batch, message, user  # noqa: E402,F401
from sigpef.models.user import UserProfile  # noqa: E402


@pytest.fixture
def sigpef_db():
    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def make_profile(sigpef_db):
    def _make_profile(email: str = 'editor@sigpef.jus.br', role: str = 'editor', approved: bool = True,
                      full_name: str = 'Editor Teste', hashed_password: str = 'not-a-hash') -> UserProfile:
        profile = UserProfile(
            email=email,
            full_name=full_name,
            hashed_password=hashed_password,
            role=role,
            approved=approved,
        )
        sigpef_db.add(profile)
        sigpef_db.commit()
        sigpef_db.refresh(profile)
        return profile

    return _make_profile


def capabilities_for(role: str, email: str | None = None, approved: bool = True):
    return resolve_capabilities(SimpleNamespace(email=email or f'{role}@sigpef.jus.br', role=role, approved=approved))


@pytest.fixture
def editor():
    return capabilities_for('editor')


@pytest.fixture
def admin():
    return capabilities_for('admin')


@pytest.fixture
def viewer():
    return capabilities_for('viewer')
