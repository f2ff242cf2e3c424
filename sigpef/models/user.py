"""User profile model definitions."""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, String

from sigpef.database import Base


USER_ROLES = ('admin', 'editor', 'viewer')


class UserProfile(Base):
    """Represents an application user and its access level."""
    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String, default='')
    hashed_password = Column(String, nullable=False)
    role = Column(String, nullable=False, default='viewer')  # admin/editor/viewer
    approved = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.now)
