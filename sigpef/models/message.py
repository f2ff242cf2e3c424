"""Broadcast message and audit log model definitions."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String, Text

from sigpef.database import Base


class GlobalMessage(Base):
    """Notice broadcast by an admin to every user."""
    __tablename__ = "global_messages"

    id = Column(Integer, primary_key=True)
    message = Column(Text, nullable=False)
    created_by = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.now, index=True)


class LogEntry(Base):
    """Audit trail entry."""
    __tablename__ = "system_logs"

    id = Column(Integer, primary_key=True)
    user_email = Column(String, nullable=False, index=True)
    action = Column(String, nullable=False)
    details = Column(Text, default='')
    ip_address = Column(String)
    created_at = Column(DateTime, default=datetime.now, index=True)
