"""Bulk import batch model definitions."""

from datetime import datetime

from sqlalchemy import Column, DateTime, String

from sigpef.database import Base


class ImportBatch(Base):
    """One uploaded schedule file; rows it produced carry ``batch_id``."""
    __tablename__ = "import_batches"

    batch_id = Column(String(64), primary_key=True)
    file_name = Column(String, nullable=False)
    created_by = Column(String, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.now, nullable=False)
    undone_at = Column(DateTime)
