"""Appointment (perícia) model definitions."""

from datetime import datetime

from sqlalchemy import Column, Date, DateTime, Integer, String, UniqueConstraint

from sigpef.database import Base


class ObservationStatus:
    """Outcome values stored in ``observacao``. Empty means pending."""

    PENDING = ''
    COMPARECEU = 'COMPARECEU'
    NAO_COMPARECEU = 'NAO COMPARECEU'
    FALECIMENTO = 'FALECIMENTO'

    RECORDED = (COMPARECEU, NAO_COMPARECEU, FALECIMENTO)
    ALL = (PENDING,) + RECORDED


PENDING_FILTER_LABELS = frozenset({'PENDENTE', 'PENDING'})


class Appointment(Base):
    """Represents a scheduled forensic examination."""
    __tablename__ = "pericias"
    __table_args__ = (
        UniqueConstraint("periciado", "data_pericia", name="uq_pericias_periciado_data"),
    )

    id = Column(Integer, primary_key=True)
    data_pericia = Column(Date, nullable=False, index=True)
    perito = Column(String, nullable=False, default='')
    especialidade = Column(String, nullable=False, default='')
    periciado = Column(String, nullable=False)
    observacao = Column(String, nullable=False, default='')
    import_batch_id = Column(String(64), index=True)
    created_at = Column(DateTime, default=datetime.now)
