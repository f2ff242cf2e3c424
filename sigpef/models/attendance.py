"""Attendance (controle de presença) model definitions."""

from sqlalchemy import Column, Date, Integer, String

from sigpef.database import Base


class AttendanceRecord(Base):
    """Check-in and check-out of an expert on an examination day."""
    __tablename__ = "controle_presenca"

    id = Column(Integer, primary_key=True)
    data_pericia = Column(Date, nullable=False)
    perito = Column(String, nullable=False)
    vara = Column(String, default='')
    sala = Column(String, default='')
    hora_chegada = Column(String(5))
    hora_saida = Column(String(5))
