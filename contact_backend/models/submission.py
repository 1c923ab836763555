import enum

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, func

from ..database import Base


class SubmissionStatus(str, enum.Enum):
    NEW = "New"
    CONTACTED = "Contacted"
    CLOSED = "Closed"


class Submission(Base):
    __tablename__ = "submissions"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, index=True)
    company = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=False)
    message = Column(Text, nullable=False)
    # Esquema viejo: checkbox de términos aceptados
    agreement = Column(Boolean, default=False, nullable=False)
    # Esquema nuevo: New -> Contacted -> Closed (lo cambia el admin)
    status = Column(String(20), default=SubmissionStatus.NEW.value, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False, index=True)
