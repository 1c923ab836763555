"""
Modelo para suscriptores del newsletter.
Un suscriptor es único por email; sus altas y bajas viven en Subscription.
"""
from sqlalchemy import Column, Integer, String, DateTime, func
from sqlalchemy.orm import relationship

from ..database import Base


class Subscriber(Base):
    __tablename__ = "subscribers"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    subscriptions = relationship(
        "Subscription",
        back_populates="subscriber",
        cascade="all, delete-orphan",
    )
