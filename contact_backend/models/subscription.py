import enum

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, func, text
from sqlalchemy.orm import relationship

from ..database import Base


class SubscriptionStatus(str, enum.Enum):
    ACTIVE = "active"
    UNSUBSCRIBED = "unsubscribed"


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    subscriber_id = Column(
        Integer,
        ForeignKey("subscribers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status = Column(String(20), default=SubscriptionStatus.ACTIVE.value, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    unsubscribed_at = Column(DateTime, nullable=True)

    subscriber = relationship("Subscriber", back_populates="subscriptions")

    __table_args__ = (
        # Como máximo una suscripción activa por suscriptor
        Index(
            "uq_subscriptions_one_active",
            "subscriber_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )
