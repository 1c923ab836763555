"""
Suscripciones al newsletter.

Un Subscriber es único por email y puede tener varias Subscription a lo largo
del tiempo, pero como máximo una con status=active. Eso se controla dos veces:
- chequeo previo dentro de la transacción (para devolver un error amigable)
- índice único parcial en la base (para el caso de dos requests simultáneas)
"""
import logging
from datetime import datetime
from typing import List

from sqlalchemy import desc, func, literal
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import AlreadySubscribed, InfrastructureError, NotFound
from ..models.subscriber import Subscriber
from ..models.subscription import Subscription, SubscriptionStatus

logger = logging.getLogger(__name__)

# Los suscriptores sin ninguna suscripción van al final del listado
NO_SUBSCRIPTION_SENTINEL = datetime(1970, 1, 1)


def find_subscriber_id(db: Session, email: str):
    return db.query(Subscriber.id).filter(Subscriber.email == email).scalar()


def upsert_subscriber(db: Session, email: str) -> int:
    """Devuelve el id del suscriptor con ese email, creándolo si no existe."""
    existing = find_subscriber_id(db, email)
    if existing is not None:
        return existing

    try:
        with db.begin_nested():
            subscriber = Subscriber(email=email)
            db.add(subscriber)
            db.flush()
        return subscriber.id
    except IntegrityError:
        # Otra request lo creó entre el SELECT y el INSERT
        logger.info(f"Suscriptor {email} creado en paralelo, reutilizando")
        return find_subscriber_id(db, email)


def has_active_subscription(db: Session, subscriber_id: int) -> bool:
    row = (
        db.query(Subscription.id)
        .filter(
            Subscription.subscriber_id == subscriber_id,
            Subscription.status == SubscriptionStatus.ACTIVE.value,
        )
        .first()
    )
    return row is not None


def create_active_subscription(db: Session, subscriber_id: int) -> Subscription:
    subscription = Subscription(
        subscriber_id=subscriber_id,
        status=SubscriptionStatus.ACTIVE.value,
    )
    db.add(subscription)
    db.flush()
    return subscription


def subscribe(db: Session, email: str) -> Subscription:
    """
    Alta en el newsletter en una sola transacción:
    upsert del suscriptor + chequeo de suscripción activa + insert.

    Raises:
        AlreadySubscribed: ya tiene una suscripción activa
        InfrastructureError: cualquier otro error de base de datos
    """
    try:
        subscriber_id = upsert_subscriber(db, email)
        if has_active_subscription(db, subscriber_id):
            raise AlreadySubscribed()
        subscription = create_active_subscription(db, subscriber_id)
        db.commit()
    except AlreadySubscribed:
        db.rollback()
        logger.info(f"Newsletter: {email} ya tiene una suscripción activa")
        raise
    except IntegrityError as e:
        db.rollback()
        logger.info(f"Newsletter: suscripción duplicada detectada por la base para {email}")
        raise AlreadySubscribed() from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error al procesar la suscripción de {email}: {e}", exc_info=True)
        raise InfrastructureError("Database error") from e

    db.refresh(subscription)
    logger.info(f"Newsletter: nueva suscripción id={subscription.id} para {email}")
    return subscription


def unsubscribe(db: Session, email: str) -> Subscription:
    """Da de baja la suscripción activa del email."""
    try:
        subscription = (
            db.query(Subscription)
            .join(Subscriber, Subscription.subscriber_id == Subscriber.id)
            .filter(
                Subscriber.email == email,
                Subscription.status == SubscriptionStatus.ACTIVE.value,
            )
            .first()
        )
        if subscription is None:
            raise NotFound("No active subscription for this email")

        subscription.status = SubscriptionStatus.UNSUBSCRIBED.value
        subscription.unsubscribed_at = func.now()
        db.commit()
    except NotFound:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error al dar de baja {email}: {e}", exc_info=True)
        raise InfrastructureError("Database error") from e

    db.refresh(subscription)
    logger.info(f"Newsletter: baja de {email} (suscripción {subscription.id})")
    return subscription


def list_subscribers_with_subscription(db: Session) -> List[dict]:
    """
    Suscriptores con su(s) suscripción(es), más recientes primero.
    LEFT JOIN: también aparecen suscriptores sin ninguna suscripción.
    """
    rows = (
        db.query(
            Subscriber.id,
            Subscriber.email,
            Subscriber.created_at,
            Subscription.id.label("subscription_id"),
            Subscription.status,
            Subscription.created_at.label("subscribed_at"),
            Subscription.unsubscribed_at,
        )
        .outerjoin(Subscription, Subscription.subscriber_id == Subscriber.id)
        .order_by(
            desc(func.coalesce(Subscription.created_at, literal(NO_SUBSCRIPTION_SENTINEL))),
            desc(Subscriber.id),
        )
        .all()
    )
    return [
        {
            "id": row.id,
            "email": row.email,
            "created_at": row.created_at,
            "subscription_id": row.subscription_id,
            "status": row.status,
            "subscribed_at": row.subscribed_at,
            "unsubscribed_at": row.unsubscribed_at,
        }
        for row in rows
    ]


def delete_subscriber(db: Session, subscriber_id: int) -> None:
    """Elimina el suscriptor y (por cascade) todas sus suscripciones."""
    try:
        subscriber = db.query(Subscriber).filter(Subscriber.id == subscriber_id).first()
        if subscriber is None:
            raise NotFound("Subscriber not found")
        db.delete(subscriber)
        db.commit()
    except NotFound:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error eliminando suscriptor {subscriber_id}: {e}", exc_info=True)
        raise InfrastructureError("Database error") from e

    logger.info(f"Suscriptor {subscriber_id} eliminado")
