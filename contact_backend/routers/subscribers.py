from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..schemas.common_schema import ErrorResponse, StatusResponse
from ..schemas.newsletter_schema import SubscriberOut
from ..services import subscription_service

router = APIRouter(prefix="/subscribers", tags=["admin"])


@router.get("", response_model=List[SubscriberOut])
def list_subscribers(db: Session = Depends(get_db)):
    """
    Suscriptores con su suscripción (LEFT JOIN).
    Un suscriptor con varias altas/bajas aparece una vez por suscripción.
    """
    return subscription_service.list_subscribers_with_subscription(db)


@router.delete(
    "/{subscriber_id}",
    response_model=StatusResponse,
    responses={404: {"model": ErrorResponse}},
)
def delete_subscriber(subscriber_id: int, db: Session = Depends(get_db)):
    subscription_service.delete_subscriber(db, subscriber_id)
    return StatusResponse(status="success", message="Subscriber deleted")
