"""
API Router para suscripciones al newsletter.
"""
import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from ..database import get_db
from ..schemas.common_schema import ErrorResponse, StatusResponse
from ..schemas.newsletter_schema import NewsletterRequest
from ..services.email_service import build_newsletter_welcome
from ..services.subscription_service import subscribe, unsubscribe
from ..validation import validate_newsletter_email

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/newsletter", tags=["newsletter"])


@router.post(
    "",
    response_model=StatusResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def subscribe_to_newsletter(
    payload: NewsletterRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    """
    Suscribir un email al newsletter.
    Si ya tiene una suscripción activa responde 400 (AlreadySubscribed).
    """
    email = validate_newsletter_email(payload.email)
    subscription = await run_in_threadpool(subscribe, db, email)

    settings = request.app.state.settings
    request.app.state.notifier.dispatch(
        build_newsletter_welcome(
            email,
            subscription.id,
            unsubscribe_email=settings.unsubscribe_email,
            site_url=settings.site_url,
        )
    )

    return StatusResponse(status="success", message="Subscribed successfully")


@router.post(
    "/unsubscribe",
    response_model=StatusResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def unsubscribe_from_newsletter(payload: NewsletterRequest, db: Session = Depends(get_db)):
    """Baja del newsletter (link del email de bienvenida)."""
    email = validate_newsletter_email(payload.email)
    unsubscribe(db, email)
    return StatusResponse(status="success", message="Unsubscribed successfully")
