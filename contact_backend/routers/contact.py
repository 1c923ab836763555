import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from ..database import get_db
from ..errors import InfrastructureError
from ..schemas.common_schema import ErrorResponse, StatusResponse
from ..services.email_service import build_submission_alert, build_submission_confirmation
from ..services.submission_service import insert_submission
from ..utils import normalize_submission_fields
from ..validation import validate_submission

logger = logging.getLogger(__name__)

router = APIRouter(tags=["contact"])


@router.post(
    "/submit",
    response_model=StatusResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def submit_contact(request: Request, db: Session = Depends(get_db)):
    """
    Formulario de contacto (multipart).

    Flujo: normalizar campos -> validar -> verificar reCAPTCHA -> guardar ->
    agendar emails. Los emails no afectan la respuesta.
    """
    state = request.app.state

    try:
        form = await request.form()
    except Exception as e:
        logger.error(f"Error parseando el formulario: {e}", exc_info=True)
        raise InfrastructureError("Form parsing failed") from e

    fields = normalize_submission_fields(form)
    logger.info(
        "Campos recibidos: "
        f"name={fields['name']!r} email={fields['email']!r} company={fields['company']!r} "
        f"recaptcha_response={fields['recaptcha_response'][:10]}... agreement={fields['agreement']!r}"
    )

    validate_submission(fields, require_agreement=state.settings.require_agreement)

    remote_ip = request.client.host if request.client else None
    await state.captcha_verifier.verify(fields["recaptcha_response"], remote_ip=remote_ip)

    submission = await run_in_threadpool(insert_submission, db, fields)

    notifier = state.notifier
    notifier.dispatch(build_submission_confirmation(submission))
    admin_emails = state.settings.notification_emails
    if admin_emails:
        notifier.dispatch(build_submission_alert(submission, admin_emails))

    return StatusResponse(status="success", message="Form submitted successfully")
