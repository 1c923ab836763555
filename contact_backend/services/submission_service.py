"""
Persistencia de los envíos del formulario de contacto.
"""
import logging
from typing import List, Mapping, Union

from sqlalchemy import desc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import InfrastructureError, NotFound, ValidationError
from ..models.submission import Submission, SubmissionStatus

logger = logging.getLogger(__name__)


def parse_status(value: Union[str, SubmissionStatus]) -> SubmissionStatus:
    """Convierte el status recibido al enum cerrado, o lanza ValidationError."""
    try:
        return SubmissionStatus(value)
    except ValueError:
        raise ValidationError("Invalid status")


def insert_submission(db: Session, fields: Mapping[str, str]) -> Submission:
    """
    Inserta un envío. No hay restricción de unicidad: los duplicados se aceptan.
    El timestamp lo asigna la base.
    """
    submission = Submission(
        name=fields["name"],
        email=fields["email"],
        company=fields["company"],
        phone=fields["phone"],
        message=fields["message"],
        agreement=fields.get("agreement") == "true",
        status=SubmissionStatus.NEW.value,
    )
    try:
        db.add(submission)
        db.commit()
        db.refresh(submission)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error de base de datos guardando envío: {e}", exc_info=True)
        raise InfrastructureError("Database error") from e

    logger.info(f"Envío guardado en la base de datos: id={submission.id}")
    return submission


def list_submissions(db: Session) -> List[Submission]:
    return (
        db.query(Submission)
        .order_by(desc(Submission.created_at), desc(Submission.id))
        .all()
    )


def update_submission_status(
    db: Session, submission_id: int, status: Union[str, SubmissionStatus]
) -> int:
    """Cambia el status de un envío. Devuelve la cantidad de filas afectadas."""
    new_status = parse_status(status)

    try:
        affected = (
            db.query(Submission)
            .filter(Submission.id == submission_id)
            .update({Submission.status: new_status.value}, synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error actualizando envío {submission_id}: {e}", exc_info=True)
        raise InfrastructureError("Database error") from e

    if affected == 0:
        raise NotFound("Submission not found")

    logger.info(f"Envío {submission_id} actualizado a {new_status.value}")
    return affected


def delete_submission(db: Session, submission_id: int) -> int:
    try:
        affected = (
            db.query(Submission)
            .filter(Submission.id == submission_id)
            .delete(synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error eliminando envío {submission_id}: {e}", exc_info=True)
        raise InfrastructureError("Database error") from e

    if affected == 0:
        raise NotFound("Submission not found")

    logger.info(f"Envío {submission_id} eliminado")
    return affected
