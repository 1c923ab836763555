from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..schemas.common_schema import ErrorResponse, StatusResponse
from ..schemas.submission_schema import SubmissionOut, SubmissionStatusUpdate
from ..services import submission_service

router = APIRouter(prefix="/submissions", tags=["admin"])


@router.get("", response_model=List[SubmissionOut])
def list_submissions(db: Session = Depends(get_db)):
    """Listado de envíos del formulario, más recientes primero."""
    return submission_service.list_submissions(db)


@router.put(
    "/{submission_id}",
    response_model=StatusResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def update_submission(submission_id: int, payload: SubmissionStatusUpdate, db: Session = Depends(get_db)):
    submission_service.update_submission_status(db, submission_id, payload.status)
    return StatusResponse(status="success", message="Status updated")


@router.delete(
    "/{submission_id}",
    response_model=StatusResponse,
    responses={404: {"model": ErrorResponse}},
)
def delete_submission(submission_id: int, db: Session = Depends(get_db)):
    submission_service.delete_submission(db, submission_id)
    return StatusResponse(status="success", message="Submission deleted")
