from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from ..models.submission import SubmissionStatus


class SubmissionOut(BaseModel):
    id: int
    name: str
    email: str
    company: str
    phone: str
    message: str
    agreement: bool
    status: SubmissionStatus
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class SubmissionStatusUpdate(BaseModel):
    # Enum cerrado: cualquier otro valor se rechaza con 400 antes de tocar la base
    status: SubmissionStatus
