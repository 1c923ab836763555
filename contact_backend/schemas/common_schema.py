from typing import List, Optional

from pydantic import BaseModel


class StatusResponse(BaseModel):
    status: str = "success"
    message: Optional[str] = None


class ErrorResponse(BaseModel):
    status: str = "error"
    message: str
    errors: Optional[List[str]] = None
