import re
from typing import Mapping

from .errors import ValidationError
from .utils import SUBMISSION_FIELDS

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
MAX_EMAIL_LENGTH = 254


def is_valid_email(email: str) -> bool:
    if not email or len(email) > MAX_EMAIL_LENGTH:
        return False
    return EMAIL_PATTERN.match(email) is not None


def validate_submission(fields: Mapping[str, str], require_agreement: bool = True) -> None:
    """
    Valida el formulario de contacto ya normalizado.

    Orden: campos obligatorios, después el checkbox de términos (si está
    habilitado por configuración).
    """
    if any(not (fields.get(name) or "").strip() for name in SUBMISSION_FIELDS):
        raise ValidationError("All fields are required")

    if require_agreement and fields.get("agreement") != "true":
        raise ValidationError("You must agree to the terms")


def validate_newsletter_email(email: str) -> str:
    """Devuelve el email normalizado (trim + minúsculas) o lanza ValidationError."""
    normalized = (email or "").strip().lower()
    if not is_valid_email(normalized):
        raise ValidationError("Invalid email")
    return normalized
