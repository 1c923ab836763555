"""
Errores de negocio del backend.

Cada error conoce su código HTTP; main.py los traduce a
{"status": "error", "message": ...} con un único exception handler.
"""
from typing import List, Optional


class ServiceError(Exception):
    status_code = 500
    default_message = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"status": "error", "message": self.message}


class ValidationError(ServiceError):
    """Datos del cliente inválidos (campos faltantes, email, status)."""

    status_code = 400
    default_message = "Invalid request"


class VerificationFailed(ServiceError):
    """reCAPTCHA rechazó el token. Incluye los error-codes del proveedor."""

    status_code = 400
    default_message = "reCAPTCHA verification failed"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = list(errors or [])

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.errors:
            data["errors"] = self.errors
        return data


class AlreadySubscribed(ServiceError):
    status_code = 400
    default_message = "This email is already subscribed"


class NotFound(ServiceError):
    status_code = 404
    default_message = "Not found"


class InfrastructureError(ServiceError):
    """Fallo de base de datos, red o transporte de email."""

    status_code = 500
    default_message = "Internal server error"
