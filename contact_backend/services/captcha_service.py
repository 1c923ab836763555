"""
Servicio de verificación de reCAPTCHA (Google).
Documentación: https://developers.google.com/recaptcha/docs/verify

Soporta los dos modos que usa el frontend:
- checkbox (v2): alcanza con success=true
- score (v3): success=true, score >= umbral y action esperada
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

import httpx

from ..config import Settings
from ..errors import InfrastructureError, VerificationFailed

logger = logging.getLogger(__name__)

MODE_CHECKBOX = "checkbox"
MODE_SCORE = "score"

TIMEOUT_OR_DUPLICATE = "timeout-or-duplicate"
EXPIRED_TOKEN_MESSAGE = "reCAPTCHA token has expired or was already used. Please try again."


@dataclass
class CaptchaResult:
    success: bool
    score: Optional[float] = None
    action: Optional[str] = None
    hostname: Optional[str] = None
    error_codes: List[str] = field(default_factory=list)

    @classmethod
    def from_response(cls, data: dict) -> "CaptchaResult":
        score = data.get("score")
        codes = data.get("error-codes") or []
        if isinstance(codes, str):
            codes = [codes]
        return cls(
            success=data.get("success") is True,
            score=float(score) if score is not None else None,
            action=data.get("action"),
            hostname=data.get("hostname"),
            error_codes=[str(code) for code in codes],
        )


class RecaptchaVerifier:
    """Verifica tokens contra el endpoint siteverify usando un cliente httpx compartido."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        secret: str,
        mode: str = MODE_CHECKBOX,
        min_score: float = 0.5,
        expected_action: str = "submit_form",
        verify_url: str = "https://www.google.com/recaptcha/api/siteverify",
    ):
        if mode not in (MODE_CHECKBOX, MODE_SCORE):
            raise ValueError(f"Modo de reCAPTCHA desconocido: {mode}")
        self._client = client
        self._secret = secret
        self.mode = mode
        self.min_score = min_score
        self.expected_action = expected_action
        self.verify_url = verify_url

    @classmethod
    def from_settings(cls, client: httpx.AsyncClient, settings: Settings) -> "RecaptchaVerifier":
        return cls(
            client,
            secret=settings.recaptcha_secret_key,
            mode=settings.recaptcha_mode,
            min_score=settings.recaptcha_min_score,
            expected_action=settings.recaptcha_action,
            verify_url=settings.recaptcha_verify_url,
        )

    async def verify(self, token: str, remote_ip: Optional[str] = None) -> CaptchaResult:
        """
        Verifica el token del cliente.

        Raises:
            VerificationFailed: el proveedor rechazó el token (400)
            InfrastructureError: error de red, status no-2xx o respuesta ilegible (500)
        """
        if not self._secret:
            logger.error("RECAPTCHA_SECRET_KEY no configurada en variables de entorno")
            raise InfrastructureError("reCAPTCHA verification failed")

        payload = {"secret": self._secret, "response": token}
        if remote_ip:
            payload["remoteip"] = remote_ip

        try:
            response = await self._client.post(self.verify_url, data=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            logger.error(f"[reCAPTCHA] Timeout verificando token: {e}")
            raise InfrastructureError("reCAPTCHA verification failed") from e
        except httpx.HTTPStatusError as e:
            logger.error(f"[reCAPTCHA] Status {e.response.status_code}: {e.response.text}")
            raise InfrastructureError("reCAPTCHA verification failed") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"[reCAPTCHA] Error verificando token: {e}")
            raise InfrastructureError("reCAPTCHA verification failed") from e

        if not isinstance(data, dict):
            logger.error(f"[reCAPTCHA] Respuesta inesperada: {data!r}")
            raise InfrastructureError("reCAPTCHA verification failed")

        try:
            result = CaptchaResult.from_response(data)
        except (TypeError, ValueError) as e:
            logger.error(f"[reCAPTCHA] Respuesta ilegible: {data!r} ({e})")
            raise InfrastructureError("reCAPTCHA verification failed") from e

        logger.info(
            f"[reCAPTCHA] success={result.success} score={result.score} "
            f"action={result.action} errors={result.error_codes}"
        )
        self._check(result)
        return result

    def _check(self, result: CaptchaResult) -> None:
        if not result.success:
            errors = result.error_codes or ["Unknown error"]
            logger.info(f"[reCAPTCHA] Verificación rechazada: {errors}")
            if TIMEOUT_OR_DUPLICATE in errors:
                raise VerificationFailed(EXPIRED_TOKEN_MESSAGE, errors)
            raise VerificationFailed("reCAPTCHA verification failed", errors)

        if self.mode != MODE_SCORE:
            return

        errors = []
        if result.score is None or result.score < self.min_score:
            errors.append("low-score")
        if result.action != self.expected_action:
            errors.append("action-mismatch")
        if errors:
            logger.info(
                f"[reCAPTCHA] Token válido pero rechazado por política: "
                f"score={result.score} action={result.action}"
            )
            raise VerificationFailed("reCAPTCHA verification failed", errors)
