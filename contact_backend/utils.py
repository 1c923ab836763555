import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

SUBMISSION_FIELDS = ("name", "email", "company", "phone", "message", "recaptcha_response")


def first_value(value: Any, default: str = "") -> str:
    """
    Devuelve el primer valor de un campo de formulario como string.

    Los formularios multipart pueden repetir una clave, así que un campo puede
    llegar como escalar o como lista. Si es lista gana el primero.

    Ejemplos:
    - "Ana" -> "Ana"
    - ["Ana", "Beto"] -> "Ana"
    - [] -> default
    - None -> default
    """
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if value is None:
        return default
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if not isinstance(value, (str, int, float, bool)):
        # Archivos subidos u otros objetos: se ignoran
        return default
    return str(value)


def _get_all(form: Mapping, key: str) -> Any:
    # FormData / MultiDict de Starlette exponen getlist()
    getlist = getattr(form, "getlist", None)
    if callable(getlist):
        return getlist(key)
    return form.get(key)


def normalize_submission_fields(form: Mapping) -> Dict[str, str]:
    """Aplana los campos del formulario de contacto a strings."""
    fields = {name: first_value(_get_all(form, name)) for name in SUBMISSION_FIELDS}
    fields["agreement"] = first_value(_get_all(form, "agreement"), default="false")
    return fields


def linear_backoff(base_seconds: float) -> Callable[[int], float]:
    """Demora base * intento: 2s, 4s, 6s... para base=2."""

    def _delay(attempt: int) -> float:
        return base_seconds * attempt

    return _delay


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int,
    delay: Callable[[int], float],
    operation_name: str = "operation",
    sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
) -> T:
    """
    Ejecuta `operation` hasta `max_attempts` veces.

    Entre intentos espera delay(intento) segundos. Si se agotan los intentos
    relanza el último error.
    """
    sleep = sleep or asyncio.sleep
    last_error: Optional[BaseException] = None

    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except Exception as e:
            last_error = e
            logger.error(f"[Retry] {operation_name} falló (intento {attempt}/{max_attempts}): {e}")

            if attempt == max_attempts:
                break

            wait = delay(attempt)
            logger.info(f"[Retry] Reintentando {operation_name} en {wait:.1f}s...")
            await sleep(wait)

    if last_error is None:
        raise RuntimeError(f"{operation_name}: max_attempts debe ser >= 1")
    raise last_error
