import os
from typing import List, Optional

from sqlalchemy.engine import URL

RECAPTCHA_VERIFY_URL = "https://www.google.com/recaptcha/api/siteverify"


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _get_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Configuración de la aplicación que lee variables de entorno dinámicamente."""

    @property
    def app_name(self) -> str:
        return "Contact Web Backend"

    @property
    def environment(self) -> str:
        env = os.getenv("ENV", "").lower()
        if env == "production":
            return "production"
        return env or "development"

    @property
    def port(self) -> int:
        return int(os.getenv("PORT", "5000"))

    @property
    def log_level(self) -> str:
        return os.getenv("LOG_LEVEL", "INFO").upper()

    @property
    def cors_origins(self) -> List[str]:
        origins = _split_csv(os.getenv("CORS_ORIGIN", ""))
        return origins or ["http://localhost:5175"]

    # --- Base de datos ---

    @property
    def database_url(self) -> str:
        """
        URL de conexión de SQLAlchemy.

        Prioridad:
        1. DATABASE_URL explícita
        2. Construida a partir de DB_HOST / DB_USER / DB_PASSWORD / DB_NAME / DB_PORT
        3. SQLite local para desarrollo
        """
        explicit = os.getenv("DATABASE_URL", "").strip()
        if explicit:
            return explicit

        host = os.getenv("DB_HOST", "").strip()
        if host:
            port = os.getenv("DB_PORT", "").strip()
            url = URL.create(
                drivername=os.getenv("DB_DRIVER", "postgresql+psycopg2"),
                username=os.getenv("DB_USER") or None,
                password=os.getenv("DB_PASSWORD") or None,
                host=host,
                port=int(port) if port else None,
                database=os.getenv("DB_NAME") or None,
            )
            return url.render_as_string(hide_password=False)

        return "sqlite:///./contact_backend.db"

    @property
    def db_pool_size(self) -> int:
        return int(os.getenv("DB_POOL_SIZE", "10"))

    # --- reCAPTCHA ---

    @property
    def recaptcha_secret_key(self) -> str:
        return os.getenv("RECAPTCHA_SECRET_KEY", "")

    @property
    def recaptcha_mode(self) -> str:
        # "checkbox" (v2) o "score" (v3)
        return os.getenv("RECAPTCHA_MODE", "checkbox").strip().lower()

    @property
    def recaptcha_min_score(self) -> float:
        return float(os.getenv("RECAPTCHA_MIN_SCORE", "0.5"))

    @property
    def recaptcha_action(self) -> str:
        return os.getenv("RECAPTCHA_ACTION", "submit_form")

    @property
    def recaptcha_timeout(self) -> float:
        return float(os.getenv("RECAPTCHA_TIMEOUT", "5"))

    @property
    def recaptcha_verify_url(self) -> str:
        return os.getenv("RECAPTCHA_VERIFY_URL", RECAPTCHA_VERIFY_URL)

    @property
    def require_agreement(self) -> bool:
        return _get_bool("REQUIRE_AGREEMENT", True)

    # --- Email (Resend) ---

    @property
    def resend_api_key(self) -> Optional[str]:
        return os.getenv("RESEND_API_KEY") or None

    @property
    def mail_from(self) -> str:
        return os.getenv("RESEND_FROM_EMAIL", "Website <no-reply@example.com>")

    @property
    def reply_to(self) -> Optional[str]:
        return os.getenv("RESEND_REPLY_TO") or None

    @property
    def notification_emails(self) -> List[str]:
        return _split_csv(os.getenv("NOTIFICATION_EMAILS", ""))

    @property
    def unsubscribe_email(self) -> Optional[str]:
        return os.getenv("UNSUBSCRIBE_EMAIL") or self.reply_to

    @property
    def site_url(self) -> Optional[str]:
        value = os.getenv("SITE_URL", "").strip()
        return value.rstrip("/") if value else None

    @property
    def email_max_attempts(self) -> int:
        return int(os.getenv("EMAIL_MAX_ATTEMPTS", "3"))

    @property
    def email_retry_delay_ms(self) -> int:
        return int(os.getenv("EMAIL_RETRY_DELAY_MS", "2000"))

    @property
    def email_rate_limit(self) -> float:
        # Mensajes por segundo contra el proveedor
        return float(os.getenv("EMAIL_RATE_LIMIT", "5"))


# Instancia singleton de Settings (sin cache, lee valores dinámicamente)
_settings_instance = None


def get_settings() -> Settings:
    """Retorna la instancia de Settings. Lee variables de entorno dinámicamente."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance


def clear_settings_cache():
    """Limpia la instancia de settings (aunque no es necesario con propiedades dinámicas)."""
    global _settings_instance
    _settings_instance = None
