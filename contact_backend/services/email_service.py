"""
Servicio de Email usando Resend
Documentación: https://resend.com/docs

El envío es best-effort: se agenda después de confirmar la transacción y la
respuesta HTTP no depende de su resultado. No hay outbox persistido, así que
si el proceso se cae en medio de los reintentos el email se pierde.
"""
import asyncio
import html
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set
from urllib.parse import quote

import resend

from ..config import Settings
from ..utils import linear_backoff, retry_async

logger = logging.getLogger(__name__)


@dataclass
class EmailMessage:
    to: List[str]
    subject: str
    html: str
    text: str
    headers: Dict[str, str] = field(default_factory=dict)
    reply_to: Optional[List[str]] = None
    correlation_id: Optional[str] = None


def _resend_transport(params: dict) -> dict:
    return resend.Emails.send(params)


class EmailNotifier:
    """
    Envía emails a través de Resend.

    - Un solo envío a la vez en todo el proceso y como máximo
      EMAIL_RATE_LIMIT mensajes por segundo (para no ser bloqueados por el proveedor)
    - Hasta EMAIL_MAX_ATTEMPTS intentos con espera lineal (2s, 4s, ...)
    """

    def __init__(
        self,
        settings: Settings,
        transport: Optional[Callable[[dict], dict]] = None,
        sleep: Optional[Callable[[float], object]] = None,
    ):
        self._api_key = settings.resend_api_key
        self._from_email = settings.mail_from
        self._default_reply_to = settings.reply_to
        self._max_attempts = max(1, settings.email_max_attempts)
        self._delay = linear_backoff(settings.email_retry_delay_ms / 1000)
        rate = settings.email_rate_limit
        self._min_interval = 1.0 / rate if rate > 0 else 0.0
        self._transport = transport or _resend_transport
        self._custom_transport = transport is not None
        self._sleep = sleep or asyncio.sleep
        self._send_lock = asyncio.Semaphore(1)
        self._last_sent_at: Optional[float] = None
        self._tasks: Set[asyncio.Task] = set()

    def is_configured(self) -> bool:
        """Con un transport inyectado no hace falta la API key."""
        return self._custom_transport or bool(self._api_key)

    def verify(self) -> bool:
        if not self.is_configured():
            logger.warning("RESEND_API_KEY no configurada en variables de entorno, no se enviarán emails")
            return False
        if not self._custom_transport:
            resend.api_key = self._api_key
        logger.info(f"Servicio de email configurado (from: {self._from_email})")
        return True

    def dispatch(self, message: EmailMessage) -> None:
        """Agenda el envío en background y vuelve inmediatamente."""
        task = asyncio.create_task(self.deliver(message))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def deliver(self, message: EmailMessage) -> bool:
        """
        Envía el email con reintentos.

        Returns:
            bool: True si se envió, False si no está configurado o se agotaron los intentos
        """
        if not self.is_configured():
            logger.warning(f"Servicio de email no configurado, no se enviará {message.correlation_id or message.subject}")
            return False

        params = self._build_params(message)

        async def _attempt():
            return await self._send_once(params)

        try:
            response = await retry_async(
                _attempt,
                max_attempts=self._max_attempts,
                delay=self._delay,
                operation_name=f"email {message.correlation_id or message.subject}",
                sleep=self._sleep,
            )
        except Exception as e:
            logger.error(
                f"No se pudo enviar el email {message.correlation_id} a {', '.join(message.to)} "
                f"después de {self._max_attempts} intentos: {e}"
            )
            return False

        email_id = response.get("id", "N/A") if isinstance(response, dict) else "N/A"
        logger.info(f"Email enviado exitosamente a {', '.join(message.to)}. ID: {email_id}")
        return True

    async def aclose(self) -> None:
        """Espera los envíos en curso (apagado ordenado)."""
        if self._tasks:
            logger.info(f"Esperando {len(self._tasks)} envío(s) de email pendientes...")
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _send_once(self, params: dict) -> dict:
        async with self._send_lock:
            loop = asyncio.get_running_loop()
            if self._last_sent_at is not None and self._min_interval:
                wait = self._last_sent_at + self._min_interval - loop.time()
                if wait > 0:
                    await asyncio.sleep(wait)
            try:
                return await asyncio.to_thread(self._transport, params)
            finally:
                self._last_sent_at = loop.time()

    def _build_params(self, message: EmailMessage) -> dict:
        params = {
            "from": self._from_email,
            "to": message.to,
            "subject": message.subject,
            "html": message.html,
            "text": message.text,
        }
        headers = dict(message.headers)
        if message.correlation_id:
            headers.setdefault("X-Entity-Ref-ID", message.correlation_id)
        if headers:
            params["headers"] = headers

        reply_to = message.reply_to or ([self._default_reply_to] if self._default_reply_to else None)
        if reply_to:
            params["reply_to"] = reply_to
        return params


# --- Plantillas ---

def _layout(title: str, body_html: str, footer: str = "") -> str:
    return f"""
        <!DOCTYPE html>
        <html>
        <head>
            <meta charset="utf-8">
            <meta name="viewport" content="width=device-width, initial-scale=1.0">
        </head>
        <body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; line-height: 1.6; color: #1f2937; max-width: 640px; margin: 0 auto; padding: 24px; background: #f9fafb;">
            <div style="background: #0f172a; color: white; padding: 20px; border-radius: 12px 12px 0 0; text-align: center;">
                <h1 style="margin: 0; font-size: 20px;">{title}</h1>
            </div>
            <div style="background: white; padding: 24px; border: 1px solid #e5e7eb; border-top: none; border-radius: 0 0 12px 12px;">
                {body_html}
            </div>
            <p style="text-align: center; color: #9ca3af; font-size: 12px; margin-top: 12px;">{footer}</p>
        </body>
        </html>
        """


def build_submission_confirmation(submission) -> EmailMessage:
    """Confirmación al usuario que completó el formulario de contacto."""
    name = html.escape(submission.name)
    message = html.escape(submission.message)

    body = f"""
                <p style="font-size: 16px;">Hi <strong>{name}</strong>,</p>
                <p>Thanks for reaching out. We received your message and will get back to you shortly.</p>
                <h3 style="margin: 16px 0 8px 0; color: #111827;">Your message</h3>
                <div style="padding: 12px; background: #f3f4f6; border-radius: 8px; color: #374151; white-space: pre-wrap;">{message}</div>
    """

    text = f"""
Hi {submission.name},

Thanks for reaching out. We received your message and will get back to you shortly.

Your message:
{submission.message}
        """

    return EmailMessage(
        to=[submission.email],
        subject="We received your message",
        html=_layout("Thanks for contacting us", body, footer=f"Reference #{submission.id}"),
        text=text,
        correlation_id=f"submission-{submission.id}",
    )


def build_submission_alert(submission, admin_emails: List[str]) -> EmailMessage:
    """Aviso a los admins. Reply-To es el email del usuario para responderle directo."""
    rows = [
        ("Name", submission.name),
        ("Email", submission.email),
        ("Company", submission.company),
        ("Phone", submission.phone),
    ]
    rows_html = "".join(
        f'<tr><td style="padding: 6px 0; color: #6b7280;">{label}</td>'
        f'<td style="padding: 6px 0; font-weight: 600;">{html.escape(value)}</td></tr>'
        for label, value in rows
    )
    body = f"""
                <table style="width: 100%; border-collapse: collapse; margin-bottom: 16px;">{rows_html}</table>
                <h3 style="margin: 0 0 8px 0; color: #111827;">Message</h3>
                <div style="padding: 12px; background: #f3f4f6; border-radius: 8px; color: #374151; white-space: pre-wrap;">{html.escape(submission.message)}</div>
    """
    text = "\n".join(f"{label}: {value}" for label, value in rows)
    text += f"\n\nMessage:\n{submission.message}\n"

    return EmailMessage(
        to=list(admin_emails),
        subject=f"New contact submission: {submission.name}",
        html=_layout("📨 New contact submission", body, footer=f"Submission #{submission.id}"),
        text=text,
        reply_to=[submission.email],
        correlation_id=f"submission-{submission.id}",
    )


def build_newsletter_welcome(
    email: str,
    subscription_id: int,
    unsubscribe_email: Optional[str] = None,
    site_url: Optional[str] = None,
) -> EmailMessage:
    """Bienvenida al newsletter con header List-Unsubscribe."""
    unsubscribe_targets = []
    unsubscribe_link = None
    if site_url:
        unsubscribe_link = f"{site_url}/unsubscribe?email={quote(email)}"
        unsubscribe_targets.append(f"<{unsubscribe_link}>")
    if unsubscribe_email:
        unsubscribe_targets.append(f"<mailto:{unsubscribe_email}?subject=unsubscribe>")

    headers = {}
    if unsubscribe_targets:
        headers["List-Unsubscribe"] = ", ".join(unsubscribe_targets)

    footer = "You are receiving this email because you subscribed to our newsletter."
    if unsubscribe_link:
        footer += f' <a href="{html.escape(unsubscribe_link)}" style="color: #9ca3af;">Unsubscribe</a>'

    body = """
                <p style="font-size: 16px;">Welcome aboard!</p>
                <p>You're now subscribed to our newsletter. We'll keep you posted on news and updates.</p>
    """
    text = """
Welcome aboard!

You're now subscribed to our newsletter. We'll keep you posted on news and updates.
        """
    if unsubscribe_link:
        text += f"\nUnsubscribe: {unsubscribe_link}\n"

    return EmailMessage(
        to=[email],
        subject="Welcome to our newsletter",
        html=_layout("Thanks for subscribing 🎉", body, footer=footer),
        text=text,
        headers=headers,
        correlation_id=f"subscription-{subscription_id}",
    )
