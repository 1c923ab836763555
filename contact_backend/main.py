import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Callable, Optional

import httpx
import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from .config import Settings, get_settings, clear_settings_cache
from .database import check_connection, create_db_engine, create_session_factory, create_tables
from .errors import ServiceError
from .routers import contact, newsletter, submissions, subscribers
from .services.captcha_service import RecaptchaVerifier
from .services.email_service import EmailNotifier
from .utils import linear_backoff, retry_async

logger = logging.getLogger(__name__)

# Cargar variables de entorno desde .env (solo en desarrollo local)
backend_dir = Path(__file__).parent.parent
env_path = backend_dir / ".env"
if load_dotenv(dotenv_path=env_path):
    clear_settings_cache()

ALLOWED_METHODS = ["GET", "POST", "PUT", "DELETE"]


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _build_lifespan(
    settings: Settings,
    http_transport: Optional[httpx.AsyncBaseTransport],
    email_transport: Optional[Callable[[dict], dict]],
):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # --- Arranque: recursos del proceso ---
        engine = create_db_engine(settings)
        app.state.settings = settings
        app.state.engine = engine
        app.state.session_factory = create_session_factory(engine)

        # No bloquear el inicio si la base no responde
        try:
            await retry_async(
                lambda: run_in_threadpool(create_tables, engine),
                max_attempts=3,
                delay=linear_backoff(1.0),
                operation_name="creación de tablas",
            )
            await run_in_threadpool(check_connection, engine)
            logger.info("✅ Base de datos verificada")
        except Exception as e:
            logger.error(f"❌ Error al preparar la base de datos: {e}", exc_info=True)
            logger.warning("⚠️ El servidor continuará iniciando, pero algunas funcionalidades pueden no estar disponibles")

        http_client = httpx.AsyncClient(timeout=settings.recaptcha_timeout, transport=http_transport)
        app.state.captcha_verifier = RecaptchaVerifier.from_settings(http_client, settings)

        notifier = EmailNotifier(settings, transport=email_transport)
        notifier.verify()
        app.state.notifier = notifier

        logger.info(f"🌐 Orígenes CORS permitidos: {settings.cors_origins}")
        try:
            yield
        finally:
            # --- Apagado ordenado ---
            await notifier.aclose()
            await http_client.aclose()
            engine.dispose()
            logger.info("Recursos liberados")

    return lifespan


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        message = "Invalid request"
        errors = exc.errors()
        if errors:
            loc = [part for part in errors[0].get("loc", ()) if isinstance(part, str)]
            field = loc[-1] if loc else None
            if field and field not in ("body", "query", "path"):
                message = f"Invalid {field}"
        return JSONResponse(status_code=400, content={"status": "error", "message": message})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(f"Error no manejado en {request.method} {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"status": "error", "message": "An unexpected error occurred"},
        )


def create_app(
    settings: Optional[Settings] = None,
    http_transport: Optional[httpx.AsyncBaseTransport] = None,
    email_transport: Optional[Callable[[dict], dict]] = None,
) -> FastAPI:
    """
    Crea la app. Los transports se pueden inyectar para tests
    (reCAPTCHA vía httpx.MockTransport, emails vía un callable).
    """
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        version="0.1.0",
        redirect_slashes=False,
        lifespan=_build_lifespan(settings, http_transport, email_transport),
    )

    allowed_origins = settings.cors_origins

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=False,
        allow_methods=ALLOWED_METHODS,
        allow_headers=["*"],
    )

    # Orígenes fuera de la lista se rechazan antes de llegar al handler.
    # Requests sin Origin (server-to-server) pasan.
    @app.middleware("http")
    async def reject_unknown_origins(request: Request, call_next):
        origin = request.headers.get("origin")
        if origin and origin not in allowed_origins and "*" not in allowed_origins:
            logger.warning(f"Origen rechazado por CORS: {origin}")
            return JSONResponse(
                status_code=403,
                content={"status": "error", "message": "Not allowed by CORS"},
            )
        return await call_next(request)

    _register_error_handlers(app)

    app.include_router(contact.router, prefix="/api")
    app.include_router(newsletter.router, prefix="/api")
    app.include_router(submissions.router, prefix="/api")
    app.include_router(subscribers.router, prefix="/api")

    @app.get("/", tags=["root"])
    async def root():
        return {"message": f"Bienvenido al backend de {settings.app_name}"}

    @app.get("/api/health", tags=["health"])
    async def health(request: Request):
        try:
            await run_in_threadpool(check_connection, request.app.state.engine)
            database = "ok"
        except Exception as e:
            logger.warning(f"💓 Health check: base de datos no disponible: {e}")
            database = "unavailable"
        return {"status": "ok", "database": database}

    return app


app = create_app()


def run():
    """Punto de entrada: `contact-backend` o `python -m contact_backend`."""
    settings = get_settings()
    logger.info(f"Servidor corriendo en http://localhost:{settings.port}")
    uvicorn.run("contact_backend.main:app", host="0.0.0.0", port=settings.port)
