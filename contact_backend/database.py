# Configuración de base de datos usando SQLAlchemy.
#
# ESTRATEGIA DE BASE DE DATOS:
# - DESARROLLO LOCAL: SQLite local (contact_backend.db) si no hay nada configurado
# - PRODUCCIÓN: DATABASE_URL o las variables DB_HOST / DB_USER / DB_PASSWORD / DB_NAME / DB_PORT
#
# El engine NO se crea al importar el módulo: lo crea el lifespan de la app
# (ver main.py) y queda guardado en app.state junto con su sessionmaker.

import logging

from fastapi import Request
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

from .config import Settings

logger = logging.getLogger(__name__)

Base = declarative_base()


def _is_memory_sqlite(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in url


def _configure_sqlite(engine: Engine) -> None:
    # pysqlite maneja BEGIN por su cuenta y rompe los SAVEPOINT;
    # se desactiva y lo emite SQLAlchemy. También activa las foreign keys.
    # BEGIN IMMEDIATE toma el lock de escritura al empezar: dos altas
    # concurrentes se turnan y la segunda ve la fila ya commiteada.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_db_engine(settings: Settings) -> Engine:
    """
    Crea el engine con un pool acotado.

    - pool_size = DB_POOL_SIZE (10 por defecto), sin overflow
    - pool_timeout=None: si el pool está lleno, la request espera sin límite
      hasta que se libere una conexión
    """
    url = settings.database_url

    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
        if _is_memory_sqlite(url):
            # Una sola conexión compartida, si no cada conexión ve una BD vacía
            engine = create_engine(url, connect_args=connect_args, poolclass=StaticPool)
        else:
            engine = create_engine(
                url,
                connect_args=connect_args,
                pool_size=settings.db_pool_size,
                max_overflow=0,
                pool_timeout=None,
            )
        _configure_sqlite(engine)
        logger.info("[DB] Usando SQLite local")
        return engine

    engine = create_engine(
        url,
        pool_size=settings.db_pool_size,
        max_overflow=0,
        pool_timeout=None,
        pool_pre_ping=True,
    )
    logger.info(f"[DB] Engine creado para {engine.url.render_as_string(hide_password=True)}")
    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def create_tables(engine: Engine) -> None:
    """Crea las tablas en la base de datos si no existen."""
    # Importar los modelos para que queden registrados en Base.metadata
    from . import models  # noqa: F401

    expected_tables = list(Base.metadata.tables.keys())
    logger.info(f"Tablas esperadas: {', '.join(expected_tables)}")
    Base.metadata.create_all(bind=engine)


def check_connection(engine: Engine) -> bool:
    """Ejecuta un SELECT 1 para verificar que la base responde."""
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return True


def get_db(request: Request):
    """
    Dependencia para inyectar la sesión de DB en los endpoints de FastAPI.
    La conexión vuelve al pool siempre, incluso si el endpoint falla.
    """
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()
