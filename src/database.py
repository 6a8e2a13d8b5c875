import logging
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.pool import NullPool
from sqlalchemy.orm import sessionmaker, scoped_session

from .config import config

# Variáveis Globais
engine = None
db_session = None

logger = logging.getLogger("analysis-app")


def normalize_database_url(database_url: Optional[str]) -> Optional[str]:
    """
    Normaliza a URL do banco.
    - Se for Postgres, garante que sslmode=require esteja presente.
    """
    if not database_url:
        return None

    try:
        url = make_url(database_url)
    except Exception:
        # Mantém a URL como está se não for parseável pelo SQLAlchemy
        return database_url

    if url.drivername.startswith("postgresql") and "sslmode" not in url.query:
        url = url.set(query={**url.query, "sslmode": "require"})

    return url.render_as_string(hide_password=False)


def init_db(database_url: Optional[str] = None):
    global engine, db_session
    database_url = normalize_database_url(database_url or config.DATABASE_URL)
    if not database_url:
        logger.warning("⚠️ DATABASE_URL não encontrada na Config. Verifique as variáveis de ambiente.")
        return None

    masked_url = database_url.split("@")[-1] if "@" in database_url else "configured"
    logger.info(f"🔌 Tentando conectar ao banco: {masked_url}")
    try:
        # NullPool: workers do Cloud Run não devem segurar conexões entre requests
        engine = create_engine(database_url, pool_pre_ping=True, poolclass=NullPool)
        db_session = scoped_session(sessionmaker(autocommit=False, autoflush=False, bind=engine))
        logger.info("✅ Conexão com Banco de Dados Inicializada")
    except Exception as e:
        logger.error(f"❌ Erro ao criar engine do banco: {e}")
        raise
    return engine


def get_db():
    """Yields the thread-scoped session, initializing the engine on first use."""
    if db_session is None:
        init_db()

    if db_session is None:
        yield None
        return

    yield db_session()
