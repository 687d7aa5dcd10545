"""
Database engine, session factory and declarative base
"""
import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from englearn.config import settings

logger = logging.getLogger(__name__)


def _engine_options(database_url: str) -> dict:
    """Bounded timeouts for every storage call, per backend"""
    options = {"pool_pre_ping": True}

    if database_url.startswith("postgresql"):
        options["pool_timeout"] = settings.DB_POOL_TIMEOUT
        options["connect_args"] = {
            "connect_timeout": settings.DB_POOL_TIMEOUT,
            "options": f"-c statement_timeout={settings.DB_STATEMENT_TIMEOUT_MS}",
        }
    elif database_url.startswith("sqlite"):
        options["connect_args"] = {
            "check_same_thread": False,
            "timeout": settings.DB_STATEMENT_TIMEOUT_MS / 1000,
        }

    return options


engine = create_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """
    Dependency to get a database session.
    The session is always closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Create all tables (migrations are managed outside the service)"""
    # Registers every model on Base.metadata
    import englearn.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created")
