# =====================================================
# FILE: contractflow/core/database.py
# Database Connection and Session Management
# =====================================================

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import NullPool, QueuePool
from contextlib import contextmanager
from typing import Optional
from urllib.parse import quote_plus
import logging

from contractflow.core.config import settings

logger = logging.getLogger(__name__)


def build_database_url() -> str:
    """DATABASE_URL wins; otherwise build a MySQL URL from components"""
    if settings.DATABASE_URL:
        return settings.DATABASE_URL
    # URL-encode the password to handle special characters like @ # $ etc.
    encoded_password = quote_plus(settings.DB_PASSWORD)
    return f"mysql+pymysql://{settings.DB_USER}:{encoded_password}@{settings.DB_HOST}:{settings.DB_PORT}/{settings.DB_NAME}"


def build_engine(database_url: Optional[str] = None) -> Engine:
    """Create an engine with the pool appropriate for the environment"""
    url = database_url or build_database_url()
    engine_args = {
        "pool_pre_ping": settings.DB_POOL_PRE_PING,
        "echo": settings.DB_ECHO,
    }

    if url.startswith("sqlite"):
        # Worker threads (sweep, assembly) open their own sessions
        engine_args["connect_args"] = {"check_same_thread": False, "timeout": 30}
    elif settings.DEBUG:
        # Use NullPool for development (no connection pooling)
        engine_args["poolclass"] = NullPool
    else:
        engine_args["pool_size"] = settings.DB_POOL_SIZE
        engine_args["max_overflow"] = settings.DB_MAX_OVERFLOW
        engine_args["poolclass"] = QueuePool

    engine = create_engine(url, **engine_args)
    if engine.dialect.name == "sqlite":
        _serialize_sqlite_transactions(engine)
    logger.info(f" Database engine created for {engine.url.render_as_string(hide_password=True)}")
    return engine


def _serialize_sqlite_transactions(engine: Engine):
    """
    SQLite locks the whole file. Taking the lock at BEGIN makes concurrent
    writers wait on the busy timeout instead of failing on lock upgrade.
    """

    @event.listens_for(engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(
        bind=bind,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False
    )


engine = build_engine()
SessionLocal = build_session_factory(engine)

# Create Base class for models
Base = declarative_base()


@contextmanager
def session_scope(factory: sessionmaker = None):
    """
    One session, one commit. Rolls back and re-raises on any error.
    """
    session = (factory or SessionLocal)()
    try:
        yield session
        session.commit()
    except Exception as e:
        logger.error(f" Database operation failed: {str(e)}")
        session.rollback()
        raise
    finally:
        session.close()


def check_connection(bind: Engine = None) -> bool:
    """
    Test database connection
    """
    try:
        with (bind or engine).connect() as conn:
            conn.execute(text("SELECT 1"))
            logger.info(" Database connection test successful")
            return True
    except Exception as e:
        logger.error(f" Database connection test failed: {str(e)}")
        return False


def init_db(bind: Engine = None):
    """
    Create all tables in the database
    """
    # Register every model on Base.metadata
    import contractflow.models  # noqa: F401

    try:
        Base.metadata.create_all(bind=bind or engine, checkfirst=True)
        logger.info(" Database tables created successfully")
    except Exception as e:
        logger.error(f" Failed to create database tables: {str(e)}")
        raise
