# storefront/database.py
import logging
import threading

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, declarative_base
from flask import g

from storefront.config import Config

logger = logging.getLogger(__name__)

engine_kwargs = {
    "echo": Config.SQL_ECHO,
    "future": True,
    "pool_pre_ping": True,
}

if Config.DATABASE_URL.startswith("sqlite"):
    # Request threads share the pool; writers wait on the file lock instead of failing fast
    engine_kwargs["connect_args"] = {
        "check_same_thread": False,
        "timeout": Config.SQLITE_BUSY_TIMEOUT,
    }
else:
    engine_kwargs["pool_size"] = Config.DB_POOL_SIZE
    engine_kwargs["max_overflow"] = Config.DB_MAX_OVERFLOW

engine = create_engine(Config.DATABASE_URL, **engine_kwargs)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)

Base = declarative_base()

_schema_lock = threading.Lock()
_schema_ready = False


def init_database() -> bool:
    """Create tables if needed. Failures are logged and retried on next use."""
    global _schema_ready
    if _schema_ready:
        return True
    with _schema_lock:
        if _schema_ready:
            return True
        # Import models so every table is registered on Base.metadata
        from storefront import models  # noqa: F401

        try:
            Base.metadata.create_all(bind=engine)
        except SQLAlchemyError as exc:
            logger.error("Database initialization failed, will retry lazily: %s", exc)
            return False
        _schema_ready = True
        logger.info("Database tables initialized successfully")
        return True


def get_db():
    if 'db' not in g:
        init_database()
        g.db = SessionLocal()
    return g.db


def close_db(e=None):
    try:
        db = g.pop('db', None)
        if db is not None:
            db.close()
    except RuntimeError:
        # Outside of an application context, e.g. during test teardown
        pass
