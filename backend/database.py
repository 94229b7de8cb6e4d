"""SQLAlchemy engine, session factory and schema bootstrap."""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base

from config import get_settings

Base = declarative_base()


def build_engine(database_url: str) -> Engine:
    """Create an engine; SQLite connections may be shared across worker threads."""
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
    return create_engine(database_url, connect_args=connect_args)


def build_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=bind)


engine = build_engine(get_settings().database_url)
SessionLocal = build_session_factory(engine)


def get_db():
    """Dependency for getting database sessions."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory() -> sessionmaker:
    """Dependency returning the factory used for concurrent store reads."""
    return SessionLocal


def init_db(bind: Engine = None) -> None:
    """Create all tables."""
    import models  # noqa: F401  registers the mappers on Base

    Base.metadata.create_all(bind=bind or engine)
