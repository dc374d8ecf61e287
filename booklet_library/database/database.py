"""
Database engine and session factory for the local store
SQLite by default; any SQLAlchemy URL works.
"""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

# Base class for declarative models
Base = declarative_base()


def make_engine(url: str) -> Engine:
    """
    Create an engine for the local store.
    SQLite connections are shared between the event loop and worker threads.
    """
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_engine(url, connect_args=connect_args, pool_pre_ping=True)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
