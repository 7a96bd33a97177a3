# database.py

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from wizard_backend.config import DATABASE_URL


def make_engine(url):
    """Create an engine; SQLite connections are shared between the loop and worker threads."""
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


def make_session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)


# Create the engine to connect to the database
engine = make_engine(DATABASE_URL)

# Create a session factory
SessionLocal = make_session_factory(engine)

# Base class for our database models
Base = declarative_base()


def init_db(bind=None):
    """Create tables if they don't exist."""
    # Models register themselves on Base when imported.
    from wizard_backend import models  # noqa: F401
    Base.metadata.create_all(bind=bind or engine)

