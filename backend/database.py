# lesson-booking-backend/database.py

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

import config


def make_engine(url: str):
    """Create an engine; SQLite needs cross-thread connections for the worker pool."""
    connect_args = {}
    if url.startswith("sqlite"):
        # connect_args is needed for SQLite to allow multiple threads to interact with the same connection
        connect_args = {"check_same_thread": False, "timeout": 30}
    return create_engine(url, connect_args=connect_args)


# Create the SQLAlchemy engine
engine = make_engine(config.DATABASE_URL)

# Each instance of SessionLocal will be a database session.
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for our SQLAlchemy models
Base = declarative_base()


# Dependency to get a database session
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
