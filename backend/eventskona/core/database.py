from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from eventskona.core.config import settings

# SQLite connections are shared across the request threadpool
connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}

# Create database engine - manages connection pool
engine = create_engine(settings.DATABASE_URL, connect_args=connect_args)

# autocommit=False: changes require an explicit commit
# autoflush=False: don't auto-flush before queries
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for all database models
Base = declarative_base()


def get_db():
    """
    Dependency for getting database session.

    The session is closed after the request completes, even when the
    handler raises.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
