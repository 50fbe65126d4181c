from sqlalchemy import create_engine
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import declarative_base, sessionmaker
from app.core.config import settings

_engine_kwargs = {"pool_pre_ping": True}  # Verify connections before using them
if settings.DATABASE_URL.startswith("sqlite"):
    _engine_kwargs["connect_args"] = {"check_same_thread": False}
else:
    _engine_kwargs.update(
        pool_size=10,  # Connection pool size
        max_overflow=20  # Allow up to 20 connections beyond pool_size
    )

# Create SQLAlchemy engine
engine = create_engine(settings.DATABASE_URL, **_engine_kwargs)

# Create SessionLocal class
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Create Base class for models
Base = declarative_base()

# Messages drivers emit while the server is booting or unreachable
_UNAVAILABLE_MARKERS = (
    "database system is starting up",
    "the database system is shutting down",
    "connection refused",
    "econnrefused",
    "could not connect to server",
    "server closed the connection unexpectedly",
    "connection timed out",
    "too many connections",
)


def get_db():
    """
    Dependency function to get database session.
    Used in FastAPI endpoints with Depends(get_db)
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """
    Initialize database.

    Alembic owns the schema in deployed environments ("alembic upgrade head").
    Local SQLite databases are created in place so the API can boot without
    a migration step.
    """
    from app.models import candidate, job_posting, job_match, task  # noqa: F401 - register models
    if settings.DATABASE_URL.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)


def is_database_unavailable(exc: BaseException) -> bool:
    """
    Return True when `exc` means the datastore is temporarily unreachable.

    These errors are never terminal for a task: callers log them at a
    throttled rate and retry on the next poll.
    """
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    if isinstance(exc, (OperationalError, DBAPIError, ConnectionError)):
        message = str(exc).lower()
        return any(marker in message for marker in _UNAVAILABLE_MARKERS)
    return False
