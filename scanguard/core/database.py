"""
Database configuration and session management.

Uses SQLAlchemy 2.x style with DeclarativeBase.
"""
from sqlalchemy import Enum, create_engine, event
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from scanguard.core.config import get_settings

settings = get_settings()

# Get database URL with priority: DATABASE_URL > PG* vars > docker-compose > SQLite
database_url = settings.sqlalchemy_database_uri

connect_args = {}
if database_url.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

engine = create_engine(
    database_url,
    pool_pre_ping=True if not database_url.startswith("sqlite") else False,
    echo=settings.DEBUG,
    connect_args=connect_args,
)

if database_url.startswith("sqlite"):
    @event.listens_for(engine, "connect")
    def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
        # SQLite ignores ON DELETE CASCADE unless foreign keys are switched on per connection
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    """Base class for all database models using SQLAlchemy 2.x style."""
    pass


def enum_column_type(enum_cls, name: str) -> Enum:
    """SQL enum type that stores member values ("complete") rather than names ("COMPLETE")."""
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [member.value for member in members],
        validate_strings=True,
    )


def get_db():
    """Dependency for getting database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory():
    """
    Dependency returning the session factory used by background pipeline runs.

    Background tasks outlive the request session, so they open their own
    sessions from this factory.
    """
    return SessionLocal
