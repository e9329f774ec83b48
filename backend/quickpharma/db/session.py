"""Database engine and session factory. SQLite for development, any SQLAlchemy URL in production."""
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from quickpharma.core.config import settings

is_sqlite = settings.DATABASE_URL.startswith("sqlite")
connect_args = {"check_same_thread": False} if is_sqlite else {}


def enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    """SQLite leaves foreign keys (and ON DELETE CASCADE) off per connection."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


if is_sqlite:
    # SQLite: Use NullPool for thread-safety
    from sqlalchemy.pool import NullPool
    engine = create_engine(
        settings.DATABASE_URL,
        connect_args=connect_args,
        poolclass=NullPool
    )
    event.listen(engine, "connect", enable_sqlite_foreign_keys)
else:
    # PostgreSQL/MySQL: Use QueuePool with sensible defaults
    engine = create_engine(
        settings.DATABASE_URL,
        connect_args=connect_args,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_recycle=3600,
        pool_pre_ping=True
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
