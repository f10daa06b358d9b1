"""Database connection handling."""
from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
import logging

from utils.exceptions import DatabaseError

logger = logging.getLogger(__name__)

class Base(DeclarativeBase):
    """Base class for all database models."""
    pass

class Database:
    """Database connection and session management."""

    def __init__(self, database_url: str, isolation_level: str = "SERIALIZABLE"):
        """Initialize database connection.

        SQLite has no row locks, so there every transaction starts with
        ``BEGIN IMMEDIATE``: it takes the database write lock before its first
        read, which makes SQLite transactions serializable. Other backends
        get ``isolation_level``.

        Args:
            database_url (str): Database connection URL
            isolation_level (str): Isolation level for every transaction
        """
        is_sqlite = make_url(database_url).get_backend_name() == "sqlite"
        engine_options = {} if is_sqlite else {"isolation_level": isolation_level}
        self.engine = create_async_engine(database_url, **engine_options)
        if is_sqlite:
            event.listen(self.engine.sync_engine, "connect", _configure_sqlite_connection)
            event.listen(self.engine.sync_engine, "begin", _begin_immediate)
        self.async_session = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )
        self.logger = logging.getLogger(__name__)

    @property
    def session(self):
        """Get a session factory for creating new database sessions."""
        return self.async_session

    async def create_all(self):
        """Create all database tables.

        Raises:
            DatabaseError: If the database cannot be reached or the schema
                cannot be created
        """
        try:
            # Import all models to ensure they're registered with Base
            from .models import (  # noqa: F401
                User,
                Raffle,
                Purchase,
                Ticket,
                InstantPrize,
            )

            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            self.logger.info("Database tables created successfully")
        except Exception as e:
            self.logger.error(f"Error creating database tables: {e}")
            raise DatabaseError(f"Could not create database tables: {e}") from e

    async def close(self):
        """Close database connection."""
        await self.engine.dispose()

def _configure_sqlite_connection(dbapi_connection, connection_record):
    # Hand transaction control to the "begin" listener instead of the driver
    dbapi_connection.isolation_level = None
    # Cascades on raffle purge need SQLite foreign key enforcement
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()

def _begin_immediate(conn):
    conn.exec_driver_sql("BEGIN IMMEDIATE")
