"""
SQLite database connection and session management
"""

import logging
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import create_engine, text
from sqlalchemy.orm import Session, sessionmaker

from opcua_bridge.core.paths import get_database_file
from opcua_bridge.storage.models import Base

logger = logging.getLogger(__name__)


class Database:
    """
    Database connection manager

    Handles SQLite connection, session management, and table creation.
    """

    def __init__(self, database_path: Path | None = None):
        """
        Initialize database connection

        Args:
            database_path: Path to SQLite database file. If None, uses the bridge data directory
        """
        if database_path is None:
            database_path = get_database_file()

        self.database_path = Path(database_path)
        self.database_path.parent.mkdir(parents=True, exist_ok=True)

        # check_same_thread off: writes run in worker threads via asyncio.to_thread
        self.engine = create_engine(
            f"sqlite:///{self.database_path}",
            echo=False,
            pool_pre_ping=True,
            connect_args={"check_same_thread": False},
        )

        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=self.engine,
        )

        self.create_tables()

        logger.info(f"Database initialized: {self.database_path}")

    def create_tables(self) -> None:
        """Create all database tables"""
        Base.metadata.create_all(bind=self.engine)
        logger.info("Database tables created/verified")

    def verify_schema(self) -> bool:
        """
        Verify the readings table exists and the database answers queries

        Returns:
            True if schema is valid, False otherwise
        """
        try:
            with self.session_scope() as session:
                result = session.execute(text("SELECT 1")).fetchone()
                if result[0] != 1:
                    return False

                tables = session.execute(
                    text("SELECT name FROM sqlite_master WHERE type='table' AND name='mappedsensors'")
                ).fetchall()
                return len(tables) == 1

        except Exception as e:
            logger.error(f"Schema verification failed: {e}")
            return False

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Provide a transactional scope for database operations

        Usage:
            with db.session_scope() as session:
                session.add(SensorReadingModel(variable="temp1", varvalues=21.0))
        """
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        """Close all pooled connections"""
        self.engine.dispose()
