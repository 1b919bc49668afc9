"""Database initialization for the device state store."""
import logging
from pathlib import Path
from sqlalchemy import inspect, text
from sqlalchemy.exc import OperationalError
from bopomofo.config import settings
from bopomofo.db.database import engine, SessionLocal, Base
from bopomofo.db import models  # noqa: F401  (registers tables on Base.metadata)

logger = logging.getLogger(__name__)


def ensure_sqlite_directory(database_url: str) -> None:
    """Create the parent directory of a file-backed SQLite database."""
    prefix = "sqlite:///"
    if not database_url.startswith(prefix):
        return
    path = database_url[len(prefix):]
    if not path or path == ":memory:":
        return
    Path(path).parent.mkdir(parents=True, exist_ok=True)


def check_index_exists(inspector, table_name: str, index_name: str) -> bool:
    """Check if an index exists on a table."""
    try:
        indexes = inspector.get_indexes(table_name)
        return any(idx['name'] == index_name for idx in indexes)
    except Exception as e:
        logger.warning(f"Error checking index {index_name} in {table_name}: {e}")
        return False


def apply_schema_migrations(db) -> None:
    """
    Apply schema migrations automatically on startup.

    Databases created before the documents index existed get it added here.
    All operations are idempotent.
    """
    inspector = inspect(engine)

    if 'device_documents' not in inspector.get_table_names():
        return

    if check_index_exists(inspector, 'device_documents', 'idx_device_documents_updated'):
        logger.info("No schema migrations needed. Database is up to date.")
        return

    try:
        logger.info("Creating index idx_device_documents_updated...")
        db.execute(text(
            'CREATE INDEX IF NOT EXISTS idx_device_documents_updated '
            'ON device_documents (device_id, updated_at)'
        ))
        db.commit()
    except OperationalError as e:
        db.rollback()
        logger.warning(f"Could not create index idx_device_documents_updated: {e}")


def init_db() -> None:
    """
    Initialize database: create tables and apply migrations.

    Safe to call multiple times - all operations are idempotent.
    """
    logger.info("Initializing database...")

    ensure_sqlite_directory(settings.DATABASE_URL)

    logger.info("Creating database tables from models...")
    Base.metadata.create_all(bind=engine)
    logger.info("Tables created/verified successfully.")

    db = SessionLocal()
    try:
        apply_schema_migrations(db)
        logger.info("Database initialization complete.")
    except Exception as e:
        logger.error(f"Error during database initialization: {e}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    init_db()
    print("Database initialization complete.")
