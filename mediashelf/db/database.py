"""SQLite database setup and connection."""
import logging
from pathlib import Path
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from mediashelf.db.models import Base

logger = logging.getLogger(__name__)

# Global engine and session factory
engine: Optional[Engine] = None
SessionLocal = None


def is_memory_url(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in url


def init_db(data_dir: str = "/data", url: Optional[str] = None) -> None:
    """Initialize database connection.

    ``url`` overrides the on-disk database (``sqlite://`` for an in-memory
    cache in tests).
    """
    global engine, SessionLocal

    if url is None:
        data_path = Path(data_dir)
        try:
            data_path.mkdir(parents=True, exist_ok=True)
            # Test write permissions
            test_file = data_path / ".write_test"
            try:
                test_file.touch()
                test_file.unlink()
            except OSError as e:
                raise PermissionError(f"Cannot write to {data_dir}: {str(e)}")
        except OSError as e:
            logger.error(f"Error creating data directory {data_dir}: {str(e)}")
            raise

        db_path = data_path / "mediashelf.db"
        url = f"sqlite:///{db_path}"

    logger.info(f"Initializing database at: {url}")

    # SQLite with check_same_thread=False for FastAPI
    # In-memory: une seule connexion partagée, sinon chaque session a la sienne
    options = {"poolclass": StaticPool} if is_memory_url(url) else {}
    try:
        engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            echo=False,
            **options,
        )

        # Les instantanés d'inventaire restent lisibles après fermeture de session
        SessionLocal = sessionmaker(
            autocommit=False, autoflush=False, expire_on_commit=False, bind=engine
        )

        # Create tables
        Base.metadata.create_all(bind=engine)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database at {url}: {str(e)}")
        raise


def get_db_sync() -> Session:
    """Get database session (synchronous, for non-async contexts)."""
    if SessionLocal is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return SessionLocal()
