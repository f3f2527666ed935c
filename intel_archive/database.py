"""Storage wiring: SQLite engine, archive storage backend and the shared stores."""

from functools import lru_cache
from pathlib import Path

from loguru import logger
from sqlalchemy import Engine, event
from sqlmodel import SQLModel, create_engine

from intel_archive.config import get_settings
from intel_archive.services.archive import ArchiveStore
from intel_archive.services.state import SyncStateStore
from intel_archive.services.storage import ArchiveStorage, JsonArchiveStorage, SqlArchiveStorage


def _normalize_database_url(db_url: str) -> str:
    """Resolve a relative SQLite path against the working directory and create its folder."""
    if db_url.startswith("sqlite:///"):
        path_part = db_url.split("sqlite:///")[-1]
        if path_part and not path_part.startswith("/"):
            abs_path = (Path.cwd() / path_part).resolve()
            abs_path.parent.mkdir(parents=True, exist_ok=True)
            db_url = f"sqlite:///{abs_path}"
    return db_url


def _set_sqlite_pragmas(dbapi_connection, connection_record):
    """Set SQLite pragmas for concurrent readers."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA busy_timeout=60000")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.close()


def create_db_engine(db_url: str, echo: bool = False) -> Engine:
    """Engine with the archive table created."""
    db_url = _normalize_database_url(db_url)
    engine = create_engine(db_url, echo=echo, connect_args={"check_same_thread": False, "timeout": 60})
    event.listen(engine, "connect", _set_sqlite_pragmas)
    SQLModel.metadata.create_all(engine)
    return engine


@lru_cache
def get_engine() -> Engine:
    """Get cached engine instance."""
    settings = get_settings()
    return create_db_engine(settings.database_url, echo=settings.debug)


def get_archive_storage() -> ArchiveStorage:
    """Storage backend selected by STORAGE_BACKEND."""
    settings = get_settings()
    if settings.storage_backend == "sqlite":
        logger.info(f"[ARCHIVE] Using SQLite storage at {settings.database_path}")
        return SqlArchiveStorage(get_engine())
    logger.info(f"[ARCHIVE] Using JSON storage at {settings.archive_path}")
    return JsonArchiveStorage(settings.archive_path)


@lru_cache
def get_archive_store() -> ArchiveStore:
    """Shared archive store, loaded from storage on first use."""
    settings = get_settings()
    store = ArchiveStore(
        storage=get_archive_storage(),
        tight_threshold=settings.spatial_tight_threshold,
        manual_threshold=settings.spatial_manual_threshold,
        lock_timeout=settings.store_lock_timeout,
    )
    store.load()
    return store


@lru_cache
def get_state_store() -> SyncStateStore:
    """Shared sync configuration and source metadata."""
    settings = get_settings()
    return SyncStateStore(
        settings.state_path,
        preferred_sources=settings.preferred_sources,
        default_interval_minutes=settings.default_sync_interval_minutes,
    )
