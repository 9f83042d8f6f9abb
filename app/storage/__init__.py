"""Storage backends and the startup-time selection between them"""

import logging
from typing import Optional

from ..config import DATABASE_URL, STORAGE_BACKEND
from ..firebase_clients import FirebaseClients
from .base import StorageBackend

logger = logging.getLogger(__name__)


def build_storage(
    backend: str = STORAGE_BACKEND,
    firebase: Optional[FirebaseClients] = None,
    database_url: str = DATABASE_URL,
    create_tables: bool = True,
) -> StorageBackend:
    """Build the configured backend once; callers keep the returned object for the process lifetime"""
    if backend == "firestore":
        from .firestore import FirestoreStorage

        if firebase is None:
            raise ValueError("The Firestore backend needs Firebase clients")
        logger.info("🗄️ Using Firestore storage backend")
        return FirestoreStorage(firebase.firestore())

    if backend == "sql":
        from ..database import Base, create_db_engine, create_session_factory
        from .sql import SqlStorage

        engine = create_db_engine(database_url)
        if create_tables:
            try:
                Base.metadata.create_all(bind=engine, checkfirst=True)
                logger.info("Database tables created successfully")
            except Exception as e:
                # Ignore "already exists" errors from race conditions between workers
                error_msg = str(e)
                if "already exists" in error_msg or "duplicate key" in error_msg:
                    logger.info("Database tables already exist (created by another worker)")
                else:
                    logger.error(f"Failed to create database tables: {e}")
                    raise
        logger.info("🗄️ Using SQL storage backend")
        return SqlStorage(create_session_factory(engine), engine=engine)

    raise ValueError(f"Unknown storage backend: {backend!r}")


__all__ = ["StorageBackend", "build_storage"]
