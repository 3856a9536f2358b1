"""
Trade Reconstruction - Fill Cache Repository.

============================================================
PURPOSE
============================================================
SQL persistence for fills of positions that were still open
at the end of a run. The next run reloads them so a position
opened in an earlier window can still be closed.

CRITICAL REQUIREMENTS:
- save() replaces all rows of a key in one transaction
- Database errors roll back and surface as FillCacheError

============================================================
"""

import json
import logging
import os
from typing import Iterable, List, Optional

from dotenv import load_dotenv
from sqlalchemy import create_engine, delete, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .models import Base, CachedFillModel
from .parsers import parse_int
from .types import FillCacheError, RawFill


logger = logging.getLogger(__name__)


DEFAULT_CACHE_DATABASE_URL = "sqlite:///trade_cache.db"


# ============================================================
# ENGINE / SESSION
# ============================================================

def get_cache_database_url() -> str:
    """Get cache database URL from environment."""
    load_dotenv()
    url = os.getenv("TRADE_CACHE_DATABASE_URL")
    if not url:
        url = DEFAULT_CACHE_DATABASE_URL
        logger.debug(f"TRADE_CACHE_DATABASE_URL not set, using default: {url}")
    return url


def create_cache_engine(url: Optional[str] = None) -> Engine:
    """
    Create the cache database engine.

    Args:
        url: Database URL; defaults to TRADE_CACHE_DATABASE_URL

    Returns:
        SQLAlchemy Engine
    """
    database_url = url or get_cache_database_url()
    logger.info(f"Creating fill cache engine for: {database_url.split('@')[-1]}")
    return create_engine(database_url, future=True)


def create_cache_session(engine: Engine) -> Session:
    """
    Create cache tables if needed and open a session.

    Raises:
        FillCacheError: If table creation fails
    """
    try:
        Base.metadata.create_all(engine)
    except SQLAlchemyError as e:
        logger.error(f"Failed to create fill cache tables: {e}")
        raise FillCacheError(f"Table creation failed: {e}") from e

    factory = sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
    return factory()


# ============================================================
# FILL CACHE REPOSITORY
# ============================================================

class FillCacheRepository:
    """
    SQL-backed fill cache.

    Usage:
        session = create_cache_session(create_cache_engine())
        cache = FillCacheRepository(session)
        cache.save("okx-swap", processor.get_open_position_fills())
    """

    def __init__(self, session: Session):
        """
        Initialize repository.

        Args:
            session: SQLAlchemy session
        """
        self._session = session

    def load(self, key: str) -> List[RawFill]:
        """
        Load cached fills for a key, oldest first.

        Raises:
            FillCacheError: On database failure
        """
        stmt = (
            select(CachedFillModel)
            .where(CachedFillModel.cache_key == key)
            .order_by(CachedFillModel.ts, CachedFillModel.id)
        )
        try:
            rows = self._session.execute(stmt).scalars().all()
        except SQLAlchemyError as e:
            logger.error(f"Failed to load fill cache '{key}': {e}")
            raise FillCacheError(f"Load failed for '{key}': {e}") from e

        return [RawFill.from_dict(json.loads(row.payload)) for row in rows]

    def save(self, key: str, fills: Iterable[RawFill]) -> int:
        """
        Replace cached fills for a key.

        Returns:
            Number of rows written

        Raises:
            FillCacheError: On database failure (transaction rolled back)
        """
        fills = list(fills)
        try:
            self._session.execute(
                delete(CachedFillModel).where(CachedFillModel.cache_key == key)
            )
            self._session.add_all([
                CachedFillModel(
                    cache_key=key,
                    trade_id=fill.trade_id or "",
                    inst_id=fill.inst_id or "",
                    ts=parse_int(fill.ts),
                    payload=json.dumps(fill.to_dict()),
                )
                for fill in fills
            ])
            self._session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to save fill cache '{key}', rolling back: {e}")
            self._session.rollback()
            raise FillCacheError(f"Save failed for '{key}': {e}") from e

        logger.info(f"Cached {len(fills)} open-position fills under '{key}'")
        return len(fills)

    def clear(self, key: str) -> None:
        """Delete all cached fills for a key."""
        self.save(key, [])
