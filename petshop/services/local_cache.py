### Description ###
# PetShop Sync - Storage core for the PetShop POS app
# - Local Cache Service -
# Date: 10/19/2026
# Python: 3.11
####################

"""
Local Cache Service

Key/value persistence on the device, used as a write-through mirror of
remote data and as the fallback when the remote store is unreachable.

Snapshots are scoped per company: the scope is the company id, or
"admin" for the reserved admin namespace.
"""

import json
import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import Engine

from petshop.database import DEFAULT_DATABASE_URL, create_cache_engine, create_session_factory, init_db
from petshop.models import CacheEntry

logger = logging.getLogger(__name__)

COMPANIES_KEY = "companies"
CURRENT_COMPANY_KEY = "current_company_id"
ENCRYPTION_KEY = "encryption_key"
# Key generated while the remote store was unreachable, not yet shared
LOCAL_ENCRYPTION_KEY = "encryption_key_unconfirmed"


def products_key(scope: str) -> str:
    return f"products:{scope}"


def sales_key(scope: str) -> str:
    return f"sales:{scope}"


def pending_key(scope: str) -> str:
    return f"pending:{scope}"


class LocalCache:
    """
    SQLite-backed key/value cache.

    Each call opens a short-lived session, so the cache can be shared by
    all services of one process.
    """

    def __init__(self, database_url: str = DEFAULT_DATABASE_URL, engine: Engine | None = None):
        self.engine = engine or create_cache_engine(database_url)
        init_db(self.engine)
        self._session_factory = create_session_factory(self.engine)

    def get(self, key: str) -> str | None:
        """Get a cached value, or None if missing"""
        with self._session_factory() as db:
            entry = db.get(CacheEntry, key)
            return entry.value if entry is not None else None

    def set(self, key: str, value: str) -> None:
        """Insert or replace a cached value"""
        with self._session_factory() as db:
            entry = db.get(CacheEntry, key)
            if entry is None:
                db.add(CacheEntry(key=key, value=value))
            else:
                entry.value = value
                entry.updated_at = datetime.now(UTC)
            db.commit()

    def delete(self, key: str) -> bool:
        """
        Delete a cached value.

        Returns True if an entry was removed, False if not found.
        """
        with self._session_factory() as db:
            entry = db.get(CacheEntry, key)
            if entry is None:
                return False
            db.delete(entry)
            db.commit()
            return True

    def keys(self, prefix: str = "") -> list[str]:
        """List cached keys, optionally filtered by prefix"""
        with self._session_factory() as db:
            query = db.query(CacheEntry.key)
            if prefix:
                query = query.filter(CacheEntry.key.startswith(prefix))
            return sorted(row[0] for row in query.all())

    def clear(self) -> int:
        """
        Clear all cached entries.

        Returns number of entries cleared.
        """
        with self._session_factory() as db:
            count = db.query(CacheEntry).delete()
            db.commit()
            return count

    def get_json(self, key: str, default: Any = None) -> Any:
        """Get a cached JSON value, returning default if missing or corrupt"""
        raw = self.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Discarding corrupt cache entry '{key}'")
            return default

    def set_json(self, key: str, value: Any) -> None:
        """Cache a JSON-serializable value"""
        self.set(key, json.dumps(value))

    # ========================================
    # Company Snapshots
    # ========================================

    def save_snapshot(self, scope: str, products: str | None = None, sales: str | None = None) -> None:
        """Save encoded product and/or sales arrays for a scope"""
        if products is not None:
            self.set(products_key(scope), products)
        if sales is not None:
            self.set(sales_key(scope), sales)

    def load_snapshot(self, scope: str) -> tuple[str | None, str | None]:
        """Load encoded (products, sales) arrays for a scope"""
        return self.get(products_key(scope)), self.get(sales_key(scope))

    def drop_snapshot(self, scope: str) -> None:
        """Remove everything cached for a scope"""
        for key in (products_key(scope), sales_key(scope), pending_key(scope)):
            self.delete(key)
