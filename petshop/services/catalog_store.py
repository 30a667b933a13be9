### Description ###
# PetShop Sync - Storage core for the PetShop POS app
# - Catalog & Sales Store -
# Date: 10/19/2026
# Python: 3.11
####################

"""
Catalog & Sales Store

Products and sales of the current session's company.

Sync policy is batched merge-then-push:
- Mutations update memory and the local cache immediately
- sync_to_github() merges local records into the freshest remote files
  by id (local wins on collision, remote-only records are kept) and
  writes the result back

Sales older than the retention window are dropped from the device only.
A sale is never dropped before it has been synced.
"""

import logging
from collections.abc import Callable, Iterable
from datetime import date, datetime, timedelta, tzinfo
from typing import Protocol, TypeVar
from uuid import UUID

from pydantic import TypeAdapter

from petshop.errors import DecodingError, RemoteStoreError
from petshop.schemas import MAX_STOCK, PRODUCT_LIST, SALE_LIST, Product, Sale
from petshop.schemas.common import decode_list, encode_list, utcnow
from petshop.services.company_registry import PRODUCTS_FILE, SALES_FILE, CompanyRegistry
from petshop.services.local_cache import LocalCache, pending_key
from petshop.services.remote_store import RemoteStore

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 3


class _Record(Protocol):
    id: UUID


R = TypeVar("R", bound=_Record)


def merge_records(remote: list[R], local: list[R], removed_ids: Iterable[UUID] = ()) -> list[R]:
    """
    Merge local records into a remote list by id.

    - A local record replaces the remote record with the same id, in place
    - Local records without a remote counterpart are appended
    - Remote-only records are kept
    - Records whose id is in ``removed_ids`` are dropped
    """
    removed = set(removed_ids)
    local_by_id = {record.id: record for record in local}

    merged = []
    seen = set()
    for record in remote:
        if record.id in removed or record.id in seen:
            continue
        merged.append(local_by_id.get(record.id, record))
        seen.add(record.id)

    for record in local:
        if record.id in removed or record.id in seen:
            continue
        merged.append(record)
        seen.add(record.id)

    return merged


def _validate_stock(product: Product) -> None:
    if product.stock > MAX_STOCK:
        raise ValueError(f"Stock cannot exceed {MAX_STOCK}")


class CatalogStore:
    """
    Products and sales for the registry's current scope.

    The scope is re-checked on every call; when the session switches
    company the in-memory state is replaced by that company's cached
    snapshot. With no scope, mutations are ignored and reads are empty.
    """

    def __init__(
        self,
        remote: RemoteStore,
        cache: LocalCache,
        registry: CompanyRegistry,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.remote = remote
        self.cache = cache
        self.registry = registry
        self.retention_days = retention_days
        self.clock = clock

        self.products: list[Product] = []
        self.sales: list[Sale] = []
        self.last_errors: list[str] = []
        self.is_syncing = False

        self._scope: str | None = None
        self._products_dirty = False
        self._removed_product_ids: set[UUID] = set()
        self._unsynced_sale_ids: set[UUID] = set()
        # Bumped on every product change, so a sync can tell what it did not send
        self._products_version = 0

    @property
    def has_pending_changes(self) -> bool:
        self._ensure_scope()
        return self._products_dirty or bool(self._removed_product_ids) or bool(self._unsynced_sale_ids)

    def _record_error(self, message: str) -> None:
        logger.warning(message)
        self.last_errors.append(message)

    # ========================================
    # Scope & Local State
    # ========================================

    def _reset(self) -> None:
        self.products = []
        self.sales = []
        self._products_dirty = False
        self._removed_product_ids = set()
        self._unsynced_sale_ids = set()

    def _ensure_scope(self) -> str | None:
        """Switch in-memory state to the registry's current scope"""
        scope = self.registry.scope
        if scope != self._scope:
            logger.debug(f"Switching catalog scope {self._scope!r} -> {scope!r}")
            self._reset()
            self._scope = scope
            if scope is not None:
                self._load_from_cache()
        return scope

    def _load_from_cache(self) -> None:
        products_raw, sales_raw = self.cache.load_snapshot(self._scope)
        self.products = self._decode_cached(PRODUCT_LIST, products_raw, "products")
        self.sales = self._decode_cached(SALE_LIST, sales_raw, "sales")

        pending = self.cache.get_json(pending_key(self._scope), default={})
        try:
            self._products_dirty = bool(pending.get("products_dirty"))
            self._removed_product_ids = {UUID(i) for i in pending.get("removed_products", [])}
            self._unsynced_sale_ids = {UUID(i) for i in pending.get("unsynced_sales", [])}
        except (AttributeError, TypeError, ValueError):
            logger.warning(f"Ignoring corrupt pending sync state for {self._scope}")
            self._products_dirty = False
            self._removed_product_ids = set()
            self._unsynced_sale_ids = set()

    def _decode_cached(self, adapter: TypeAdapter, raw: str | None, what: str) -> list:
        if raw is None:
            return []
        try:
            return decode_list(adapter, raw, f"cached {what}")
        except DecodingError as e:
            self._record_error(f"Ignoring cached {what} for {self._scope}: {e}")
            return []

    def _save_local(self) -> None:
        """Write memory through to the cache"""
        if self._scope is None:
            return
        self.cache.save_snapshot(
            self._scope,
            products=encode_list(PRODUCT_LIST, self.products).decode("utf-8"),
            sales=encode_list(SALE_LIST, self.sales).decode("utf-8"),
        )
        self.cache.set_json(
            pending_key(self._scope),
            {
                "products_dirty": self._products_dirty,
                "removed_products": sorted(str(i).upper() for i in self._removed_product_ids),
                "unsynced_sales": sorted(str(i).upper() for i in self._unsynced_sale_ids),
            },
        )

    def _prune_sales(self) -> int:
        """Drop synced sales older than the retention window from the working set"""
        cutoff = self.clock() - timedelta(days=self.retention_days)
        kept = [s for s in self.sales if s.date >= cutoff or s.id in self._unsynced_sale_ids]
        pruned = len(self.sales) - len(kept)
        if pruned:
            logger.debug(f"Pruned {pruned} sales older than {self.retention_days} days")
            self.sales = kept
        return pruned

    # ========================================
    # Loading
    # ========================================

    async def load(self) -> tuple[list[Product], list[Sale]]:
        """
        Load products and sales for the current scope.

        Unsynced local changes are merged over the remote data. Any remote
        failure falls back to the cached snapshot and is recorded in
        last_errors.
        """
        if self._ensure_scope() is None:
            return self.products, self.sales

        if not self.remote.is_configured:
            self._load_from_cache()
            self._record_error("No remote connection configured. Loaded data from the local cache.")
            self._prune_sales()
            return self.products, self.sales

        products_path = self.registry.data_path(PRODUCTS_FILE)
        sales_path = self.registry.data_path(SALES_FILE)
        try:
            remote_products = decode_list(PRODUCT_LIST, await self.remote.read(products_path), products_path)
            remote_sales = decode_list(SALE_LIST, await self.remote.read(sales_path), sales_path)
        except (RemoteStoreError, DecodingError) as e:
            self._load_from_cache()
            self._record_error(f"Could not load data ({e}). Loaded data from the local cache.")
            self._prune_sales()
            return self.products, self.sales

        if self._products_dirty or self._removed_product_ids:
            self.products = merge_records(remote_products, self.products, self._removed_product_ids)
        else:
            self.products = remote_products

        unsynced = [s for s in self.sales if s.id in self._unsynced_sale_ids]
        self.sales = merge_records(remote_sales, unsynced)

        self._prune_sales()
        self._save_local()
        logger.info(f"Loaded {len(self.products)} products and {len(self.sales)} sales for {self._scope}")
        return self.products, self.sales

    async def clear_and_reload(self) -> tuple[list[Product], list[Sale]]:
        """Drop in-memory state and load the current scope from scratch"""
        self._reset()
        self._scope = self.registry.scope
        if self._scope is not None:
            self._load_from_cache()
        return await self.load()

    # ========================================
    # Products
    # ========================================

    def add_product(self, product: Product) -> bool:
        """Add a product. Returns False when there is no active scope."""
        if self._ensure_scope() is None:
            logger.warning("Ignoring add_product: no company selected")
            return False
        _validate_stock(product)

        self.products.append(product)
        self._removed_product_ids.discard(product.id)
        self._products_dirty = True
        self._products_version += 1
        self._save_local()
        return True

    def update_product(self, product: Product) -> bool:
        """Replace the product with the same id. Returns False if not found."""
        if self._ensure_scope() is None:
            return False
        _validate_stock(product)

        for i, existing in enumerate(self.products):
            if existing.id == product.id:
                self.products[i] = product
                self._products_dirty = True
                self._products_version += 1
                self._save_local()
                return True
        return False

    def delete_product(self, product: Product | UUID) -> bool:
        """Remove a product; the next sync removes it remotely too"""
        if self._ensure_scope() is None:
            return False
        product_id = product.id if isinstance(product, Product) else product

        remaining = [p for p in self.products if p.id != product_id]
        if len(remaining) == len(self.products):
            return False
        self.products = remaining
        self._removed_product_ids.add(product_id)
        self._products_version += 1
        self._save_local()
        return True

    def get_product(self, product_id: UUID) -> Product | None:
        self._ensure_scope()
        return next((p for p in self.products if p.id == product_id), None)

    def find_product(self, barcode: str) -> Product | None:
        self._ensure_scope()
        return next((p for p in self.products if p.barcode == barcode), None)

    def barcode_exists(self, barcode: str, exclude_id: UUID | None = None) -> bool:
        """Check for a barcode before inserting or editing a product"""
        self._ensure_scope()
        return any(p.barcode == barcode and p.id != exclude_id for p in self.products)

    # ========================================
    # Sales
    # ========================================

    def add_sale(self, sale: Sale) -> bool:
        """Record a sale. Returns False when there is no active scope."""
        if self._ensure_scope() is None:
            logger.warning("Ignoring add_sale: no company selected")
            return False

        self.sales.append(sale)
        self._unsynced_sale_ids.add(sale.id)
        self._prune_sales()
        self._save_local()
        return True

    def sales_for_date(self, day: date, tz: tzinfo | None = None) -> list[Sale]:
        """Sales made on a calendar day (local time unless ``tz`` is given)"""
        self._ensure_scope()
        return [s for s in self.sales if s.date.astimezone(tz).date() == day]

    def sales_grouped_by_date(self, tz: tzinfo | None = None) -> dict[date, list[Sale]]:
        """Sales grouped by calendar day, newest day first"""
        self._ensure_scope()
        grouped: dict[date, list[Sale]] = {}
        for sale in self.sales:
            grouped.setdefault(sale.date.astimezone(tz).date(), []).append(sale)
        return dict(sorted(grouped.items(), reverse=True))

    # ========================================
    # Sync
    # ========================================

    async def _sync_collection(
        self,
        path: str,
        adapter: TypeAdapter,
        local: list,
        removed_ids: set[UUID],
    ) -> list:
        def merge(content: bytes) -> bytes:
            return encode_list(adapter, merge_records(decode_list(adapter, content, path), local, removed_ids))

        stored = await self.remote.update(path, merge, f"Sync {path}")
        return decode_list(adapter, stored, path)

    async def sync_to_github(self) -> bool:
        """
        Merge local products and sales into the remote files.

        Changes made while the sync is running (a sale rung up during the
        upload, say) are kept and stay pending for the next sync; only
        what was actually sent is marked as synced.

        Returns:
            True on success. On failure local state and pending changes
            are kept, the error is recorded, and False is returned.
        """
        scope = self._ensure_scope()
        if scope is None:
            self._record_error("Nothing to sync: no company selected.")
            return False
        if not self.remote.is_configured:
            self._record_error("No remote connection configured. Changes are kept on this device.")
            return False

        # Everything sent is captured before the first await
        products_path = self.registry.data_path(PRODUCTS_FILE)
        sales_path = self.registry.data_path(SALES_FILE)
        products_version = self._products_version
        sent_products = list(self.products)
        sent_removed_ids = set(self._removed_product_ids)
        sent_sales = list(self.sales)
        sent_sale_ids = set(self._unsynced_sale_ids)

        self.is_syncing = True
        try:
            products = await self._sync_collection(products_path, PRODUCT_LIST, sent_products, sent_removed_ids)
            sales = await self._sync_collection(sales_path, SALE_LIST, sent_sales, set())
        except (RemoteStoreError, DecodingError) as e:
            self._record_error(f"Sync failed: {e}")
            return False
        finally:
            self.is_syncing = False

        if self._scope != scope:
            # The session moved to another company; its pending state is still cached
            logger.info(f"Scope changed during sync of {scope}; not applying the result locally")
            return True

        if self._products_version == products_version:
            self.products = products
            self._products_dirty = False
        else:
            self.products = merge_records(products, self.products, self._removed_product_ids)
        self._removed_product_ids -= sent_removed_ids

        self.sales = merge_records(sales, self.sales)
        self._unsynced_sale_ids -= sent_sale_ids

        self._prune_sales()
        self._save_local()
        logger.info(f"Synced {len(self.products)} products and {len(self.sales)} sales for {self._scope}")
        return True
