### Description ###
# PetShop Sync - Storage core for the PetShop POS app
# - Service Wiring -
# Date: 10/19/2026
# Python: 3.11
####################

"""
Service Wiring

Builds the service bundle from config.yaml and the process settings.
Services are constructed explicitly and passed to their callers; there
is no module-level state, so tests can swap in their own remote store
or cache.
"""

import logging
from dataclasses import dataclass

from petshop.config import AdminSettings, PetShopSettings, get_settings
from petshop.config_schema import AppConfig
from petshop.database import DEFAULT_DATABASE_URL
from petshop.services.catalog_store import CatalogStore
from petshop.services.checkout import Checkout
from petshop.services.company_registry import CompanyRegistry
from petshop.services.config_service import ConfigService
from petshop.services.encryption import EncryptionKeyProvider
from petshop.services.local_cache import LocalCache
from petshop.services.remote_store import RemoteStore, RetryPolicy, create_remote_store

logger = logging.getLogger(__name__)


@dataclass
class PetShopServices:
    """Everything the UI needs, wired together"""

    config: AppConfig
    config_service: ConfigService
    remote: RemoteStore
    cache: LocalCache
    keys: EncryptionKeyProvider
    registry: CompanyRegistry
    store: CatalogStore

    def checkout(self) -> Checkout:
        """New cart against the catalog store"""
        return Checkout(self.store)

    async def close(self) -> None:
        """Release the HTTP client"""
        await self.remote.close()


def create_remote_store_from_config(config: AppConfig) -> RemoteStore:
    storage = config.storage
    return create_remote_store(
        owner=storage.owner,
        repo=storage.repo,
        token=storage.token,
        api_url=storage.api_url,
        branch=storage.branch,
        timeout=storage.timeout,
        retry_policy=RetryPolicy(
            max_attempts=config.sync.max_attempts,
            backoff_seconds=config.sync.backoff_seconds,
        ),
    )


def create_services(
    settings: PetShopSettings | None = None,
    config_service: ConfigService | None = None,
    remote: RemoteStore | None = None,
    cache: LocalCache | None = None,
) -> PetShopServices:
    """
    Build the service bundle.

    Args:
        settings: Process settings (defaults to get_settings())
        config_service: Config file access (defaults to settings.config_path)
        remote: Remote store override (defaults to the configured transport)
        cache: Local cache override (defaults to cache.database_url)

    Returns:
        PetShopServices with nothing loaded yet; see bootstrap_services()
    """
    settings = settings or get_settings()
    config_service = config_service or ConfigService(settings.config_path)
    config = config_service.get_app_config()

    remote = remote or create_remote_store_from_config(config)
    cache = cache or LocalCache(config.cache.database_url or DEFAULT_DATABASE_URL)
    keys = EncryptionKeyProvider(remote, cache)

    registry = CompanyRegistry(
        remote=remote,
        cache=cache,
        keys=keys,
        admin=AdminSettings(config.admin, default_password=settings.admin_default_password),
        config_service=config_service,
        trial_days=config.trial.days,
        reap_on_login=config.trial.reap_on_login,
    )
    store = CatalogStore(remote, cache, registry, retention_days=config.retention.sales_days)

    logger.debug(f"Created services using {type(remote).__name__}")
    return PetShopServices(
        config=config,
        config_service=config_service,
        remote=remote,
        cache=cache,
        keys=keys,
        registry=registry,
        store=store,
    )


async def bootstrap_services(services: PetShopServices) -> PetShopServices:
    """
    Startup sequence: key first, then companies, then the last session.

    The key is loaded before the companies so that passwords can be
    verified as soon as the list is available.
    """
    await services.keys.load()
    await services.registry.load_companies()
    if services.registry.restore_session() is not None:
        await services.store.load()
    return services
