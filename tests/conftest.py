"""
Shared pytest fixtures for PetShop Sync tests.

Provides:
- Isolated file-based SQLite cache per test
- In-memory remote store (no network)
- Wired services: key provider, company registry, catalog store, checkout
- A controllable clock
- A clean "petshop" logger
"""

import logging

import bcrypt
import pytest

from petshop.config import DEFAULT_ADMIN_PASSWORD, AdminSettings
from petshop.config_schema import AdminConfig
from petshop.services.catalog_store import CatalogStore
from petshop.services.checkout import Checkout
from petshop.services.company_registry import CompanyRegistry
from petshop.services.config_service import ConfigService
from petshop.services.encryption import EncryptionKeyProvider
from petshop.services.local_cache import LocalCache

from tests.fixtures.factories import FakeClock
from tests.mocks.memory_remote_store import InMemoryRemoteStore


# ============================================
# Infrastructure Fixtures
# ============================================


@pytest.fixture(scope="function")
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(scope="function")
def package_logger():
    """The "petshop" logger, with handlers and level reset after the test"""
    logger = logging.getLogger("petshop")
    level = logger.level
    _remove_handlers(logger)
    yield logger
    _remove_handlers(logger)
    logger.setLevel(level)


def _remove_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


@pytest.fixture(scope="function")
def cache(tmp_path) -> LocalCache:
    """
    Isolated cache database for each test.

    Uses a file-based database in tmp_path to avoid connection isolation
    issues with in-memory SQLite.
    """
    return LocalCache(f"sqlite:///{tmp_path / 'cache.db'}")


@pytest.fixture(scope="function")
def remote() -> InMemoryRemoteStore:
    return InMemoryRemoteStore()


@pytest.fixture(scope="function")
def config_service(tmp_path) -> ConfigService:
    """ConfigService on a fresh default config.yaml"""
    return ConfigService(tmp_path / "config.yaml")


# ============================================
# Service Fixtures
# ============================================


@pytest.fixture(scope="function")
def keys(remote, cache) -> EncryptionKeyProvider:
    return EncryptionKeyProvider(remote, cache)


@pytest.fixture(scope="function")
def admin_settings() -> AdminSettings:
    """Admin login with the default password, hashed with cheap rounds"""
    password_hash = bcrypt.hashpw(DEFAULT_ADMIN_PASSWORD.encode(), bcrypt.gensalt(rounds=4)).decode()
    return AdminSettings(AdminConfig(password_hash=password_hash))


@pytest.fixture(scope="function")
def registry(remote, cache, keys, admin_settings, config_service, clock) -> CompanyRegistry:
    return CompanyRegistry(
        remote=remote,
        cache=cache,
        keys=keys,
        admin=admin_settings,
        config_service=config_service,
        clock=clock,
    )


@pytest.fixture(scope="function")
def store(remote, cache, registry, clock) -> CatalogStore:
    return CatalogStore(remote, cache, registry, clock=clock)


@pytest.fixture(scope="function")
def checkout(store) -> Checkout:
    return Checkout(store)
