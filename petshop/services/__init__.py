### Description ###
# PetShop Sync - Storage core for the PetShop POS app
# - Services Package -
# Date: 10/19/2026
# Python: 3.11
####################

"""
Services Package

Contains the storage and sync services:
- remote_store: GitHub Contents API / backend file clients
- encryption: shared key provider and password encryption
- company_registry: companies, sessions and trials
- catalog_store: products and sales with merge-then-push sync
- checkout: cart and sale completion
- local_cache: on-device SQLite cache
- config_service: comment-preserving config.yaml editing
"""

from .catalog_store import CatalogStore
from .checkout import CartLine, Checkout
from .company_registry import CompanyRegistry
from .config_service import ConfigService
from .encryption import EncryptionKeyProvider
from .local_cache import LocalCache
from .remote_store import BackendFileStore, GitHubContentsStore, RemoteStore, RetryPolicy, create_remote_store

__all__ = [
    "BackendFileStore",
    "CartLine",
    "CatalogStore",
    "Checkout",
    "CompanyRegistry",
    "ConfigService",
    "EncryptionKeyProvider",
    "GitHubContentsStore",
    "LocalCache",
    "RemoteStore",
    "RetryPolicy",
    "create_remote_store",
]
