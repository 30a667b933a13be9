### Description ###
# PetShop Sync - Storage core for the PetShop POS app
# - Models Package -
# Date: 10/19/2026
# Python: 3.11
####################

"""
Models Package

Contains SQLAlchemy models for the local cache database:
- CacheEntry: key/value snapshot storage

Note: These models are for the on-device SQLite cache, not the
remote JSON files (see petshop.schemas).
"""

from petshop.models.cache_entry import CacheEntry

__all__ = [
    "CacheEntry",
]
