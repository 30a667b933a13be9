### Description ###
# PetShop Sync - Storage core for the PetShop POS app
# - Cache Entry Model -
# Date: 10/19/2026
# Python: 3.11
####################

"""
Cache Entry Model

One key/value pair of the local cache. Values are JSON or plain text.
"""

from datetime import UTC, datetime

from sqlalchemy import Column, DateTime, String, Text

from petshop.database import Base


def _now() -> datetime:
    return datetime.now(UTC)


class CacheEntry(Base):
    """
    Cache entry model - a single cached value.

    Keys used by the services:
        - "companies" - company list JSON
        - "current_company_id" - last selected company
        - "encryption_key" - base64 shared key
        - "products:<scope>" / "sales:<scope>" - record snapshots
        - "pending:<scope>" - unsynced change markers
    """

    __tablename__ = "cache_entries"

    key = Column(String(255), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=_now, onupdate=_now, nullable=False)

    def __repr__(self):
        return f"<CacheEntry(key='{self.key}')>"
