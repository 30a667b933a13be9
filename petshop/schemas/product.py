### Description ###
# PetShop Sync - Storage core for the PetShop POS app
# - Product Schema -
# Date: 10/19/2026
# Python: 3.11
####################

"""
Product Schema

Catalog entries for one company, stored in ``companies/<id>/products.json``.
"""

import uuid
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_serializer

# Highest stock value accepted by the product editor
MAX_STOCK = 9999


class Product(BaseModel):
    """A product in a company's catalog"""

    model_config = ConfigDict(populate_by_name=True)

    id: UUID = Field(default_factory=uuid.uuid4)
    name: str
    description: str = ""
    price: float = Field(gt=0)
    barcode: str
    stock: int = Field(default=0, ge=0)

    @field_serializer("id")
    def serialize_id(self, v: UUID) -> str:
        # Existing files use uppercase UUIDs
        return str(v).upper()


PRODUCT_LIST = TypeAdapter(list[Product])
