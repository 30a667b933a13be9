### Description ###
# PetShop Sync - Storage core for the PetShop POS app
# - Sale Schema -
# Date: 10/19/2026
# Python: 3.11
####################

"""
Sale Schema

Completed sales for one company, stored in ``companies/<id>/sales.json``.
Sales are append-only: totals are computed once, when the sale is built,
and the models are frozen afterwards.
"""

import uuid
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_serializer, field_validator

from petshop.schemas.common import ensure_utc, format_iso8601, utcnow


class SaleItem(BaseModel):
    """One line of a sale"""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: UUID = Field(default_factory=uuid.uuid4)
    product_name: str = Field(alias="productName")
    product_barcode: str = Field(alias="productBarcode")
    quantity: int = Field(ge=1)
    unit_price: float = Field(alias="unitPrice")
    total_price: float = Field(alias="totalPrice")

    @classmethod
    def create(
        cls,
        product_name: str,
        product_barcode: str,
        quantity: int,
        unit_price: float,
    ) -> "SaleItem":
        """Build a sale item, computing its total price"""
        return cls(
            product_name=product_name,
            product_barcode=product_barcode,
            quantity=quantity,
            unit_price=unit_price,
            total_price=unit_price * quantity,
        )

    @field_serializer("id")
    def serialize_id(self, v: UUID) -> str:
        return str(v).upper()


class Sale(BaseModel):
    """A completed sale"""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: UUID = Field(default_factory=uuid.uuid4)
    date: datetime = Field(default_factory=utcnow)
    items: list[SaleItem] = Field(default_factory=list)
    total_amount: float = Field(alias="totalAmount")

    @classmethod
    def create(cls, items: list[SaleItem], date: datetime | None = None) -> "Sale":
        """Build a sale, computing its total from the item totals"""
        return cls(
            date=date or utcnow(),
            items=items,
            total_amount=sum(item.total_price for item in items),
        )

    @field_validator("date")
    @classmethod
    def normalize_timezone(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @field_serializer("date")
    def serialize_date(self, v: datetime) -> str:
        return format_iso8601(v)

    @field_serializer("id")
    def serialize_id(self, v: UUID) -> str:
        return str(v).upper()


SALE_LIST = TypeAdapter(list[Sale])
