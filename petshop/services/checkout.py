### Description ###
# PetShop Sync - Storage core for the PetShop POS app
# - Checkout -
# Date: 10/19/2026
# Python: 3.11
####################

"""
Checkout

Cart handling for the sales screen. Stock moves as soon as a product is
put in the cart and is restored when a line is removed or the cart is
cleared, so the catalog always shows what is still on the shelf.
"""

import logging
import uuid
from dataclasses import dataclass, field
from uuid import UUID

from petshop.errors import EmptyCartError, InsufficientStockError, ProductNotFoundError
from petshop.schemas import MAX_STOCK, Sale, SaleItem
from petshop.services.catalog_store import CatalogStore

logger = logging.getLogger(__name__)


@dataclass
class CartLine:
    """One product in the cart"""

    product_id: UUID
    product_name: str
    barcode: str
    unit_price: float
    quantity: int
    id: UUID = field(default_factory=uuid.uuid4)

    @property
    def total(self) -> float:
        return self.unit_price * self.quantity


class Checkout:
    """Cart for one sale against a CatalogStore"""

    def __init__(self, store: CatalogStore):
        self.store = store
        self.lines: list[CartLine] = []

    @property
    def total(self) -> float:
        return sum(line.total for line in self.lines)

    @property
    def is_empty(self) -> bool:
        return not self.lines

    def add_to_cart(self, barcode: str, quantity: int = 1) -> CartLine:
        """
        Put units of a product in the cart, taking them out of stock.

        Scanning a product already in the cart increases that line.

        Raises:
            ValueError: If quantity is less than 1
            ProductNotFoundError: If no product has this barcode
            InsufficientStockError: If fewer units are in stock
        """
        if quantity < 1:
            raise ValueError("Quantity must be at least 1")

        product = self.store.find_product(barcode)
        if product is None:
            raise ProductNotFoundError(barcode)
        if quantity > product.stock:
            raise InsufficientStockError(barcode, quantity, product.stock)

        self.store.update_product(product.model_copy(update={"stock": product.stock - quantity}))

        line = next((line for line in self.lines if line.product_id == product.id), None)
        if line is None:
            line = CartLine(
                product_id=product.id,
                product_name=product.name,
                barcode=product.barcode,
                unit_price=product.price,
                quantity=quantity,
            )
            self.lines.append(line)
        else:
            line.quantity += quantity

        logger.debug(f"Cart: {quantity} x {product.name} ({product.stock - quantity} left)")
        return line

    def _restore_stock(self, line: CartLine) -> None:
        product = self.store.get_product(line.product_id)
        if product is None:
            # Deleted while in the cart
            return
        stock = product.stock + line.quantity
        if stock > MAX_STOCK:
            logger.warning(
                f"Restoring {line.quantity} x {product.name} would exceed {MAX_STOCK}; "
                f"{stock - MAX_STOCK} unit(s) not put back in stock"
            )
            stock = MAX_STOCK
        self.store.update_product(product.model_copy(update={"stock": stock}))

    def remove_from_cart(self, line_id: UUID) -> bool:
        """Remove a cart line and put its units back in stock"""
        line = next((line for line in self.lines if line.id == line_id), None)
        if line is None:
            return False
        self.lines.remove(line)
        self._restore_stock(line)
        return True

    def clear_cart(self) -> None:
        """Empty the cart, restoring stock for every line"""
        for line in self.lines:
            self._restore_stock(line)
        self.lines.clear()

    def complete_sale(self) -> Sale:
        """
        Record the cart as a sale and empty it.

        Stock was already taken when the products were added.

        Raises:
            EmptyCartError: If the cart is empty
        """
        if not self.lines:
            raise EmptyCartError()

        items = [
            SaleItem.create(
                product_name=line.product_name,
                product_barcode=line.barcode,
                quantity=line.quantity,
                unit_price=line.unit_price,
            )
            for line in self.lines
        ]
        sale = Sale.create(items, date=self.store.clock())
        self.store.add_sale(sale)
        self.lines.clear()

        logger.info(f"Completed sale {sale.id} ({len(items)} items, total {sale.total_amount:.2f})")
        return sale
