from collections import OrderedDict
from typing import Dict, Iterable, List, Tuple

from sqlalchemy.orm import Session

from autoshop.core.exceptions import InsufficientStockError, NotFoundError
from autoshop.logger_config import logger
from autoshop.models.product import Product


class StockAdjuster:
    """
    Applies and reverses product quantity deltas for order line items.

    Line items are anything with ``product_id`` and ``quantity`` attributes
    (OrderItem rows or request schemas). Products are row-locked for the
    rest of the surrounding transaction.
    """

    def __init__(self, db: Session):
        self.db = db

    def _aggregate(self, items: Iterable) -> "OrderedDict[str, int]":
        totals: "OrderedDict[str, int]" = OrderedDict()
        for item in items:
            totals[item.product_id] = totals.get(item.product_id, 0) + int(item.quantity)
        return totals

    def load_products(self, product_ids: Iterable[str], include_deleted: bool = False) -> Dict[str, Product]:
        ids = sorted(set(product_ids))
        if not ids:
            return {}
        query = self.db.query(Product).filter(Product.id.in_(ids))
        if not include_deleted:
            query = query.filter(Product.is_deleted.is_(False))
        query = query.with_for_update()
        products = {product.id: product for product in query.all()}
        for product_id in ids:
            if product_id not in products:
                raise NotFoundError("Product", product_id)
        return products

    def check(self, items: Iterable) -> List[Tuple[Product, int]]:
        """Validate availability without mutating anything."""
        totals = self._aggregate(items)
        products = self.load_products(totals.keys())
        checked = []
        for product_id, quantity in totals.items():
            product = products[product_id]
            if product.quantity < quantity:
                logger.error(
                    f"Insufficient stock for {product.name} ({product_id}): "
                    f"available {product.quantity}, requested {quantity}"
                )
                raise InsufficientStockError(product_id, product.name, product.quantity, quantity)
            checked.append((product, quantity))
        return checked

    def decrement(self, items: Iterable) -> None:
        for product, quantity in self.check(items):
            product.quantity -= quantity
            logger.debug(f"Stock {product.id}: -{quantity} → {product.quantity}")
        self.db.flush()

    def restore(self, items: Iterable) -> None:
        totals = self._aggregate(items)
        # Stock returns even to products removed from the catalog since the sale
        products = self.load_products(totals.keys(), include_deleted=True)
        for product_id, quantity in totals.items():
            product = products[product_id]
            product.quantity += quantity
            logger.debug(f"Stock {product_id}: +{quantity} → {product.quantity}")
        self.db.flush()
