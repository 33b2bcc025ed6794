"""
Handler for ProductStockLow events.

Logs products a sale left at or below their minimum stock so the inventory
team can reorder.
"""

import logging
from typing import Callable

from core.events import ProductStockLow

logger = logging.getLogger(__name__)


def handle_product_stock_low() -> Callable:
    """Factory that returns a ProductStockLow handler."""

    def handler(event: ProductStockLow):
        product = event.product
        logger.warning(
            "Product %s (%s) is at %d units, minimum is %d",
            product.name,
            product.id,
            product.stock_quantity,
            product.minimum_stock,
        )

    return handler
