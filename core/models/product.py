"""Product domain model (inventory side of billing)."""

from enum import Enum
from uuid import UUID

from pydantic import BaseModel


class Product(BaseModel):
    """Product as billing sees it: stock counters and sale flags."""

    id: UUID
    name: str
    stock_quantity: int
    minimum_stock: int = 0
    is_sellable: bool = True
    is_active: bool = True
    sale_price_cents: int = 0

    model_config = {"from_attributes": True}

    @property
    def is_available(self) -> bool:
        """Whether the product can be sold at all."""
        return self.is_active and self.is_sellable

    @property
    def is_below_minimum(self) -> bool:
        return self.stock_quantity <= self.minimum_stock


class StockMovementKind(str, Enum):
    """Direction of a stock movement caused by billing."""

    SALE = "SALE"
    RETURN = "RETURN"
