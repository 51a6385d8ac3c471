"""
==============================================================================
Catalog Models Module
==============================================================================

Pydantic models for stores and products.

==============================================================================
"""

from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class Store(BaseModel):
    """
    A store (tenant) that owns products.

    Attributes:
        id: Store identifier
        name: Display name
        type: Store kind (e.g., "hardware", "cosmetics", "pets")
    """

    model_config = ConfigDict(from_attributes=True, extra="ignore")

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    type: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None


class Product(BaseModel):
    """
    Product sold by one store.

    Attributes:
        id: Product identifier
        name: Display name
        barcode: Printed barcode (EAN/UPC/Code128...)
        sku: Internal stock keeping unit
        store_id: Owning store
        unit_price: Sale price
        stock_quantity: Units on hand
    """

    model_config = ConfigDict(from_attributes=True, extra="ignore")

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    barcode: Optional[str] = None
    sku: Optional[str] = None
    category: Optional[str] = None
    store_id: str = Field(..., min_length=1)
    unit_price: float = Field(..., ge=0)
    cost_price: Optional[float] = Field(default=None, ge=0)
    stock_quantity: int = 0
    min_stock: int = 0
    is_active: bool = True

    @property
    def is_low_stock(self) -> bool:
        return self.stock_quantity <= self.min_stock

    def to_summary(self) -> dict:
        """Fields shown in lookups and search results."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "barcode": self.barcode,
            "sku": self.sku,
            "store_id": self.store_id,
            "unit_price": self.unit_price,
            "stock_quantity": self.stock_quantity,
        }
