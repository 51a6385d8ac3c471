"""
==============================================================================
Sale Draft Module
==============================================================================

In-progress sale fed by barcode scans and manual entries.

Rules:
------
- The first product added fixes the sale's store
- Products from another store are rejected
- Adding a product already in the sale increments its quantity
- Quantities never drop below 1; removing the last line frees the store
- total = max(0, subtotal - discount)

==============================================================================
"""

from __future__ import annotations

import logging
import math
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from pos_scanner.catalog import ProductRepository
from pos_scanner.core import exceptions


# Module logger
logger = logging.getLogger(__name__)


UNKNOWN_STORE_NAME = "Unknown store"


class SaleLine(BaseModel):
    """One product line of a sale."""

    product_id: str
    name: str
    price: float = Field(..., ge=0)
    quantity: int = Field(default=1, ge=1)
    store_id: str

    @property
    def total(self) -> float:
        return round(self.price * self.quantity, 2)

    def to_dict(self) -> dict:
        return {**self.model_dump(), "total": self.total}


class SaleDraft:
    """
    Sale being assembled at the register.

    Example:
        >>> draft = SaleDraft(catalog)
        >>> draft.add_by_identifier("7501031311309").quantity
        1
        >>> draft.add_by_identifier("7501031311309").quantity
        2
    """

    def __init__(self, repository: ProductRepository) -> None:
        self._repository = repository
        self._lines: Dict[str, SaleLine] = {}
        self._store_id: Optional[str] = None
        self._store_name: Optional[str] = None
        self._discount = 0.0

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def lines(self) -> List[SaleLine]:
        return list(self._lines.values())

    @property
    def store_id(self) -> Optional[str]:
        return self._store_id

    @property
    def store_name(self) -> Optional[str]:
        return self._store_name

    @property
    def discount(self) -> float:
        return self._discount

    @property
    def subtotal(self) -> float:
        return round(sum(line.total for line in self._lines.values()), 2)

    @property
    def total(self) -> float:
        return max(0.0, round(self.subtotal - self._discount, 2))

    @property
    def is_empty(self) -> bool:
        return not self._lines

    # =========================================================================
    # LINE OPERATIONS
    # =========================================================================

    def add_by_identifier(self, identifier: str) -> SaleLine:
        """
        Add one unit of the product matching a barcode, SKU or name.

        Raises:
            AppException: PRODUCT_NOT_FOUND or STORE_MISMATCH
        """
        identifier = (identifier or "").strip()
        if not identifier:
            raise exceptions.invalid_manual_input()

        product = self._repository.find_by_identifier(identifier)
        if product is None:
            logger.info(f"Product not found: {identifier}")
            raise exceptions.product_not_found(identifier)

        if self._store_id is None:
            store = self._repository.get_store(product.store_id)
            self._store_id = product.store_id
            self._store_name = store.name if store else UNKNOWN_STORE_NAME
        elif self._store_id != product.store_id:
            logger.info(f"Store mismatch for {product.id}: {product.store_id} != {self._store_id}")
            raise exceptions.store_mismatch(self._store_id, product.store_id)

        line = self._lines.get(product.id)
        if line is not None:
            line.quantity += 1
        else:
            line = SaleLine(
                product_id=product.id,
                name=product.name,
                price=product.unit_price,
                quantity=1,
                store_id=product.store_id
            )
            self._lines[product.id] = line

        logger.debug(f"🧾 {line.name} x{line.quantity}")
        return line

    def increase(self, product_id: str) -> SaleLine:
        line = self._get_line(product_id)
        line.quantity += 1
        return line

    def decrease(self, product_id: str) -> SaleLine:
        """Decrease a line's quantity, stopping at 1."""
        line = self._get_line(product_id)
        if line.quantity > 1:
            line.quantity -= 1
        return line

    def remove(self, product_id: str) -> None:
        self._get_line(product_id)
        del self._lines[product_id]

        if not self._lines:
            self._store_id = None
            self._store_name = None

    def set_discount(self, amount) -> None:
        """
        Set the sale discount.

        Raises:
            AppException: INVALID_DISCOUNT for negative, non-numeric or non-finite amounts
        """
        try:
            value = float(amount)
        except (TypeError, ValueError):
            raise exceptions.invalid_discount(amount)

        if not math.isfinite(value) or value < 0:
            raise exceptions.invalid_discount(amount)

        self._discount = round(value, 2)

    def clear(self) -> None:
        self._lines.clear()
        self._store_id = None
        self._store_name = None
        self._discount = 0.0

    def _get_line(self, product_id: str) -> SaleLine:
        line = self._lines.get(product_id)
        if line is None:
            raise exceptions.sale_line_not_found(product_id)
        return line

    def to_dict(self) -> dict:
        return {
            "store_id": self._store_id,
            "store_name": self._store_name,
            "lines": [line.to_dict() for line in self._lines.values()],
            "subtotal": self.subtotal,
            "discount": self._discount,
            "total": self.total,
        }
