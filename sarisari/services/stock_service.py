"""
Stock accessor - the only code that changes products.stock_quantity.

Every change is a single conditional UPDATE executed inside the caller's
transaction, so two concurrent decrements can never both succeed past
zero: the second one either waits on the row lock or matches no row.
"""
import logging
from typing import Optional

from sqlalchemy import select, update

from sarisari.exceptions import InsufficientStockError, InvalidQuantityError, ProductNotFoundError
from sarisari.models import Product, StockMovement, StockMovementType
from sarisari.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


def _require_quantity(quantity, allow_zero=False):
    if not isinstance(quantity, int) or isinstance(quantity, bool):
        raise InvalidQuantityError(quantity)
    if quantity < 0 or (quantity == 0 and not allow_zero):
        raise InvalidQuantityError(quantity)


class StockAccessor:
    """Reads and atomically adjusts product stock counters."""

    def check_availability(self, session, product_id: int) -> int:
        """Current stock of a product; does not mutate."""
        available = session.execute(
            select(Product.stock_quantity).where(Product.id == product_id)
        ).scalar_one_or_none()
        if available is None:
            raise ProductNotFoundError(product_id)
        return available

    def decrement(self, session, product_id: int, quantity: int,
                  movement_type=StockMovementType.SALE,
                  reference_id: Optional[int] = None, note: Optional[str] = None) -> int:
        """
        Subtract quantity from a product's stock.

        Raises InsufficientStockError (nothing written) if the result would
        be negative. Returns the new stock level.
        """
        _require_quantity(quantity)

        new_quantity = session.execute(
            update(Product)
            .where(Product.id == product_id, Product.stock_quantity >= quantity)
            .values(stock_quantity=Product.stock_quantity - quantity, updated_at=utcnow())
            .returning(Product.stock_quantity)
            .execution_options(synchronize_session='fetch')
        ).scalar_one_or_none()

        if new_quantity is None:
            available = self.check_availability(session, product_id)
            logger.warning(
                f"Stock decrement rejected for product {product_id}: requested {quantity}, available {available}"
            )
            raise InsufficientStockError(product_id, quantity, available)

        self._record_movement(session, product_id, -quantity, movement_type, reference_id, note)
        return new_quantity

    def increment(self, session, product_id: int, quantity: int,
                  movement_type=StockMovementType.RESTOCK,
                  reference_id: Optional[int] = None, note: Optional[str] = None) -> int:
        """Add quantity (>= 0) to a product's stock. Returns the new stock level."""
        _require_quantity(quantity, allow_zero=True)

        new_quantity = session.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(stock_quantity=Product.stock_quantity + quantity, updated_at=utcnow())
            .returning(Product.stock_quantity)
            .execution_options(synchronize_session='fetch')
        ).scalar_one_or_none()

        if new_quantity is None:
            raise ProductNotFoundError(product_id)

        if quantity:
            self._record_movement(session, product_id, quantity, movement_type, reference_id, note)
        return new_quantity

    @staticmethod
    def _record_movement(session, product_id, delta, movement_type, reference_id, note):
        session.add(StockMovement(
            product_id=product_id,
            quantity_delta=delta,
            movement_type=movement_type,
            reference_id=reference_id,
            note=note,
            created_at=utcnow(),
        ))
