"""Service for cancelling sales with stock reversal."""
import logging
from collections import OrderedDict
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy import select

from sarisari.database import store_scope
from sarisari.exceptions import AlreadyCancelledError, SaleNotFoundError
from sarisari.models import Sale, SaleStatus, StockMovementType
from sarisari.services.sales_service import SALE_LOAD_OPTIONS
from sarisari.services.stock_service import StockAccessor
from sarisari.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


class SaleCancellationManager:
    """
    Compensating transaction for a completed sale.

    The sale row and its items are kept; stock for every item is restored
    and the sale moves to CANCELLED, all in one transaction.
    """

    def __init__(self, store, stock: StockAccessor, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.stock = stock
        self.clock = clock

    def cancel_sale(self, sale_id: int, reason: Optional[str] = None, store_id=None) -> Sale:
        """
        Cancel a sale and put its quantities back on the shelf.

        Steps:
        1. Lock the sale row (scoped to the caller's store)
        2. Reject missing or already cancelled sales
        3. Increment stock for every item, in product id order
        4. Mark cancelled and append the reason to notes

        Raises:
            SaleNotFoundError: no such sale in the caller's store
            AlreadyCancelledError: double cancel; nothing is changed
        """
        with self.store.transaction() as session:
            sale = session.execute(
                select(Sale)
                .where(Sale.id == sale_id, store_scope(Sale.store_id, store_id))
                .options(*SALE_LOAD_OPTIONS)
                .with_for_update(of=Sale)
            ).scalar_one_or_none()

            if sale is None:
                raise SaleNotFoundError(sale_id)

            if sale.status == SaleStatus.CANCELLED:
                logger.warning(f"Cancel rejected: sale {sale.transaction_number} is already cancelled")
                raise AlreadyCancelledError(sale.id, sale.transaction_number)

            restored = OrderedDict()
            for item in sorted(sale.items, key=lambda i: i.product_id):
                restored[item.product_id] = restored.get(item.product_id, 0) + item.quantity

            for product_id, quantity in restored.items():
                self.stock.increment(
                    session, product_id, quantity,
                    movement_type=StockMovementType.SALE_CANCEL,
                    reference_id=sale.id,
                    note=f"Cancel {sale.transaction_number}",
                )

            note = f"Cancelled: {reason or 'No reason provided'}"
            sale.notes = f"{sale.notes}\n{note}" if sale.notes else note
            sale.status = SaleStatus.CANCELLED
            sale.cancelled_at = self.clock()
            session.flush()

        logger.info(
            f"Sale {sale.transaction_number} cancelled, restored {sum(restored.values())} units "
            f"across {len(restored)} products"
        )
        return sale
