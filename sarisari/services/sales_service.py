"""
Sales service with transactional logic.
Handles sale creation, stock decrement and sale lookups.

A sale attempt runs Validating -> Pricing -> Reserving -> Persisting inside
one Ledger Store transaction. Any failure rolls the whole attempt back, so
a sale either exists with all of its items and stock decrements, or not
at all.
"""
import logging
import math
from collections import OrderedDict
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from sarisari.database import store_scope
from sarisari.exceptions import (
    InsufficientPaymentError, InsufficientStockError, InvalidCartError,
    InvalidPaymentMethodError, ProductNotFoundError, StorageUnavailableError,
)
from sarisari.models import PaymentMethod, Product, Sale, SalesItem, SaleStatus, StockMovementType
from sarisari.services.pricing_service import CartLine, PricingCalculator, round_money, to_decimal
from sarisari.services.stock_service import StockAccessor
from sarisari.utils.time_utils import day_bounds, utcnow

logger = logging.getLogger(__name__)

SALE_LOAD_OPTIONS = (selectinload(Sale.items).selectinload(SalesItem.product),)


def normalize_cart(cart: Iterable) -> List[dict]:
    """
    Validate raw cart lines.

    Each line needs product_id and an integer quantity >= 1; unit_price is
    an optional override. Returns a list of clean dicts in cart order.
    """
    if not cart:
        raise InvalidCartError('Cart cannot be empty')

    lines = []
    for position, item in enumerate(cart, start=1):
        if not isinstance(item, dict):
            raise InvalidCartError(f'Cart line {position} is malformed', {'line': position})

        product_id = item.get('product_id')
        if product_id is None:
            raise InvalidCartError(f'Cart line {position} has no product_id', {'line': position})

        quantity = item.get('quantity')
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
            raise InvalidCartError(
                f'Quantity must be at least 1 for product {product_id}',
                {'line': position, 'product_id': product_id, 'quantity': quantity},
            )

        unit_price = item.get('unit_price')
        if unit_price is not None:
            unit_price = to_decimal(unit_price, 'unit_price')
            if unit_price < 0:
                raise InvalidCartError(
                    f'Unit price must be non-negative for product {product_id}',
                    {'line': position, 'product_id': product_id, 'unit_price': str(unit_price)},
                )

        lines.append({'product_id': product_id, 'quantity': quantity, 'unit_price': unit_price})
    return lines


def parse_payment_method(value) -> PaymentMethod:
    if isinstance(value, PaymentMethod):
        return value
    try:
        return PaymentMethod(str(value).strip().lower())
    except ValueError:
        raise InvalidPaymentMethodError(value, [m.value for m in PaymentMethod])


class SaleTransactionManager:
    """Entry point for checkout: one call, one atomic sale."""

    def __init__(self, store, stock: StockAccessor, pricing: PricingCalculator,
                 transaction_prefix: str = 'TXN', max_number_retries: int = 5,
                 clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.stock = stock
        self.pricing = pricing
        self.transaction_prefix = transaction_prefix
        self.max_number_retries = max_number_retries
        self.clock = clock

    def create_sale(self, cart, payment_method, cashier_id=None, amount_paid=None,
                    discount_percent=0, customer_id=None, notes=None, store_id=None) -> Sale:
        """
        Create a completed sale from a cart.

        Raises:
            InvalidCartError, InvalidPaymentMethodError, InvalidDiscountError:
                malformed input, nothing touched.
            ProductNotFoundError, InsufficientStockError,
            InsufficientPaymentError: rejected inside the transaction, rolled back.
            StorageUnavailableError: transient; safe to retry from scratch.
        """
        lines = normalize_cart(cart)
        method = parse_payment_method(payment_method)
        paid = to_decimal(amount_paid, 'amount_paid') if amount_paid is not None else None

        with self.store.transaction() as session:
            # Reserving: lock every product row before checking stock
            requested = OrderedDict()
            for line in lines:
                requested[line['product_id']] = requested.get(line['product_id'], 0) + line['quantity']
            products = self._lock_products(session, list(requested), store_id)

            for product_id, quantity in requested.items():
                product = products[product_id]
                if product.stock_quantity < quantity:
                    logger.warning(
                        f"Sale rejected: product {product_id} has {product.stock_quantity}, requested {quantity}"
                    )
                    raise InsufficientStockError(product_id, quantity, product.stock_quantity, product.name)

            # Pricing
            cart_lines = [
                CartLine(
                    product_id=line['product_id'],
                    quantity=line['quantity'],
                    unit_price=line['unit_price'] if line['unit_price'] is not None
                    else products[line['product_id']].unit_price,
                )
                for line in lines
            ]
            pricing = self.pricing.calculate(cart_lines, discount_percent)

            payment_received = round_money(paid) if paid is not None else pricing.total
            change_given = payment_received - pricing.total
            if change_given < 0:
                logger.warning(f"Sale rejected: paid {payment_received}, total {pricing.total}")
                raise InsufficientPaymentError(pricing.total, payment_received)

            # Persisting
            now = self.clock()
            sale = Sale(
                customer_id=customer_id,
                cashier_id=cashier_id,
                subtotal=pricing.subtotal,
                discount=pricing.discount_amount,
                tax=pricing.tax_amount,
                total_amount=pricing.total,
                payment_method=method,
                payment_received=payment_received,
                change_given=change_given,
                status=SaleStatus.COMPLETED,
                notes=notes,
                store_id=store_id,
                created_at=now,
            )
            self._insert_with_transaction_number(session, sale, now)

            for cart_line in cart_lines:
                session.add(SalesItem(
                    sale=sale,
                    product=products[cart_line.product_id],
                    quantity=cart_line.quantity,
                    unit_price=round_money(cart_line.unit_price),
                    total_price=cart_line.line_total,
                    discount=Decimal('0.00'),
                    created_at=now,
                ))

            for product_id, quantity in requested.items():
                self.stock.decrement(
                    session, product_id, quantity,
                    movement_type=StockMovementType.SALE,
                    reference_id=sale.id,
                    note=f"Sale {sale.transaction_number}",
                )
            session.flush()
            sale = self._load_sale(session, sale.id)

        logger.info(
            f"Sale {sale.transaction_number} completed: {len(cart_lines)} lines, total {sale.total_amount}"
        )
        return sale

    def get_sale(self, sale_id, store_id=None) -> Optional[Sale]:
        """Sale with its items, or None when missing or outside the store."""
        with self.store.transaction() as session:
            return session.execute(
                select(Sale)
                .where(Sale.id == sale_id, store_scope(Sale.store_id, store_id))
                .options(*SALE_LOAD_OPTIONS)
            ).scalar_one_or_none()

    def list_sales(self, page=1, limit=20, start: Optional[datetime] = None,
                   end: Optional[datetime] = None, status=None, store_id=None):
        """Paginated sales history, newest first."""
        page = max(1, int(page))
        limit = max(1, min(int(limit), 100))

        filters = [store_scope(Sale.store_id, store_id)]
        if start is not None:
            filters.append(Sale.created_at >= start)
        if end is not None:
            filters.append(Sale.created_at <= end)
        if status is not None:
            filters.append(Sale.status == (status if isinstance(status, SaleStatus) else SaleStatus(status)))

        with self.store.transaction() as session:
            total = session.execute(select(func.count(Sale.id)).where(*filters)).scalar_one()
            sales = session.execute(
                select(Sale)
                .where(*filters)
                .order_by(Sale.created_at.desc(), Sale.id.desc())
                .limit(limit)
                .offset((page - 1) * limit)
                .options(*SALE_LOAD_OPTIONS)
            ).scalars().all()

        return sales, {
            'page': page,
            'limit': limit,
            'total': total,
            'total_pages': math.ceil(total / limit) if total else 0,
        }

    def daily_summary(self, store_id=None, day: Optional[date] = None) -> dict:
        """Count and revenue of completed sales for one day."""
        day = day or self.clock().date()
        start, end = day_bounds(day)
        with self.store.transaction() as session:
            count, revenue = session.execute(
                select(func.count(Sale.id), func.coalesce(func.sum(Sale.total_amount), 0))
                .where(
                    store_scope(Sale.store_id, store_id),
                    Sale.status == SaleStatus.COMPLETED,
                    Sale.created_at >= start,
                    Sale.created_at < end,
                )
            ).one()
        return {
            'date': day.isoformat(),
            'sale_count': int(count),
            'total_revenue': round_money(to_decimal(revenue)),
        }

    # =====================================================
    # PRIVATE HELPERS
    # =====================================================

    def _lock_products(self, session, product_ids, store_id) -> dict:
        """Lock product rows FOR UPDATE (in id order) and return them by id."""
        products = session.execute(
            select(Product)
            .where(Product.id.in_(product_ids), store_scope(Product.store_id, store_id))
            .order_by(Product.id)
            .with_for_update()
        ).scalars().all()
        found = {p.id: p for p in products}
        for product_id in product_ids:
            if product_id not in found:
                raise ProductNotFoundError(product_id)
        return found

    @staticmethod
    def _load_sale(session, sale_id) -> Sale:
        """Reload a sale with items and products so it stays readable once detached."""
        return session.execute(
            select(Sale)
            .where(Sale.id == sale_id)
            .options(*SALE_LOAD_OPTIONS)
            .execution_options(populate_existing=True)
        ).scalar_one()

    def _next_transaction_number(self, session, now: datetime) -> str:
        prefix = f"{self.transaction_prefix}-{now:%Y%m%d}-"
        # Longer sequences sort after shorter ones once a day passes 99999
        last = session.execute(
            select(Sale.transaction_number)
            .where(Sale.transaction_number.like(f"{prefix}%"))
            .order_by(func.length(Sale.transaction_number).desc(), Sale.transaction_number.desc())
            .limit(1)
        ).scalar_one_or_none()
        sequence = int(last[len(prefix):]) + 1 if last else 1
        return f"{prefix}{sequence:05d}"

    def _insert_with_transaction_number(self, session, sale: Sale, now: datetime):
        """
        Insert the sale under a fresh per-day transaction number.

        Each attempt runs in a SAVEPOINT; a unique-key collision rolls back
        only the savepoint and the number is recomputed.
        """
        for attempt in range(1, self.max_number_retries + 1):
            sale.transaction_number = self._next_transaction_number(session, now)
            try:
                with session.begin_nested():
                    session.add(sale)
                    session.flush()
                return
            except IntegrityError:
                # Savepoint rollback expunged the sale; drop the flushed key
                sale.id = None
                logger.warning(
                    f"Transaction number {sale.transaction_number} already taken (attempt {attempt})"
                )
        raise StorageUnavailableError(
            f"Could not allocate a transaction number after {self.max_number_retries} attempts"
        )
