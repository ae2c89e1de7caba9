"""
Inventory service - batch-level stock (add, FIFO removal, adjustment).

Source of truth: products.stock_quantity is authoritative. Batches are an
auxiliary ledger used for expiry-aware removal. Every batch mutation here
changes the product counter in the same transaction, so the two only drift
through sales (which decrement the product counter alone); reconcile()
reports that drift.
"""
import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func, select

from sarisari.database import store_scope
from sarisari.exceptions import InsufficientStockError, InvalidQuantityError, ProductNotFoundError
from sarisari.models import InventoryBatch, Product, StockMovement, StockMovementType
from sarisari.services.stock_service import StockAccessor
from sarisari.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

ADJUSTMENT_BATCH_NUMBER = 'ADJUSTMENT'


@dataclass(frozen=True)
class BatchAllocation:
    batch_id: int
    quantity_taken: int
    batch_number: Optional[str] = None
    expiry_date: Optional[date] = None

    def to_dict(self):
        return {
            'batch_id': self.batch_id,
            'quantity_taken': self.quantity_taken,
            'batch_number': self.batch_number,
            'expiry_date': self.expiry_date.isoformat() if self.expiry_date else None,
        }


@dataclass(frozen=True)
class StockRemoval:
    product_id: int
    quantity_removed: int
    reason: Optional[str]
    batches_affected: List[BatchAllocation] = field(default_factory=list)

    def to_dict(self):
        return {
            'product_id': self.product_id,
            'quantity_removed': self.quantity_removed,
            'reason': self.reason,
            'batches_affected': [b.to_dict() for b in self.batches_affected],
        }


@dataclass(frozen=True)
class StockReconciliation:
    product_id: int
    stock_quantity: int
    batch_quantity: int

    @property
    def difference(self):
        return self.stock_quantity - self.batch_quantity

    @property
    def in_sync(self):
        return self.difference == 0

    def to_dict(self):
        return {
            'product_id': self.product_id,
            'stock_quantity': self.stock_quantity,
            'batch_quantity': self.batch_quantity,
            'difference': self.difference,
            'in_sync': self.in_sync,
        }


class InventoryBatchAllocator:
    """Expiry-ordered, FIFO depletion across a product's batches."""

    def allocate(self, session, product_id: int, quantity: int) -> List[BatchAllocation]:
        """
        Take quantity from the product's batches.

        Order: earliest expiry first, batches without expiry last, ties by
        creation time then id. Availability is totalled before any write;
        if it falls short nothing is touched and InsufficientStockError is
        raised.
        """
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
            raise InvalidQuantityError(quantity)

        batches = session.execute(
            select(InventoryBatch)
            .where(InventoryBatch.product_id == product_id, InventoryBatch.quantity > 0)
            .order_by(
                InventoryBatch.expiry_date.is_(None),
                InventoryBatch.expiry_date.asc(),
                InventoryBatch.created_at.asc(),
                InventoryBatch.id.asc(),
            )
            .with_for_update()
        ).scalars().all()

        available = sum(b.quantity for b in batches)
        if available < quantity:
            raise InsufficientStockError(product_id, quantity, available)

        allocations = []
        remaining = quantity
        now = utcnow()
        for batch in batches:
            if remaining <= 0:
                break
            take = min(batch.quantity, remaining)
            batch.quantity -= take
            batch.updated_at = now
            remaining -= take
            allocations.append(BatchAllocation(
                batch_id=batch.id,
                quantity_taken=take,
                batch_number=batch.batch_number,
                expiry_date=batch.expiry_date,
            ))
        session.flush()
        return allocations


class InventoryService:
    """Batch-aware stock operations outside of sales."""

    def __init__(self, store, stock: StockAccessor, allocator: InventoryBatchAllocator):
        self.store = store
        self.stock = stock
        self.allocator = allocator

    def add_stock(self, product_id: int, quantity: int, batch_number: Optional[str] = None,
                  expiry_date: Optional[date] = None, location: Optional[str] = None,
                  store_id=None) -> InventoryBatch:
        """Receive a new batch and raise the product counter by the same amount."""
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
            raise InvalidQuantityError(quantity)

        with self.store.transaction() as session:
            product = self._get_product(session, product_id, store_id)
            batch = InventoryBatch(
                product_id=product.id,
                quantity=quantity,
                batch_number=batch_number,
                expiry_date=expiry_date,
                location=location,
                store_id=product.store_id,
                created_at=utcnow(),
            )
            session.add(batch)
            session.flush()
            self.stock.increment(
                session, product.id, quantity,
                movement_type=StockMovementType.RESTOCK,
                reference_id=batch.id,
                note=f"Batch {batch_number}" if batch_number else None,
            )

        logger.info(f"Added {quantity} units to product {product_id} (batch {batch.id})")
        return batch

    def remove_stock(self, product_id: int, quantity: int, reason: Optional[str] = None,
                     store_id=None) -> StockRemoval:
        """Remove stock (waste, damage, ...) depleting batches FIFO by expiry."""
        with self.store.transaction() as session:
            product = self._get_product(session, product_id, store_id)
            allocations = self.allocator.allocate(session, product.id, quantity)
            self.stock.decrement(
                session, product.id, quantity,
                movement_type=StockMovementType.REMOVAL,
                note=reason,
            )

        logger.info(
            f"Removed {quantity} units from product {product_id} across {len(allocations)} batches: {reason}"
        )
        return StockRemoval(
            product_id=product_id,
            quantity_removed=quantity,
            reason=reason,
            batches_affected=allocations,
        )

    def adjust_stock(self, product_id: int, adjustment: int, reason: Optional[str] = None,
                     location: Optional[str] = None, store_id=None):
        """Signed adjustment: positive restocks an ADJUSTMENT batch, negative removes FIFO."""
        if not isinstance(adjustment, int) or isinstance(adjustment, bool) or adjustment == 0:
            raise InvalidQuantityError(adjustment, 'Adjustment must be a non-zero integer')
        if adjustment > 0:
            return self.add_stock(
                product_id, adjustment,
                batch_number=ADJUSTMENT_BATCH_NUMBER,
                location=location,
                store_id=store_id,
            )
        return self.remove_stock(product_id, -adjustment, reason=reason, store_id=store_id)

    def list_batches(self, page=1, limit=20, expiring_within_days: Optional[int] = None,
                     store_id=None, today: Optional[date] = None):
        """
        Paginated batches of every product in the store, earliest expiry first.

        expiring_within_days keeps only batches whose expiry date falls on or
        before today plus that many days (already expired ones included).
        """
        page = max(1, int(page))
        limit = max(1, min(int(limit), 100))

        filters = [store_scope(Product.store_id, store_id)]
        if expiring_within_days is not None:
            if isinstance(expiring_within_days, bool) or not isinstance(expiring_within_days, int) \
                    or expiring_within_days < 0:
                raise InvalidQuantityError(
                    expiring_within_days, 'expiring_within_days must be a non-negative integer'
                )
            cutoff = (today or utcnow().date()) + timedelta(days=expiring_within_days)
            filters += [InventoryBatch.expiry_date.isnot(None), InventoryBatch.expiry_date <= cutoff]

        with self.store.transaction() as session:
            total = session.execute(
                select(func.count(InventoryBatch.id))
                .join(Product, InventoryBatch.product_id == Product.id)
                .where(*filters)
            ).scalar_one()
            rows = session.execute(
                select(InventoryBatch, Product)
                .join(Product, InventoryBatch.product_id == Product.id)
                .where(*filters)
                .order_by(
                    InventoryBatch.expiry_date.is_(None),
                    InventoryBatch.expiry_date.asc(),
                    InventoryBatch.id.asc(),
                )
                .limit(limit)
                .offset((page - 1) * limit)
            ).all()

        items = []
        for batch, product in rows:
            row = batch.to_dict()
            row.update({
                'product_name': product.name,
                'barcode': product.barcode,
                'unit_price': str(product.unit_price),
                'low_stock_threshold': product.low_stock_threshold,
            })
            items.append(row)
        return items, {
            'page': page,
            'limit': limit,
            'total': total,
            'total_pages': math.ceil(total / limit) if total else 0,
        }

    def get_batches(self, product_id: int, store_id=None) -> List[InventoryBatch]:
        with self.store.transaction() as session:
            self._get_product(session, product_id, store_id)
            return session.execute(
                select(InventoryBatch)
                .where(InventoryBatch.product_id == product_id)
                .order_by(InventoryBatch.created_at.desc(), InventoryBatch.id.desc())
            ).scalars().all()

    def get_stock_movements(self, product_id: int, start: Optional[datetime] = None,
                            end: Optional[datetime] = None, store_id=None) -> List[StockMovement]:
        with self.store.transaction() as session:
            self._get_product(session, product_id, store_id)
            query = select(StockMovement).where(StockMovement.product_id == product_id)
            if start is not None:
                query = query.where(StockMovement.created_at >= start)
            if end is not None:
                query = query.where(StockMovement.created_at <= end)
            return session.execute(
                query.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
            ).scalars().all()

    def reconcile(self, product_id: int, store_id=None) -> StockReconciliation:
        """Compare the product counter with the sum of its batches."""
        with self.store.transaction() as session:
            product = self._get_product(session, product_id, store_id)
            return self._reconcile(session, product)

    def reconcile_all(self) -> List[StockReconciliation]:
        """Every product whose counter disagrees with its batches."""
        with self.store.transaction() as session:
            products = session.execute(select(Product).order_by(Product.id)).scalars().all()
            results = [self._reconcile(session, p) for p in products]
        return [r for r in results if not r.in_sync]

    def inventory_valuation(self, store_id=None) -> dict:
        with self.store.transaction() as session:
            products = session.execute(
                select(Product)
                .where(store_scope(Product.store_id, store_id))
                .order_by(Product.name)
            ).scalars().all()

        items = []
        for p in products:
            items.append({
                'id': p.id,
                'name': p.name,
                'barcode': p.barcode,
                'unit_price': str(p.unit_price),
                'stock_quantity': p.stock_quantity,
                'total_value': str(p.unit_price * p.stock_quantity),
            })
        return {
            'items': items,
            'total_value': str(sum((p.unit_price * p.stock_quantity for p in products), Decimal('0.00'))),
            'total_products': len(products),
            'total_units': sum(p.stock_quantity for p in products),
        }

    def low_stock_products(self, store_id=None) -> List[Product]:
        with self.store.transaction() as session:
            return session.execute(
                select(Product)
                .where(
                    store_scope(Product.store_id, store_id),
                    Product.stock_quantity <= Product.low_stock_threshold,
                )
                .order_by(Product.stock_quantity.asc(), Product.name)
            ).scalars().all()

    @staticmethod
    def _reconcile(session, product) -> StockReconciliation:
        batch_quantity = session.execute(
            select(func.coalesce(func.sum(InventoryBatch.quantity), 0))
            .where(InventoryBatch.product_id == product.id)
        ).scalar_one()
        return StockReconciliation(
            product_id=product.id,
            stock_quantity=product.stock_quantity,
            batch_quantity=int(batch_quantity),
        )

    @staticmethod
    def _get_product(session, product_id, store_id) -> Product:
        product = session.execute(
            select(Product).where(
                Product.id == product_id,
                store_scope(Product.store_id, store_id),
            )
        ).scalar_one_or_none()
        if product is None:
            raise ProductNotFoundError(product_id)
        return product
