"""
Integration tests for the compensating sale cancellation.
"""

import pytest
from sqlalchemy import select

from sarisari.exceptions import AlreadyCancelledError, SaleNotFoundError
from sarisari.models import Sale, SalesItem, SaleStatus, StockMovement, StockMovementType


class TestCancelSale:

    def test_cancel_restores_stock(self, services, make_product, stock_of):
        """Sell 3 of 10, cancel, back to 10."""
        product = make_product(unit_price='100.00', stock=10)
        sale = services.sales.create_sale([{'product_id': product.id, 'quantity': 3}], 'cash', amount_paid=400)
        assert stock_of(product.id) == 7

        cancelled = services.cancellations.cancel_sale(sale.id, 'customer changed mind')

        assert stock_of(product.id) == 10
        assert cancelled.status == SaleStatus.CANCELLED
        assert cancelled.is_cancelled
        assert cancelled.cancelled_at is not None
        assert cancelled.notes == 'Cancelled: customer changed mind'

    def test_conservation_across_products(self, services, make_product, stock_of):
        a = make_product(stock=10)
        b = make_product(stock=4)
        c = make_product(stock=7)
        sale = services.sales.create_sale(
            [
                {'product_id': b.id, 'quantity': 4},
                {'product_id': a.id, 'quantity': 1},
                {'product_id': c.id, 'quantity': 2},
                {'product_id': a.id, 'quantity': 5},
            ],
            'cash',
        )

        services.cancellations.cancel_sale(sale.id, 'void')

        assert (stock_of(a.id), stock_of(b.id), stock_of(c.id)) == (10, 4, 7)

    def test_reason_appended_to_existing_notes(self, services, make_product):
        product = make_product()
        sale = services.sales.create_sale([{'product_id': product.id, 'quantity': 1}], 'cash', notes='table 4')

        cancelled = services.cancellations.cancel_sale(sale.id)

        assert cancelled.notes == 'table 4\nCancelled: No reason provided'

    def test_records_are_kept_for_audit(self, store, services, make_product):
        product = make_product()
        sale = services.sales.create_sale([{'product_id': product.id, 'quantity': 2}], 'cash')

        services.cancellations.cancel_sale(sale.id, 'audit')

        with store.transaction() as session:
            assert session.get(Sale, sale.id).status == SaleStatus.CANCELLED
            items = session.execute(select(SalesItem).where(SalesItem.sale_id == sale.id)).scalars().all()
            assert [i.quantity for i in items] == [2]
            movements = session.execute(
                select(StockMovement).where(StockMovement.reference_id == sale.id).order_by(StockMovement.id)
            ).scalars().all()
            assert [(m.movement_type, m.quantity_delta) for m in movements] == [
                (StockMovementType.SALE, -2),
                (StockMovementType.SALE_CANCEL, 2),
            ]

    def test_cancelled_sale_serializes_with_items(self, services, make_product):
        product = make_product(name='Safeguard')
        sale = services.sales.create_sale([{'product_id': product.id, 'quantity': 1}], 'cash')

        data = services.cancellations.cancel_sale(sale.id, 'x').to_dict()

        assert data['status'] == 'cancelled'
        assert data['items'][0]['name'] == 'Safeguard'


class TestCancelSaleFailures:

    def test_double_cancel_rejected_without_stock_change(self, services, make_product, stock_of):
        product = make_product(stock=10)
        sale = services.sales.create_sale([{'product_id': product.id, 'quantity': 3}], 'cash')
        services.cancellations.cancel_sale(sale.id, 'first')

        with pytest.raises(AlreadyCancelledError) as exc_info:
            services.cancellations.cancel_sale(sale.id, 'second')

        assert exc_info.value.payload['transaction_number'] == sale.transaction_number
        assert stock_of(product.id) == 10

    def test_unknown_sale(self, services):
        with pytest.raises(SaleNotFoundError):
            services.cancellations.cancel_sale(31337, 'nope')

    def test_other_store_cannot_cancel(self, services, make_product, stock_of):
        product = make_product(stock=10)
        sale = services.sales.create_sale([{'product_id': product.id, 'quantity': 1}], 'cash', store_id=1)

        with pytest.raises(SaleNotFoundError):
            services.cancellations.cancel_sale(sale.id, 'not mine', store_id=2)
        assert stock_of(product.id) == 9

    def test_failure_mid_restore_rolls_back(self, services, make_product, stock_of, monkeypatch):
        a = make_product(stock=10)
        b = make_product(stock=10)
        sale = services.sales.create_sale(
            [{'product_id': a.id, 'quantity': 2}, {'product_id': b.id, 'quantity': 2}], 'cash',
        )
        original = services.stock.increment
        calls = []

        def fail_on_second(*args, **kwargs):
            calls.append(args)
            if len(calls) == 2:
                raise RuntimeError('connection reset')
            return original(*args, **kwargs)

        monkeypatch.setattr(services.stock, 'increment', fail_on_second)

        with pytest.raises(RuntimeError):
            services.cancellations.cancel_sale(sale.id, 'partial')

        assert stock_of(a.id) == 8
        assert stock_of(b.id) == 8
        assert services.sales.get_sale(sale.id).status == SaleStatus.COMPLETED
