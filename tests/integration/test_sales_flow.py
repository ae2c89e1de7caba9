"""
Integration tests for sale creation against a real SQLite ledger.
"""

import pytest
from datetime import datetime
from decimal import Decimal
from sqlalchemy import select

from sarisari.exceptions import (
    InsufficientPaymentError, InsufficientStockError, InvalidCartError,
    InvalidDiscountError, InvalidPaymentMethodError, ProductNotFoundError,
    StorageUnavailableError,
)
from sarisari.models import (
    PaymentMethod, Product, Sale, SalesItem, SaleStatus, StockMovement, StockMovementType,
)
from sarisari.services import PosServices


class TestCreateSale:
    """Happy paths."""

    def test_cash_sale_with_change(self, services, make_product, stock_of):
        """Product at 100.00 with stock 10; 3 units paid with 400."""
        product = make_product(unit_price='100.00', stock=10)

        sale = services.sales.create_sale(
            [{'product_id': product.id, 'quantity': 3}],
            'cash',
            cashier_id=7,
            amount_paid=400,
        )

        assert sale.subtotal == Decimal('300.00')
        assert sale.discount == Decimal('0.00')
        assert sale.tax == Decimal('36.00')
        assert sale.total_amount == Decimal('336.00')
        assert sale.payment_received == Decimal('400.00')
        assert sale.change_given == Decimal('64.00')
        assert sale.status == SaleStatus.COMPLETED
        assert sale.cashier_id == 7
        assert len(sale.items) == 1
        assert sale.items[0].quantity == 3
        assert sale.items[0].total_price == Decimal('300.00')
        assert stock_of(product.id) == 7

    def test_returned_sale_is_readable_after_commit(self, services, make_product):
        """Items and their products are loaded before the session closes."""
        rice = make_product(name='Dinorado 1kg', unit_price='58.00', stock=10)
        egg = make_product(name='Itlog', unit_price='8.00', stock=30)

        sale = services.sales.create_sale(
            [{'product_id': rice.id, 'quantity': 1}, {'product_id': egg.id, 'quantity': 6}], 'cash',
        )

        assert [item.product.name for item in sale.items] == ['Dinorado 1kg', 'Itlog']
        data = sale.to_dict()
        assert [(i['name'], i['quantity']) for i in data['items']] == [('Dinorado 1kg', 1), ('Itlog', 6)]

    def test_amount_paid_defaults_to_total(self, services, make_product):
        product = make_product(unit_price='25.00')

        sale = services.sales.create_sale([{'product_id': product.id, 'quantity': 2}], 'gcash')

        assert sale.payment_received == sale.total_amount == Decimal('56.00')
        assert sale.change_given == Decimal('0.00')

    def test_multi_line_with_discount(self, services, make_product, stock_of):
        soap = make_product(unit_price='45.00', stock=5)
        rice = make_product(unit_price='55.00', stock=20)

        sale = services.sales.create_sale(
            [{'product_id': soap.id, 'quantity': 2}, {'product_id': rice.id, 'quantity': 2}],
            'card',
            discount_percent=10,
            customer_id=3,
            notes='suki',
        )

        assert sale.subtotal == Decimal('200.00')
        assert sale.discount == Decimal('20.00')
        assert sale.tax == Decimal('21.60')
        assert sale.total_amount == Decimal('201.60')
        assert sale.customer_id == 3
        assert sale.notes == 'suki'
        assert [i.product_id for i in sale.items] == [soap.id, rice.id]
        assert stock_of(soap.id) == 3
        assert stock_of(rice.id) == 18

    def test_duplicate_lines_are_checked_together(self, services, make_product, stock_of):
        product = make_product(stock=5)

        with pytest.raises(InsufficientStockError) as exc_info:
            services.sales.create_sale(
                [{'product_id': product.id, 'quantity': 3}, {'product_id': product.id, 'quantity': 3}],
                'cash',
            )

        assert exc_info.value.requested == 6
        assert exc_info.value.available == 5
        assert stock_of(product.id) == 5

    def test_duplicate_lines_kept_as_separate_items(self, services, make_product, stock_of):
        product = make_product(stock=5)

        sale = services.sales.create_sale(
            [{'product_id': product.id, 'quantity': 2}, {'product_id': product.id, 'quantity': 3}],
            'cash',
        )

        assert [i.quantity for i in sale.items] == [2, 3]
        assert stock_of(product.id) == 0

    def test_unit_price_override(self, services, make_product):
        product = make_product(unit_price='100.00')

        sale = services.sales.create_sale(
            [{'product_id': product.id, 'quantity': 1, 'unit_price': Decimal('80.00')}], 'cash',
        )

        assert sale.items[0].unit_price == Decimal('80.00')
        assert sale.subtotal == Decimal('80.00')

    def test_unit_price_is_snapshotted(self, store, services, make_product):
        """Later price changes do not rewrite history."""
        product = make_product(unit_price='100.00')
        sale = services.sales.create_sale([{'product_id': product.id, 'quantity': 1}], 'cash')

        with store.transaction() as session:
            session.get(Product, product.id).unit_price = Decimal('150.00')

        reloaded = services.sales.get_sale(sale.id)
        assert reloaded.items[0].unit_price == Decimal('100.00')
        assert reloaded.items[0].product.unit_price == Decimal('150.00')

    def test_stock_movements_recorded(self, store, services, make_product):
        product = make_product(stock=10)
        sale = services.sales.create_sale([{'product_id': product.id, 'quantity': 4}], 'cash')

        with store.transaction() as session:
            movements = session.execute(select(StockMovement)).scalars().all()

        assert len(movements) == 1
        assert movements[0].movement_type == StockMovementType.SALE
        assert movements[0].quantity_delta == -4
        assert movements[0].reference_id == sale.id

    def test_store_scoped_products(self, services, make_product):
        """Products of another store are invisible; shared products are not."""
        other = make_product(store_id=2)
        shared = make_product(store_id=None)

        with pytest.raises(ProductNotFoundError):
            services.sales.create_sale([{'product_id': other.id, 'quantity': 1}], 'cash', store_id=1)

        sale = services.sales.create_sale([{'product_id': shared.id, 'quantity': 1}], 'cash', store_id=1)
        assert sale.store_id == 1


class TestCreateSaleFailures:
    """Every rejected attempt leaves no trace."""

    def test_insufficient_stock(self, services, make_product, stock_of, count_rows):
        product = make_product(stock=2)

        with pytest.raises(InsufficientStockError) as exc_info:
            services.sales.create_sale([{'product_id': product.id, 'quantity': 5}], 'cash')

        error = exc_info.value
        assert error.product_id == product.id
        assert error.available == 2
        assert error.requested == 5
        assert error.shortfall == 3
        assert error.to_dict()['shortfall'] == 3
        assert stock_of(product.id) == 2
        assert count_rows(Sale) == 0
        assert count_rows(SalesItem) == 0

    def test_insufficient_payment(self, services, make_product, stock_of, count_rows):
        product = make_product(unit_price='100.00', stock=10)

        with pytest.raises(InsufficientPaymentError) as exc_info:
            services.sales.create_sale([{'product_id': product.id, 'quantity': 3}], 'cash', amount_paid=100)

        assert exc_info.value.total == Decimal('336.00')
        assert exc_info.value.payload['shortfall'] == Decimal('236.00')
        assert stock_of(product.id) == 10
        assert count_rows(Sale) == 0

    def test_unknown_product_rolls_back_whole_cart(self, services, make_product, stock_of, count_rows):
        product = make_product(stock=10)

        with pytest.raises(ProductNotFoundError) as exc_info:
            services.sales.create_sale(
                [{'product_id': product.id, 'quantity': 1}, {'product_id': 9999, 'quantity': 1}], 'cash',
            )

        assert exc_info.value.product_id == 9999
        assert stock_of(product.id) == 10
        assert count_rows(Sale) == 0

    def test_second_line_short_rolls_back_first(self, services, make_product, stock_of, count_rows):
        plenty = make_product(stock=10)
        scarce = make_product(stock=1)

        with pytest.raises(InsufficientStockError):
            services.sales.create_sale(
                [{'product_id': plenty.id, 'quantity': 4}, {'product_id': scarce.id, 'quantity': 2}], 'cash',
            )

        assert stock_of(plenty.id) == 10
        assert stock_of(scarce.id) == 1
        assert count_rows(StockMovement) == 0

    def test_failure_after_decrement_rolls_back(self, services, make_product, stock_of, count_rows, monkeypatch):
        """A crash after stock was decremented leaves no sale and no decrement."""
        product = make_product(stock=10)
        original = services.stock.decrement

        def decrement_then_fail(*args, **kwargs):
            original(*args, **kwargs)
            raise RuntimeError('disk on fire')

        monkeypatch.setattr(services.stock, 'decrement', decrement_then_fail)

        with pytest.raises(RuntimeError):
            services.sales.create_sale([{'product_id': product.id, 'quantity': 3}], 'cash')

        assert stock_of(product.id) == 10
        assert count_rows(Sale) == 0
        assert count_rows(SalesItem) == 0
        assert count_rows(StockMovement) == 0

    @pytest.mark.parametrize('cart', [
        [],
        None,
        [{'product_id': 1, 'quantity': 0}],
        [{'product_id': 1, 'quantity': -2}],
        [{'product_id': 1, 'quantity': '2'}],
        [{'quantity': 1}],
        ['not-a-line'],
        [{'product_id': 1, 'quantity': 1, 'unit_price': '-5'}],
    ])
    def test_invalid_cart(self, services, cart):
        with pytest.raises(InvalidCartError):
            services.sales.create_sale(cart, 'cash')

    def test_invalid_payment_method(self, services, make_product):
        product = make_product()

        with pytest.raises(InvalidPaymentMethodError) as exc_info:
            services.sales.create_sale([{'product_id': product.id, 'quantity': 1}], 'bitcoin')
        assert 'gcash' in exc_info.value.payload['allowed']

    def test_payment_method_case_insensitive(self, services, make_product):
        product = make_product()
        sale = services.sales.create_sale([{'product_id': product.id, 'quantity': 1}], ' PayMaya ')
        assert sale.payment_method.value == 'paymaya'

    def test_invalid_discount(self, services, make_product, stock_of):
        product = make_product(stock=10)

        with pytest.raises(InvalidDiscountError):
            services.sales.create_sale([{'product_id': product.id, 'quantity': 1}], 'cash', discount_percent=120)
        assert stock_of(product.id) == 10

    @pytest.mark.parametrize('amount_paid', ['NaN', 'Infinity', '-Infinity', Decimal('NaN'), float('inf')])
    def test_non_finite_amount_paid(self, services, make_product, stock_of, count_rows, amount_paid):
        product = make_product(stock=10)

        with pytest.raises(InvalidCartError):
            services.sales.create_sale([{'product_id': product.id, 'quantity': 1}], 'cash', amount_paid=amount_paid)
        assert stock_of(product.id) == 10
        assert count_rows(Sale) == 0

    @pytest.mark.parametrize('discount', ['NaN', 'Infinity', Decimal('sNaN'), 'ten'])
    def test_non_finite_discount(self, services, make_product, stock_of, discount):
        product = make_product(stock=10)

        with pytest.raises(InvalidDiscountError):
            services.sales.create_sale([{'product_id': product.id, 'quantity': 1}], 'cash', discount_percent=discount)
        assert stock_of(product.id) == 10

    @pytest.mark.parametrize('unit_price', ['NaN', 'Infinity', Decimal('-Infinity')])
    def test_non_finite_unit_price(self, services, make_product, stock_of, unit_price):
        product = make_product(stock=10)

        with pytest.raises(InvalidCartError):
            services.sales.create_sale(
                [{'product_id': product.id, 'quantity': 1, 'unit_price': unit_price}], 'cash',
            )
        assert stock_of(product.id) == 10


class TestTransactionNumbers:
    """Human-readable, per-day sequence numbers."""

    def test_daily_sequence(self, services, make_product):
        product = make_product(stock=10)
        today = services.sales.clock().strftime('%Y%m%d')

        first = services.sales.create_sale([{'product_id': product.id, 'quantity': 1}], 'cash')
        second = services.sales.create_sale([{'product_id': product.id, 'quantity': 1}], 'cash')

        assert first.transaction_number == f'TXN-{today}-00001'
        assert second.transaction_number == f'TXN-{today}-00002'

    def test_sequence_resets_each_day(self, store, make_product):
        clock = {'now': datetime(2024, 3, 1, 23, 59)}
        services = PosServices(store, transaction_prefix='SS', clock=lambda: clock['now'])
        product = make_product(stock=10)

        services.sales.create_sale([{'product_id': product.id, 'quantity': 1}], 'cash')
        services.sales.create_sale([{'product_id': product.id, 'quantity': 1}], 'cash')
        clock['now'] = datetime(2024, 3, 2, 0, 1)
        third = services.sales.create_sale([{'product_id': product.id, 'quantity': 1}], 'cash')

        assert third.transaction_number == 'SS-20240302-00001'

    def test_sequence_continues_past_five_digits(self, store, make_product):
        """TXN-...-100000 is later than TXN-...-99999 even though it sorts lower as text."""
        services = PosServices(store, clock=lambda: datetime(2024, 5, 4, 12, 0))
        product = make_product(stock=10)
        with store.transaction() as session:
            for number in ('TXN-20240504-99999', 'TXN-20240504-100000'):
                session.add(Sale(
                    transaction_number=number,
                    subtotal=Decimal('0.00'),
                    total_amount=Decimal('0.00'),
                    payment_method=PaymentMethod.CASH,
                    payment_received=Decimal('0.00'),
                    change_given=Decimal('0.00'),
                ))

        sale = services.sales.create_sale([{'product_id': product.id, 'quantity': 1}], 'cash')

        assert sale.transaction_number == 'TXN-20240504-100001'

    def test_collision_is_retried(self, services, make_product, monkeypatch):
        """A number taken between read and insert is recomputed, not overwritten."""
        product = make_product(stock=10)
        first = services.sales.create_sale([{'product_id': product.id, 'quantity': 1}], 'cash')

        manager = services.sales
        original = manager._next_transaction_number
        calls = []

        def stale_then_fresh(session, now):
            calls.append(now)
            if len(calls) == 1:
                return first.transaction_number
            return original(session, now)

        monkeypatch.setattr(manager, '_next_transaction_number', stale_then_fresh)

        second = manager.create_sale([{'product_id': product.id, 'quantity': 1}], 'cash')

        assert len(calls) == 2
        assert second.transaction_number != first.transaction_number
        assert second.transaction_number.endswith('-00002')
        assert len(second.items) == 1

    def test_collision_retries_exhausted(self, services, make_product, stock_of, count_rows, monkeypatch):
        product = make_product(stock=10)
        first = services.sales.create_sale([{'product_id': product.id, 'quantity': 1}], 'cash')

        monkeypatch.setattr(
            services.sales, '_next_transaction_number', lambda session, now: first.transaction_number,
        )

        with pytest.raises(StorageUnavailableError) as exc_info:
            services.sales.create_sale([{'product_id': product.id, 'quantity': 1}], 'cash')

        assert exc_info.value.retryable is True
        assert stock_of(product.id) == 9
        assert count_rows(Sale) == 1


class TestSaleQueries:

    def test_get_sale(self, services, make_product):
        product = make_product()
        sale = services.sales.create_sale([{'product_id': product.id, 'quantity': 2}], 'cash', store_id=5)

        found = services.sales.get_sale(sale.id, store_id=5)
        assert found.transaction_number == sale.transaction_number
        assert found.items[0].product.name == product.name

        assert services.sales.get_sale(sale.id, store_id=6) is None
        assert services.sales.get_sale(424242, store_id=5) is None

    def test_list_sales_paginates_newest_first(self, services, make_product):
        product = make_product(stock=50)
        created = [
            services.sales.create_sale([{'product_id': product.id, 'quantity': 1}], 'cash')
            for _ in range(5)
        ]

        page1, pagination = services.sales.list_sales(page=1, limit=2)
        page3, _ = services.sales.list_sales(page=3, limit=2)

        assert pagination == {'page': 1, 'limit': 2, 'total': 5, 'total_pages': 3}
        assert [s.id for s in page1] == [created[4].id, created[3].id]
        assert [s.id for s in page3] == [created[0].id]

    def test_list_sales_by_status(self, services, make_product):
        product = make_product(stock=10)
        kept = services.sales.create_sale([{'product_id': product.id, 'quantity': 1}], 'cash')
        cancelled = services.sales.create_sale([{'product_id': product.id, 'quantity': 1}], 'cash')
        services.cancellations.cancel_sale(cancelled.id, 'test')

        completed, pagination = services.sales.list_sales(status='completed')

        assert [s.id for s in completed] == [kept.id]
        assert pagination['total'] == 1

    def test_daily_summary_counts_completed_only(self, services, make_product):
        product = make_product(unit_price='100.00', stock=10)
        services.sales.create_sale([{'product_id': product.id, 'quantity': 1}], 'cash')
        services.sales.create_sale([{'product_id': product.id, 'quantity': 2}], 'cash')
        cancelled = services.sales.create_sale([{'product_id': product.id, 'quantity': 1}], 'cash')
        services.cancellations.cancel_sale(cancelled.id)

        summary = services.sales.daily_summary()

        assert summary['sale_count'] == 2
        assert summary['total_revenue'] == Decimal('336.00')
