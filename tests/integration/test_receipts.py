"""
Integration tests for sale receipts.
"""

from decimal import Decimal

from sarisari.services.receipt_service import RECEIPT_WIDTH, ReceiptRenderer


def _coke_sale(services, make_product, **kwargs):
    product = make_product(name='Coke Mismo', unit_price='20.00', stock=10)
    return services.sales.create_sale(
        [{'product_id': product.id, 'quantity': 2}], 'cash', amount_paid=50, **kwargs
    )


class TestTextReceipt:

    def test_layout(self, services, make_product):
        sale = _coke_sale(services, make_product, cashier_id=7)

        text = ReceiptRenderer('Aling Nena Store', Decimal('0.12')).to_text(sale)
        lines = text.splitlines()

        assert lines[0] == '=' * RECEIPT_WIDTH
        assert lines[1].strip() == 'Aling Nena Store'
        assert f'TXN: {sale.transaction_number}' in lines
        assert 'Cashier: #7' in lines
        assert 'Coke Mismo'.ljust(16) + '2'.rjust(5) + '₱40.00'.rjust(11) in lines
        assert 'Subtotal:'.ljust(20) + '₱40.00'.rjust(12) in lines
        assert 'Tax (12%):'.ljust(20) + '₱4.80'.rjust(12) in lines
        assert 'TOTAL:'.ljust(20) + '₱44.80'.rjust(12) in lines
        assert 'Change:'.ljust(20) + '₱5.20'.rjust(12) in lines
        assert not any(line.startswith('Discount:') for line in lines)
        assert lines[-1] == 'Please come again.'

    def test_discount_line_and_long_names(self, services, make_product):
        product = make_product(name='Century Tuna Flakes in Oil 180g', unit_price='50.00')
        sale = services.sales.create_sale([{'product_id': product.id, 'quantity': 1}], 'gcash', discount_percent=10)

        lines = ReceiptRenderer(currency_symbol='PHP ').to_text(sale).splitlines()

        assert any(line.startswith('Century Tuna Fl ') for line in lines)
        assert 'Discount:'.ljust(20) + '-PHP 5.00'.rjust(12) in lines
        assert 'Paid:'.ljust(20) + 'PHP 50.40'.rjust(12) in lines
        assert 'Cashier: Staff' in lines

    def test_cancelled_banner(self, services, make_product):
        sale = _coke_sale(services, make_product)
        cancelled = services.cancellations.cancel_sale(sale.id, 'wrong change')

        text = services.receipts.to_text(cancelled)

        assert '*** CANCELLED ***' in text


class TestJsonReceipt:

    def test_sections(self, services, make_product):
        sale = _coke_sale(services, make_product)

        receipt = services.receipts.to_dict(sale)

        assert receipt['header']['transaction_number'] == sale.transaction_number
        assert receipt['header']['store_name'] == 'Sari-Sari Store'
        assert receipt['items'] == [
            {'name': 'Coke Mismo', 'quantity': 2, 'unit_price': '20.00', 'total_price': '40.00'},
        ]
        assert receipt['totals']['total'] == '44.80'
        assert receipt['totals']['total_display'] == '₱44.80'
        assert receipt['totals']['change_given'] == '5.20'
        assert receipt['footer']['message'] == 'Thank you for shopping!'
