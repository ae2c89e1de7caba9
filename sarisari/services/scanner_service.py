"""Scanner quick-sale path: barcode lookup, scan log, checkout."""
import logging
from typing import Optional

from sqlalchemy import select

from sarisari.database import store_scope
from sarisari.exceptions import InvalidCartError, ProductNotFoundError
from sarisari.models import Product, ProductScan, Sale
from sarisari.services.pricing_service import parse_discount, to_decimal
from sarisari.services.sales_service import normalize_cart, parse_payment_method
from sarisari.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

QUICK_SALE_NOTE = 'Quick sale via scanner'


class ScannerService:
    def __init__(self, store, sales):
        self.store = store
        self.sales = sales

    def find_by_barcode(self, barcode: str, store_id=None) -> Optional[Product]:
        with self.store.transaction() as session:
            return self._find_by_barcode(session, barcode, store_id)

    def quick_sale(self, items, payment_method, discount_percent=0, amount_paid=None,
                   cashier_id=None, store_id=None, device_id=None, customer_id=None) -> Sale:
        """
        Resolve scanned items and ring them up as one sale.

        Each item carries a barcode or a product_id, a quantity and an
        optional price_override. The cart, payment method and discount are
        validated first; resolved lines are then logged as ProductScan rows
        before the sale is attempted. An unknown barcode or malformed input
        aborts before anything is written.
        """
        if not items:
            raise InvalidCartError('Cart cannot be empty')
        parse_payment_method(payment_method)
        parse_discount(discount_percent)
        if amount_paid is not None:
            to_decimal(amount_paid, 'amount_paid')

        with self.store.transaction() as session:
            now = utcnow()
            cart = []
            scans = []
            for position, item in enumerate(items, start=1):
                if not isinstance(item, dict):
                    raise InvalidCartError(f'Cart line {position} is malformed', {'line': position})

                barcode = item.get('barcode')
                product_id = item.get('product_id')
                if barcode:
                    product = self._find_by_barcode(session, barcode, store_id)
                    if product is None:
                        logger.warning(f"Quick sale rejected: unknown barcode {barcode}")
                        raise ProductNotFoundError(barcode=barcode)
                    product_id = product.id
                elif product_id is None:
                    raise InvalidCartError(
                        f'Cart line {position} needs a barcode or product_id', {'line': position}
                    )
                elif session.execute(
                    select(Product.id).where(
                        Product.id == product_id, store_scope(Product.store_id, store_id)
                    )
                ).scalar_one_or_none() is None:
                    raise ProductNotFoundError(product_id)

                scans.append(ProductScan(
                    scan_type='barcode' if barcode else 'manual',
                    input_data=barcode or str(product_id),
                    product_id=product_id,
                    scanned_by=cashier_id,
                    store_id=store_id,
                    device_id=device_id,
                    created_at=now,
                ))
                cart.append({
                    'product_id': product_id,
                    'quantity': item.get('quantity'),
                    'unit_price': item.get('price_override'),
                })

            cart = normalize_cart(cart)
            session.add_all(scans)

        return self.sales.create_sale(
            cart,
            payment_method,
            cashier_id=cashier_id,
            amount_paid=amount_paid,
            discount_percent=discount_percent,
            customer_id=customer_id,
            notes=QUICK_SALE_NOTE,
            store_id=store_id,
        )

    @staticmethod
    def _find_by_barcode(session, barcode, store_id):
        return session.execute(
            select(Product).where(
                Product.barcode == str(barcode).strip(),
                store_scope(Product.store_id, store_id),
            )
        ).scalar_one_or_none()
