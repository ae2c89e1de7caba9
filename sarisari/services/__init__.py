"""Service layer - explicit wiring of the POS components around one Ledger Store."""
from sarisari.services.inventory_service import InventoryBatchAllocator, InventoryService
from sarisari.services.pricing_service import DEFAULT_TAX_RATE, PricingCalculator
from sarisari.services.receipt_service import DEFAULT_STORE_NAME, ReceiptRenderer
from sarisari.services.sale_cancel_service import SaleCancellationManager
from sarisari.services.sales_service import SaleTransactionManager
from sarisari.services.scanner_service import ScannerService
from sarisari.services.stock_service import StockAccessor
from sarisari.utils.time_utils import utcnow


class PosServices:
    """All components sharing a single storage handle."""

    def __init__(self, store, tax_rate=DEFAULT_TAX_RATE, transaction_prefix='TXN',
                 max_number_retries=5, clock=utcnow, store_name=DEFAULT_STORE_NAME,
                 currency_symbol=None):
        self.store = store
        self.stock = StockAccessor()
        self.pricing = PricingCalculator(tax_rate)
        self.sales = SaleTransactionManager(
            store, self.stock, self.pricing,
            transaction_prefix=transaction_prefix,
            max_number_retries=max_number_retries,
            clock=clock,
        )
        self.cancellations = SaleCancellationManager(store, self.stock, clock=clock)
        self.inventory = InventoryService(store, self.stock, InventoryBatchAllocator())
        self.scanner = ScannerService(store, self.sales)
        self.receipts = ReceiptRenderer(store_name, self.pricing.tax_rate, currency_symbol)

    @classmethod
    def from_config(cls, store, config):
        return cls(
            store,
            tax_rate=config.get('TAX_RATE', DEFAULT_TAX_RATE),
            transaction_prefix=config.get('TRANSACTION_NUMBER_PREFIX', 'TXN'),
            max_number_retries=int(config.get('TRANSACTION_NUMBER_MAX_RETRIES', 5)),
            store_name=config.get('STORE_NAME', DEFAULT_STORE_NAME),
            currency_symbol=config.get('CURRENCY_SYMBOL'),
        )


def init_services(app, store):
    services = PosServices.from_config(store, app.config)
    app.extensions['pos_services'] = services
    return services


def get_services(app=None):
    """Get the wired services of the current (or given) app."""
    if app is None:
        from flask import current_app
        app = current_app
    return app.extensions['pos_services']
