"""Models package - exports all SQLAlchemy models."""
from sarisari.models.product import Product
from sarisari.models.inventory_batch import InventoryBatch
from sarisari.models.sale import Sale, SaleStatus, PaymentMethod
from sarisari.models.sales_item import SalesItem
from sarisari.models.stock_movement import StockMovement, StockMovementType
from sarisari.models.product_scan import ProductScan

__all__ = [
    'Product', 'InventoryBatch',
    'Sale', 'SaleStatus', 'PaymentMethod', 'SalesItem',
    'StockMovement', 'StockMovementType',
    'ProductScan',
]
