"""Product Scan model."""
from sqlalchemy import Column, BigInteger, String, Text, DateTime, ForeignKey
from sqlalchemy.sql import func
from sarisari.database import Base, BigIntId
from sarisari.utils.time_utils import utcnow


class ProductScan(Base):
    """Audit record tying a scanner input to the product it resolved to."""

    __tablename__ = 'product_scans'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    scan_type = Column(String(20), nullable=False, default='barcode')
    input_data = Column(Text, nullable=True)
    product_id = Column(BigInteger, ForeignKey('products.id'), nullable=True)
    scanned_by = Column(BigInteger, nullable=True)
    store_id = Column(BigInteger, nullable=True)
    device_id = Column(String(100), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now())

    def __repr__(self):
        return f"<ProductScan(id={self.id}, input='{self.input_data}', product_id={self.product_id})>"
