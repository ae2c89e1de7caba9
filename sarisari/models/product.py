"""Product model."""
from sqlalchemy import Column, BigInteger, Integer, String, Text, Numeric, DateTime, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sarisari.database import Base, BigIntId
from sarisari.utils.time_utils import utcnow


class Product(Base):
    """Sellable catalog item with its aggregate stock counter."""

    __tablename__ = 'products'
    __table_args__ = (
        CheckConstraint('stock_quantity >= 0', name='ck_products_stock_non_negative'),
        CheckConstraint('unit_price >= 0', name='ck_products_unit_price_non_negative'),
        CheckConstraint('low_stock_threshold >= 0', name='ck_products_threshold_non_negative'),
    )

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    barcode = Column(String(50), unique=True, nullable=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    unit_price = Column(Numeric(10, 2), nullable=False)
    wholesale_price = Column(Numeric(10, 2), nullable=True)
    # Authoritative counter; inventory batches are an auxiliary ledger
    stock_quantity = Column(Integer, nullable=False, default=0, server_default='0')
    low_stock_threshold = Column(Integer, nullable=False, default=10, server_default='10')
    store_id = Column(BigInteger, nullable=True, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now(), onupdate=utcnow)

    # Relationships
    batches = relationship('InventoryBatch', back_populates='product')

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', stock_quantity={self.stock_quantity})>"

    @property
    def is_low_stock(self):
        return self.stock_quantity <= self.low_stock_threshold

    def to_dict(self):
        """Convert to dictionary for JSON serialization."""
        return {
            'id': self.id,
            'barcode': self.barcode,
            'name': self.name,
            'unit_price': str(self.unit_price),
            'wholesale_price': str(self.wholesale_price) if self.wholesale_price is not None else None,
            'stock_quantity': self.stock_quantity,
            'low_stock_threshold': self.low_stock_threshold,
            'store_id': self.store_id,
        }
