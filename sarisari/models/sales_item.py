"""Sales Item model."""
from sqlalchemy import Column, BigInteger, Integer, Numeric, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sarisari.database import Base, BigIntId
from sarisari.utils.time_utils import utcnow


class SalesItem(Base):
    """One cart line of a Sale, with the unit price snapshotted at sale time."""

    __tablename__ = 'sales_items'
    __table_args__ = (
        CheckConstraint('quantity >= 1', name='ck_sales_items_quantity_positive'),
    )

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    sale_id = Column(BigInteger, ForeignKey('sales.id', ondelete='CASCADE'), nullable=False, index=True)
    product_id = Column(BigInteger, ForeignKey('products.id'), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    total_price = Column(Numeric(10, 2), nullable=False)
    discount = Column(Numeric(10, 2), nullable=False, default=0, server_default='0')
    created_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now())

    # Relationships
    sale = relationship('Sale', back_populates='items')
    product = relationship('Product')

    def __repr__(self):
        return f"<SalesItem(id={self.id}, product_id={self.product_id}, quantity={self.quantity})>"

    def to_dict(self):
        return {
            'id': self.id,
            'product_id': self.product_id,
            'name': self.product.name if self.product is not None else None,
            'barcode': self.product.barcode if self.product is not None else None,
            'quantity': self.quantity,
            'unit_price': str(self.unit_price),
            'total_price': str(self.total_price),
            'discount': str(self.discount),
        }
