"""Inventory Batch model."""
from sqlalchemy import Column, BigInteger, Integer, String, Date, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sarisari.database import Base, BigIntId
from sarisari.utils.time_utils import utcnow


class InventoryBatch(Base):
    """Physical lot of stock, depleted FIFO by expiry."""

    __tablename__ = 'inventory_batches'
    __table_args__ = (
        CheckConstraint('quantity >= 0', name='ck_inventory_batches_quantity_non_negative'),
    )

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    product_id = Column(BigInteger, ForeignKey('products.id'), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    batch_number = Column(String(100), nullable=True)
    expiry_date = Column(Date, nullable=True)
    location = Column(String(255), nullable=True)
    store_id = Column(BigInteger, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now(), onupdate=utcnow)

    # Relationships
    product = relationship('Product', back_populates='batches')

    def __repr__(self):
        return f"<InventoryBatch(id={self.id}, product_id={self.product_id}, quantity={self.quantity})>"

    def to_dict(self):
        return {
            'id': self.id,
            'product_id': self.product_id,
            'quantity': self.quantity,
            'batch_number': self.batch_number,
            'expiry_date': self.expiry_date.isoformat() if self.expiry_date else None,
            'location': self.location,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
