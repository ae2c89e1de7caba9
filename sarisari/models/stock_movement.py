"""Stock Movement model."""
from sqlalchemy import Column, BigInteger, Integer, Text, DateTime, Enum, ForeignKey
from sqlalchemy.sql import func
from sarisari.database import Base, BigIntId
from sarisari.utils.time_utils import utcnow
import enum


class StockMovementType(enum.Enum):
    """What changed the stock counter."""
    SALE = "SALE"
    SALE_CANCEL = "SALE_CANCEL"
    RESTOCK = "RESTOCK"
    REMOVAL = "REMOVAL"


class StockMovement(Base):
    """Audit row for every change of a product's stock counter."""

    __tablename__ = 'stock_movements'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    product_id = Column(BigInteger, ForeignKey('products.id'), nullable=False, index=True)
    quantity_delta = Column(Integer, nullable=False)
    movement_type = Column(Enum(StockMovementType, name='stock_movement_type'), nullable=False)
    reference_id = Column(BigInteger, nullable=True)
    note = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now())

    def __repr__(self):
        return f"<StockMovement(id={self.id}, type={self.movement_type.value}, delta={self.quantity_delta})>"

    def to_dict(self):
        return {
            'id': self.id,
            'product_id': self.product_id,
            'quantity_delta': self.quantity_delta,
            'movement_type': self.movement_type.value,
            'reference_id': self.reference_id,
            'note': self.note,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
