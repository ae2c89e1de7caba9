"""Sale model."""
from sqlalchemy import Column, BigInteger, String, Text, Numeric, DateTime, Enum, CheckConstraint
from sqlalchemy.orm import relationship
from sarisari.database import Base, BigIntId
from sarisari.utils.time_utils import utcnow
import enum


class SaleStatus(enum.Enum):
    """Sale status enum."""
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentMethod(str, enum.Enum):
    """Accepted tenders."""
    CASH = 'cash'
    CARD = 'card'
    GCASH = 'gcash'
    PAYMAYA = 'paymaya'
    CREDIT = 'credit'


class Sale(Base):
    """Completed (or cancelled) checkout; append-only apart from cancellation."""

    __tablename__ = 'sales'
    __table_args__ = (
        CheckConstraint('change_given >= 0', name='ck_sales_change_non_negative'),
        CheckConstraint('payment_received >= total_amount', name='ck_sales_paid_in_full'),
    )

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    transaction_number = Column(String(100), unique=True, nullable=False)
    customer_id = Column(BigInteger, nullable=True)
    cashier_id = Column(BigInteger, nullable=True)
    subtotal = Column(Numeric(10, 2), nullable=False)
    discount = Column(Numeric(10, 2), nullable=False, default=0, server_default='0')
    tax = Column(Numeric(10, 2), nullable=False, default=0, server_default='0')
    total_amount = Column(Numeric(10, 2), nullable=False)
    payment_method = Column(Enum(PaymentMethod, name='payment_method'), nullable=False)
    payment_received = Column(Numeric(10, 2), nullable=False)
    change_given = Column(Numeric(10, 2), nullable=False)
    status = Column(Enum(SaleStatus, name='sale_status'), nullable=False, default=SaleStatus.COMPLETED)
    notes = Column(Text, nullable=True)
    store_id = Column(BigInteger, nullable=True, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    cancelled_at = Column(DateTime, nullable=True)

    # Relationships
    items = relationship('SalesItem', back_populates='sale', order_by='SalesItem.id')

    def __repr__(self):
        return f"<Sale(id={self.id}, transaction_number='{self.transaction_number}', status={self.status.value})>"

    @property
    def is_cancelled(self):
        return self.status == SaleStatus.CANCELLED

    def to_dict(self, include_items=True):
        """Convert to dictionary for JSON serialization."""
        rv = {
            'id': self.id,
            'transaction_number': self.transaction_number,
            'cashier_id': self.cashier_id,
            'customer_id': self.customer_id,
            'subtotal': str(self.subtotal),
            'discount': str(self.discount),
            'tax': str(self.tax),
            'total_amount': str(self.total_amount),
            'payment_method': self.payment_method.value,
            'payment_received': str(self.payment_received),
            'change_given': str(self.change_given),
            'status': self.status.value,
            'notes': self.notes,
            'store_id': self.store_id,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'cancelled_at': self.cancelled_at.isoformat() if self.cancelled_at else None,
        }
        if include_items:
            rv['items'] = [item.to_dict() for item in self.items]
        return rv
