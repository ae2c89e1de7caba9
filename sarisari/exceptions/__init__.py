"""Custom exceptions for the sari-sari POS core."""
from decimal import Decimal


class PosError(Exception):
    """Base exception for all application errors."""
    retryable = False

    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    @property
    def kind(self):
        return type(self).__name__

    def to_dict(self):
        rv = {k: _jsonable(v) for k, v in (self.payload or {}).items()}
        rv['message'] = self.message
        rv['error'] = self.kind
        rv['retryable'] = self.retryable
        rv['status'] = 'error'
        return rv


def _jsonable(value):
    if isinstance(value, Decimal):
        return str(value)
    return value


class BusinessLogicError(PosError):
    """Exception raised for business logic violations."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)


class NotFoundError(PosError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class InvalidCartError(BusinessLogicError):
    """Cart is empty or has a malformed line."""
    def __init__(self, message="Cart cannot be empty", payload=None):
        super().__init__(message, 400, payload)


class InvalidPaymentMethodError(BusinessLogicError):
    def __init__(self, method, allowed):
        super().__init__(
            f"Invalid payment method: {method}",
            400,
            {'payment_method': method, 'allowed': list(allowed)},
        )


class InvalidDiscountError(BusinessLogicError):
    def __init__(self, discount_percent):
        super().__init__(
            f"Discount must be between 0 and 100 percent, got {discount_percent}",
            400,
            {'discount_percent': discount_percent},
        )


class InvalidQuantityError(BusinessLogicError):
    def __init__(self, quantity, message=None):
        super().__init__(
            message or f"Quantity must be a positive integer, got {quantity}",
            400,
            {'quantity': quantity},
        )


class ProductNotFoundError(NotFoundError):
    """Referenced product does not exist (or is outside the caller's store)."""
    def __init__(self, product_id=None, barcode=None):
        if barcode is not None:
            message = f"Product not found for barcode: {barcode}"
        else:
            message = f"Product not found: {product_id}"
        super().__init__(message, {'product_id': product_id, 'barcode': barcode})
        self.product_id = product_id
        self.barcode = barcode


class InsufficientStockError(BusinessLogicError):
    """Raised when an operation fails due to lack of stock."""
    def __init__(self, product_id, requested, available, product_name=None):
        label = product_name or f"product {product_id}"
        message = f"Insufficient stock for {label}. Available: {available}, requested: {requested}"
        super().__init__(
            message,
            status_code=409,
            payload={
                'product_id': product_id,
                'requested': requested,
                'available': available,
                'shortfall': requested - available,
            },
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available

    @property
    def shortfall(self):
        return self.requested - self.available


class InsufficientPaymentError(BusinessLogicError):
    """Amount paid does not cover the sale total."""
    def __init__(self, total, paid):
        super().__init__(
            f"Insufficient payment. Total: {total}, Paid: {paid}",
            status_code=400,
            payload={'total': total, 'paid': paid, 'shortfall': total - paid},
        )
        self.total = total
        self.paid = paid


class SaleNotFoundError(NotFoundError):
    def __init__(self, sale_id):
        super().__init__(f"Sale not found: {sale_id}", {'sale_id': sale_id})
        self.sale_id = sale_id


class AlreadyCancelledError(BusinessLogicError):
    def __init__(self, sale_id, transaction_number=None):
        super().__init__(
            f"Sale {transaction_number or sale_id} is already cancelled",
            status_code=409,
            payload={'sale_id': sale_id, 'transaction_number': transaction_number},
        )
        self.sale_id = sale_id


class ImmutableRecordError(PosError):
    """Attempt to modify a completed financial record."""
    def __init__(self, message):
        super().__init__(message, 500)


class StorageUnavailableError(PosError):
    """Transient storage failure; the whole transaction may be retried."""
    retryable = True

    def __init__(self, message="Storage unavailable, please retry"):
        super().__init__(message, 503)
