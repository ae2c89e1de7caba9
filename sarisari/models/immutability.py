"""
ORM-level immutability for financial records.

Completed sales are append-only: their line items are never updated or
deleted, the sale row is never deleted, and the only update a sale accepts
is the single COMPLETED -> CANCELLED transition (with its notes and
cancellation timestamp). Checked in before_flush so a violating change
never reaches the database and the surrounding transaction rolls back.
"""
from sqlalchemy import event, inspect

from sarisari.exceptions import ImmutableRecordError

_SALE_MUTABLE_ON_CANCEL = frozenset({'status', 'notes', 'cancelled_at'})


def _changed_columns(obj):
    state = inspect(obj)
    return {
        attr.key for attr in state.mapper.column_attrs
        if state.attrs[attr.key].history.has_changes()
    }


def _check_sale_update(sale):
    from sarisari.models import SaleStatus

    changed = _changed_columns(sale)
    if not changed:
        return

    status_history = inspect(sale).attrs['status'].history
    if 'status' not in changed:
        raise ImmutableRecordError(f"Sale {sale.id} can only change through cancellation")

    old_status = status_history.deleted[0] if status_history.deleted else None
    if old_status != SaleStatus.COMPLETED or sale.status != SaleStatus.CANCELLED:
        raise ImmutableRecordError(
            f"Sale {sale.id}: illegal status transition {old_status} -> {sale.status}"
        )

    frozen = changed - _SALE_MUTABLE_ON_CANCEL
    if frozen:
        raise ImmutableRecordError(
            f"Sale {sale.id}: fields {sorted(frozen)} are immutable"
        )


def _guard_financial_records(session, flush_context, instances):
    from sarisari.models import Sale, SalesItem

    for obj in session.deleted:
        if isinstance(obj, (Sale, SalesItem)):
            raise ImmutableRecordError(f"{type(obj).__name__} {obj.id} cannot be deleted")

    for obj in session.dirty:
        if isinstance(obj, SalesItem) and _changed_columns(obj):
            raise ImmutableRecordError(f"SalesItem {obj.id} is immutable")
        if isinstance(obj, Sale):
            _check_sale_update(obj)


def register_immutability_guard(session_factory):
    """Attach the guard to a sessionmaker (idempotent)."""
    if not event.contains(session_factory, 'before_flush', _guard_financial_records):
        event.listen(session_factory, 'before_flush', _guard_financial_records)
