"""Inventory blueprint - batch stock, movements and valuation API."""
from datetime import date

from flask import Blueprint, current_app, g, request

from sarisari.exceptions import BusinessLogicError, InvalidQuantityError
from sarisari.middleware import require_identity, require_role
from sarisari.services import get_services
from sarisari.utils.api_response import success
from sarisari.utils.formatters import money_ph
from sarisari.utils.number_format import parse_quantity
from sarisari.utils.time_utils import parse_iso_datetime

inventory_bp = Blueprint('inventory', __name__, url_prefix='/api/inventory')

STOCK_MANAGER_ROLES = ('admin', 'manager')


def _json_body() -> dict:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise BusinessLogicError('Request body must be a JSON object')
    return body


def _quantity(body, key):
    try:
        return parse_quantity(body.get(key))
    except ValueError:
        raise InvalidQuantityError(body.get(key))


def _expiry_date(body):
    raw = body.get('expiry_date')
    if not raw:
        return None
    try:
        return date.fromisoformat(raw)
    except (TypeError, ValueError):
        raise BusinessLogicError('Invalid expiry_date: use YYYY-MM-DD', payload={'expiry_date': raw})


def _date_arg(name):
    try:
        return parse_iso_datetime(request.args.get(name))
    except ValueError:
        raise BusinessLogicError(f"Invalid {name}: use ISO-8601", payload={name: request.args.get(name)})


@inventory_bp.route('/', methods=['GET'])
@require_identity
def list_inventory():
    """All batches, earliest expiry first. Query: page, limit, expiring_within_days."""
    raw_days = request.args.get('expiring_within_days')
    try:
        days = parse_quantity(raw_days) if raw_days else None
    except ValueError:
        raise InvalidQuantityError(raw_days, 'expiring_within_days must be a non-negative integer')

    batches, pagination = get_services().inventory.list_batches(
        page=request.args.get('page', 1, type=int),
        limit=request.args.get('limit', 20, type=int),
        expiring_within_days=days,
        store_id=g.store_id,
    )
    return success({'inventory': batches, 'pagination': pagination})


@inventory_bp.route('/product/<int:product_id>', methods=['GET'])
@require_identity
def product_inventory(product_id: int):
    """Product counter, its batches and the reconciliation between them."""
    inventory = get_services().inventory
    batches = inventory.get_batches(product_id, store_id=g.store_id)
    reconciliation = inventory.reconcile(product_id, store_id=g.store_id)
    return success({
        'product_id': product_id,
        'stock_quantity': reconciliation.stock_quantity,
        'batches': [b.to_dict() for b in batches],
        'reconciliation': reconciliation.to_dict(),
    })


@inventory_bp.route('/product/<int:product_id>/add', methods=['POST'])
@require_identity
@require_role(*STOCK_MANAGER_ROLES)
def add_stock(product_id: int):
    """Body: {quantity, batch_number?, expiry_date?, location?}"""
    body = _json_body()
    batch = get_services().inventory.add_stock(
        product_id,
        _quantity(body, 'quantity'),
        batch_number=body.get('batch_number'),
        expiry_date=_expiry_date(body),
        location=body.get('location'),
        store_id=g.store_id,
    )
    return success(batch.to_dict(), 'Stock added', 201)


@inventory_bp.route('/product/<int:product_id>/remove', methods=['POST'])
@require_identity
@require_role(*STOCK_MANAGER_ROLES)
def remove_stock(product_id: int):
    """Body: {quantity, reason?}"""
    body = _json_body()
    removal = get_services().inventory.remove_stock(
        product_id,
        _quantity(body, 'quantity'),
        reason=body.get('reason'),
        store_id=g.store_id,
    )
    return success(removal.to_dict(), 'Stock removed')


@inventory_bp.route('/product/<int:product_id>/adjust', methods=['POST'])
@require_identity
@require_role(*STOCK_MANAGER_ROLES)
def adjust_stock(product_id: int):
    """Body: {adjustment (signed), reason?, location?}"""
    body = _json_body()
    result = get_services().inventory.adjust_stock(
        product_id,
        _quantity(body, 'adjustment'),
        reason=body.get('reason'),
        location=body.get('location'),
        store_id=g.store_id,
    )
    return success(result.to_dict(), 'Stock adjusted')


@inventory_bp.route('/product/<int:product_id>/movements', methods=['GET'])
@require_identity
def stock_movements(product_id: int):
    movements = get_services().inventory.get_stock_movements(
        product_id,
        start=_date_arg('start_date'),
        end=_date_arg('end_date'),
        store_id=g.store_id,
    )
    return success([m.to_dict() for m in movements])


@inventory_bp.route('/product/<int:product_id>/reconcile', methods=['GET'])
@require_identity
def reconcile(product_id: int):
    result = get_services().inventory.reconcile(product_id, store_id=g.store_id)
    return success(result.to_dict())


@inventory_bp.route('/valuation', methods=['GET'])
@require_identity
def valuation():
    result = get_services().inventory.inventory_valuation(store_id=g.store_id)
    result['total_value_display'] = money_ph(result['total_value'], current_app.config.get('CURRENCY_SYMBOL'))
    return success(result)


@inventory_bp.route('/low-stock', methods=['GET'])
@require_identity
def low_stock():
    products = get_services().inventory.low_stock_products(store_id=g.store_id)
    return success([p.to_dict() for p in products])
