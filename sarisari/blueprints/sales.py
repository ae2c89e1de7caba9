"""Sales blueprint - JSON checkout, history and cancellation API."""
from flask import Blueprint, Response, g, request

from sarisari.blueprints.metrics import record_sale_outcome
from sarisari.exceptions import BusinessLogicError, InvalidCartError, PosError, SaleNotFoundError
from sarisari.middleware import require_identity
from sarisari.services import get_services
from sarisari.utils.api_response import success
from sarisari.utils.number_format import parse_money, parse_quantity
from sarisari.utils.time_utils import parse_iso_datetime

sales_bp = Blueprint('sales', __name__, url_prefix='/api/sales')


def _json_body() -> dict:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise BusinessLogicError('Request body must be a JSON object')
    return body


def _money_or_none(body, key):
    if body.get(key) is None:
        return None
    try:
        return parse_money(body[key])
    except ValueError as e:
        raise BusinessLogicError(f"{key}: {e}", payload={key: body[key]})


def _parse_cart(raw_items, price_key='unit_price', allow_barcode=False):
    """Turn request items into service cart lines; quantities must be whole numbers."""
    if not isinstance(raw_items, list) or not raw_items:
        raise InvalidCartError('Cart cannot be empty')

    cart = []
    for position, raw in enumerate(raw_items, start=1):
        if not isinstance(raw, dict):
            raise InvalidCartError(f'Cart line {position} is malformed', {'line': position})
        try:
            quantity = parse_quantity(raw.get('quantity'))
        except ValueError:
            raise InvalidCartError(
                f'Cart line {position} has an invalid quantity',
                {'line': position, 'quantity': raw.get('quantity')},
            )
        line = {'product_id': raw.get('product_id'), 'quantity': quantity}
        if allow_barcode:
            line['barcode'] = raw.get('barcode')
        if raw.get(price_key) is not None:
            try:
                line[price_key] = parse_money(raw[price_key])
            except ValueError:
                raise InvalidCartError(
                    f'Cart line {position} has an invalid price',
                    {'line': position, price_key: raw[price_key]},
                )
        cart.append(line)
    return cart


def _date_arg(name):
    try:
        return parse_iso_datetime(request.args.get(name))
    except ValueError:
        raise BusinessLogicError(f"Invalid {name}: use ISO-8601", payload={name: request.args.get(name)})


@sales_bp.route('/', methods=['POST'])
@require_identity
def create_sale():
    """
    Create a sale from a cart.

    Body: {items: [{product_id, quantity, unit_price?}], payment_method,
    amount_paid?, discount?, customer_id?, notes?}
    """
    body = _json_body()
    services = get_services()
    try:
        sale = services.sales.create_sale(
            _parse_cart(body.get('items')),
            body.get('payment_method'),
            cashier_id=g.identity['user_id'],
            amount_paid=_money_or_none(body, 'amount_paid'),
            discount_percent=body.get('discount') or 0,
            customer_id=body.get('customer_id'),
            notes=body.get('notes'),
            store_id=g.store_id,
        )
    except PosError as e:
        record_sale_outcome('rejected', e)
        raise

    record_sale_outcome('completed', total=sale.total_amount)
    return success(sale.to_dict(), 'Sale completed', 201)


@sales_bp.route('/quick', methods=['POST'])
@require_identity
def quick_sale():
    """Scanner checkout. Body: {items: [{barcode | product_id, quantity, price_override?}], ...}"""
    body = _json_body()
    services = get_services()
    try:
        sale = services.scanner.quick_sale(
            _parse_cart(body.get('items'), price_key='price_override', allow_barcode=True),
            body.get('payment_method'),
            discount_percent=body.get('discount') or 0,
            amount_paid=_money_or_none(body, 'amount_paid'),
            cashier_id=g.identity['user_id'],
            store_id=g.store_id,
            device_id=request.headers.get('X-Device-Id') or body.get('device_id'),
            customer_id=body.get('customer_id'),
        )
    except PosError as e:
        record_sale_outcome('rejected', e)
        raise

    record_sale_outcome('completed', total=sale.total_amount)
    return success(sale.to_dict(), 'Quick sale completed', 201)


@sales_bp.route('/', methods=['GET'])
@require_identity
def list_sales():
    """Paginated sales history. Query: page, limit, start_date, end_date, status."""
    status = request.args.get('status')
    if status and status not in ('completed', 'cancelled'):
        raise BusinessLogicError(f"Invalid status: {status}", payload={'status': status})

    sales, pagination = get_services().sales.list_sales(
        page=request.args.get('page', 1, type=int),
        limit=request.args.get('limit', 20, type=int),
        start=_date_arg('start_date'),
        end=_date_arg('end_date'),
        status=status or None,
        store_id=g.store_id,
    )
    return success({
        'sales': [s.to_dict(include_items=False) for s in sales],
        'pagination': pagination,
    })


@sales_bp.route('/daily-summary', methods=['GET'])
@require_identity
def daily_summary():
    day = _date_arg('date')
    summary = get_services().sales.daily_summary(
        store_id=g.store_id,
        day=day.date() if day else None,
    )
    summary['total_revenue'] = str(summary['total_revenue'])
    return success(summary)


@sales_bp.route('/<int:sale_id>', methods=['GET'])
@require_identity
def get_sale(sale_id: int):
    sale = get_services().sales.get_sale(sale_id, store_id=g.store_id)
    if sale is None:
        raise SaleNotFoundError(sale_id)
    return success(sale.to_dict())


@sales_bp.route('/<int:sale_id>/receipt', methods=['GET'])
@require_identity
def sale_receipt(sale_id: int):
    """Receipt of a sale. Query: format=json (default) | text."""
    receipt_format = request.args.get('format', 'json').lower()
    if receipt_format not in ('json', 'text'):
        raise BusinessLogicError(f"Invalid receipt format: {receipt_format}", payload={'format': receipt_format})

    services = get_services()
    sale = services.sales.get_sale(sale_id, store_id=g.store_id)
    if sale is None:
        raise SaleNotFoundError(sale_id)

    if receipt_format == 'text':
        return Response(services.receipts.to_text(sale), mimetype='text/plain')
    return success(services.receipts.to_dict(sale))


@sales_bp.route('/<int:sale_id>/cancel', methods=['POST'])
@require_identity
def cancel_sale(sale_id: int):
    body = request.get_json(silent=True) or {}
    try:
        sale = get_services().cancellations.cancel_sale(
            sale_id,
            reason=body.get('reason'),
            store_id=g.store_id,
        )
    except PosError as e:
        record_sale_outcome('cancel_rejected', e)
        raise

    record_sale_outcome('cancelled')
    return success(sale.to_dict(), 'Sale cancelled')
