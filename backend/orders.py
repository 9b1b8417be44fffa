# backend/orders.py
from decimal import Decimal, InvalidOperation

from flask import Blueprint, request, session, current_app
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from auth import admin_required, payload
from errors import ApiError, OrderError, respond
from models import db, Order, OrderItem, Product, ORDER_STATUSES

bp = Blueprint('orders', __name__, url_prefix='/api/orders')


def _amount(raw, what):
    try:
        value = Decimal(str(raw))
        if not value.is_finite() or value <= 0:
            raise ValueError()
    except (ValueError, InvalidOperation):
        raise OrderError(f'Invalid {what}')
    return value


def _positive_int(raw):
    try:
        if isinstance(raw, float) and not raw.is_integer():
            raise ValueError()
        value = int(raw)
        if value <= 0:
            raise ValueError()
    except (TypeError, ValueError, OverflowError):
        raise OrderError('Invalid item data')
    return value


def decrement_stock(product_id, quantity):
    """Take ``quantity`` off a product's stock in a single statement.

    Returns False when the product does not exist or holds less than
    ``quantity``; the row is left untouched in that case.
    """
    result = db.session.execute(
        update(Product)
        .where(Product.id == product_id, Product.stock_quantity >= quantity)
        .values(stock_quantity=Product.stock_quantity - quantity)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def place_order(user_id, total_amount, shipping_address, items):
    """Insert an order with its items and decrement stock, all or nothing."""
    if not user_id or not total_amount or not items:
        raise OrderError('Missing required fields: user_id, total_amount, or items')

    try:
        order = Order(
            user_id=user_id,
            total_amount=_amount(total_amount, 'total amount'),
            shipping_address=shipping_address,
            status='pending',
        )
        db.session.add(order)
        db.session.flush()

        for item in items:
            if not isinstance(item, dict):
                raise OrderError('Invalid item data')
            product_id = item.get('product_id') or item.get('id')
            if not product_id:
                raise OrderError('Invalid item data')
            quantity = _positive_int(item.get('quantity') or 1)
            product = db.session.get(Product, _positive_int(product_id))
            if product is None:
                raise OrderError(f'Product {product_id} not found')
            price = item.get('price') or product.effective_price

            db.session.add(OrderItem(
                order_id=order.id,
                product_id=product.id,
                quantity=quantity,
                price=_amount(price, 'item price'),
            ))
            if not decrement_stock(product.id, quantity):
                raise OrderError(f'Insufficient stock for {product.name}')

        db.session.commit()
    except OrderError:
        db.session.rollback()
        raise
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error('Order creation failed: %s', e)
        raise OrderError('Order creation failed: database error')

    return order


@bp.route('', methods=['GET'])
def list_orders():
    if session.get('admin_id'):
        user_id = request.args.get('user_id', type=int)
    elif session.get('logged_in'):
        user_id = session['user_id']
    else:
        return respond('Authentication required', status=0, code=401)

    query = Order.query
    if user_id:
        query = query.filter(Order.user_id == user_id)
    orders = query.order_by(Order.created_at.desc(), Order.id.desc()).all()
    return respond('Orders retrieved successfully', data=[o.to_dict() for o in orders])


@bp.route('', methods=['POST'])
def create_order():
    if not session.get('logged_in'):
        return respond('Authentication required', status=0, code=401)
    data = payload()
    items = data.get('items')
    if items is not None and not isinstance(items, list):
        raise OrderError('Invalid item data')
    order = place_order(
        session['user_id'],
        data.get('total_amount'),
        data.get('shipping_address'),
        items,
    )
    current_app.logger.info('Order %s placed by user %s', order.id, order.user_id)
    return respond('Order created successfully', data={'order_id': order.id})


@bp.route('', methods=['PUT'])
@admin_required
def update_order_status():
    data = payload()
    order_id = data.get('order_id')
    status = data.get('status')
    if not order_id or not status:
        raise ApiError('Missing order_id or status')
    if status not in ORDER_STATUSES:
        raise ApiError('Invalid status')
    try:
        order_id = int(order_id)
    except (TypeError, ValueError):
        raise ApiError('Order not found')

    result = db.session.execute(
        update(Order).where(Order.id == order_id).values(status=status)
    )
    db.session.commit()
    if result.rowcount == 0:
        raise ApiError('Order not found')
    return respond('Order status updated successfully')
