# backend/products.py
from decimal import Decimal, InvalidOperation

from flask import Blueprint, request, current_app
from sqlalchemy.exc import SQLAlchemyError

from auth import admin_required, payload
from errors import ApiError, StorageError, respond
from models import db, Product
from storage import read_image

bp = Blueprint('products', __name__, url_prefix='/api/products')

DEFAULT_CATEGORY = 'makhana'


def _provided(value):
    return value is not None and value != ''


def parse_price(raw):
    try:
        price = Decimal(str(raw).strip())
        if not price.is_finite() or price < 0:
            raise ValueError()
    except (ValueError, InvalidOperation):
        raise ApiError('Invalid price. Must be a positive number.', 400)
    return price


def parse_discount(raw):
    try:
        return int(round(float(raw)))
    except (TypeError, ValueError, OverflowError):
        raise ApiError('Invalid discount price', 400)


def parse_stock(raw):
    try:
        if isinstance(raw, float) and not raw.is_integer():
            raise ValueError()
        stock = int(raw)
        if stock < 0:
            raise ValueError()
    except (TypeError, ValueError, OverflowError):
        raise ApiError('Invalid stock quantity', 400)
    return stock


def get_product_or_404(pid):
    if not pid:
        raise ApiError('Product ID is required', 400)
    try:
        product = db.session.get(Product, int(pid))
    except (TypeError, ValueError):
        raise ApiError('Invalid product id', 400)
    if product is None:
        raise ApiError('Product not found', 404)
    return product


def image_store():
    return current_app.extensions['image_store']


def store_upload(upload):
    """Save an uploaded image, returning ``(url, ref)``."""
    data = read_image(upload)
    try:
        return image_store().save(data, upload.filename)
    except StorageError as e:
        current_app.logger.error('Image upload failed: %s', e.message)
        raise


def discard_image(ref):
    try:
        image_store().delete(ref)
    except StorageError as e:
        current_app.logger.warning('Image deletion failed for %s: %s', ref, e.message)


@bp.route('', methods=['GET'])
def list_products():
    category = request.args.get('category')
    search = request.args.get('search')
    query = Product.query
    if category:
        query = query.filter(Product.category == category)
    if search:
        query = query.filter(Product.name.ilike(f'%{search}%'))
    products = query.order_by(Product.created_at.desc(), Product.id.desc()).all()
    return respond('Products retrieved successfully', data=[p.to_dict() for p in products])


@bp.route('', methods=['POST'])
@admin_required
def add_product():
    data = payload()
    name = (data.get('name') or '').strip()
    if not name or not _provided(data.get('price')):
        raise ApiError('Name and price are required', 400)

    product = Product(
        name=name,
        description=data.get('description'),
        price=parse_price(data.get('price')),
        stock_quantity=parse_stock(data['stock_quantity']) if _provided(data.get('stock_quantity')) else 0,
        category=data.get('category') or DEFAULT_CATEGORY,
    )
    if _provided(data.get('discount_price')):
        product.discount_price = parse_discount(data.get('discount_price'))

    upload = request.files.get('image')
    if upload and upload.filename:
        product.image, product.image_ref = store_upload(upload)

    db.session.add(product); db.session.commit()
    return respond('Product added successfully', data={'id': product.id, 'image': product.image})


@bp.route('', methods=['PUT'])
@admin_required
def update_product():
    data = payload()
    product = get_product_or_404(data.get('id'))

    # everything is parsed before the row is touched
    changes = {}
    if _provided(data.get('name')):
        changes['name'] = data['name'].strip()
    if _provided(data.get('description')):
        changes['description'] = data['description']
    if _provided(data.get('price')):
        changes['price'] = parse_price(data['price'])
    if _provided(data.get('stock_quantity')):
        changes['stock_quantity'] = parse_stock(data['stock_quantity'])
    if _provided(data.get('category')):
        changes['category'] = data['category']
    if _provided(data.get('discount_price')):
        changes['discount_price'] = parse_discount(data['discount_price'])

    upload = request.files.get('image')
    has_upload = bool(upload and upload.filename)
    if not changes and not has_upload:
        raise ApiError('No fields provided for update', 400)

    old_ref = product.image_ref
    if has_upload:
        changes['image'], changes['image_ref'] = store_upload(upload)

    for field, value in changes.items():
        setattr(product, field, value)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        if has_upload:
            discard_image(changes['image_ref'])
        raise

    if has_upload:
        discard_image(old_ref)
    return respond('Product updated successfully', data=product.to_dict())


@bp.route('', methods=['DELETE'])
@admin_required
def delete_product():
    product = get_product_or_404(payload().get('id') or request.args.get('id'))

    # the row goes even if the stored image cannot be removed
    discard_image(product.image_ref)
    db.session.delete(product); db.session.commit()
    return respond('Product deleted successfully')


@bp.route('/find', methods=['POST'])
def find_products():
    ids = payload().get('productIds')
    if not isinstance(ids, list):
        raise ApiError('Product IDs array is required', 400)
    products = Product.query.filter(Product.id.in_(ids)).all() if ids else []
    return respond('Products retrieved successfully', data=[p.to_dict() for p in products])
