# backend/payments.py
import hmac
import time
import hashlib
from decimal import Decimal, InvalidOperation

import requests
from flask import Blueprint, current_app

from auth import payload
from errors import ApiError, PaymentGatewayError, respond
from models import db, Payment

bp = Blueprint('payments', __name__, url_prefix='/api/payments')

DEFAULT_CURRENCY = 'INR'


def gateway_credentials():
    key_id = current_app.config.get('RAZORPAY_KEY_ID')
    key_secret = current_app.config.get('RAZORPAY_KEY_SECRET')
    if not key_id or not key_secret:
        raise PaymentGatewayError('Razorpay credentials not configured')
    return key_id, key_secret


def parse_amount(raw):
    """Amounts are in the currency's smallest unit, so they must be whole."""
    try:
        amount = Decimal(str(raw))
        if not amount.is_finite() or amount <= 0 or amount != amount.to_integral_value():
            raise ValueError()
    except (ValueError, InvalidOperation):
        raise ApiError('Invalid amount')
    return int(amount)


def create_gateway_order(amount, currency=DEFAULT_CURRENCY):
    key_id, key_secret = gateway_credentials()
    order_data = {
        'receipt': f'order_{int(time.time() * 1000)}',
        'amount': amount,
        'currency': currency,
        'payment_capture': 1,
    }
    url = current_app.config['RAZORPAY_API_URL'].rstrip('/') + '/orders'
    try:
        res = requests.post(url, json=order_data, auth=(key_id, key_secret), timeout=30)
        res.raise_for_status()
        return res.json()
    except (requests.RequestException, ValueError) as e:
        current_app.logger.error('Gateway order creation failed: %s', e)
        raise PaymentGatewayError(f'Payment order creation failed: {e}')


def payment_signature(order_id, payment_id, secret):
    message = f'{order_id}|{payment_id}'.encode('utf-8')
    return hmac.new(secret.encode('utf-8'), message, hashlib.sha256).hexdigest()


def verify_signature(order_id, payment_id, signature, secret):
    expected = payment_signature(order_id, payment_id, secret)
    return hmac.compare_digest(expected.encode('utf-8'), str(signature).encode('utf-8'))


@bp.route('/create', methods=['POST'])
def create_payment():
    data = payload()
    if not data.get('amount'):
        raise ApiError('Invalid amount')
    amount = parse_amount(data['amount'])
    order = create_gateway_order(amount, data.get('currency') or DEFAULT_CURRENCY)
    key_id, _ = gateway_credentials()
    return respond('Payment order created', data={'order': order, 'key_id': key_id})


@bp.route('/verify', methods=['POST'])
def verify_payment():
    data = payload()
    order_id = data.get('razorpay_order_id')
    payment_id = data.get('razorpay_payment_id')
    signature = data.get('razorpay_signature')
    if not order_id or not payment_id or not signature:
        raise ApiError('Missing payment verification data')

    _, key_secret = gateway_credentials()
    if not verify_signature(order_id, payment_id, signature, key_secret):
        current_app.logger.warning('Signature mismatch for payment %s', payment_id)
        raise ApiError('Payment signature verification failed')

    amount = parse_amount(data['amount']) if data.get('amount') else 0
    payment = Payment(order_id=order_id, payment_id=payment_id, signature=signature,
                      amount=amount, status='success')
    db.session.add(payment); db.session.commit()
    current_app.logger.info('Payment %s verified for gateway order %s', payment_id, order_id)
    return respond('Payment verified successfully', data=payment.to_dict())
