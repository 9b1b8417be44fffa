import pytest

from models import db, Order, OrderItem, Product
from orders import place_order
from errors import OrderError


def stock_of(app, pid):
    with app.app_context():
        return db.session.get(Product, pid).stock_quantity


def counts(app):
    with app.app_context():
        return Order.query.count(), OrderItem.query.count()


def test_order_decrements_stock_by_ordered_quantity(app, user_client, make_product):
    salted = make_product(name='Salted', stock=10)
    peri = make_product(name='Peri Peri', stock=5)

    res = user_client.post('/api/orders', json={
        'total_amount': 797,
        'shipping_address': '12 Lake Road',
        'items': [
            {'product_id': salted, 'quantity': 3, 'price': 199},
            {'id': peri, 'quantity': 1, 'price': 200},
        ],
    })
    body = res.get_json()
    assert body['status'] == 1
    assert stock_of(app, salted) == 7
    assert stock_of(app, peri) == 4

    with app.app_context():
        order = db.session.get(Order, body['data']['order_id'])
        assert order.status == 'pending'
        assert order.user_id == user_client.user_id
        assert sorted((i.product_id, i.quantity) for i in order.items) == [(salted, 3), (peri, 1)]


def test_item_price_defaults_to_effective_price(app, user_client, make_product):
    pid = make_product(price='250.00', discount_price=225)
    body = user_client.post('/api/orders', json={
        'total_amount': 450, 'items': [{'product_id': pid, 'quantity': 2}],
    }).get_json()
    with app.app_context():
        item = OrderItem.query.filter_by(order_id=body['data']['order_id']).one()
        assert float(item.price) == 225.0


def test_order_rolls_back_when_product_missing(app, user_client, make_product):
    pid = make_product(stock=10)
    body = user_client.post('/api/orders', json={
        'total_amount': 398,
        'items': [{'product_id': pid, 'quantity': 2, 'price': 199}, {'product_id': 999, 'quantity': 1, 'price': 10}],
    }).get_json()
    assert body['status'] == 0
    assert stock_of(app, pid) == 10
    assert counts(app) == (0, 0)


def test_order_rolls_back_when_stock_update_fails(app, user_client, make_product):
    plenty = make_product(name='Plenty', stock=10)
    scarce = make_product(name='Scarce', stock=1)
    body = user_client.post('/api/orders', json={
        'total_amount': 1000,
        'items': [{'product_id': plenty, 'quantity': 4, 'price': 100}, {'product_id': scarce, 'quantity': 2, 'price': 300}],
    }).get_json()
    assert body == {'status': 0, 'message': 'Insufficient stock for Scarce'}
    assert stock_of(app, plenty) == 10
    assert stock_of(app, scarce) == 1
    assert counts(app) == (0, 0)


@pytest.mark.parametrize('items', [
    [{'quantity': 1, 'price': 10}],
    [{'product_id': 'abc', 'quantity': 1}],
    [{'product_id': 1, 'quantity': -2}],
    [{'product_id': 1, 'quantity': 2.5}],
    [{'product_id': 1, 'quantity': float('inf')}],
    ['not-a-dict'],
])
def test_invalid_items_abort_order(app, make_product, items):
    make_product()
    with app.app_context():
        user_id = 1
        with pytest.raises(OrderError):
            place_order(user_id, 100, 'somewhere', items)
        assert Order.query.count() == 0
        assert db.session.get(Product, 1).stock_quantity == 10


def test_order_requires_fields(user_client):
    body = user_client.post('/api/orders', json={'total_amount': 100, 'items': []}).get_json()
    assert body == {'status': 0, 'message': 'Missing required fields: user_id, total_amount, or items'}


def test_order_requires_login(client):
    res = client.post('/api/orders', json={'total_amount': 100, 'items': [{'product_id': 1}]})
    assert res.status_code == 401


def test_user_sees_only_own_orders(app, client, make_user, make_product):
    pid = make_product(stock=10)
    make_user()
    make_user(username='bob', email='bob@example.com')
    for name in ('alice', 'bob'):
        client.post('/api/auth/login', json={'username': name, 'password': 'secret123'})
        client.post('/api/orders', json={'total_amount': 199, 'items': [{'product_id': pid, 'price': 199}]})

    body = client.get('/api/orders').get_json()
    assert len(body['data']) == 1
    order = body['data'][0]
    assert order['items'] == [{'product_id': pid, 'quantity': 1, 'price': 199.0, 'product_name': 'Roasted Makhana'}]


def test_admin_lists_and_filters_orders(app, admin_client, make_user, make_product):
    pid = make_product(stock=10)
    alice = make_user()
    bob = make_user(username='bob', email='bob@example.com')
    with app.app_context():
        place_order(alice, 199, None, [{'product_id': pid, 'price': 199}])
        place_order(bob, 398, None, [{'product_id': pid, 'quantity': 2, 'price': 199}])

    body = admin_client.get('/api/orders').get_json()
    assert [o['user_id'] for o in body['data']] == [bob, alice]
    body = admin_client.get(f'/api/orders?user_id={alice}').get_json()
    assert [o['user_id'] for o in body['data']] == [alice]


def test_list_orders_requires_session(client):
    assert client.get('/api/orders').status_code == 401


def test_admin_updates_order_status(app, admin_client, make_user, make_product):
    pid = make_product()
    uid = make_user()
    with app.app_context():
        order_id = place_order(uid, 199, None, [{'product_id': pid, 'price': 199}]).id

    body = admin_client.put('/api/orders', json={'order_id': order_id, 'status': 'shipped'}).get_json()
    assert body['status'] == 1
    with app.app_context():
        assert db.session.get(Order, order_id).status == 'shipped'

    body = admin_client.put('/api/orders', json={'order_id': order_id, 'status': 'lost'}).get_json()
    assert body == {'status': 0, 'message': 'Invalid status'}
    body = admin_client.put('/api/orders', json={'order_id': 999, 'status': 'shipped'}).get_json()
    assert body == {'status': 0, 'message': 'Order not found'}
