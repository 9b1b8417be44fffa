import pytest
import requests
from werkzeug.security import generate_password_hash

from app import create_app
from admin import create_admin
from models import db, User, Product

RAZORPAY_SECRET = 'test_secret'


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f'{self.status_code} Client Error')

    def json(self):
        return self.payload


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'SESSION_COOKIE_SECURE': False,
        'SESSION_COOKIE_SAMESITE': 'Lax',
        'IMAGE_STORAGE': 'local',
        'UPLOAD_FOLDER': str(tmp_path_factory.mktemp('uploads')),
        'RAZORPAY_KEY_ID': 'rzp_test_key',
        'RAZORPAY_KEY_SECRET': RAZORPAY_SECRET,
    })
    yield app


@pytest.fixture(autouse=True)
def clean_db(app):
    with app.app_context():
        db.drop_all()
        db.create_all()
    yield
    with app.app_context():
        db.session.remove()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def fake_response():
    return FakeResponse


@pytest.fixture
def make_user(app):
    def _make(username='alice', email='alice@example.com', password='secret123'):
        with app.app_context():
            user = User(username=username, email=email, password_hash=generate_password_hash(password),
                        full_name='Alice Rao', phone='9999999999', address='12 Lake Road')
            db.session.add(user)
            db.session.commit()
            return user.id
    return _make


@pytest.fixture
def make_product(app):
    def _make(name='Roasted Makhana', price='199.00', stock=10, **fields):
        with app.app_context():
            product = Product(name=name, price=price, stock_quantity=stock, **fields)
            db.session.add(product)
            db.session.commit()
            return product.id
    return _make


@pytest.fixture
def user_client(client, make_user):
    user_id = make_user()
    res = client.post('/api/auth/login', json={'username': 'alice', 'password': 'secret123'})
    assert res.get_json()['status'] == 1
    client.user_id = user_id
    return client


@pytest.fixture
def admin_client(app, client):
    with app.app_context():
        create_admin('Shop Admin', 'admin@example.com', 'adminpass')
    res = client.post('/api/admin/login', json={'email': 'admin@example.com', 'password': 'adminpass'})
    assert res.status_code == 200
    return client
