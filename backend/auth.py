# backend/auth.py
import re
from functools import wraps

from flask import Blueprint, request, session, current_app
from werkzeug.security import generate_password_hash, check_password_hash
from sqlalchemy import or_

from errors import ApiError, respond
from models import db, User

bp = Blueprint('auth', __name__, url_prefix='/api/auth')

EMAIL_REGEX = re.compile(r"\S+@\S+\.\S+")
MIN_PASSWORD_LENGTH = 6


def login_required(f):
    @wraps(f)
    def wrapped(*args, **kwargs):
        if not session.get('logged_in'):
            return respond('Authentication required', status=0, code=401)
        return f(*args, **kwargs)
    return wrapped


def admin_required(f):
    @wraps(f)
    def wrapped(*args, **kwargs):
        if not session.get('admin_id'):
            return respond('Admin authentication required', status=0, code=401)
        return f(*args, **kwargs)
    return wrapped


def payload():
    """Request fields from a JSON body, falling back to form data."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else request.form


def valid_email(email):
    return bool(email) and EMAIL_REGEX.search(email) is not None


def validate_signup(username, email, password, confirm_password):
    if not username or not email or not password:
        raise ApiError('Username, email, and password are required')
    if password != confirm_password:
        raise ApiError('Passwords do not match')
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ApiError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters long')
    if not valid_email(email):
        raise ApiError('Invalid email format')


def authenticate(identifier, password):
    """Return the user whose username or email is ``identifier`` and whose
    password hash verifies, else None."""
    user = User.query.filter(or_(
        User.username == identifier,
        User.email == identifier.lower(),
    )).first()
    if user and check_password_hash(user.password_hash, password):
        return user
    return None


def start_user_session(user):
    session.clear()
    session.permanent = True
    session['user_id'] = user.id
    session['username'] = user.username
    session['email'] = user.email
    session['full_name'] = user.full_name
    session['logged_in'] = True
    current_app.session_interface.regenerate(session)


def session_user():
    return {
        'id': session.get('user_id'),
        'username': session.get('username'),
        'email': session.get('email'),
        'full_name': session.get('full_name'),
    }


@bp.route('/signup', methods=['POST'])
def signup():
    data = payload()
    username = (data.get('username') or '').strip()
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''
    validate_signup(username, email, password, data.get('confirmPassword'))

    if User.query.filter(or_(User.username == username, User.email == email)).first():
        raise ApiError('Username or email already exists')

    user = User(
        username=username,
        email=email,
        password_hash=generate_password_hash(password),
        full_name=data.get('fullName'),
        phone=data.get('phone'),
        address=data.get('address'),
    )
    db.session.add(user); db.session.commit()
    start_user_session(user)
    current_app.logger.info('User %s signed up', user.id)
    return respond('Account created successfully!', data={'user': session_user(), 'logged_in': True})


@bp.route('/login', methods=['POST'])
def login():
    data = payload()
    identifier = (data.get('username') or '').strip()
    password = data.get('password') or ''
    if not identifier or not password:
        raise ApiError('Username/Email and password are required')

    user = authenticate(identifier, password)
    if user is None:
        raise ApiError('Invalid username/email or password')
    start_user_session(user)
    return respond('Login successful!', data={'user': session_user(), 'logged_in': True})


@bp.route('/logout', methods=['POST'])
def logout():
    session.clear()
    return respond('Logged out successfully', data={'logged_in': False})


@bp.route('/check_session')
def check_session():
    if session.get('logged_in'):
        return respond('Active session', data={'isAuthenticated': True, 'user': session_user()})
    if session.get('admin_id'):
        admin = {'id': session['admin_id'], 'name': session.get('admin_name'), 'email': session.get('admin_email')}
        return respond('Active session', data={'isAuthenticated': True, 'isAdmin': True, 'admin': admin})
    return respond('No active session', data={'isAuthenticated': False}, status=0)


@bp.route('/seeProfileData')
@login_required
def see_profile_data():
    user_id = session['user_id']
    requested = request.args.get('user_id', type=int)
    if requested is not None and requested != user_id:
        raise ApiError('Not allowed', 403)
    user = db.session.get(User, user_id)
    if user is None:
        raise ApiError('User not found')
    return respond('User data retrieved successfully', data=user.to_dict())


@bp.route('/update_profile', methods=['PUT'])
@login_required
def update_profile():
    user_id = session['user_id']
    data = payload()
    email = (data.get('email') or '').strip().lower()
    if not valid_email(email):
        raise ApiError('Valid email is required')
    if User.query.filter(User.email == email, User.id != user_id).first():
        raise ApiError('Email already in use')

    user = db.session.get(User, user_id)
    if user is None:
        raise ApiError('User not found')
    user.full_name = data.get('full_name')
    user.phone = data.get('phone')
    user.address = data.get('address')
    user.email = email
    db.session.commit()

    session['full_name'] = user.full_name
    session['email'] = user.email
    return respond('Profile updated successfully', data={'user': user.to_dict()})
