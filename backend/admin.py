# backend/admin.py
from flask import Blueprint, session, current_app
from werkzeug.security import generate_password_hash, check_password_hash

from auth import payload
from errors import ApiError, respond
from models import db, Admin

bp = Blueprint('admin', __name__, url_prefix='/api/admin')


def create_admin(name, email, password):
    """Create an admin account, or reset the password of an existing one."""
    email = email.strip().lower()
    admin = Admin.query.filter_by(email=email).first()
    if admin is None:
        admin = Admin(name=name, email=email, password_hash=generate_password_hash(password))
        db.session.add(admin)
    else:
        admin.name = name
        admin.password_hash = generate_password_hash(password)
    db.session.commit()
    return admin


@bp.route('/login', methods=['POST'])
def login():
    data = payload()
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''
    if not email or not password:
        raise ApiError('Email and password are required', 400)

    admin = Admin.query.filter_by(email=email).first()
    if not admin or not check_password_hash(admin.password_hash, password):
        raise ApiError('Invalid credentials', 401)

    session.clear()
    session.permanent = True
    session['admin_id'] = admin.id
    session['admin_name'] = admin.name
    session['admin_email'] = admin.email
    current_app.session_interface.regenerate(session)
    return respond('Login successful', data=admin.to_dict())


@bp.route('/check-auth')
def check_auth():
    if not session.get('admin_id'):
        raise ApiError('Not authenticated', 401)
    return respond('Authenticated', data={
        'id': session['admin_id'],
        'name': session.get('admin_name'),
        'email': session.get('admin_email'),
    })


@bp.route('/logout', methods=['POST'])
def logout():
    session.clear()
    return respond('Logged out successfully')
