# backend/app.py
import os
import logging
from datetime import timedelta

import click
from flask import Flask, send_from_directory
from flask_cors import CORS
from flask_session import Session
from dotenv import load_dotenv
from werkzeug.middleware.proxy_fix import ProxyFix

from models import db
from errors import register_error_handlers
from storage import get_image_store
import admin
import auth
import orders
import payments
import products

DEFAULT_ORIGINS = 'https://makhana-frontend.vercel.app'


def _env_flag(name, default):
    return os.getenv(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


def create_app(test_config=None):
    load_dotenv()
    app = Flask(__name__)

    secure_cookie = _env_flag('SESSION_COOKIE_SECURE', 'true')
    app.config.from_mapping(
        SQLALCHEMY_DATABASE_URI=os.getenv('DATABASE_URL', 'sqlite:///makhana.db'),
        SQLALCHEMY_TRACK_MODIFICATIONS=False,
        SECRET_KEY=os.getenv('SECRET_KEY', 'devsecret'),
        SESSION_TYPE='sqlalchemy',
        SESSION_SQLALCHEMY=db,
        SESSION_PERMANENT=True,
        SESSION_COOKIE_NAME=os.getenv('SESSION_COOKIE_NAME', 'makhana.sid'),
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SECURE=secure_cookie,
        # cross-site frontend needs SameSite=None, which browsers only accept on secure cookies
        SESSION_COOKIE_SAMESITE='None' if secure_cookie else 'Lax',
        SESSION_REFRESH_EACH_REQUEST=True,
        PERMANENT_SESSION_LIFETIME=timedelta(hours=int(os.getenv('SESSION_LIFETIME_HOURS', '24'))),
        CORS_ORIGINS=[o.strip() for o in os.getenv('CORS_ORIGINS', DEFAULT_ORIGINS).split(',') if o.strip()],
        IMAGE_STORAGE=os.getenv('IMAGE_STORAGE', 'local'),
        UPLOAD_FOLDER=os.getenv('UPLOAD_FOLDER', os.path.join(app.root_path, 'uploads')),
        CLOUDINARY_CLOUD_NAME=os.getenv('CLOUDINARY_CLOUD_NAME', ''),
        CLOUDINARY_API_KEY=os.getenv('CLOUDINARY_API_KEY', ''),
        CLOUDINARY_API_SECRET=os.getenv('CLOUDINARY_API_SECRET', ''),
        RAZORPAY_KEY_ID=os.getenv('RAZORPAY_KEY_ID', ''),
        RAZORPAY_KEY_SECRET=os.getenv('RAZORPAY_KEY_SECRET', ''),
        RAZORPAY_API_URL=os.getenv('RAZORPAY_API_URL', 'https://api.razorpay.com/v1'),
        LOG_LEVEL=os.getenv('LOG_LEVEL', 'INFO'),
    )
    if test_config:
        app.config.update(test_config)

    logging.basicConfig(format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    app.logger.setLevel(app.config['LOG_LEVEL'].upper())

    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1)
    CORS(app, supports_credentials=True, origins=app.config['CORS_ORIGINS'],
         methods=['GET', 'POST', 'PUT', 'DELETE', 'OPTIONS'],
         allow_headers=['Content-Type', 'Authorization'])

    db.init_app(app)
    Session(app)
    app.extensions['image_store'] = get_image_store(app.config)

    for module in (auth, admin, products, orders, payments):
        app.register_blueprint(module.bp)
    register_error_handlers(app)

    @app.route('/uploads/<path:filename>')
    def uploaded_file(filename):
        return send_from_directory(app.config['UPLOAD_FOLDER'], filename)

    @app.cli.command('create-admin')
    @click.argument('name')
    @click.argument('email')
    @click.argument('password')
    def create_admin_command(name, email, password):
        """Create an admin account or reset its password."""
        account = admin.create_admin(name, email, password)
        click.echo(f'Admin {account.email} ready (id {account.id}).')

    with app.app_context():
        db.create_all()

    return app


if __name__ == '__main__':
    create_app().run(port=int(os.getenv('PORT', 3000)), debug=True)
