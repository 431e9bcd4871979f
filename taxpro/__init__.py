"""
Application factory and initialization.
"""

from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_login import LoginManager
from flask_mail import Mail
from flask_cors import CORS
from dotenv import load_dotenv
from werkzeug.middleware.proxy_fix import ProxyFix
import logging
import os
import time

# Load environment variables
load_dotenv()

# Initialize extensions
db = SQLAlchemy()
login_manager = LoginManager()
mail = Mail()

logger = logging.getLogger(__name__)

DEFAULT_ALLOWED_FILE_TYPES = 'pdf,jpg,jpeg,png,doc,docx,xls,xlsx'


def _database_url() -> str:
    """Use DATABASE_URL when set, otherwise assemble one from the DB_* variables."""
    url = os.getenv('DATABASE_URL')
    if url:
        return url

    user = os.getenv('DB_USER', 'taxpro_user')
    password = os.getenv('DB_PASSWORD')
    credentials = f'{user}:{password}' if password else user
    host = os.getenv('DB_HOST', 'localhost')
    port = os.getenv('DB_PORT', '5432')
    name = os.getenv('DB_NAME', 'taxpro_db')
    return f'postgresql+psycopg://{credentials}@{host}:{port}/{name}'


def _load_config(app: Flask, overrides: dict = None) -> None:
    app_env = os.getenv('APP_ENV', 'production')

    app.config['APP_ENV'] = app_env
    app.config['SECRET_KEY'] = os.getenv('SECRET_KEY', 'dev-secret-key-change-me')
    app.config['SQLALCHEMY_DATABASE_URI'] = _database_url()
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False

    # Token settings
    app.config['JWT_SECRET'] = os.getenv('JWT_SECRET')
    app.config['JWT_EXPIRES_IN'] = os.getenv('JWT_EXPIRES_IN', '7d')
    app.config['EXPOSE_DEBUG_TOKENS'] = app_env == 'development'

    # CORS
    app.config['FRONTEND_URL'] = os.getenv('FRONTEND_URL')
    app.config['CORS_ORIGINS'] = [
        'http://localhost:3001',
        'http://localhost:3000',
        'http://127.0.0.1:5500',
    ]

    # Rate limiting
    app.config['RATELIMIT_ENABLED'] = os.getenv('RATELIMIT_ENABLED', 'True') == 'True'
    app.config['RATE_LIMIT_WINDOW_SECONDS'] = int(os.getenv('RATE_LIMIT_WINDOW_MS', 15 * 60 * 1000)) // 1000
    app.config['RATE_LIMIT_MAX_REQUESTS'] = int(os.getenv('RATE_LIMIT_MAX_REQUESTS', 100))
    app.config['AUTH_RATE_LIMIT_MAX_ATTEMPTS'] = int(os.getenv('AUTH_RATE_LIMIT_MAX_ATTEMPTS', 5))
    # Reverse proxies in front of the app; each appends one X-Forwarded-For entry
    app.config['TRUSTED_PROXY_COUNT'] = int(os.getenv('TRUSTED_PROXY_COUNT', 1))

    # Uploads
    app.config['UPLOAD_FOLDER'] = os.getenv('UPLOAD_PATH', './uploads')
    app.config['MAX_FILE_SIZE'] = int(os.getenv('MAX_FILE_SIZE', 10 * 1024 * 1024))
    app.config['MAX_FILES_PER_UPLOAD'] = 5
    app.config['ALLOWED_FILE_TYPES'] = os.getenv('ALLOWED_FILE_TYPES', DEFAULT_ALLOWED_FILE_TYPES)

    # Mail configuration
    app.config['MAIL_SERVER'] = os.getenv('MAIL_SERVER')
    app.config['MAIL_PORT'] = int(os.getenv('MAIL_PORT', 587))
    app.config['MAIL_USE_TLS'] = os.getenv('MAIL_USE_TLS', 'True') == 'True'
    app.config['MAIL_USERNAME'] = os.getenv('MAIL_USERNAME')
    app.config['MAIL_PASSWORD'] = os.getenv('MAIL_PASSWORD')
    app.config['MAIL_DEFAULT_SENDER'] = os.getenv('MAIL_DEFAULT_SENDER', 'support@taxpro.com')

    # Bootstrap admin account
    app.config['ADMIN_EMAIL'] = os.getenv('ADMIN_EMAIL')
    app.config['ADMIN_PASSWORD'] = os.getenv('ADMIN_PASSWORD')

    if overrides:
        app.config.update(overrides)

    if app.config['FRONTEND_URL']:
        app.config['CORS_ORIGINS'].append(app.config['FRONTEND_URL'])
    if not app.config['JWT_SECRET']:
        app.config['JWT_SECRET'] = app.config['SECRET_KEY']

    # Reject oversized bodies before they are read: every file at its ceiling plus form overhead
    if app.config.get('MAX_CONTENT_LENGTH') is None:
        app.config['MAX_CONTENT_LENGTH'] = (
            app.config['MAX_FILE_SIZE'] * app.config['MAX_FILES_PER_UPLOAD'] + 1024 * 1024
        )

    if not app.config['SQLALCHEMY_DATABASE_URI'].startswith('sqlite'):
        app.config.setdefault('SQLALCHEMY_ENGINE_OPTIONS', {
            'pool_size': int(os.getenv('DB_POOL_SIZE', 20)),
            'pool_timeout': int(os.getenv('DB_POOL_TIMEOUT', 2)),
            'pool_recycle': 1800,
            'pool_pre_ping': True,
        })


def create_app(config: dict = None):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    _load_config(app, config)
    app.config['STARTED_AT'] = time.time()
    if app.config['TRUSTED_PROXY_COUNT']:
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=app.config['TRUSTED_PROXY_COUNT'])

    # Initialize extensions with app
    db.init_app(app)
    login_manager.init_app(app)
    login_manager.session_protection = None
    mail.init_app(app)
    CORS(
        app,
        origins=app.config['CORS_ORIGINS'],
        supports_credentials=True,
        methods=['GET', 'POST', 'PUT', 'DELETE', 'OPTIONS'],
        allow_headers=['Content-Type', 'Authorization', 'X-Requested-With'],
    )

    from taxpro.errors import register_error_handlers
    from taxpro.utils import auth  # noqa: F401  registers the bearer-token request loader
    from taxpro.utils.security import init_security
    register_error_handlers(app)
    init_security(app)

    # Register blueprints
    from taxpro.routes.main import main_bp
    from taxpro.routes.auth import auth_bp
    from taxpro.routes.users import users_bp
    from taxpro.routes.tax_returns import tax_returns_bp
    from taxpro.routes.contact import contact_bp
    from taxpro.routes.uploads import uploads_bp
    from taxpro.routes.admin import admin_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(tax_returns_bp)
    app.register_blueprint(contact_bp)
    app.register_blueprint(uploads_bp)
    app.register_blueprint(admin_bp)

    # Create database tables
    with app.app_context():
        import taxpro.models  # noqa: F401
        db.create_all()
        from taxpro.utils.init_db import init_system_settings, init_admin_user
        init_system_settings()
        init_admin_user()

    logger.info(f"TaxPro API initialised (env={app.config['APP_ENV']})")
    return app
