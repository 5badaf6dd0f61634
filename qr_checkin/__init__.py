import os
from datetime import timedelta
from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from dotenv import load_dotenv

# Load environment variables (override=True ensures .env values take precedence)
load_dotenv(override=True)

# Initialize extensions
db = SQLAlchemy()
migrate = Migrate()


def _env_flag(name, default='false'):
    return os.environ.get(name, default).lower() in ('true', 'on', '1')


def create_app(test_config=None):
    """Application factory pattern."""
    app = Flask(__name__)

    # Configuration
    app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'dev-secret-key-change-me')
    app.config['SQLALCHEMY_DATABASE_URI'] = os.environ.get('DATABASE_URL', 'sqlite:///dev.db')
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False

    # Session configuration - staff stay logged in for the length of an event
    app.config['PERMANENT_SESSION_LIFETIME'] = timedelta(days=7)
    app.config['SESSION_COOKIE_SECURE'] = os.environ.get('RAILWAY_ENVIRONMENT') is not None  # HTTPS only in production
    app.config['SESSION_COOKIE_HTTPONLY'] = True
    app.config['SESSION_COOKIE_SAMESITE'] = 'Lax'

    # Check-in day boundary is local midnight in this zone
    app.config['EVENT_TIMEZONE'] = os.environ.get('EVENT_TIMEZONE', 'UTC')

    # Public scanning stations are allowed unless this is set
    app.config['CHECKIN_REQUIRES_LOGIN'] = _env_flag('CHECKIN_REQUIRES_LOGIN')

    # Required by `flask create-admin` when set
    app.config['ADMIN_SETUP_KEY'] = os.environ.get('ADMIN_SETUP_KEY')

    app.config['GUESTS_PAGE_SIZE'] = int(os.environ.get('GUESTS_PAGE_SIZE', 25))

    # Photo and avatar uploads are capped at 5MB
    app.config['MAX_CONTENT_LENGTH'] = 5 * 1024 * 1024

    if test_config:
        app.config.update(test_config)

    # Fix for postgres:// vs postgresql:// (some providers use older postgres:// format)
    if app.config['SQLALCHEMY_DATABASE_URI'].startswith('postgres://'):
        app.config['SQLALCHEMY_DATABASE_URI'] = app.config['SQLALCHEMY_DATABASE_URI'].replace(
            'postgres://', 'postgresql://', 1
        )

    # Initialize extensions with app
    db.init_app(app)
    migrate.init_app(app, db)

    from qr_checkin.services.change_feed import ChangeFeed
    from qr_checkin.services.scan_station import ScanStationRegistry
    from qr_checkin.services.storage_service import storage_service
    app.extensions['change_feed'] = ChangeFeed()
    app.extensions['scan_stations'] = ScanStationRegistry()
    storage_service.init_app(app)

    # Register blueprints
    from qr_checkin.routes.main import main_bp
    from qr_checkin.routes.auth import auth_bp
    from qr_checkin.routes.scan import scan_bp
    from qr_checkin.routes.admin import admin_bp
    from qr_checkin.routes.moderator import moderator_bp
    from qr_checkin.routes.api import api_bp
    app.register_blueprint(main_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(scan_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(moderator_bp)
    app.register_blueprint(api_bp)

    # Import models so they're known to Flask-Migrate
    from qr_checkin import models

    from qr_checkin.cli import register_commands
    register_commands(app)

    return app
