"""
AutoExamChecker - main application
Flask JSON API for timed PDF exams, paid test credits and an admin catalog
"""

import logging

from flask import Flask
from flask_cors import CORS

from autoexam.core.catalog import ExamCatalog
from autoexam.core.config import Config
from autoexam.core.errors import register_error_handlers
from autoexam.core.ledger import Ledger
from autoexam.core.payments import PaymentService
from autoexam.core.sessions import SessionLifecycle
from autoexam.core.storage import select_storage
from autoexam.core.uploads import UploadStore
from autoexam.routes import admin_bp, auth_bp, main_bp, payment_bp, test_bp

API_PREFIX = '/api/v1'


def create_app(config_class=Config):
    """Application Factory Pattern"""
    app = Flask(__name__)
    app.config.from_object(config_class)

    # Security settings
    _configure_security(app, config_class)
    app.config['MAX_CONTENT_LENGTH'] = config_class.MAX_UPLOAD_MB * 1024 * 1024

    CORS(app, origins=config_class.ALLOWED_ORIGINS)

    # Storage and services
    storage = _init_storage(config_class)
    app.storage = storage
    app.uploads = UploadStore(config_class.UPLOAD_FOLDER)
    app.ledger = Ledger(storage)
    app.catalog = ExamCatalog(storage, app.uploads)
    app.test_sessions = SessionLifecycle(storage, app.catalog, app.ledger, app.uploads)
    app.payments = PaymentService(app.config, app.ledger)

    register_error_handlers(app)
    _register_blueprints(app)

    if config_class.SEED_SAMPLE_TESTS:
        app.catalog.seed_samples()

    return app


def _configure_security(app, config_class):
    """Security settings"""
    for key in ('SECRET_KEY', 'JWT_SECRET'):
        if app.config.get(key):
            continue
        if config_class.DEBUG:
            app.config[key] = f'dev-{key.lower()}-change-in-production'
            app.logger.warning(f"Using a development {key}. Set the environment variable in production.")
        else:
            raise ValueError(f"Security error: the {key} environment variable is not set.")


def _init_storage(config_class):
    """Storage initialization"""
    try:
        return select_storage(config_class)
    except Exception as e:
        raise RuntimeError(f"Storage initialization error: {e}")


def _register_blueprints(app):
    """Blueprint registration"""
    blueprints = [
        (main_bp, {}),
        (auth_bp, {'url_prefix': f'{API_PREFIX}/auth'}),
        (test_bp, {'url_prefix': f'{API_PREFIX}/tests'}),
        (admin_bp, {'url_prefix': f'{API_PREFIX}/admin'}),
        (payment_bp, {'url_prefix': f'{API_PREFIX}/payment'})
    ]

    for blueprint, options in blueprints:
        app.register_blueprint(blueprint, **options)


if __name__ == '__main__':
    logging.basicConfig(level=Config.LOG_LEVEL)
    app = create_app()

    app.logger.info(f"Starting Flask app on port {Config.PORT}")
    app.logger.info(f"Debug mode: {'ON' if Config.DEBUG else 'OFF'}")
    app.logger.info(f"Storage: {app.storage.mode} ({Config.DATABASE_TYPE})")

    app.run(debug=Config.DEBUG, host=Config.HOST, port=Config.PORT)
