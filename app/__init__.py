import logging
import os
import time
from typing import Any, Dict, Optional

import sentry_sdk
from flask import Flask
from flask_login import LoginManager
from flask_socketio import SocketIO
from flask_sqlalchemy import SQLAlchemy

from config.config import config

# SQLAlchemy - database interface
db = SQLAlchemy()
login_manager = LoginManager()
socketio = SocketIO(cors_allowed_origins="*")


def create_app(config_name: str = 'default', test_config: Optional[Dict[str, Any]] = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config[config_name])
    if test_config:
        app.config.update(test_config)

    # Initialize Sentry
    if app.config.get('SENTRY_DSN'):
        def before_send(event, hint):
            """Drop client disconnect noise before it reaches Sentry"""
            if 'exception' in event:
                for exception in event.get('exception', {}).get('values', []):
                    if 'Invalid session' in exception.get('value', ''):
                        return None
            return event

        sentry_sdk.init(
            dsn=app.config['SENTRY_DSN'],
            send_default_pii=False,
            traces_sample_rate=1.0,
            environment=app.config.get('FLASK_ENV', 'development'),
            before_send=before_send,
        )

    # Handle HTTPS proxy headers (for production behind reverse proxy)
    from werkzeug.middleware.proxy_fix import ProxyFix
    app.wsgi_app = ProxyFix(app.wsgi_app, x_proto=1, x_host=1)

    db.init_app(app)
    if app.config.get('USE_DIRECT_POSTGRES', False):
        app.logger.info("Using direct PostgreSQL connection via SQLAlchemy")
        app.logger.info(f"Pool configuration: size={app.config['SQLALCHEMY_ENGINE_OPTIONS']['pool_size']}, "
                        f"max_overflow={app.config['SQLALCHEMY_ENGINE_OPTIONS']['max_overflow']}")
    else:
        app.logger.info("Using SQLAlchemy database")

    # API callers identify themselves with an X-API-Key header
    login_manager.init_app(app)

    @login_manager.request_loader
    def load_user_from_request(request):
        api_key = request.headers.get('X-API-Key')
        if not api_key:
            return None

        from app.models.user import User
        return User.query.filter_by(api_key=api_key.strip(), is_active=True).first()

    @login_manager.user_loader
    def load_user(user_id):
        from app.models.user import User
        return db.session.get(User, user_id)

    socketio.init_app(
        app,
        async_mode='threading',
        ping_timeout=120,
        ping_interval=25,
        logger=False,
        engineio_logger=False
    )

    logging.getLogger('socketio').setLevel(logging.ERROR)
    logging.getLogger('engineio').setLevel(logging.ERROR)
    logging.getLogger('werkzeug').setLevel(logging.WARNING)

    from app.routes.api import api_bp
    from app.routes.monitoring import monitoring_bp

    app.register_blueprint(api_bp, url_prefix='/api/moderation')
    app.register_blueprint(monitoring_bp)
    app.register_blueprint(monitoring_bp, url_prefix='/api/moderation', name='api_monitoring')

    # Database initialization with retry logic (only in main process, not reloader)
    if not os.environ.get('WERKZEUG_RUN_MAIN'):
        with app.app_context():
            _initialize_database_with_retry(app)

    return app


def _initialize_database_with_retry(app: Flask, max_retries: int = 3, delay: int = 5) -> None:
    """Create tables, retrying on connection pool exhaustion"""
    logger = logging.getLogger(__name__)

    # Register every model with the metadata before create_all
    import app.models  # noqa: F401

    for attempt in range(max_retries):
        try:
            logger.info(f"Attempting database initialization (attempt {attempt + 1}/{max_retries})")
            db.create_all()
            logger.info("Database initialization successful")
            return
        except Exception as e:
            error_msg = str(e).lower()
            if "max clients" in error_msg or "pool" in error_msg:
                logger.warning(f"Database pool issue on attempt {attempt + 1}: {e}")
            else:
                logger.error(f"Database error: {e}")

            if attempt < max_retries - 1:
                logger.info(f"Retrying in {delay} seconds...")
                time.sleep(delay)
                delay *= 2
            else:
                logger.error("Database initialization failed after all retries")
