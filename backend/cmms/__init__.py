from flask import Flask
from werkzeug.exceptions import HTTPException
from flask_jwt_extended import JWTManager
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker, scoped_session
from dotenv import load_dotenv
from typing import Optional, Dict, Any
import logging
import os

load_dotenv()

db_engine = None
session_factory = None
SessionLocal = None
jwt = JWTManager()


def create_app(config: Optional[Dict[str, Any]] = None):
    global db_engine, session_factory, SessionLocal
    app = Flask(__name__)

    app.config['JWT_SECRET_KEY'] = os.getenv('JWT_SECRET_KEY', 'dev-secret')
    app.config['DATABASE_URL'] = os.getenv('DATABASE_URL', 'sqlite:///dev.db')
    app.config['ACTION_COOLDOWN_SECONDS'] = float(os.getenv('ACTION_COOLDOWN_SECONDS', '2'))
    app.config['AUTO_CLOSE_HOURS'] = int(os.getenv('AUTO_CLOSE_HOURS', '24'))
    app.config['LOG_LEVEL'] = os.getenv('LOG_LEVEL', 'INFO')

    if config:
        # allow tests or callers to override default config values
        app.config.update(config)

    configure_logging(app.config['LOG_LEVEL'])

    # Database
    db_url = app.config['DATABASE_URL']
    if db_url.endswith(':memory:'):
        # Ensure a single shared in-memory SQLite database across all sessions
        db_engine = create_engine(
            db_url,
            echo=False,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        db_engine = create_engine(db_url, echo=False, future=True)
    session_factory = sessionmaker(bind=db_engine, expire_on_commit=False, autoflush=False)
    SessionLocal = scoped_session(session_factory)

    jwt.init_app(app)

    # Orchestrators are kept per login session; the cooldown guard lives on each one
    from .services.actions import ActionSessions
    from .services.notifications import LoggingNotifier
    from .services.policy import PermissionResolver
    from .services.permission_store import PermissionStore
    from .services.work_order_store import SqlWorkOrderStore
    app.extensions['cmms.actions'] = ActionSessions(
        SqlWorkOrderStore(new_session),
        PermissionResolver(PermissionStore(new_session)),
        LoggingNotifier(),
        cooldown=float(app.config['ACTION_COOLDOWN_SECONDS']),
    )

    from .routes.work_orders import wo_bp  # work order workflow
    from .routes.permissions import perm_bp  # permission resolution + admin overrides
    app.register_blueprint(wo_bp, url_prefix='/work-orders')
    app.register_blueprint(perm_bp, url_prefix='/permissions')

    @app.route('/healthz')
    def health():
        return {'status': 'ok'}

    from .errors import StoreError

    # Unified error handler producing standardized JSON shape
    @app.errorhandler(Exception)
    def handle_errors(e):  # type: ignore
        if isinstance(e, HTTPException):
            payload = {
                'error': {
                    'status': e.code,
                    'title': e.name,
                    'detail': e.description,
                }
            }
            return payload, e.code
        if isinstance(e, StoreError):
            app.logger.error('Store unavailable: %s', e)
            return {
                'error': {
                    'status': 503,
                    'title': 'Service Unavailable',
                    'detail': 'Data store unavailable, please retry'
                }
            }, 503
        # Unhandled exception
        app.logger.exception('Unhandled exception')
        return {
            'error': {
                'status': 500,
                'title': 'Internal Server Error',
                'detail': 'Unexpected error'
            }
        }, 500

    return app


def configure_logging(level: str = 'INFO'):
    root = logging.getLogger('cmms')
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter('%(asctime)s %(levelname)s %(name)s: %(message)s'))
        root.addHandler(handler)


def get_db():
    return SessionLocal()


def new_session():
    """Return a fresh, caller-owned session (not bound to the current thread scope)."""
    return session_factory()
