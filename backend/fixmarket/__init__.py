from importlib import import_module
from flask import Flask
from werkzeug.exceptions import HTTPException
from flask_jwt_extended import JWTManager
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker, scoped_session
from dotenv import load_dotenv
from typing import Optional, Dict, Any

load_dotenv()

db_engine = None
SessionLocal = None
jwt = JWTManager()

# Every module declaring tables on Base.metadata; alembic and the test fixtures import these
MODEL_MODULES = (
    'fixmarket.models.authz',
    'fixmarket.models.vendor',
    'fixmarket.models.ticket',
    'fixmarket.models.bid',
    'fixmarket.models.work_order',
    'fixmarket.models.part',
    'fixmarket.models.invoice',
    'fixmarket.models.audit',
)


def import_models():
    for name in MODEL_MODULES:
        import_module(name)
    from .models.authz import Base
    return Base.metadata


def _make_engine(url: str):
    if url.endswith(':memory:'):
        # One shared connection, otherwise each session sees an empty database
        return create_engine(url, future=True, connect_args={'check_same_thread': False}, poolclass=StaticPool)
    return create_engine(url, future=True)


def _blueprints():
    from .routes.tickets import tickets_bp
    from .routes.marketplace import marketplace_bp
    from .routes.work_orders import work_orders_bp
    from .routes.parts import parts_bp
    from .routes.invoices import invoices_bp
    return tickets_bp, marketplace_bp, work_orders_bp, parts_bp, invoices_bp


def error_body(e: HTTPException) -> Dict[str, Any]:
    """JSON error envelope; domain errors contribute ``code``, ``field`` and conflict details."""
    body = {
        'status': e.code,
        'title': e.name,
        'detail': e.description,
        'code': getattr(e, 'error_code', None),
    }
    field = getattr(e, 'field', None)
    if field is not None:
        body['field'] = field
    extra = getattr(e, 'extra', None)
    if callable(extra):
        body.update(extra())
    return {'error': body}


def create_app(config: Optional[Dict[str, Any]] = None):
    global db_engine, SessionLocal
    from .config.settings import load_settings
    app = Flask(__name__)
    app.config.update(load_settings())
    if config:
        app.config.update(config)
    app.logger.setLevel(app.config['LOG_LEVEL'])

    db_engine = _make_engine(app.config['DATABASE_URL'])
    SessionLocal = scoped_session(sessionmaker(bind=db_engine, expire_on_commit=False, autoflush=False))
    jwt.init_app(app)

    for bp in _blueprints():
        app.register_blueprint(bp, url_prefix='/api')

    @app.get('/healthz')
    def health():
        return {'status': 'ok'}

    @app.errorhandler(Exception)
    def handle_errors(e):  # type: ignore
        # Nothing from a failed request may reach the database
        get_db().rollback()
        if not isinstance(e, HTTPException):
            app.logger.exception('Unhandled exception')
            return {
                'error': {
                    'status': 500,
                    'title': 'Internal Server Error',
                    'detail': 'Unexpected error',
                    'code': 'INTERNAL_ERROR',
                }
            }, 500
        log = app.logger.error if (e.code or 500) >= 500 else app.logger.info
        log('%s %s: %s', e.code, e.name, e.description)
        return error_body(e), e.code

    return app


def get_db():
    return SessionLocal()
