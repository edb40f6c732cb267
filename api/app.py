"""
Rescue Network API - Flask Application Entry Point

This module builds the Flask application with OpenAPI 3.0 support, wires the
storage backend, matching engine, notification dispatch and lifecycle
coordinator, and registers the HTTP surface.
"""

import os
from typing import Any, Dict, Optional
from flask import jsonify
from flask_openapi3 import OpenAPI, Info, Tag
import logging

from observability.config import setup_observability
from observability.middleware import instrument_app
from domain.matching import MatchingConfig, VolunteerMatcher
from middleware.auth import AuthMiddleware
from middleware.error_handler import register_error_handlers, validation_error_callback
from middleware.rate_limit import RateLimitConfig, RateLimiter
from services.auth import AuthService
from services.coordinator import CaseLifecycleCoordinator
from services.dispatcher import BackgroundRunner, NotificationDispatcher
from services.geocode import GeocodeService
from services.notifications import NotificationInbox
from services.profiles import VolunteerProfileService
from services.push import create_push_transport
from services.storage import CaseStore

logger = logging.getLogger(__name__)

info = Info(
    title="Rescue Network API",
    version="1.0.0",
    description="Emergency rescue case coordination and volunteer matching"
)

health_tag = Tag(name="Health", description="System health and status")


def create_store(backend: Optional[str] = None) -> CaseStore:
    """
    Build the storage backend named by STORAGE_BACKEND.

    Args:
        backend: 'mongodb' or 'memory'

    Returns:
        CaseStore implementation
    """
    backend = (backend or os.getenv('STORAGE_BACKEND', 'mongodb')).lower()
    if backend == 'memory':
        from services.memory_store import InMemoryCaseStore
        return InMemoryCaseStore()
    if backend == 'mongodb':
        from services.mongodb import MongoCaseStore
        store = MongoCaseStore(os.getenv('MONGODB_URI'), os.getenv('MONGODB_DATABASE'))
        if os.getenv('MONGODB_CREATE_INDEXES', 'true').lower() == 'true':
            store.create_indexes()
        return store
    raise ValueError(f"Unknown storage backend: {backend}")


def create_app(
    store: Optional[CaseStore] = None,
    runner: Optional[BackgroundRunner] = None,
    push: Any = None,
    geocoder: Optional[GeocodeService] = None,
    config: Optional[Dict[str, Any]] = None
) -> OpenAPI:
    """
    Application factory.

    Collaborators not passed in are built from environment settings.

    Args:
        store: Storage backend
        runner: Background runner for notifications and counters
        push: Push transport
        geocoder: Geocoding service
        config: Flask config overrides

    Returns:
        Configured application
    """
    app = OpenAPI(
        __name__,
        info=info,
        validation_error_status=422,
        validation_error_callback=validation_error_callback
    )

    app.config['ENVIRONMENT'] = os.getenv('ENVIRONMENT', 'development')
    app.config['ENV'] = app.config['ENVIRONMENT']
    app.config['JWT_SECRET'] = os.getenv('JWT_SECRET')
    app.config['JWT_ISSUER'] = os.getenv('JWT_ISSUER')
    app.config['OTEL_ENABLED'] = os.getenv('OTEL_ENABLED', 'true').lower() == 'true'
    app.config['NOTIFY_WORKERS'] = int(os.getenv('NOTIFY_WORKERS', '4'))
    if config:
        app.config.update(config)

    if app.config['OTEL_ENABLED']:
        instrument_app(app)

    store = store or create_store(app.config.get('STORAGE_BACKEND'))
    runner = runner or BackgroundRunner(max_workers=app.config['NOTIFY_WORKERS'])
    push = push or create_push_transport(store)

    matcher = VolunteerMatcher(store, MatchingConfig.from_env())
    inbox = NotificationInbox(store)
    dispatcher = NotificationDispatcher(push, inbox)
    auth_service = AuthService(app.config['JWT_SECRET'], issuer=app.config['JWT_ISSUER'])

    app.extensions['store'] = store
    app.extensions['runner'] = runner
    app.extensions['coordinator'] = CaseLifecycleCoordinator(store, matcher, dispatcher, runner)
    app.extensions['profiles'] = VolunteerProfileService(store)
    app.extensions['inbox'] = inbox
    app.extensions['geocoder'] = geocoder or GeocodeService()
    app.extensions['auth_middleware'] = AuthMiddleware(auth_service)
    app.extensions['rate_limiter'] = RateLimiter.from_config(RateLimitConfig.from_env())

    register_error_handlers(app)

    from routes.cases import cases_bp, comments_bp
    from routes.users import users_bp
    from routes.geocode import geocode_bp
    from routes.notifications import notifications_bp

    app.register_api(cases_bp)
    app.register_api(comments_bp)
    app.register_api(users_bp)
    app.register_api(geocode_bp)
    app.register_api(notifications_bp)

    @app.get('/api/health', tags=[health_tag])
    def health_check():
        """Storage connectivity check."""
        storage = app.extensions['store'].health_check()
        healthy = storage.get('status') == 'healthy'
        body = {
            "status": "healthy" if healthy else "unhealthy",
            "service": "rescue-network-api",
            "environment": app.config['ENVIRONMENT'],
            "storage": storage
        }
        return jsonify(body), 200 if healthy else 503

    logger.info("Application created", extra={"environment": app.config['ENVIRONMENT']})
    return app


if __name__ == '__main__':
    setup_observability()
    application = create_app()
    application.run(host='0.0.0.0', port=int(os.getenv('PORT', '5000')), debug=application.config['ENVIRONMENT'] == 'development')
