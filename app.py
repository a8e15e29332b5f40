# app.py
"""
Flask Application Factory for the Jaide contact form backend

This application factory wires the submission pipeline together and provides:
- Per-IP rate limiting of form submissions via Flask-Limiter
- CORS restricted to the configured origins
- Security headers on every response
- JSON error handling and logging
- Health and reCAPTCHA site key endpoints
"""

import logging
import logging.handlers
from datetime import datetime, timezone
from typing import Callable, Optional

from flask import Flask, request, jsonify, g
from flask_cors import CORS
from werkzeug.middleware.proxy_fix import ProxyFix
from werkzeug.exceptions import HTTPException

from api.contact import contact_bp, limiter, RATE_LIMIT_MESSAGE
from config.settings import ContactConfig
from core.recaptcha import RecaptchaVerifier
from core.template_engine import EmailComposer
from middleware.security import security_headers, origin_gate
from services.email_delivery import EmailBackend, EmailDispatcher, create_email_backend

# Marks handlers installed by setup_logging so repeated factory calls replace them
_HANDLER_MARKER = '_contact_form_handler'


def setup_logging(app: Flask, config: ContactConfig) -> None:
    """
    Configure process logging

    Module loggers propagate to the root logger, which gets:
    - a stream handler with the journal-style formatter
    - a rotating file handler with the detailed formatter when LOG_FILE is set
    """
    # Remove default Flask handlers to avoid duplicate logs
    app.logger.handlers.clear()

    journal_formatter = logging.Formatter(
        fmt='%(name)s[%(process)d]: %(levelname)s %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    detailed_formatter = logging.Formatter(
        fmt='%(asctime)s %(name)-20s %(levelname)-8s %(funcName)-15s:%(lineno)-4d %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    log_level = getattr(logging, config.log_level, logging.INFO)
    if not isinstance(log_level, int):
        log_level = logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in [h for h in root_logger.handlers if getattr(h, _HANDLER_MARKER, False)]:
        root_logger.removeHandler(handler)
        handler.close()

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(journal_formatter)
    stream_handler.setLevel(log_level)
    setattr(stream_handler, _HANDLER_MARKER, True)
    root_logger.addHandler(stream_handler)

    if config.log_file:
        file_handler = logging.handlers.RotatingFileHandler(
            config.log_file,
            maxBytes=10*1024*1024,  # 10MB
            backupCount=5
        )
        file_handler.setFormatter(detailed_formatter)
        file_handler.setLevel(logging.DEBUG)
        setattr(file_handler, _HANDLER_MARKER, True)
        root_logger.addHandler(file_handler)

    # Suppress verbose third-party logs in production
    if not app.debug:
        logging.getLogger('werkzeug').setLevel(logging.WARNING)


def configure_security(app: Flask, config: ContactConfig) -> None:
    """
    Configure CORS, the origin gate and rate limiting

    The origin gate is registered before the limiter so requests from
    disallowed origins never count against an IP's submission quota.
    """
    CORS(app,
         origins=list(config.allowed_origins),
         supports_credentials=True,
         allow_headers=['Content-Type'])

    app.before_request(origin_gate(config.allowed_origins))

    app.config.update({
        'CONTACT_RATE_LIMIT': config.rate_limit,
        'RATELIMIT_STORAGE_URI': config.rate_limit_storage_uri,
        'RATELIMIT_HEADERS_ENABLED': True,
    })
    limiter.init_app(app)

    app.logger.info(f"Security features configured (origins: {', '.join(config.allowed_origins) or 'none'}, "
                    f"rate limit: {config.rate_limit})")


def register_blueprints(app: Flask) -> None:
    """
    Register all application blueprints
    """
    app.register_blueprint(contact_bp)


def configure_error_handlers(app: Flask) -> None:
    """
    Configure JSON error responses
    """
    @app.errorhandler(404)
    def not_found(error):
        return jsonify({
            'success': False,
            'message': 'The requested resource was not found'
        }), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({
            'success': False,
            'message': 'Method not allowed'
        }), 405

    @app.errorhandler(429)
    def rate_limit_exceeded(error):
        app.logger.warning(f"Rate limit exceeded for {request.remote_addr} on {request.path}")
        return jsonify({
            'success': False,
            'message': getattr(error, 'description', None) or RATE_LIMIT_MESSAGE
        }), 429

    @app.errorhandler(500)
    def internal_error(error):
        app.logger.error(f"Internal server error: {error}", exc_info=True)
        return jsonify({
            'success': False,
            'message': 'Internal server error'
        }), 500

    @app.errorhandler(Exception)
    def handle_exception(e):
        """Handle unexpected exceptions"""
        if isinstance(e, HTTPException):
            return jsonify({
                'success': False,
                'message': e.description
            }), e.code

        app.logger.error(f"Unhandled exception: {e}", exc_info=True)
        return jsonify({
            'success': False,
            'message': 'Internal server error'
        }), 500


def configure_health_checks(app: Flask, config: ContactConfig) -> None:
    """
    Configure health check endpoint for monitoring and load balancing
    """
    @app.route('/health')
    def health_check():
        """Basic health check endpoint"""
        return jsonify({
            'status': 'healthy',
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'version': config.version,
            'email_service': config.email_service
        })


def configure_request_middleware(app: Flask) -> None:
    """
    Configure request/response middleware for security and monitoring
    """
    @app.before_request
    def before_request():
        """Store request start time for performance monitoring"""
        g.start_time = datetime.now(timezone.utc)

    @app.after_request
    def after_request(response):
        """Execute after each request"""
        response = security_headers(response)

        if hasattr(g, 'start_time'):
            duration = (datetime.now(timezone.utc) - g.start_time).total_seconds() * 1000
            if duration > app.config.get('SLOW_REQUEST_THRESHOLD', 3000):
                app.logger.warning(f"Slow request ({duration:.0f}ms): {request.method} {request.path}")

        return response


def create_app(config: Optional[ContactConfig] = None,
               verifier: Optional[RecaptchaVerifier] = None,
               email_backend: Optional[EmailBackend] = None,
               clock: Optional[Callable[[], datetime]] = None) -> Flask:
    """
    Flask application factory

    Args:
        config: Configuration snapshot (defaults to ContactConfig.from_env())
        verifier: reCAPTCHA verifier override
        email_backend: Delivery backend override (defaults to the one selected by config)
        clock: Time source for email timestamps

    Returns:
        Configured Flask application instance
    """
    config = config or ContactConfig.from_env()

    app = Flask(__name__)
    app.config['VERSION'] = config.version

    # Configure proxy handling for production deployment behind a reverse proxy
    if config.is_production:
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)

    setup_logging(app, config)
    app.logger.info(f"Starting contact form backend in {config.environment} mode "
                    f"(email service: {config.email_service})")

    app.contact_config = config
    app.recaptcha_verifier = verifier or RecaptchaVerifier(config.recaptcha_secret_key)
    app.email_composer = EmailComposer(config.sender_address, config.email_to, clock=clock)
    app.email_dispatcher = EmailDispatcher(email_backend or create_email_backend(config))

    configure_security(app, config)

    register_blueprints(app)

    configure_error_handlers(app)

    configure_health_checks(app, config)

    configure_request_middleware(app)

    app.logger.info("Flask application factory completed successfully")
    return app


if __name__ == '__main__':
    from dotenv import load_dotenv

    # Development server
    load_dotenv()
    app = create_app()
    app.run(
        host='0.0.0.0',
        port=app.contact_config.port,
        debug=not app.contact_config.is_production
    )
