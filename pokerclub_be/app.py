from dotenv import load_dotenv
import os

# Load environment variables from .env file
load_dotenv()

import logging
import re # For password validation
import uuid
from datetime import timedelta
from http import HTTPStatus

import click # For CLI commands
from flask import Flask, request, jsonify, g, current_app
from flask_cors import CORS
from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request
from flask_jwt_extended.exceptions import NoAuthorizationError
from flask_talisman import Talisman
from marshmallow import ValidationError
from pythonjsonlogger import jsonlogger
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException as WerkzeugHTTPException

from pokerclub_be.error_codes import ErrorCodes
from pokerclub_be.exceptions import AppException
from .config import Config
from .config_validator import validate_production_config
from .extensions import migrate, jwt, limiter, mail
from .models import db, User, UserRole, RouletteCode
from .routes.admin import admin_bp
from .routes.roulette import roulette_bp
from .utils.auth import register_jwt_handlers

MIGRATIONS_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'migrations')
SAMPLE_CODE_YEARS = range(2025, 2030)

HTTP_ERROR_CODES = {
    401: ErrorCodes.UNAUTHENTICATED,
    403: ErrorCodes.FORBIDDEN,
    404: ErrorCodes.NOT_FOUND,
    405: ErrorCodes.METHOD_NOT_ALLOWED,
    429: ErrorCodes.RATE_LIMITED,
}


class RequestIdFilter(logging.Filter):
    def filter(self, record):
        try:
            record.request_id = g.get('request_id', 'N/A')
        except RuntimeError:
            # Logged outside app context (CLI, notification thread)
            record.request_id = 'N/A'
        return True


def is_password_strong(password):
    """Checks if the password meets complexity requirements."""
    checks = (
        (len(password) >= 12, "Password must be at least 12 characters long."),
        (re.search(r"[A-Z]", password), "Password must contain at least one uppercase letter."),
        (re.search(r"[a-z]", password), "Password must contain at least one lowercase letter."),
        (re.search(r"\d", password), "Password must contain at least one digit."),
        (re.search(r"[!@#$%^&*()\-_=+\[\]{}|;:'\",.<>/?]", password),
         "Password must contain at least one special character (e.g., !@#$%^&*)."),
    )
    for passed, message in checks:
        if not passed:
            return False, message
    return True, ""


def _error_payload(error_code, status_message, details=None, action_button=None):
    return {
        'request_id': g.get('request_id', 'N/A'),
        'status': False,
        'error_code': error_code,
        'status_message': status_message,
        'details': details if details is not None else {},
        'action_button': action_button
    }


def _rid():
    return g.get('request_id', 'N/A')


def create_app(config_class=Config):
    """Application factory."""
    app = Flask(__name__)
    app.config.from_object(config_class)
    if not app.config.get('TESTING'):
        # Fail fast on missing or insecure production settings
        app.config.update(validate_production_config())
    expires = app.config.get('JWT_ACCESS_TOKEN_EXPIRES')
    if isinstance(expires, int):
        app.config['JWT_ACCESS_TOKEN_EXPIRES'] = timedelta(seconds=expires)

    _configure_security(app)
    _configure_logging(app)
    _register_request_hooks(app)
    log_production_warnings(app)

    # Spin limits are per client IP; tests run unthrottled.
    if app.config.get("TESTING"):
        app.config['RATELIMIT_ENABLED'] = False
    else:
        app.config.setdefault('RATELIMIT_ENABLED', True)
        app.config.setdefault('RATELIMIT_DEFAULT', "200 per day;50 per hour")
    limiter.init_app(app)

    db.init_app(app)
    migrate.init_app(app, db, directory=MIGRATIONS_DIR)
    mail.init_app(app)
    jwt.init_app(app)
    register_jwt_handlers(jwt)

    _register_error_handlers(app)

    app.register_blueprint(roulette_bp)
    app.register_blueprint(admin_bp)
    register_cli_commands(app)
    return app


def _configure_security(app):
    Talisman(app,
             force_https=not (app.debug or app.testing),
             strict_transport_security=True,
             content_security_policy={
                 'default-src': "'self'",
                 'img-src': "'self' data: https:",
                 'connect-src': "'self'",
                 'frame-ancestors': "'none'"
             })

    origins = list(app.config.get('CORS_ORIGINS_LIST') or [])
    if app.debug:
        origins += ["http://localhost:8080", "http://127.0.0.1:8080"]
    if not origins:
        app.logger.warning("CORS disabled: no frontend origins configured for the roulette API.")
        return
    CORS(app,
         origins=origins,
         supports_credentials=True,
         methods=['GET', 'POST', 'PUT', 'DELETE', 'OPTIONS'],
         allow_headers=['Content-Type', 'Authorization', 'X-CSRF-Token', 'X-Request-ID'],
         expose_headers=['X-Request-ID', 'X-RateLimit-Limit', 'X-RateLimit-Remaining'],
         max_age=86400)
    app.logger.info(f"CORS enabled for {origins}")


def _configure_logging(app):
    if app.debug:
        if not app.logger.handlers:
            logging.basicConfig(level=logging.DEBUG)
        return
    handler = logging.StreamHandler()
    handler.setFormatter(jsonlogger.JsonFormatter(
        '%(asctime)s %(levelname)s %(request_id)s %(module)s %(funcName)s %(lineno)d %(message)s'
    ))
    handler.addFilter(RequestIdFilter())
    app.logger.handlers.clear()
    app.logger.addHandler(handler)
    app.logger.setLevel(logging.INFO)


def _register_request_hooks(app):
    @app.before_request
    def assign_request_id():
        g.request_id = request.headers.get('X-Request-ID') or str(uuid.uuid4())
        if request.method not in ('POST', 'PUT', 'DELETE', 'PATCH'):
            return
        try:
            verify_jwt_in_request(optional=True)
            actor = get_jwt_identity()
        except Exception:
            # Bad tokens are rejected by the endpoint itself; here we only log.
            actor = None
        app.logger.info(f"{request.method} {request.path} by user {actor}")

    @app.after_request
    def echo_request_id(response):
        response.headers['X-Request-ID'] = _rid()
        return response


def _register_error_handlers(app):
    @app.errorhandler(ValidationError)
    def handle_validation_error(e):
        errors = e.normalized_messages()
        current_app.logger.warning(f"Request ID: {_rid()} - {ErrorCodes.VALIDATION_ERROR}: {errors}")
        return jsonify(_error_payload(
            ErrorCodes.VALIDATION_ERROR, 'Input validation failed.', {'errors': errors}
        )), HTTPStatus.UNPROCESSABLE_ENTITY

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(e):
        db.session.rollback()
        current_app.logger.error(f"Request ID: {_rid()} - {ErrorCodes.INTERNAL_SERVER_ERROR}: database error", exc_info=True)
        return jsonify(_error_payload(
            ErrorCodes.INTERNAL_SERVER_ERROR, 'A database error occurred. Please try again later.'
        )), HTTPStatus.INTERNAL_SERVER_ERROR

    @app.errorhandler(NoAuthorizationError)
    def handle_no_auth_error(e):
        current_app.logger.warning(f"Request ID: {_rid()} - {ErrorCodes.UNAUTHENTICATED}: {e}")
        return jsonify(_error_payload(
            ErrorCodes.UNAUTHENTICATED, 'Missing or invalid authorization token.', {'original_error': str(e)}
        )), HTTPStatus.UNAUTHORIZED

    @jwt.user_lookup_error_loader
    def handle_user_lookup_error(_jwt_header, jwt_data):
        return jsonify(_error_payload(
            ErrorCodes.UNAUTHENTICATED, 'User not found or inactive.'
        )), HTTPStatus.UNAUTHORIZED

    @app.errorhandler(AppException)
    def handle_app_exception(e):
        current_app.logger.error(
            f"Request ID: {_rid()} - {e.error_code}: {e.status_message} - Details: {e.details}",
            exc_info=e.status_code >= 500
        )
        return jsonify(_error_payload(e.error_code, e.status_message, e.details, e.action_button)), e.status_code

    @app.errorhandler(404)
    def handle_flask_not_found(e):
        current_app.logger.warning(f"Request ID: {_rid()} - {ErrorCodes.NOT_FOUND}: {request.url}")
        return jsonify(_error_payload(
            ErrorCodes.NOT_FOUND, 'The requested resource was not found.', {'path': request.path}
        )), HTTPStatus.NOT_FOUND

    @app.errorhandler(WerkzeugHTTPException)
    def handle_werkzeug_http_exception(e):
        error_code = HTTP_ERROR_CODES.get(e.code)
        if error_code is None:
            error_code = ErrorCodes.INTERNAL_SERVER_ERROR if e.code >= 500 else ErrorCodes.GENERIC_ERROR
        current_app.logger.warning(f"Request ID: {_rid()} - {error_code}: HTTP {e.code} {e.name}")
        response = e.get_response()
        response.data = jsonify(_error_payload(error_code, e.name, {'description': e.description})).data
        response.content_type = "application/json"
        return response

    @app.errorhandler(Exception)
    def handle_global_exception(e):
        if isinstance(e, AppException):
            return handle_app_exception(e)
        if isinstance(e, WerkzeugHTTPException):
            return handle_werkzeug_http_exception(e)
        current_app.logger.critical(f"Request ID: {_rid()} - {ErrorCodes.INTERNAL_SERVER_ERROR}: unhandled exception", exc_info=True)
        return jsonify(_error_payload(
            ErrorCodes.INTERNAL_SERVER_ERROR, 'An unexpected internal server error occurred. Please try again later.'
        )), HTTPStatus.INTERNAL_SERVER_ERROR


def _prompt_email():
    while True:
        value = click.prompt("Enter admin email")
        if re.match(r"[^@]+@[^@]+\.[^@]+", value):
            return value
        click.echo("Invalid email format. Please try again.")


def _prompt_password():
    while True:
        value = click.prompt("Enter admin password", hide_input=True)
        is_strong, message = is_password_strong(value)
        if not is_strong:
            click.echo(f"Password validation failed: {message}")
            continue
        if value == click.prompt("Confirm admin password", hide_input=True):
            return value
        click.echo("Passwords do not match. Please try again.")


def register_cli_commands(app):
    @app.cli.command("create-admin")
    @click.option('-u', '--username', default=None, help='Admin username')
    @click.option('-e', '--email', default=None, help='Admin email')
    @click.option('-p', '--password', default=None, help='Admin password (will be prompted if not provided)')
    def create_admin_command(username, email, password):
        """Creates a roulette administrator (validated for spins)."""
        username = username or click.prompt("Enter admin username")
        email = email or _prompt_email()
        if password:
            is_strong, message = is_password_strong(password)
            if not is_strong:
                click.echo(f"Error: {message} Admin user creation aborted.")
                return
        else:
            password = _prompt_password()

        existing = db.session.scalar(select(User).where((User.username == username) | (User.email == email)))
        if existing:
            click.echo(f"Error: a user with username '{username}' or email '{email}' already exists.")
            return

        try:
            db.session.add(User(
                username=username,
                email=email,
                password=User.hash_password(password),
                role=UserRole.ADMIN.value,
                validated_for_spin=True,
            ))
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            click.echo(f"Failed to create admin user: {e}")
            return
        click.echo(f"Admin user '{username}' created.")

    @app.cli.command("seed-roulette")
    @click.option('--admin-username', default=None, help='Admin recorded as creator (defaults to the first admin)')
    @click.option('--codes/--no-codes', default=True, help='Also create sample spin codes')
    def seed_roulette_command(admin_username, codes):
        """Installs the default prize wheel and a few sample spin codes."""
        from .services import prize_catalog
        from .utils.helpers import utcnow

        stmt = select(User).where(User.role == UserRole.ADMIN.value, User.deleted_at.is_(None))
        if admin_username:
            stmt = stmt.where(User.username == admin_username)
        admin = db.session.scalar(stmt.order_by(User.id))
        if admin is None:
            click.echo("Error: no admin user found. Run 'flask create-admin' first.")
            return

        try:
            prizes = prize_catalog.reset_default_prizes(admin.id)
        except AppException as e:
            click.echo(f"Failed to seed prizes: {e.status_message}")
            return
        click.echo(f"Seeded {len(prizes)} roulette prizes.")

        if not codes:
            return
        expires_at = utcnow() + timedelta(days=30)
        created = 0
        for year in SAMPLE_CODE_YEARS:
            value = f"SPIN{year}"
            if db.session.scalar(select(RouletteCode.id).where(RouletteCode.code == value)):
                continue
            db.session.add(RouletteCode(
                code=value, grants_spin=True, description='Sample spin code',
                created_by=admin.id, expires_at=expires_at,
            ))
            created += 1
        try:
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            click.echo(f"Failed to seed codes: {e}")
            return
        click.echo(f"Created {created} sample spin codes.")


def log_production_warnings(app):
    if app.debug or app.testing:
        return
    if app.config.get('JWT_SECRET_KEY') == 'dev-secret-key-change-in-production':
        app.logger.critical("Default JWT_SECRET_KEY in a non-debug deployment; auth-service tokens are forgeable.")
    if app.config.get('RATELIMIT_STORAGE_URI') == 'memory://':
        app.logger.warning("RATELIMIT_STORAGE_URI is memory://; spin limits are per process.")


if __name__ == '__main__':
    app = create_app()
    app.run(host='0.0.0.0', port=5000, debug=app.debug)
