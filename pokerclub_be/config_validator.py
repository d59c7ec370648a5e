"""
Startup checks for non-testing deployments.

`validate_production_config()` reads the environment once, collects every
problem it finds and aborts the process if any of them is critical. Values it
returns are overlaid on `Config` by `create_app`.
"""

import os
import sys
import warnings
import secrets
from typing import List, Optional

TRUTHY = ('true', '1', 't')
SUPPORTED_DB_PREFIXES = ('postgresql://', 'postgresql+psycopg2://', 'mysql+pymysql://', 'sqlite://')


def _flag(name: str, default: str = 'False') -> bool:
    return os.getenv(name, default).lower() in TRUTHY


class ConfigValidationError(Exception):
    """Raised when critical configuration is missing or invalid."""
    pass


class ConfigValidator:
    """Collects configuration errors and warnings; errors are fatal in production."""

    def __init__(self, is_production: Optional[bool] = None):
        if is_production is None:
            flask_env = os.getenv('FLASK_ENV', '').lower()
            is_production = flask_env == 'production' or (flask_env != 'development' and not _flag('FLASK_DEBUG'))
        self.is_production = is_production
        self.errors: List[str] = []
        self.warnings: List[str] = []

    def _problem(self, message: str, critical_in_production: bool = True):
        if self.is_production and critical_in_production:
            self.errors.append(f"CRITICAL: {message}")
        else:
            self.warnings.append(f"WARNING: {message}")

    def _int(self, name: str, default: int, minimum: int = 1) -> int:
        raw = os.getenv(name, str(default))
        try:
            value = int(raw)
        except ValueError:
            raise ConfigValidationError(f"{name} must be an integer, got '{raw}'")
        if value < minimum:
            self.errors.append(f"CRITICAL: {name} must be at least {minimum}")
        return value

    def validate_jwt(self) -> dict:
        # Tokens are minted by the club's auth service; this API only verifies them.
        secret = os.getenv('JWT_SECRET_KEY')
        if not secret:
            if self.is_production:
                raise ConfigValidationError("JWT_SECRET_KEY is required in production")
            secret = secrets.token_urlsafe(64)
            self.warnings.append("WARNING: JWT_SECRET_KEY not set - generated a throwaway key, auth-service tokens will not verify")
        elif len(secret) < 32:
            self._problem("JWT_SECRET_KEY must be at least 32 characters long")
        return {
            'JWT_SECRET_KEY': secret,
            'JWT_ACCESS_TOKEN_EXPIRES': self._int('JWT_ACCESS_TOKEN_EXPIRES', 3600),
        }

    def validate_database(self) -> dict:
        url = os.getenv('DATABASE_URL')
        if not url:
            self._problem("DATABASE_URL must be set")
            return {}
        if not url.startswith(SUPPORTED_DB_PREFIXES):
            self._problem(f"DATABASE_URL must use one of: {', '.join(SUPPORTED_DB_PREFIXES)}")
        elif url.startswith('sqlite://'):
            # Spin consumption relies on row locks.
            self._problem("SQLite has no row-level locking and must not back a production deployment")
        return {'SQLALCHEMY_DATABASE_URI': url}

    def validate_rate_limiting(self) -> dict:
        uri = os.getenv('RATELIMIT_STORAGE_URI', 'memory://')
        if uri == 'memory://':
            self._problem("RATELIMIT_STORAGE_URI is memory:// - spin limits will not hold across workers (use redis://)")
        return {
            'RATELIMIT_STORAGE_URI': uri,
            'ROULETTE_SPIN_RATE_LIMIT': os.getenv('ROULETTE_SPIN_RATE_LIMIT', '10 per minute'),
        }

    def validate_cors(self) -> dict:
        origins = [o.strip() for o in os.getenv('CORS_ORIGINS', '').split(',') if o.strip()]
        if not origins:
            self._problem("CORS_ORIGINS must list the club frontend domains")
        for origin in origins:
            if not origin.startswith(('http://', 'https://')):
                self.warnings.append(f"WARNING: CORS origin '{origin}' should include protocol (http:// or https://)")
        return {'CORS_ORIGINS_LIST': origins}

    def validate_mail(self) -> dict:
        server = os.getenv('MAIL_SERVER')
        if not server:
            self._problem("MAIL_SERVER not set - prize notifications will not be delivered", critical_in_production=False)
        return {
            'MAIL_SERVER': server or 'localhost',
            'MAIL_PORT': self._int('MAIL_PORT', 587),
            'MAIL_USE_TLS': _flag('MAIL_USE_TLS', 'True'),
            'MAIL_USERNAME': os.getenv('MAIL_USERNAME'),
            'MAIL_PASSWORD': os.getenv('MAIL_PASSWORD'),
            'MAIL_DEFAULT_SENDER': os.getenv('MAIL_DEFAULT_SENDER', 'no-reply@pokerclub.local'),
        }

    def validate_roulette(self) -> dict:
        return {
            'ROULETTE_BONUS_EXPIRY_DAYS': self._int('ROULETTE_BONUS_EXPIRY_DAYS', 30),
            'ROULETTE_PREVIEW_MAX_DRAWS': self._int('ROULETTE_PREVIEW_MAX_DRAWS', 100000),
        }

    def validate_all(self) -> dict:
        """
        Run every check and return the validated settings.

        Raises:
            ConfigValidationError: if any critical problem was found
        """
        config = {}
        for check in (self.validate_jwt, self.validate_database, self.validate_rate_limiting,
                      self.validate_cors, self.validate_mail, self.validate_roulette):
            config.update(check())

        config['DEBUG'] = _flag('FLASK_DEBUG')
        if self.is_production and config['DEBUG']:
            self.errors.append("CRITICAL: DEBUG mode must be disabled in production (set FLASK_DEBUG=False)")

        if self.errors:
            message = "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in self.errors)
            if self.warnings:
                message += "\n\nWarnings:\n" + "\n".join(f"  - {w}" for w in self.warnings)
            raise ConfigValidationError(message)

        for warning in self.warnings:
            warnings.warn(warning, UserWarning)
        return config


def validate_production_config() -> dict:
    """Validate the environment, exiting the process on failure."""
    try:
        return ConfigValidator().validate_all()
    except ConfigValidationError as e:
        print("\nCONFIGURATION VALIDATION FAILED\n", file=sys.stderr)
        print(str(e), file=sys.stderr)
        print("\nApplication startup ABORTED\n", file=sys.stderr)
        sys.exit(1)
