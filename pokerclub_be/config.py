"""
Application configuration.

`Config` carries development-safe defaults; `create_app` overlays the values
returned by `config_validator.validate_production_config()` for every
non-testing configuration, so production fails fast on missing settings.
"""
import os
from datetime import timedelta


class Config:
    TESTING = False
    DEBUG = os.getenv('FLASK_DEBUG', 'False').lower() in ('true', '1', 't')

    # Database Configuration
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', 'sqlite:///pokerclub_dev.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # JWT Configuration. Tokens are minted by the auth service with the shared secret.
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY', 'dev-secret-key-change-in-production')
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(seconds=int(os.getenv('JWT_ACCESS_TOKEN_EXPIRES', '3600')))
    JWT_TOKEN_LOCATION = ['headers', 'cookies']
    JWT_COOKIE_SECURE = True
    JWT_COOKIE_SAMESITE = 'Strict'
    JWT_COOKIE_CSRF_PROTECT = True
    JWT_ACCESS_CSRF_HEADER_NAME = 'X-CSRF-Token'

    # Rate Limiter Storage URI
    RATELIMIT_STORAGE_URI = os.getenv('RATELIMIT_STORAGE_URI', 'memory://')
    ROULETTE_SPIN_RATE_LIMIT = os.getenv('ROULETTE_SPIN_RATE_LIMIT', '10 per minute')

    CORS_ORIGINS_LIST = []

    # Mail (prize notifications)
    MAIL_SERVER = os.getenv('MAIL_SERVER', 'localhost')
    MAIL_PORT = int(os.getenv('MAIL_PORT', '587'))
    MAIL_USE_TLS = os.getenv('MAIL_USE_TLS', 'True').lower() in ('true', '1', 't')
    MAIL_USERNAME = os.getenv('MAIL_USERNAME')
    MAIL_PASSWORD = os.getenv('MAIL_PASSWORD')
    MAIL_DEFAULT_SENDER = os.getenv('MAIL_DEFAULT_SENDER', 'no-reply@pokerclub.local')
    NOTIFICATIONS_ASYNC = True
    CLIENT_URL = os.getenv('CLIENT_URL', 'http://localhost:8080')

    # Roulette
    ROULETTE_BONUS_EXPIRY_DAYS = int(os.getenv('ROULETTE_BONUS_EXPIRY_DAYS', '30'))
    ROULETTE_PREVIEW_MAX_DRAWS = int(os.getenv('ROULETTE_PREVIEW_MAX_DRAWS', '100000'))
    ROULETTE_RANDOM_SOURCE = None  # None -> SystemRandomSource


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///./test_pokerclub_be_isolated.db'
    DATABASE_FILE_PATH = SQLALCHEMY_DATABASE_URI.replace('sqlite:///', '')
    SQLALCHEMY_ENGINE_OPTIONS = {
        'connect_args': {'check_same_thread': False}
    }
    JWT_SECRET_KEY = 'test-jwt-secret-key-with-enough-length-for-hs256'
    JWT_TOKEN_LOCATION = ['headers']
    JWT_COOKIE_CSRF_PROTECT = False
    RATELIMIT_ENABLED = False
    MAIL_SUPPRESS_SEND = True
    NOTIFICATIONS_ASYNC = False
