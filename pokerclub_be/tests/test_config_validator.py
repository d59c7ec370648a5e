import os
import unittest
import warnings
from unittest.mock import patch

from pokerclub_be.config_validator import ConfigValidationError, ConfigValidator, validate_production_config

PRODUCTION_ENV = {
    'FLASK_ENV': 'production',
    'FLASK_DEBUG': 'False',
    'JWT_SECRET_KEY': 'x' * 48,
    'DATABASE_URL': 'postgresql://club:secret@db:5432/pokerclub',
    'RATELIMIT_STORAGE_URI': 'redis://redis:6379/0',
    'CORS_ORIGINS': 'https://club.example.com, https://admin.club.example.com',
    'MAIL_SERVER': 'smtp.example.com',
}


class TestConfigValidator(unittest.TestCase):

    def test_complete_production_environment(self):
        with patch.dict(os.environ, PRODUCTION_ENV, clear=True):
            config = ConfigValidator().validate_all()
        self.assertEqual(config['SQLALCHEMY_DATABASE_URI'], PRODUCTION_ENV['DATABASE_URL'])
        self.assertEqual(config['CORS_ORIGINS_LIST'], ['https://club.example.com', 'https://admin.club.example.com'])
        self.assertEqual(config['JWT_ACCESS_TOKEN_EXPIRES'], 3600)
        self.assertEqual(config['ROULETTE_BONUS_EXPIRY_DAYS'], 30)
        self.assertFalse(config['DEBUG'])

    def test_production_requires_jwt_secret(self):
        env = dict(PRODUCTION_ENV)
        env.pop('JWT_SECRET_KEY')
        with patch.dict(os.environ, env, clear=True):
            with self.assertRaises(ConfigValidationError):
                ConfigValidator().validate_all()

    def test_production_rejects_sqlite(self):
        env = dict(PRODUCTION_ENV, DATABASE_URL='sqlite:///club.db')
        with patch.dict(os.environ, env, clear=True):
            with self.assertRaises(ConfigValidationError) as ctx:
                ConfigValidator().validate_all()
        self.assertIn('SQLite', str(ctx.exception))

    def test_production_rejects_memory_rate_limits(self):
        env = dict(PRODUCTION_ENV)
        env.pop('RATELIMIT_STORAGE_URI')
        with patch.dict(os.environ, env, clear=True):
            with self.assertRaises(ConfigValidationError):
                ConfigValidator().validate_all()

    def test_bad_integer_setting(self):
        env = dict(PRODUCTION_ENV, ROULETTE_BONUS_EXPIRY_DAYS='thirty')
        with patch.dict(os.environ, env, clear=True):
            with self.assertRaises(ConfigValidationError):
                ConfigValidator().validate_all()

    def test_development_only_warns(self):
        with patch.dict(os.environ, {'FLASK_ENV': 'development'}, clear=True):
            with warnings.catch_warnings(record=True) as caught:
                warnings.simplefilter('always')
                config = ConfigValidator().validate_all()
        self.assertGreaterEqual(len(config['JWT_SECRET_KEY']), 32)
        self.assertNotIn('SQLALCHEMY_DATABASE_URI', config)
        self.assertTrue(any('JWT_SECRET_KEY' in str(w.message) for w in caught))

    def test_failure_aborts_startup(self):
        with patch.dict(os.environ, {'FLASK_ENV': 'production'}, clear=True):
            with self.assertRaises(SystemExit):
                validate_production_config()


if __name__ == '__main__':
    unittest.main()
