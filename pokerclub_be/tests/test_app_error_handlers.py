import pytest
from flask import jsonify, request
from marshmallow import ValidationError

from pokerclub_be.app import create_app
from pokerclub_be.models import db
from pokerclub_be.config import TestingConfig
from pokerclub_be.exceptions import (
    AppException,
    ValidationException,
    AuthorizationException,
    NotFoundException,
    ConfigurationError,
    AlreadyUsedError,
    AlreadyAppliedError,
    InternalServerErrorException
)
from pokerclub_be.error_codes import ErrorCodes
from pokerclub_be.schemas import SpinRequestSchema

# route -> exception raised by it
RAISING_ROUTES = {
    'validation': ValidationException(status_message="Invalid input provided", details={"field": "wrong"}),
    'forbidden': AuthorizationException(status_message="Permission denied"),
    'missing': NotFoundException(status_message="Spin 7 not found."),
    'catalog': ConfigurationError(status_message="Probabilities sum to 95%", details={'total': '95.00'}),
    'demo_used': AlreadyUsedError(),
    'applied': AlreadyAppliedError(),
    'server': InternalServerErrorException(status_message="Custom server error"),
}


class TestAppErrorHandlers:

    @pytest.fixture(scope="class")
    def app(self):
        app = create_app(TestingConfig)

        @app.route('/test/raise/<name>')
        def route_raise(name):
            raise RAISING_ROUTES[name]

        @app.route('/test/app_exception')
        def route_app_exception():
            raise AppException(
                error_code="TEST_APP_EXC",
                status_message="This is an AppException",
                status_code=450,
                details={"info": "some app details"},
                action_button={"text": "Open wheel", "actionType": "NAVIGATE", "actionPayload": "/roulette"}
            )

        @app.route('/test/unhandled_exception')
        def route_unhandled_exception():
            raise ValueError("A generic unhandled error")

        @app.route('/test/get_only', methods=['GET'])
        def route_get_only():
            return jsonify(status=True)

        @app.route('/test/marshmallow_validation_error', methods=['POST'])
        def route_marshmallow_error():
            raise ValidationError(message="Marshmallow schema validation failed", field_name="test_field")

        @app.route('/test/spin_request', methods=['POST'])
        def route_spin_request():
            SpinRequestSchema().load(request.get_json())
            return jsonify(status=True)

        app_context = app.app_context()
        app_context.push()
        db.create_all()

        yield app

        db.session.remove()
        db.drop_all()
        app_context.pop()

    @pytest.fixture()
    def client(self, app):
        return app.test_client()

    @pytest.mark.parametrize("name, status_code, error_code", [
        ('validation', 422, ErrorCodes.VALIDATION_ERROR),
        ('forbidden', 403, ErrorCodes.FORBIDDEN),
        ('missing', 404, ErrorCodes.NOT_FOUND),
        ('catalog', 422, ErrorCodes.ROULETTE_CONFIGURATION_INVALID),
        ('demo_used', 409, ErrorCodes.SPIN_ALREADY_USED),
        ('applied', 409, ErrorCodes.PRIZE_ALREADY_APPLIED),
        ('server', 500, ErrorCodes.INTERNAL_SERVER_ERROR),
    ])
    def test_app_exceptions_map_to_envelope(self, client, name, status_code, error_code):
        exc = RAISING_ROUTES[name]
        response = client.get(f'/test/raise/{name}')
        assert response.status_code == status_code
        body = response.get_json()
        assert body['status'] is False
        assert body['error_code'] == error_code
        assert body['status_message'] == exc.status_message
        assert body['details'] == exc.details
        assert body['request_id']

    def test_custom_app_exception_keeps_action_button(self, client, caplog):
        response = client.get('/test/app_exception')
        assert response.status_code == 450
        body = response.get_json()
        assert body['details'] == {"info": "some app details"}
        assert body['action_button']['actionPayload'] == "/roulette"
        assert any(
            rec.levelname == 'ERROR' and 'TEST_APP_EXC' in rec.message and body['request_id'] in rec.message
            for rec in caplog.records
        )

    def test_unknown_route(self, client, caplog):
        response = client.get('/api/roulette/nowhere')
        assert response.status_code == 404
        body = response.get_json()
        assert body['error_code'] == ErrorCodes.NOT_FOUND
        assert body['details'] == {'path': '/api/roulette/nowhere'}
        assert any(rec.levelname == 'WARNING' and ErrorCodes.NOT_FOUND in rec.message for rec in caplog.records)

    def test_method_not_allowed(self, client):
        response = client.post('/test/get_only')
        assert response.status_code == 405
        body = response.get_json()
        assert body['error_code'] == ErrorCodes.METHOD_NOT_ALLOWED
        assert body['status_message'] == "Method Not Allowed"

    def test_marshmallow_errors_are_nested_under_details(self, client):
        response = client.post('/test/marshmallow_validation_error', json={})
        assert response.status_code == 422
        body = response.get_json()
        assert body['status_message'] == "Input validation failed."
        assert body['details']['errors'] == {"test_field": ["Marshmallow schema validation failed"]}

    def test_schema_load_errors_are_keyed_by_field(self, client):
        response = client.post('/test/spin_request', json={'spin_type': 'jackpot'})
        assert response.status_code == 422
        errors = response.get_json()['details']['errors']
        assert list(errors) == ['spin_type']
        assert isinstance(errors['spin_type'], list)

    def test_unhandled_exception_is_hidden(self, client, caplog):
        response = client.get('/test/unhandled_exception')
        assert response.status_code == 500
        body = response.get_json()
        assert body['error_code'] == ErrorCodes.INTERNAL_SERVER_ERROR
        assert 'generic unhandled' not in body['status_message']
        assert any(rec.levelname == 'CRITICAL' for rec in caplog.records)

    def test_request_id_header_is_echoed(self, client):
        response = client.get('/test/raise/validation', headers={'X-Request-ID': 'req-123'})
        assert response.headers['X-Request-ID'] == 'req-123'
        assert response.get_json()['request_id'] == 'req-123'
