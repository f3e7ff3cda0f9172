"""
Tests for ContractMock Request Validator

Tests request body validation including:
- Required fields
- Declared types and string formats
- Which endpoints are validated at all
"""

import pytest

from contractmock.common import Endpoint
from contractmock.mock.errors import RequestValidationError
from contractmock.mock.schema import SchemaResolver
from contractmock.mock.validator import RequestValidator, matches_type


@pytest.fixture
def resolver():
    return SchemaResolver({
        'NewUser': {
            'type': 'object',
            'required': ['name', 'email'],
            'properties': {
                'name': {'type': 'string'},
                'email': {'type': 'string', 'format': 'email'},
                'age': {'type': 'integer'},
                'tags': {'type': 'array', 'items': {'type': 'string'}},
                'address': {'$ref': '#/components/schemas/Address'}
            }
        },
        'Address': {
            'type': 'object',
            'properties': {'city': {'type': 'string'}}
        }
    })


@pytest.fixture
def validator(resolver):
    return RequestValidator(resolver)


def _endpoint(method='POST', required=True, schema=None):
    return Endpoint.from_dict({
        'path': '/users',
        'method': method,
        'requestBody': {
            'required': required,
            'content': {'application/json': {'schema': schema or {'$ref': '#/components/schemas/NewUser'}}}
        },
        'responses': {'201': {'description': 'Created'}}
    })


class TestMatchesType:
    """Test matches_type."""

    def test_strings_and_formats(self):
        assert matches_type('a@b.io', 'string', 'email')
        assert not matches_type('not-an-email', 'string', 'email')
        assert matches_type('123e4567-e89b-12d3-a456-426614174000', 'string', 'uuid')
        assert not matches_type('123', 'string', 'uuid')
        assert matches_type('2024-05-01', 'string', 'date')
        assert matches_type('2024-05-01T10:00:00Z', 'string', 'date-time')
        assert not matches_type('yesterday', 'string', 'date-time')

    def test_numbers(self):
        assert matches_type(3, 'integer')
        assert matches_type(3.0, 'integer')
        assert not matches_type(3.5, 'integer')
        assert matches_type(3.5, 'number')
        assert not matches_type(True, 'integer')
        assert not matches_type('3', 'number')

    def test_other_types(self):
        assert matches_type(False, 'boolean')
        assert not matches_type(0, 'boolean')
        assert matches_type([], 'array')
        assert matches_type({}, 'object')
        assert not matches_type([], 'object')
        assert matches_type('anything', 'file')


class TestRequestValidator:
    """Test RequestValidator.validate."""

    def test_valid_body(self, validator):
        body = {'name': 'Ada', 'email': 'ada@example.com', 'age': 36, 'address': {'city': 'London'}}

        assert validator.validate(_endpoint(), body) == []

    def test_missing_required_fields(self, validator):
        errors = validator.validate(_endpoint(), {'name': ''})

        assert {e['field'] for e in errors} == {'name', 'email'}
        assert all(e['code'] == 'required_field_missing' for e in errors)
        assert errors[0]['message'] == "'name' is required"

    def test_none_body_checks_required(self, validator):
        errors = validator.validate(_endpoint(), None)

        assert len(errors) == 2

    def test_type_errors(self, validator):
        errors = validator.validate(_endpoint(), {
            'name': 'Ada',
            'email': 'nope',
            'age': 'old',
            'tags': 'a,b',
            'address': 'London'
        })

        by_field = {e['field']: e for e in errors}
        assert set(by_field) == {'email', 'age', 'tags', 'address'}
        assert by_field['age']['code'] == 'invalid_type'
        assert by_field['age']['message'] == "'age' must be of type integer"
        assert by_field['address']['message'] == "'address' must be of type object"

    def test_non_object_body(self, validator):
        errors = validator.validate(_endpoint(), [1, 2])

        assert errors == [{'field': 'body', 'message': 'Request body must be a JSON object', 'code': 'invalid_type'}]

    def test_optional_body_is_not_validated(self, validator):
        assert validator.validate(_endpoint(required=False), {}) == []

    def test_get_is_not_validated(self, validator):
        assert not validator.applies_to(_endpoint(method='GET'))

    def test_all_of_body(self, validator):
        endpoint = _endpoint(schema={'allOf': [
            {'$ref': '#/components/schemas/Address'},
            {'type': 'object', 'required': ['zip'], 'properties': {'zip': {'type': 'string'}}}
        ]})

        errors = validator.validate(endpoint, {'city': 'Paris'})

        assert errors == [{'field': 'zip', 'message': "'zip' is required", 'code': 'required_field_missing'}]

    def test_ensure_valid_raises(self, validator):
        with pytest.raises(RequestValidationError) as exc_info:
            validator.ensure_valid(_endpoint(), {})

        body = exc_info.value.to_dict()
        assert body['message'] == 'Validation failed'
        assert body['code'] == 'validation_error'
        assert len(body['details']['errors']) == 2
