"""
Tests for ContractMock Contract Model and Common Utilities

Tests the contract layer including:
- OpenAPI loading from YAML and JSON
- Endpoint normalisation helpers
- JSON and id helpers
"""

import json
import tempfile
from pathlib import Path

import pytest
import yaml

from contractmock.common import (
    ContractLoader,
    Endpoint,
    coerce_int,
    content_schema,
    safe_json_parse,
    singularize
)


@pytest.fixture
def document():
    """OpenAPI document with path-level parameters and numeric response keys."""
    return {
        'openapi': '3.0.0',
        'info': {'title': 'Shop', 'version': '1.0'},
        'paths': {
            '/users/{userId}/orders': {
                'parameters': [{'name': 'userId', 'in': 'path', 'schema': {'type': 'integer'}}],
                'get': {
                    'operationId': 'listOrders',
                    'tags': ['orders'],
                    'parameters': [{'name': 'userId', 'in': 'path', 'schema': {'type': 'string'}}],
                    'responses': {200: {'description': 'OK'}}
                },
                'summary': 'Not an operation'
            },
            '/health': {
                'head': {'responses': {'200': {'description': 'OK'}}}
            }
        },
        'components': {'schemas': {'Order': {'type': 'object'}}}
    }


def _write(content: str, suffix: str) -> str:
    with tempfile.NamedTemporaryFile(mode='w', suffix=suffix, delete=False) as f:
        f.write(content)
        return f.name


class TestContractLoader:
    """Test ContractLoader."""

    def test_load_yaml(self, document):
        path = _write(yaml.safe_dump(document), '.yaml')
        try:
            contract = ContractLoader(path).load()
        finally:
            Path(path).unlink()

        assert contract['info']['title'] == 'Shop'
        assert contract['schemas'] == {'Order': {'type': 'object'}}
        assert [(e['method'], e['path']) for e in contract['endpoints']] == [
            ('GET', '/users/{userId}/orders'),
            ('HEAD', '/health')
        ]

    def test_load_json(self, document):
        path = _write(json.dumps(document), '.json')
        try:
            contract = ContractLoader.load_from_file(path)
        finally:
            Path(path).unlink()

        assert len(contract['endpoints']) == 2

    def test_operation_parameters_override_path_parameters(self, document):
        endpoint = ContractLoader.parse(document)['endpoints'][0]

        assert endpoint['parameters'] == [{'name': 'userId', 'in': 'path', 'schema': {'type': 'string'}}]
        assert endpoint['operationId'] == 'listOrders'
        assert endpoint['tags'] == ['orders']

    def test_response_codes_are_strings(self, document):
        endpoint = ContractLoader.parse(document)['endpoints'][0]

        assert list(endpoint['responses']) == ['200']

    def test_missing_file(self):
        with pytest.raises(FileNotFoundError):
            ContractLoader('/nonexistent/api.yaml').load()

    def test_invalid_yaml(self):
        path = _write('paths: [unclosed', '.yaml')
        try:
            with pytest.raises(ValueError, match="Contract parsing failed"):
                ContractLoader(path).load()
        finally:
            Path(path).unlink()

    def test_not_a_mapping(self):
        with pytest.raises(ValueError, match="Expected a mapping"):
            ContractLoader.parse(['not', 'a', 'contract'])

    def test_missing_paths(self):
        with pytest.raises(ValueError, match="no 'paths' section"):
            ContractLoader.parse({'openapi': '3.0.0'})


class TestContentSchema:
    """Test content_schema."""

    def test_flat_form(self):
        assert content_schema({'schema': {'type': 'string'}}) == {'type': 'string'}

    def test_openapi_form(self):
        definition = {'content': {'application/json': {'schema': {'type': 'integer'}}}}

        assert content_schema(definition) == {'type': 'integer'}

    def test_other_json_media_type(self):
        definition = {'content': {'application/problem+json': {'schema': {'type': 'object'}}}}

        assert content_schema(definition) == {'type': 'object'}

    def test_no_schema(self):
        assert content_schema(None) is None
        assert content_schema({'description': 'No content'}) is None
        assert content_schema({'content': {'text/plain': {'schema': {'type': 'string'}}}}) is None


class TestEndpoint:
    """Test Endpoint helpers."""

    def test_record_id_param(self):
        assert Endpoint(path='/pets/{petId}', method='GET').record_id_param == 'petId'
        assert Endpoint(path='/users/{userId}/orders', method='GET').record_id_param is None
        assert Endpoint(path='/', method='GET').record_id_param is None

    def test_path_params(self):
        endpoint = Endpoint(path='/users/{userId}/orders/{orderId}', method='GET')

        assert endpoint.path_params == ['userId', 'orderId']

    def test_success_response_preference(self):
        endpoint = Endpoint.from_dict({
            'path': '/pets',
            'method': 'post',
            'responses': {
                '400': {'description': 'Bad'},
                '201': {'schema': {'type': 'object'}},
                '200': {'schema': {'type': 'array'}}
            }
        })

        assert endpoint.method == 'POST'
        assert endpoint.success_schema() == {'type': 'array'}
        assert endpoint.success_status_code() == 201
        assert endpoint.error_status_codes() == ['400']

    def test_success_status_code_default(self):
        assert Endpoint(path='/x', method='OPTIONS').success_status_code() == 200

    def test_request_body(self):
        endpoint = Endpoint.from_dict({
            'path': '/pets',
            'method': 'POST',
            'requestBody': {
                'required': True,
                'content': {'application/json': {'schema': {'type': 'object'}}}
            }
        })

        assert endpoint.request_body_required is True
        assert endpoint.request_body_schema() == {'type': 'object'}
        assert Endpoint(path='/pets', method='POST').request_body_required is False

    def test_path_param_type(self):
        endpoint = Endpoint.from_dict({
            'path': '/pets/{petId}',
            'method': 'GET',
            'parameters': [
                {'name': 'petId', 'in': 'path', 'schema': {'type': 'integer'}},
                {'name': 'limit', 'in': 'query', 'schema': {'type': 'integer'}}
            ]
        })

        assert endpoint.path_param_type('petId') == 'integer'
        assert endpoint.path_param_type('limit') is None
        assert endpoint.path_param_type('other') is None

    def test_from_dict_nested_spec(self):
        endpoint = Endpoint.from_dict({
            'path': '/pets',
            'method': 'GET',
            'spec': {'operationId': 'listPets', 'tags': ['pets'], 'responses': {200: {}}}
        })

        assert endpoint.operation_id == 'listPets'
        assert endpoint.tags == ['pets']
        assert list(endpoint.responses) == ['200']


class TestUtils:
    """Test shared helpers."""

    def test_safe_json_parse(self):
        assert safe_json_parse('{"a": 1}') == {'a': 1}
        assert safe_json_parse(b'[1, 2]') == [1, 2]
        assert safe_json_parse('{"a":', default={}) == {}
        assert safe_json_parse(b'', default='empty') == 'empty'
        assert safe_json_parse(None) is None

    def test_coerce_int(self):
        assert coerce_int(7) == 7
        assert coerce_int('7') == 7
        assert coerce_int(' -3 ') == -3
        assert coerce_int(4.0) == 4
        assert coerce_int(4.5) is None
        assert coerce_int(True) is None
        assert coerce_int('7a') is None
        assert coerce_int(None) is None

    def test_singularize(self):
        assert singularize('categories') == 'category'
        assert singularize('pets') == 'pet'
        assert singularize('sheep') == 'sheep'
