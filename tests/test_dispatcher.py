"""
Tests for ContractMock Request Dispatcher

Tests the per-request pipeline including:
- Handler binding per method and id parameter
- Stateful CRUD against the persistent store
- Delete permanence and id fidelity
- Request body validation
- Error injection in the errors scenario
- The 500 boundary
"""

import random
from unittest.mock import patch

import pytest

from contractmock.common import Endpoint
from contractmock.mock.dispatcher import (
    ACKNOWLEDGMENT_BODY,
    DispatchResult,
    HttpMethod,
    RequestDispatcher
)
from contractmock.mock.generator import MockDataGenerator
from contractmock.mock.schema import SchemaResolver


PET_SCHEMA = {'$ref': '#/components/schemas/Pet'}


@pytest.fixture
def schemas():
    """Component schemas of the pet store contract."""
    return {
        'Pet': {
            'type': 'object',
            'required': ['name'],
            'properties': {
                'id': {'type': 'integer'},
                'name': {'type': 'string'},
                'status': {'type': 'string', 'enum': ['available', 'sold']}
            }
        },
        'NewPet': {
            'type': 'object',
            'required': ['name'],
            'properties': {'name': {'type': 'string'}, 'tag': {'type': 'string'}}
        },
        'Token': {
            'type': 'object',
            'properties': {'id': {'type': 'string'}, 'value': {'type': 'string'}}
        },
        'PetPage': {
            'type': 'object',
            'properties': {
                'items': {'type': 'array', 'items': PET_SCHEMA},
                'total': {'type': 'integer'}
            }
        },
        'ApiResponse': {
            'type': 'object',
            'properties': {'code': {'type': 'integer'}, 'type': {'type': 'string'}, 'message': {'type': 'string'}}
        }
    }


def _ok(schema, code='200'):
    return {code: {'description': 'OK', 'content': {'application/json': {'schema': schema}}}}


@pytest.fixture
def endpoints():
    """Raw endpoint dicts as produced by the contract loader."""
    new_pet_body = {'required': True, 'content': {'application/json': {'schema': {'$ref': '#/components/schemas/NewPet'}}}}
    pet_id = [{'name': 'petId', 'in': 'path', 'required': True, 'schema': {'type': 'integer'}}]

    return {
        'list': {'path': '/pets', 'method': 'GET', 'responses': _ok({'type': 'array', 'items': PET_SCHEMA})},
        'create': {'path': '/pets', 'method': 'POST', 'requestBody': new_pet_body, 'responses': _ok(PET_SCHEMA, '201')},
        'get': {'path': '/pets/{petId}', 'method': 'GET', 'parameters': pet_id, 'responses': _ok(PET_SCHEMA)},
        'update': {'path': '/pets/{petId}', 'method': 'PUT', 'parameters': pet_id, 'responses': _ok(PET_SCHEMA)},
        'delete': {
            'path': '/pets/{petId}', 'method': 'DELETE', 'parameters': pet_id,
            'responses': {'204': {'description': 'Deleted'}, '404': {'description': 'Pet not found'}}
        },
        'page': {'path': '/pets', 'method': 'GET', 'responses': _ok({'$ref': '#/components/schemas/PetPage'})},
        'upload': {'path': '/pets/{petId}/upload', 'method': 'POST', 'responses': _ok({'$ref': '#/components/schemas/ApiResponse'})},
        'token': {'path': '/tokens/{token}', 'method': 'GET', 'responses': _ok({'$ref': '#/components/schemas/Token'})},
        'bulk_delete': {'path': '/pets', 'method': 'DELETE', 'responses': {'204': {'description': 'Deleted'}}},
        'head': {'path': '/pets', 'method': 'HEAD', 'responses': {'204': {'description': 'Exists'}}},
        'no_schema': {'path': '/health', 'method': 'GET', 'responses': {'200': {'description': 'OK'}}},
    }


@pytest.fixture
def dispatcher(schemas):
    generator = MockDataGenerator(SchemaResolver(schemas), seed=7)
    return RequestDispatcher(generator, seed=7)


@pytest.fixture
def routes(dispatcher, endpoints):
    return {name: dispatcher.bind(endpoint) for name, endpoint in endpoints.items()}


class TestBinding:
    """Test route binding."""

    def test_handler_selection(self, routes):
        assert routes['get'].handler.__name__ == '_get_record'
        assert routes['list'].handler.__name__ == '_get_collection'
        assert routes['create'].handler.__name__ == '_create_record'
        assert routes['update'].handler.__name__ == '_update_record'
        assert routes['delete'].handler.__name__ == '_delete_record'
        assert routes['bulk_delete'].handler.__name__ == '_acknowledge_delete'
        assert routes['head'].handler.__name__ == '_generate_only'

    def test_route_metadata(self, routes):
        route = routes['get']

        assert route.method is HttpMethod.GET
        assert route.id_param == 'petId'
        assert route.entity_type == 'pet'
        assert route.validated is False
        assert routes['create'].validated is True

    def test_nested_collection_has_no_id(self, routes):
        assert routes['upload'].id_param is None

    def test_unsupported_method(self, dispatcher):
        with pytest.raises(ValueError, match='Unsupported HTTP method'):
            dispatcher.bind({'path': '/pets', 'method': 'CONNECT'})

    def test_bind_accepts_endpoint(self, dispatcher, endpoints):
        route = dispatcher.bind(Endpoint.from_dict(endpoints['list']))

        assert route.entity_type == 'pet'


class TestPetsScenario:
    """Test the documented pets walkthrough end to end."""

    def test_get_delete_get_post(self, routes):
        result = routes['get'].handle(path_params={'petId': '7'})
        assert result.status_code == 200
        assert result.body['id'] == 7

        result = routes['delete'].handle(path_params={'petId': '7'})
        assert result.status_code == 204
        assert result.has_body is False

        result = routes['get'].handle(path_params={'petId': '7'})
        assert result.status_code == 404
        assert result.body == {'message': 'pet not found', 'code': 'not_found'}

        result = routes['create'].handle(body=b'{"name": "Rex"}')
        assert result.status_code == 201
        assert result.body['name'] == 'Rex'
        assert isinstance(result.body['id'], int)


class TestGetRecord:
    """Test GET by id."""

    def test_same_record_on_repeat(self, routes):
        first = routes['get'].handle(path_params={'petId': '3'}).body
        second = routes['get'].handle(path_params={'petId': 3}).body

        assert first == second

    def test_string_id_kept_for_string_schema(self, routes):
        result = routes['token'].handle(path_params={'token': 'abc'})

        assert result.body['id'] == 'abc'

    def test_non_numeric_id_for_integer_param(self, routes):
        result = routes['get'].handle(path_params={'petId': 'rex'})

        assert result.status_code == 200
        assert result.body['id'] == 'rex'

    def test_delete_permanence(self, routes):
        routes['get'].handle(path_params={'petId': '5'})
        routes['delete'].handle(path_params={'petId': 5})

        for _ in range(3):
            assert routes['get'].handle(path_params={'petId': '5'}).status_code == 404
        assert routes['update'].handle(path_params={'petId': '5'}, body={'name': 'x'}).status_code == 404
        assert routes['delete'].handle(path_params={'petId': '5'}).status_code == 404


class TestGetCollection:
    """Test list endpoints."""

    def test_items_are_persisted(self, dispatcher, routes):
        items = routes['list'].handle().body

        assert len(items) == 3
        for item in items:
            assert dispatcher.store.get_record('pet', item['id']) == item

    def test_listed_item_fetchable_by_id(self, routes):
        item = routes['list'].handle().body[0]

        fetched = routes['get'].handle(path_params={'petId': str(item['id'])})

        assert fetched.body == item

    def test_deleted_ids_are_not_relisted(self, dispatcher, routes):
        dispatcher.store.store_record('pet', {'id': 1, 'name': 'Gone'})
        dispatcher.store.delete_record('pet', 1)

        with patch.object(dispatcher.generator, 'generate', return_value=[{'id': 1, 'name': 'Again'}]):
            items = routes['list'].handle().body

        assert items[0]['id'] != 1
        assert items[0]['name'] == 'Again'
        assert not dispatcher.store.is_record_deleted('pet', items[0]['id'])

    def test_live_records_win_over_generated(self, dispatcher, routes):
        dispatcher.store.store_record('pet', {'id': 2, 'name': 'Stored'})

        with patch.object(dispatcher.generator, 'generate', return_value=[{'id': 2, 'name': 'Generated'}]):
            items = routes['list'].handle().body

        assert items == [{'id': 2, 'name': 'Stored'}]

    def test_paginated_wrapper(self, dispatcher, routes):
        page = routes['page'].handle().body

        assert len(page['items']) == 3
        for item in page['items']:
            assert dispatcher.store.get_record('pet', item['id']) is not None

    def test_no_schema_response(self, routes):
        result = routes['no_schema'].handle()

        assert result.body == {'message': 'Mock response', 'method': 'GET', 'path': '/health'}


class TestCreateRecord:
    """Test POST."""

    def test_body_wins_and_id_allocated(self, dispatcher, routes):
        result = routes['create'].handle(body={'name': 'Rex', 'status': 'sold'})

        assert result.status_code == 201
        assert result.body['name'] == 'Rex'
        assert result.body['status'] == 'sold'
        assert dispatcher.store.get_record('pet', result.body['id'])['name'] == 'Rex'

    def test_created_then_fetched(self, routes):
        created = routes['create'].handle(body={'name': 'Rex'}).body

        fetched = routes['get'].handle(path_params={'petId': str(created['id'])}).body

        assert fetched == created

    def test_sequential_ids(self, routes):
        first = routes['create'].handle(body={'name': 'A'}).body['id']
        second = routes['create'].handle(body={'name': 'B'}).body['id']

        assert second > first

    def test_acknowledgment_schema(self, dispatcher, routes):
        result = routes['upload'].handle(path_params={'petId': '1'})

        assert result.status_code == 201
        assert result.body == ACKNOWLEDGMENT_BODY
        assert dispatcher.store.entity_types() == []

    def test_validation_failure_leaves_store_untouched(self, dispatcher, routes):
        result = routes['create'].handle(body={'tag': 'dog'})

        assert result.status_code == 400
        assert result.validation_failed is True
        assert result.body['code'] == 'validation_error'
        assert result.body['details']['errors'][0]['field'] == 'name'
        assert dispatcher.store.entity_types() == []

    def test_malformed_json(self, routes):
        result = routes['create'].handle(body=b'{"name": ')

        assert result.status_code == 400
        assert result.body['details']['errors'][0]['code'] == 'invalid_json'


class TestUpdateRecord:
    """Test PUT/PATCH."""

    def test_update_existing(self, routes):
        routes['get'].handle(path_params={'petId': '4'})

        result = routes['update'].handle(path_params={'petId': '4'}, body={'name': 'Renamed', 'id': 99})

        assert result.status_code == 200
        assert result.body['id'] == 4
        assert result.body['name'] == 'Renamed'
        assert result.body['updatedAt'].endswith('Z')
        assert routes['get'].handle(path_params={'petId': '4'}).body['name'] == 'Renamed'

    def test_update_missing(self, routes):
        result = routes['update'].handle(path_params={'petId': '404'}, body={'name': 'x'})

        assert result.status_code == 404
        assert result.body['code'] == 'not_found'

    def test_update_without_id_echoes(self, dispatcher):
        route = dispatcher.bind({'path': '/settings', 'method': 'PATCH', 'responses': _ok({
            'type': 'object', 'properties': {'theme': {'type': 'string'}}
        })})

        result = route.handle(body={'theme': 'dark'})

        assert result.status_code == 200
        assert result.body == {'theme': 'dark'}


class TestOtherMethods:
    """Test DELETE without id and HEAD/OPTIONS/TRACE."""

    def test_bulk_delete(self, routes):
        result = routes['bulk_delete'].handle()

        assert result.status_code == 204
        assert not result.has_body

    def test_head_uses_declared_status(self, routes):
        assert routes['head'].handle().status_code == 204


class TestErrorInjection:
    """Test the errors scenario."""

    def test_declared_error_codes(self, dispatcher, routes):
        dispatcher.scenario = 'errors'
        dispatcher.error_rate = 1.0

        result = routes['delete'].handle(path_params={'petId': '1'})

        assert result.injected is True
        assert result.status_code == 404
        assert result.body == {'error': 'Pet not found', 'code': 404}

    def test_default_error_pool(self, dispatcher, routes):
        dispatcher.scenario = 'errors'
        dispatcher.error_rate = 1.0

        codes = {routes['list'].handle().status_code for _ in range(200)}

        assert codes == {400, 404, 500}

    def test_error_rate_zero(self, dispatcher, routes):
        dispatcher.scenario = 'errors'
        dispatcher.error_rate = 0.0

        assert routes['list'].handle().status_code == 200

    def test_seeded_injection_is_reproducible(self, schemas, endpoints):
        def run():
            generator = MockDataGenerator(SchemaResolver(schemas), scenario='errors', seed=1)
            dispatcher = RequestDispatcher(generator, rng=random.Random(3))
            route = dispatcher.bind(endpoints['list'])
            return [route.handle().status_code for _ in range(20)]

        assert run() == run()

    def test_not_injected_outside_errors_scenario(self, dispatcher, routes):
        dispatcher.error_rate = 1.0

        assert routes['list'].handle().status_code == 200


class TestFailureBoundary:
    """Test unexpected failures become 500 responses."""

    def test_generation_failure(self, dispatcher, routes):
        with patch.object(dispatcher.generator, 'generate', side_effect=RuntimeError('boom')):
            result = routes['list'].handle()

        assert result.status_code == 500
        assert result.body == {'error': 'Mock generation failed', 'message': 'boom'}

    def test_store_failure(self, dispatcher, routes):
        with patch.object(dispatcher.store, 'delete_record', side_effect=KeyError('x')):
            result = routes['delete'].handle(path_params={'petId': '1'})

        assert isinstance(result, DispatchResult)
        assert result.status_code == 500
