"""
ContractMock Request Dispatcher

Turns an incoming request for a contract endpoint into a status code and a
JSON body. Each request goes through the same steps:

1. Error injection (errors scenario only)
2. Request body validation (POST/PUT/PATCH with a required body)
3. Method dispatch against the persistent store
4. Conversion of any failure into a JSON error response

The handler for a route is chosen once, when the route is bound, from the HTTP
method and whether the path ends in a record id parameter.
"""

import logging
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Optional, Union

from ..common import Endpoint, safe_json_parse
from .context import GenerationContext
from .errors import GenerationError, InjectedError, RecordNotFoundError, RequestValidationError
from .generator import MockDataGenerator, Scenario
from .schema import is_ref_to
from .store import PersistentStore
from .validator import RequestValidator


logger = logging.getLogger(__name__)


DEFAULT_ERROR_RATE = 0.3

DEFAULT_ACK_SCHEMA_NAMES = ('ApiResponse',)

ACKNOWLEDGMENT_BODY = {
    'code': 200,
    'type': 'success',
    'message': 'Operation completed successfully'
}

DEFAULT_ERROR_MESSAGES = {
    400: 'Bad Request - Invalid parameters',
    404: 'Not Found - Resource does not exist',
    500: 'Internal Server Error'
}

_INVALID_JSON = object()


class HttpMethod(str, Enum):
    """HTTP methods a contract endpoint can declare."""

    GET = 'GET'
    POST = 'POST'
    PUT = 'PUT'
    PATCH = 'PATCH'
    DELETE = 'DELETE'
    HEAD = 'HEAD'
    OPTIONS = 'OPTIONS'
    TRACE = 'TRACE'

    @classmethod
    def parse(cls, method: str) -> 'HttpMethod':
        try:
            return cls(str(method).upper())
        except ValueError:
            raise ValueError(f"Unsupported HTTP method: {method}") from None


@dataclass
class DispatchResult:
    """Outcome of dispatching one request."""

    status_code: int
    body: Any = None
    injected: bool = False
    validation_failed: bool = False

    @property
    def has_body(self) -> bool:
        return self.status_code != 204 and self.body is not None


@dataclass
class BoundRoute:
    """A contract endpoint with its handler resolved."""

    dispatcher: 'RequestDispatcher'
    endpoint: Endpoint
    method: HttpMethod
    handler: Callable[..., DispatchResult]
    entity_type: str
    context: GenerationContext
    id_param: Optional[str] = None
    validated: bool = False

    def handle(
        self,
        path_params: Optional[Dict[str, Any]] = None,
        query: Optional[Dict[str, Any]] = None,
        body: Union[bytes, str, Dict[str, Any], list, None] = None
    ) -> DispatchResult:
        """
        Dispatch one request to this route.

        Args:
            path_params: Path parameters keyed by their contract names
            query: Query parameters
            body: Raw request body (bytes/str) or an already parsed JSON value

        Returns:
            DispatchResult with status code and JSON body
        """
        return self.dispatcher.dispatch(self, path_params or {}, query or {}, body)


class RequestDispatcher:
    """
    Stateful request dispatcher for contract endpoints.

    Example:
        dispatcher = RequestDispatcher(MockDataGenerator(resolver, seed=1))
        route = dispatcher.bind(endpoint)   # GET /pets/{petId}
        result = route.handle(path_params={'petId': '7'})
        print(result.status_code, result.body['id'])   # 200 7
    """

    def __init__(
        self,
        generator: MockDataGenerator,
        store: Optional[PersistentStore] = None,
        validator: Optional[RequestValidator] = None,
        error_rate: float = DEFAULT_ERROR_RATE,
        ack_schema_names: Iterable[str] = DEFAULT_ACK_SCHEMA_NAMES,
        seed: Optional[int] = None,
        rng: Optional[random.Random] = None
    ):
        """
        Initialize request dispatcher.

        Args:
            generator: Mock data generator (carries resolver and inferencer)
            store: Persistent store (a fresh one if None)
            validator: Request validator (built from the generator's resolver if None)
            error_rate: Probability of an injected error in the errors scenario
            ack_schema_names: Response schema names treated as plain acknowledgments
            seed: Seed for error injection randomness
            rng: Random instance for error injection (overrides seed)
        """
        self.generator = generator
        self.resolver = generator.resolver
        self.inferencer = generator.inferencer
        self.store = store or PersistentStore()
        self.validator = validator or RequestValidator(self.resolver)
        self.error_rate = error_rate
        self.ack_schema_names = tuple(ack_schema_names)
        self.random = rng or random.Random(seed)

    @property
    def scenario(self) -> Scenario:
        return self.generator.scenario

    @scenario.setter
    def scenario(self, value: Union[str, Scenario]):
        self.generator.scenario = Scenario.parse(value)

    def bind(self, endpoint: Union[Endpoint, Dict[str, Any]]) -> BoundRoute:
        """
        Resolve the handler for an endpoint.

        Args:
            endpoint: Endpoint (or raw endpoint dict)

        Returns:
            BoundRoute ready to handle requests

        Raises:
            ValueError: If the endpoint declares an unsupported method
        """
        if isinstance(endpoint, dict):
            endpoint = Endpoint.from_dict(endpoint)

        method = HttpMethod.parse(endpoint.method)
        id_param = endpoint.record_id_param

        return BoundRoute(
            dispatcher=self,
            endpoint=endpoint,
            method=method,
            handler=self._select_handler(method, id_param is not None),
            entity_type=self.inferencer.extract_entity_type(endpoint.path),
            context=self.inferencer.extract_endpoint_context(endpoint),
            id_param=id_param,
            validated=self.validator.applies_to(endpoint)
        )

    def _select_handler(self, method: HttpMethod, has_id: bool) -> Callable[..., DispatchResult]:
        if method == HttpMethod.GET:
            return self._get_record if has_id else self._get_collection
        if method == HttpMethod.POST:
            return self._create_record
        if method in (HttpMethod.PUT, HttpMethod.PATCH):
            return self._update_record if has_id else self._echo_update
        if method == HttpMethod.DELETE:
            return self._delete_record if has_id else self._acknowledge_delete
        return self._generate_only

    def dispatch(
        self,
        route: BoundRoute,
        path_params: Dict[str, Any],
        query: Dict[str, Any],
        body: Any
    ) -> DispatchResult:
        """Run the full request pipeline for a bound route. Never raises."""
        endpoint = route.endpoint
        try:
            self._maybe_inject_error(endpoint)

            payload = self._parse_body(body)
            if payload is _INVALID_JSON:
                if route.validated:
                    raise RequestValidationError(
                        [{'field': 'body', 'message': 'Request body is not valid JSON', 'code': 'invalid_json'}]
                    )
                logger.debug(f"Ignoring malformed JSON body for {endpoint.method} {endpoint.path}")
                payload = None

            if route.validated:
                self.validator.ensure_valid(endpoint, payload)

            record_id = path_params.get(route.id_param) if route.id_param else None
            result = route.handler(route, record_id, payload, query)

        except InjectedError as e:
            logger.debug(f"Injected {e.status_code} for {endpoint.method} {endpoint.path}")
            result = DispatchResult(e.status_code, e.body, injected=True)
        except RequestValidationError as e:
            result = DispatchResult(400, e.to_dict(), validation_failed=True)
        except RecordNotFoundError as e:
            result = DispatchResult(404, e.to_dict())
        except Exception as e:
            logger.exception(f"Mock generation failed for {endpoint.method} {endpoint.path}")
            result = DispatchResult(500, {'error': 'Mock generation failed', 'message': str(e)})

        logger.debug(f"{endpoint.method} {endpoint.path} -> {result.status_code}")
        return result

    @staticmethod
    def _parse_body(body: Any) -> Any:
        if isinstance(body, (bytes, str)):
            if not body or not body.strip():
                return None
            return safe_json_parse(body, default=_INVALID_JSON)
        return body

    # ------------------------------------------------------------------
    # Error injection
    # ------------------------------------------------------------------

    def _maybe_inject_error(self, endpoint: Endpoint):
        """Raise an InjectedError when the errors scenario says so."""
        if self.scenario != Scenario.ERRORS or self.random.random() >= self.error_rate:
            return

        declared = endpoint.error_status_codes()
        if declared:
            code = self.random.choice(declared)
            description = (endpoint.responses.get(code) or {}).get('description') or 'An error occurred'
            raise InjectedError(int(code), {'error': description, 'code': int(code)})

        roll = self.random.random()
        status_code = 404 if roll < 0.7 else 400 if roll < 0.85 else 500
        raise InjectedError(status_code, {'error': DEFAULT_ERROR_MESSAGES[status_code], 'code': status_code})

    # ------------------------------------------------------------------
    # Method handlers
    # ------------------------------------------------------------------

    def _get_record(self, route: BoundRoute, record_id: Any, body: Any, query: Dict[str, Any]) -> DispatchResult:
        entity_type = route.entity_type
        if self.store.is_record_deleted(entity_type, record_id):
            raise RecordNotFoundError(entity_type, record_id)

        stored = self.store.get_record(entity_type, record_id)
        if stored is not None:
            return DispatchResult(200, stored)

        context = route.context.with_correlation(
            record_id, route.endpoint.path_param_type(route.id_param)
        )
        data = self._generate_response(route, context)
        if isinstance(data, dict):
            if 'id' not in data:
                data['id'] = record_id
            data = self.store.store_record(entity_type, data)

        return DispatchResult(200, data)

    def _get_collection(self, route: BoundRoute, record_id: Any, body: Any, query: Dict[str, Any]) -> DispatchResult:
        entity_type = route.entity_type
        data = self._generate_response(route, route.context)

        if isinstance(data, list):
            data = [self._persist(entity_type, item) for item in data]
        elif isinstance(data, dict):
            if 'id' in data:
                data = self._persist(entity_type, data)
            else:
                # Paginated wrapper: {items: [...], total: n}
                for key, value in data.items():
                    if isinstance(value, list) and value and all(isinstance(v, dict) for v in value):
                        data[key] = [self._persist(entity_type, item) for item in value]

        return DispatchResult(200, data)

    def _create_record(self, route: BoundRoute, record_id: Any, body: Any, query: Dict[str, Any]) -> DispatchResult:
        if is_ref_to(route.endpoint.success_schema(), self.ack_schema_names):
            return DispatchResult(201, dict(ACKNOWLEDGMENT_BODY))

        data = self._generate_response(route, route.context)
        if not isinstance(data, dict):
            return DispatchResult(201, data)

        record = {**data, **(body if isinstance(body, dict) else {})}
        current_id = record.get('id')
        if current_id is None or (isinstance(current_id, int) and not isinstance(current_id, bool)):
            record['id'] = self.store.allocate_id(route.entity_type)
        elif self.store.is_record_deleted(route.entity_type, current_id):
            record['id'] = self._fresh_id(route.entity_type, current_id)

        return DispatchResult(201, self.store.store_record(route.entity_type, record))

    def _update_record(self, route: BoundRoute, record_id: Any, body: Any, query: Dict[str, Any]) -> DispatchResult:
        updates = dict(body) if isinstance(body, dict) else {}
        updates['updatedAt'] = _utc_now()

        updated = self.store.update_record(route.entity_type, record_id, updates)
        if updated is None:
            raise RecordNotFoundError(route.entity_type, record_id)
        return DispatchResult(200, updated)

    def _echo_update(self, route: BoundRoute, record_id: Any, body: Any, query: Dict[str, Any]) -> DispatchResult:
        data = self._generate_response(route, route.context)
        if isinstance(data, dict) and isinstance(body, dict):
            data = {**data, **body}
        return DispatchResult(200, data)

    def _delete_record(self, route: BoundRoute, record_id: Any, body: Any, query: Dict[str, Any]) -> DispatchResult:
        if not self.store.delete_record(route.entity_type, record_id):
            raise RecordNotFoundError(route.entity_type, record_id)
        return DispatchResult(204)

    def _acknowledge_delete(self, route: BoundRoute, record_id: Any, body: Any, query: Dict[str, Any]) -> DispatchResult:
        return DispatchResult(204)

    def _generate_only(self, route: BoundRoute, record_id: Any, body: Any, query: Dict[str, Any]) -> DispatchResult:
        data = self._generate_response(route, route.context)
        return DispatchResult(route.endpoint.success_status_code(), data)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _generate_response(self, route: BoundRoute, context: GenerationContext) -> Any:
        endpoint = route.endpoint
        schema = endpoint.success_schema()
        if schema is None:
            return {'message': 'Mock response', 'method': endpoint.method, 'path': endpoint.path}
        try:
            return self.generator.generate(schema, context=context)
        except Exception as e:
            raise GenerationError(str(e)) from e

    def _persist(self, entity_type: str, item: Any) -> Any:
        """Store a generated item, keeping live records and deleted ids intact."""
        if not isinstance(item, dict) or item.get('id') is None:
            return item

        existing = self.store.get_record(entity_type, item['id'])
        if existing is not None:
            return existing

        if self.store.is_record_deleted(entity_type, item['id']):
            item = {**item, 'id': self._fresh_id(entity_type, item['id'])}

        return self.store.store_record(entity_type, item)

    def _fresh_id(self, entity_type: str, previous: Any) -> Any:
        if isinstance(previous, int) and not isinstance(previous, bool):
            return self.store.allocate_id(entity_type)
        return self.generator.faker.uuid4()


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')
