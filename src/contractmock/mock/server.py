"""
ContractMock Mock Server

FastAPI-based HTTP mock server that serves schema-conforming responses for
every endpoint of an API contract.

Features:
- One route per contract endpoint
- Stateful CRUD (create-then-fetch, delete-then-404)
- Scenarios: demo, realistic, large, errors
- Admin API for runtime configuration and store inspection
- Metrics and logging
"""

from __future__ import annotations  # Enable forward references for type hints

import re
import time
import logging
from dataclasses import dataclass, field, fields
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml

try:
    from fastapi import FastAPI, Request, Response
    from fastapi.middleware.cors import CORSMiddleware
    from fastapi.responses import JSONResponse
    import uvicorn
    FASTAPI_AVAILABLE = True
except ImportError:
    FASTAPI_AVAILABLE = False

from ..common import ContractLoader, safe_json_parse
from ..common.contract import PATH_PARAM_PATTERN
from .context import ContextInferencer
from .dispatcher import (
    DEFAULT_ACK_SCHEMA_NAMES,
    DEFAULT_ERROR_RATE,
    BoundRoute,
    DispatchResult,
    RequestDispatcher,
)
from .generator import MockDataGenerator, Scenario
from .schema import SchemaResolver
from .store import PersistentStore


# Project file keys that differ from the MockConfig field names
_CONFIG_ALIASES = {
    'cors': 'cors_enabled',
    'locale': 'faker_locale',
    'admin': 'admin_enabled',
    'verbose': 'verbose_mode',
}


@dataclass
class MockConfig:
    """Configuration for mock server behavior."""

    # Data generation
    scenario: str = "demo"  # demo, realistic, large, errors
    seed: Optional[int] = None  # Seed for reproducible data and error injection
    faker_locale: str = "en_US"

    # Errors scenario
    error_rate: float = DEFAULT_ERROR_RATE  # 0.0 to 1.0

    # Context inference overrides
    entity_patterns: Optional[Any] = None  # entity -> regex, or [regex, entity, domain] triples
    domain_mappings: Dict[str, str] = field(default_factory=dict)  # entity -> domain

    # POST endpoints answering with a plain acknowledgment
    ack_schema_names: Tuple[str, ...] = DEFAULT_ACK_SCHEMA_NAMES

    # Server options
    host: str = "127.0.0.1"
    port: int = 3001
    cors_enabled: bool = False
    log_level: str = "info"
    verbose_mode: bool = False  # Print every request and response status

    # Admin API
    admin_enabled: bool = True
    admin_prefix: str = "/__admin__"

    def __post_init__(self):
        self.scenario = Scenario.parse(self.scenario).value
        if not 0.0 <= float(self.error_rate) <= 1.0:
            raise ValueError(f"error_rate must be between 0.0 and 1.0, got {self.error_rate}")
        self.ack_schema_names = tuple(self.ack_schema_names)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MockConfig':
        """
        Create MockConfig from a ``mock:`` section.

        Unknown keys are ignored; short aliases (``cors``, ``locale``,
        ``admin``, ``verbose``) are accepted.
        """
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in (data or {}).items():
            name = _CONFIG_ALIASES.get(key, key)
            if name in known and value is not None:
                values[name] = value
        return cls(**values)

    @classmethod
    def from_yaml(cls, file_path: Union[str, Path]) -> 'MockConfig':
        """
        Load MockConfig from a project file's ``mock:`` section.

        Example:
            config = MockConfig.from_yaml('contractmock.yaml')
        """
        project = read_project_file(file_path)
        return cls.from_dict(project.get('mock') or {})

    def to_dict(self) -> Dict[str, Any]:
        return {
            'scenario': self.scenario,
            'seed': self.seed,
            'faker_locale': self.faker_locale,
            'error_rate': self.error_rate,
            'cors_enabled': self.cors_enabled,
            'verbose_mode': self.verbose_mode,
            'admin_prefix': self.admin_prefix
        }


def read_project_file(file_path: Union[str, Path]) -> Dict[str, Any]:
    """
    Read a YAML project file (``contract:`` path plus ``mock:`` settings).

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the file is not a YAML mapping
    """
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, 'r', encoding='utf-8') as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Config parsing failed in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping, got {type(data).__name__}")
    return data


@dataclass
class MockMetrics:
    """Track mock server metrics."""

    total_requests: int = 0
    success_responses: int = 0
    client_errors: int = 0
    server_errors: int = 0
    injected_errors: int = 0
    validation_failures: int = 0
    start_time: str = field(default_factory=lambda: datetime.now().isoformat())

    def record(self, result: DispatchResult):
        """Count one dispatched response."""
        if 200 <= result.status_code < 300:
            self.success_responses += 1
        elif 400 <= result.status_code < 500:
            self.client_errors += 1
        elif result.status_code >= 500:
            self.server_errors += 1

        if result.injected:
            self.injected_errors += 1
        if result.validation_failed:
            self.validation_failures += 1

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        uptime_seconds = (datetime.now() - datetime.fromisoformat(self.start_time)).total_seconds()
        return {
            'total_requests': self.total_requests,
            'success_responses': self.success_responses,
            'client_errors': self.client_errors,
            'server_errors': self.server_errors,
            'injected_errors': self.injected_errors,
            'validation_failures': self.validation_failures,
            'success_rate': round((self.success_responses / self.total_requests * 100) if self.total_requests > 0 else 0, 2),
            'uptime_seconds': round(uptime_seconds, 2),
            'start_time': self.start_time
        }


def sanitize_path(path: str) -> Tuple[str, Dict[str, str]]:
    """
    Convert an OpenAPI path template into a valid FastAPI route path.

    Parameter names that are not Python identifiers are rewritten and the
    mapping back to the contract names is returned.

    Example:
        sanitize_path('/pets/{pet-id}')
        # ('/pets/{pet_id}', {'pet_id': 'pet-id'})
    """
    mapping: Dict[str, str] = {}

    def replace(match: re.Match) -> str:
        original = match.group(1)
        safe = re.sub(r'[^A-Za-z0-9_]', '_', original)
        if not safe or safe[0].isdigit():
            safe = f"p_{safe}"
        while safe in mapping and mapping[safe] != original:
            safe += '_'
        mapping[safe] = original
        return '{' + safe + '}'

    return PATH_PARAM_PATTERN.sub(replace, path), mapping


class MockServer:
    """
    FastAPI-based mock server for an API contract.

    Registers one route per contract endpoint and answers with generated data
    that conforms to the endpoint's response schema.

    Example:
        # Load a contract and start the server
        server = MockServer('api-contract.yaml')
        server.start(port=3001)

        # With custom config
        config = MockConfig(scenario='realistic', seed=42, cors_enabled=True)
        server = MockServer('api-contract.yaml', config=config)
        server.start()
    """

    def __init__(
        self,
        contract: Union[str, Path, Dict[str, Any]],
        config: Optional[MockConfig] = None,
        dispatcher: Optional[RequestDispatcher] = None
    ):
        """
        Initialize mock server.

        Args:
            contract: Path to an OpenAPI file, a raw OpenAPI document, or an
                already flattened contract ({endpoints, schemas})
            config: Optional MockConfig for server behavior
            dispatcher: Optional RequestDispatcher instance (will create if None)
        """
        if not FASTAPI_AVAILABLE:
            raise ImportError("FastAPI is required for mock server. Install with: pip install fastapi uvicorn")

        self.config = config or MockConfig()
        self.metrics = MockMetrics()

        # Setup logging first (before loading the contract)
        self.logger = logging.getLogger("contractmock.mock")
        self.logger.setLevel(getattr(logging, self.config.log_level.upper()))

        self.contract = self._load_contract(contract)
        self.dispatcher = dispatcher or self._create_dispatcher()
        self.routes: List[BoundRoute] = []

        # Setup FastAPI app
        self.app = self._create_app()

    @property
    def store(self) -> PersistentStore:
        return self.dispatcher.store

    def _load_contract(self, contract: Union[str, Path, Dict[str, Any]]) -> Dict[str, Any]:
        """Load the contract into the flattened {endpoints, schemas} form."""
        if isinstance(contract, (str, Path)):
            loaded = ContractLoader(str(contract)).load()
            self.logger.info(f"Loaded {len(loaded['endpoints'])} endpoints from {contract}")
            return loaded

        if 'endpoints' not in contract and 'paths' in contract:
            return ContractLoader.parse(contract)

        schemas = contract.get('schemas') or (contract.get('components') or {}).get('schemas') or {}
        return {**contract, 'endpoints': list(contract.get('endpoints') or []), 'schemas': schemas}

    def _create_dispatcher(self) -> RequestDispatcher:
        resolver = SchemaResolver(self.contract.get('schemas') or {})
        inferencer = ContextInferencer(
            entity_patterns=self.config.entity_patterns,
            domain_mappings=self.config.domain_mappings
        )
        generator = MockDataGenerator(
            resolver=resolver,
            inferencer=inferencer,
            scenario=self.config.scenario,
            seed=self.config.seed,
            locale=self.config.faker_locale
        )
        return RequestDispatcher(
            generator,
            store=PersistentStore(),
            error_rate=self.config.error_rate,
            ack_schema_names=self.config.ack_schema_names,
            seed=self.config.seed
        )

    def _create_app(self) -> FastAPI:
        """Create FastAPI application with routes."""
        info = self.contract.get('info') or {}
        app = FastAPI(
            title=info.get('title') or "ContractMock Mock Server",
            description="Mock HTTP server generating responses from an API contract",
            version=str(info.get('version') or "1.0.0")
        )

        if self.config.cors_enabled:
            app.add_middleware(
                CORSMiddleware,
                allow_origins=["*"],
                allow_methods=["*"],
                allow_headers=["*"]
            )

        # Admin API routes
        if self.config.admin_enabled:
            self._add_admin_routes(app)

        for endpoint in self.contract.get('endpoints') or []:
            self._add_contract_route(app, endpoint)

        self.logger.debug(f"Registered {len(self.routes)} contract routes")
        return app

    def _add_admin_routes(self, app: FastAPI):
        prefix = self.config.admin_prefix

        @app.get(f"{prefix}/metrics")
        async def get_metrics():
            """Get server metrics."""
            return JSONResponse(content=self.metrics.to_dict())

        @app.post(f"{prefix}/reset")
        async def reset_metrics():
            """Reset metrics."""
            self.metrics = MockMetrics()
            return JSONResponse(content={'status': 'reset'})

        @app.get(f"{prefix}/config")
        async def get_config():
            """Get current configuration."""
            return JSONResponse(content={
                **self.config.to_dict(),
                'total_endpoints': len(self.routes)
            })

        @app.post(f"{prefix}/config")
        async def update_config(request: Request):
            """Update configuration at runtime."""
            body = safe_json_parse(await request.body(), default={})
            if not isinstance(body, dict):
                return JSONResponse(content={'error': 'Expected a JSON object'}, status_code=400)

            try:
                if 'scenario' in body:
                    scenario = Scenario.parse(body['scenario'])
                    self.dispatcher.scenario = scenario
                    self.config.scenario = scenario.value
                if 'error_rate' in body:
                    error_rate = float(body['error_rate'])
                    if not 0.0 <= error_rate <= 1.0:
                        raise ValueError(f"error_rate must be between 0.0 and 1.0, got {error_rate}")
                    self.dispatcher.error_rate = error_rate
                    self.config.error_rate = error_rate
                if 'verbose_mode' in body:
                    self.config.verbose_mode = bool(body['verbose_mode'])
            except (TypeError, ValueError) as e:
                return JSONResponse(content={'error': str(e)}, status_code=400)

            self.logger.info(f"Configuration updated: {sorted(body)}")
            return JSONResponse(content={'status': 'updated', 'config': self.config.to_dict()})

        @app.get(f"{prefix}/endpoints")
        async def list_endpoints():
            """List the contract routes being mocked."""
            endpoints = [
                {
                    'method': route.method.value,
                    'path': route.endpoint.path,
                    'operation_id': route.endpoint.operation_id,
                    'entity_type': route.entity_type,
                    'handler': route.handler.__name__.lstrip('_')
                }
                for route in self.routes
            ]
            return JSONResponse(content={
                'total': len(endpoints),
                'endpoints': endpoints
            })

        @app.get(f"{prefix}/store")
        async def get_store_summary():
            """Live and deleted record counts per entity type."""
            return JSONResponse(content={'entities': self.store.stats()})

        @app.get(f"{prefix}/store/{{entity_type}}")
        async def get_store_records(entity_type: str):
            """Live records of one entity type."""
            records = self.store.get_all_records(entity_type)
            return JSONResponse(content={
                'entity_type': entity_type,
                'total': len(records),
                'records': records
            })

    def _add_contract_route(self, app: FastAPI, endpoint: Dict[str, Any]):
        """Bind an endpoint and register it with FastAPI."""
        try:
            route = self.dispatcher.bind(endpoint)
        except ValueError as e:
            self.logger.warning(f"Skipping endpoint {endpoint.get('method')} {endpoint.get('path')}: {e}")
            return

        route_path, param_names = sanitize_path(route.endpoint.path)

        async def mock_request(request: Request):
            """Handle incoming requests and serve mock responses."""
            return await self._handle_request(request, route, param_names)

        app.add_api_route(
            route_path,
            mock_request,
            methods=[route.method.value],
            name=route.endpoint.operation_id or f"{route.method.value} {route.endpoint.path}",
            include_in_schema=False
        )
        self.routes.append(route)

    async def _handle_request(
        self,
        request: Request,
        route: BoundRoute,
        param_names: Dict[str, str]
    ) -> Response:
        """
        Handle incoming request and serve mock response.

        Args:
            request: FastAPI Request object
            route: Bound contract route
            param_names: Sanitised -> contract path parameter names

        Returns:
            FastAPI Response with mocked data
        """
        start_time = time.time()
        self.metrics.total_requests += 1

        method = request.method
        url = request.url.path

        self.logger.debug(f"Incoming: {method} {url}")
        if self.config.verbose_mode:
            print(f"[{datetime.now().strftime('%H:%M:%S')}] {method} {url}")

        path_params = {param_names.get(name, name): value for name, value in request.path_params.items()}
        result = route.handle(
            path_params=path_params,
            query=dict(request.query_params),
            body=await request.body()
        )
        self.metrics.record(result)

        elapsed_ms = (time.time() - start_time) * 1000

        if result.status_code >= 500:
            self.logger.warning(f"{method} {url} -> {result.status_code}")

        if self.config.verbose_mode:
            status_mark = "✓" if 200 <= result.status_code < 300 else "✗"
            flags = " (injected)" if result.injected else ""
            print(f"[{datetime.now().strftime('%H:%M:%S')}]   {status_mark} {result.status_code}{flags} ({elapsed_ms:.1f}ms)")

        if not result.has_body:
            return Response(status_code=result.status_code)
        return JSONResponse(content=result.body, status_code=result.status_code)

    def start(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        access_log: bool = True
    ):
        """
        Start the mock server.

        Args:
            host: Host to bind to (overrides config)
            port: Port to bind to (overrides config)
            access_log: Enable access logging
        """
        actual_host = host or self.config.host
        actual_port = port or self.config.port

        print(f"🚀 ContractMock Mock Server starting...")
        print(f"   Host: {actual_host}:{actual_port}")
        print(f"   Endpoints: {len(self.routes)}")
        print(f"   Scenario: {self.config.scenario}")

        if self.config.seed is not None:
            print(f"   Seed: {self.config.seed}")

        if self.config.admin_enabled:
            print(f"   Admin API: http://{actual_host}:{actual_port}{self.config.admin_prefix}/metrics")

        if self.config.scenario == Scenario.ERRORS.value:
            print(f"   ⚠️  Error injection enabled ({self.config.error_rate * 100:.0f}% of requests)")

        print()

        uvicorn.run(
            self.app,
            host=actual_host,
            port=actual_port,
            log_level=self.config.log_level,
            access_log=access_log
        )

    def get_app(self) -> FastAPI:
        """
        Get the FastAPI app instance for testing or custom deployment.

        Returns:
            FastAPI application instance
        """
        return self.app


def create_mock_server(
    contract: Union[str, Path, Dict[str, Any]],
    host: str = "127.0.0.1",
    port: int = 3001,
    scenario: str = "demo",
    seed: Optional[int] = None,
    faker_locale: str = "en_US",
    error_rate: float = DEFAULT_ERROR_RATE,
    cors_enabled: bool = False,
    verbose_mode: bool = False
) -> MockServer:
    """
    Convenience function to create and configure a mock server.

    Args:
        contract: Path to an OpenAPI contract, or a parsed contract
        host: Host to bind to
        port: Port to bind to
        scenario: Data scenario (demo, realistic, large, errors)
        seed: Seed for reproducible data
        faker_locale: Faker locale for generated values
        error_rate: Injected error probability in the errors scenario
        cors_enabled: Allow cross-origin requests from any origin
        verbose_mode: Print each request and response status

    Returns:
        Configured MockServer instance

    Example:
        server = create_mock_server(
            'api-contract.yaml',
            port=3001,
            scenario='realistic',
            seed=42,
            cors_enabled=True
        )
        server.start()
    """
    config = MockConfig(
        host=host,
        port=port,
        scenario=scenario,
        seed=seed,
        faker_locale=faker_locale,
        error_rate=error_rate,
        cors_enabled=cors_enabled,
        verbose_mode=verbose_mode
    )

    return MockServer(contract, config=config)
