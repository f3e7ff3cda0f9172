"""
ContractMock Mock Server Module

Contract-driven mock HTTP server functionality.

This module provides:
- FastAPI-based mock server
- Schema resolution and context inference
- Faker-backed mock data generation
- Stateful record store with tombstones
- Request dispatching with error injection
"""

from .server import MockServer, MockConfig, MockMetrics, create_mock_server, sanitize_path
from .schema import SchemaResolver, SchemaNode
from .context import ContextInferencer, GenerationContext, EntityPattern
from .generator import MockDataGenerator, Scenario
from .store import PersistentStore
from .validator import RequestValidator
from .dispatcher import RequestDispatcher, BoundRoute, DispatchResult, HttpMethod
from .errors import (
    MockEngineError,
    GenerationError,
    RequestValidationError,
    RecordNotFoundError,
    InjectedError
)

__all__ = [
    # Server
    'MockServer',
    'MockConfig',
    'MockMetrics',
    'create_mock_server',
    'sanitize_path',

    # Engine
    'SchemaResolver',
    'SchemaNode',
    'ContextInferencer',
    'GenerationContext',
    'EntityPattern',
    'MockDataGenerator',
    'Scenario',
    'PersistentStore',
    'RequestValidator',
    'RequestDispatcher',
    'BoundRoute',
    'DispatchResult',
    'HttpMethod',

    # Errors
    'MockEngineError',
    'GenerationError',
    'RequestValidationError',
    'RecordNotFoundError',
    'InjectedError',
]

__version__ = '1.0.0'
