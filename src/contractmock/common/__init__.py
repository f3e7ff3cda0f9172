"""
ContractMock Common Utilities

Shared utilities and helpers used across ContractMock modules.
"""

from .utils import safe_json_parse, coerce_int, singularize
from .contract import ContractLoader, Endpoint, content_schema

__all__ = [
    'safe_json_parse',
    'coerce_int',
    'singularize',
    'ContractLoader',
    'Endpoint',
    'content_schema'
]
