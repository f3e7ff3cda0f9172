"""
ContractMock Request Validator

Lightweight request body checks run before a write is dispatched: required
fields, declared types and a few string formats. Anything deeper is out of
scope for a mock server.
"""

import re
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from ..common import Endpoint
from .errors import RequestValidationError
from .schema import SchemaResolver


VALIDATED_METHODS = ('POST', 'PUT', 'PATCH')

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
UUID_PATTERN = re.compile(
    r'^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$',
    re.IGNORECASE
)


def _is_date(value: str) -> bool:
    try:
        date.fromisoformat(value)
        return True
    except ValueError:
        return _is_datetime(value)


def _is_datetime(value: str) -> bool:
    try:
        datetime.fromisoformat(value.replace('Z', '+00:00'))
        return True
    except ValueError:
        return False


def matches_type(value: Any, expected_type: str, fmt: Optional[str] = None) -> bool:
    """
    Check a JSON value against a declared schema type (and string format).

    Unknown types are accepted.
    """
    if expected_type == 'string':
        if not isinstance(value, str):
            return False
        if fmt == 'email':
            return bool(EMAIL_PATTERN.match(value))
        if fmt == 'uuid':
            return bool(UUID_PATTERN.match(value))
        if fmt == 'date':
            return _is_date(value)
        if fmt == 'date-time':
            return _is_datetime(value)
        return True

    if expected_type in ('number', 'integer'):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        if expected_type == 'integer':
            return isinstance(value, int) or value.is_integer()
        return True

    if expected_type == 'boolean':
        return isinstance(value, bool)
    if expected_type == 'array':
        return isinstance(value, list)
    if expected_type == 'object':
        return isinstance(value, dict)

    return True


class RequestValidator:
    """
    Validates request bodies against an endpoint's declared request schema.

    Only POST/PUT/PATCH endpoints whose request body is marked required are
    checked.

    Example:
        validator = RequestValidator(resolver)
        errors = validator.validate(endpoint, {'name': ''})
        # [{'field': 'name', 'message': "'name' is required", 'code': 'required_field_missing'}]
    """

    def __init__(self, resolver: SchemaResolver):
        self.resolver = resolver

    def applies_to(self, endpoint: Endpoint) -> bool:
        """Whether requests to this endpoint get their body validated."""
        return (
            endpoint.method in VALIDATED_METHODS
            and endpoint.request_body_required
            and endpoint.request_body_schema() is not None
        )

    def validate(self, endpoint: Endpoint, body: Any) -> List[Dict[str, str]]:
        """
        Collect validation errors for a request body.

        Args:
            endpoint: Target endpoint
            body: Parsed JSON body (None when the request had none)

        Returns:
            List of {field, message, code} dicts, empty when valid
        """
        if not self.applies_to(endpoint):
            return []

        node = self.resolver.resolve(endpoint.request_body_schema())
        if not node.is_object:
            if node.declared_type and body is not None and not matches_type(body, node.declared_type, node.format):
                return [{
                    'field': 'body',
                    'message': f"Request body must be of type {node.declared_type}",
                    'code': 'invalid_type'
                }]
            return []

        if body is None:
            body = {}
        if not isinstance(body, dict):
            return [{
                'field': 'body',
                'message': "Request body must be a JSON object",
                'code': 'invalid_type'
            }]

        properties, required = self.resolver.flatten(node)
        errors = []

        for field_name in required:
            if body.get(field_name) in (None, ''):
                errors.append({
                    'field': field_name,
                    'message': f"'{field_name}' is required",
                    'code': 'required_field_missing'
                })

        for field_name, field_schema in properties.items():
            value = body.get(field_name)
            if value is None:
                continue

            field_node = self.resolver.resolve(field_schema)
            expected_type = field_node.declared_type
            if expected_type is None and field_node.is_object:
                expected_type = 'object'

            if expected_type and not matches_type(value, expected_type, field_node.format):
                errors.append({
                    'field': field_name,
                    'message': f"'{field_name}' must be of type {expected_type}",
                    'code': 'invalid_type'
                })

        return errors

    def ensure_valid(self, endpoint: Endpoint, body: Any):
        """
        Raise if the body fails validation.

        Raises:
            RequestValidationError: With the collected field errors
        """
        errors = self.validate(endpoint, body)
        if errors:
            raise RequestValidationError(errors)
