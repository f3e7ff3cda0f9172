"""
ContractMock Engine Errors

Exception types raised inside the mock engine. Every one of them is caught at
the dispatcher boundary and turned into a JSON response, so none of them ever
reaches the ASGI server.
"""

from typing import Any, Dict, List, Optional


class MockEngineError(Exception):
    """Base class for mock engine failures."""


class GenerationError(MockEngineError):
    """Unexpected failure while generating mock data."""


class RequestValidationError(MockEngineError):
    """Request body failed required-field or type checks."""

    def __init__(self, errors: List[Dict[str, str]], message: str = "Validation failed"):
        super().__init__(message)
        self.errors = errors
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the 400 response body."""
        return {
            'message': self.message,
            'code': 'validation_error',
            'details': {
                'errors': self.errors
            }
        }


class RecordNotFoundError(MockEngineError):
    """Record is missing or was deleted."""

    def __init__(self, entity_type: str, record_id: Optional[Any] = None):
        super().__init__(f"{entity_type} not found")
        self.entity_type = entity_type
        self.record_id = record_id

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the 404 response body."""
        return {
            'message': f"{self.entity_type} not found",
            'code': 'not_found'
        }


class InjectedError(MockEngineError):
    """Synthetic failure produced by the errors scenario."""

    def __init__(self, status_code: int, body: Dict[str, Any]):
        super().__init__(body.get('error', 'Injected error'))
        self.status_code = status_code
        self.body = body
