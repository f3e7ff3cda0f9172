"""
ContractMock Contract Model

Loads OpenAPI 3 documents (YAML or JSON) into the flat endpoint structure the
mock engine consumes, and normalises individual endpoint definitions.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml


HTTP_METHODS = ('get', 'post', 'put', 'patch', 'delete', 'head', 'options', 'trace')

SUCCESS_STATUS_PREFERENCE = ('200', '201', '202')

PATH_PARAM_PATTERN = re.compile(r'\{([^}]+)\}')


def content_schema(definition: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """
    Pull the schema out of a response or request body definition.

    Accepts both the flat form ``{schema: ...}`` and the OpenAPI 3 form
    ``{content: {"application/json": {schema: ...}}}``. Falls back to the first
    JSON-like media type when ``application/json`` is absent.

    Args:
        definition: Response or request body definition

    Returns:
        Schema dict, or None if the definition carries none
    """
    if not isinstance(definition, dict):
        return None

    if isinstance(definition.get('schema'), dict):
        return definition['schema']

    content = definition.get('content') or {}
    media = content.get('application/json')
    if media is None:
        media = next(
            (value for key, value in content.items() if 'json' in key or key == '*/*'),
            None
        )

    if isinstance(media, dict) and isinstance(media.get('schema'), dict):
        return media['schema']
    return None


@dataclass
class Endpoint:
    """A single contract operation, normalised for the mock engine."""

    path: str
    method: str
    tags: List[str] = field(default_factory=list)
    operation_id: Optional[str] = None
    summary: Optional[str] = None
    parameters: List[Dict[str, Any]] = field(default_factory=list)
    request_body: Optional[Dict[str, Any]] = None
    responses: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Endpoint':
        """Create Endpoint from a parsed contract endpoint dict."""
        spec = data.get('spec') or {}
        responses = data.get('responses') or spec.get('responses') or {}

        return cls(
            path=data.get('path', '/'),
            method=str(data.get('method', 'GET')).upper(),
            tags=list(data.get('tags') or spec.get('tags') or []),
            operation_id=data.get('operationId') or spec.get('operationId'),
            summary=data.get('summary'),
            parameters=list(data.get('parameters') or spec.get('parameters') or []),
            request_body=data.get('requestBody') or spec.get('requestBody'),
            responses={str(code): (value or {}) for code, value in responses.items()}
        )

    @property
    def path_params(self) -> List[str]:
        """Names of the path template parameters, in order."""
        return PATH_PARAM_PATTERN.findall(self.path)

    @property
    def record_id_param(self) -> Optional[str]:
        """
        Name of the parameter that identifies a single record.

        This is the parameter occupying the final path segment, e.g. ``id``
        for ``/pets/{id}`` or ``petId`` for ``/pets/{petId}``. Collection paths
        such as ``/users/{userId}/orders`` have none.
        """
        segments = [s for s in self.path.split('/') if s]
        if not segments:
            return None
        match = PATH_PARAM_PATTERN.fullmatch(segments[-1])
        return match.group(1) if match else None

    def success_response(self) -> Optional[Dict[str, Any]]:
        """Preferred success response definition (200, 201, 202, else first)."""
        for code in SUCCESS_STATUS_PREFERENCE:
            if code in self.responses:
                return self.responses[code]
        if self.responses:
            return next(iter(self.responses.values()))
        return None

    def success_schema(self) -> Optional[Dict[str, Any]]:
        """Schema of the preferred success response."""
        return content_schema(self.success_response())

    def success_status_code(self) -> int:
        """First declared 2xx status code, 200 if none."""
        for code in self.responses:
            if code.startswith('2') and code.isdigit():
                return int(code)
        return 200

    def error_status_codes(self) -> List[str]:
        """Declared 4xx/5xx status codes."""
        return [
            code for code in self.responses
            if code.isdigit() and code[0] in ('4', '5')
        ]

    def request_body_schema(self) -> Optional[Dict[str, Any]]:
        """Schema of the request body, if one is declared."""
        return content_schema(self.request_body)

    @property
    def request_body_required(self) -> bool:
        """Whether the contract marks the request body as required."""
        return bool(self.request_body and self.request_body.get('required'))

    def path_param_type(self, name: str) -> Optional[str]:
        """Declared type of a path parameter, if the contract states one."""
        for param in self.parameters:
            if param.get('name') == name and param.get('in', 'path') == 'path':
                schema = param.get('schema') or {}
                return schema.get('type') or param.get('type')
        return None


class ContractLoader:
    """
    Loader for OpenAPI 3 contract files.

    Reads YAML or JSON (JSON is valid YAML) and extracts one endpoint per HTTP
    operation. No validation or dereferencing happens here: ``$ref`` pointers
    are kept as-is and resolved lazily by the schema resolver.

    Example:
        loader = ContractLoader("api-contract.yaml")
        contract = loader.load()

        for endpoint in contract['endpoints']:
            print(endpoint['method'], endpoint['path'])
    """

    def __init__(self, file_path: str):
        """
        Initialize contract loader.

        Args:
            file_path: Path to the OpenAPI contract file
        """
        self.file_path = Path(file_path)

    def load(self) -> Dict[str, Any]:
        """
        Load and flatten the contract.

        Returns:
            Dict with info, endpoints, components and schemas

        Raises:
            FileNotFoundError: If the contract file doesn't exist
            ValueError: If the document is not an OpenAPI mapping with paths
        """
        if not self.file_path.exists():
            raise FileNotFoundError(f"Contract file not found: {self.file_path}")

        with open(self.file_path, 'r', encoding='utf-8') as f:
            try:
                document = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ValueError(f"Contract parsing failed in {self.file_path}: {e}") from e

        return self.parse(document, source=str(self.file_path))

    @staticmethod
    def parse(document: Any, source: str = '<contract>') -> Dict[str, Any]:
        """
        Flatten an already-parsed OpenAPI document.

        Args:
            document: Parsed OpenAPI document
            source: Name used in error messages

        Returns:
            Dict with info, endpoints, components and schemas
        """
        if not isinstance(document, dict):
            raise ValueError(
                f"Unexpected contract format in {source}. "
                f"Expected a mapping, got {type(document).__name__}"
            )
        if not isinstance(document.get('paths'), dict):
            raise ValueError(f"Contract {source} has no 'paths' section")

        components = document.get('components') or {}

        return {
            'info': document.get('info', {}),
            'openapi': document.get('openapi'),
            'endpoints': ContractLoader._extract_endpoints(document['paths']),
            'components': components,
            'schemas': components.get('schemas') or {}
        }

    @staticmethod
    def _extract_endpoints(paths: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Extract one endpoint dict per HTTP operation."""
        endpoints = []

        for path, path_item in paths.items():
            if not isinstance(path_item, dict):
                continue

            shared_params = path_item.get('parameters') or []

            for method, operation in path_item.items():
                if method.lower() not in HTTP_METHODS or not isinstance(operation, dict):
                    continue

                # Operation-level parameters override path-level ones
                params = {(p.get('name'), p.get('in')): p for p in shared_params if isinstance(p, dict)}
                for p in operation.get('parameters') or []:
                    if isinstance(p, dict):
                        params[(p.get('name'), p.get('in'))] = p

                endpoints.append({
                    'path': str(path),
                    'method': method.upper(),
                    'operationId': operation.get('operationId'),
                    'summary': operation.get('summary'),
                    'description': operation.get('description'),
                    'tags': operation.get('tags') or [],
                    'parameters': list(params.values()),
                    'requestBody': operation.get('requestBody'),
                    'responses': {
                        str(code): (response or {})
                        for code, response in (operation.get('responses') or {}).items()
                    }
                })

        return endpoints

    @staticmethod
    def load_from_file(file_path: str) -> Dict[str, Any]:
        """
        Convenience method to load a contract in one call.

        Example:
            contract = ContractLoader.load_from_file("api-contract.yaml")
        """
        return ContractLoader(file_path).load()
