"""
ContractMock Schema Resolver

Expands contract schema constructs into a concrete shape ready for mock data
generation.

Handles:
- $ref lookup against the contract's component schemas
- oneOf / anyOf (first variant wins, for reproducible output)
- allOf (sub-schemas resolved independently, merged by the generator)
- enum (closed value sets)
- OpenAPI 3.1 nullable type lists

Resolution only ever goes one level deep: nested property and item schemas are
kept raw and resolved lazily as the generator descends, so recursive schemas
cost nothing until they are actually walked.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Tuple


logger = logging.getLogger(__name__)


KNOWN_TYPES = ('object', 'array', 'string', 'number', 'integer', 'boolean')

# Shape used whenever a schema cannot be resolved
GENERIC_FALLBACK_SCHEMA = {
    'type': 'object',
    'properties': {
        'id': {'type': 'string', 'format': 'uuid'},
        'name': {'type': 'string'}
    },
    'required': ['id', 'name']
}


@dataclass(frozen=True)
class SchemaNode:
    """Resolved description of a value's shape."""

    kind: str
    declared_type: Optional[str] = None
    properties: Dict[str, Any] = field(default_factory=dict)
    required: Tuple[str, ...] = ()
    items: Optional[Dict[str, Any]] = None
    format: Optional[str] = None
    enum: Tuple[Any, ...] = ()
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    all_of: Tuple['SchemaNode', ...] = ()
    ref: Optional[str] = None
    fallback: bool = False

    @property
    def is_object(self) -> bool:
        """Whether the node materialises as a dict."""
        return self.kind in ('object', 'all_of')

    @property
    def is_primitive(self) -> bool:
        return self.kind in ('string', 'number', 'integer', 'boolean', 'unknown')


def ref_name(ref: str) -> str:
    """Schema name from a reference like ``#/components/schemas/Pet``."""
    return str(ref).rstrip('/').split('/')[-1]


def is_ref_to(schema: Optional[Dict[str, Any]], names: Iterable[str]) -> bool:
    """Whether a raw schema is a $ref to one of the given schema names."""
    if not isinstance(schema, dict) or '$ref' not in schema:
        return False
    return ref_name(schema['$ref']) in set(names)


class SchemaResolver:
    """
    Resolves raw contract schemas into SchemaNode instances.

    The resolver never raises and never mutates the registry: unresolvable
    references are logged and replaced by GENERIC_FALLBACK_SCHEMA so the mock
    server keeps answering.

    Example:
        resolver = SchemaResolver(contract['components']['schemas'])
        node = resolver.resolve({'$ref': '#/components/schemas/Pet'})
        print(node.kind, list(node.properties))
    """

    def __init__(self, registry: Optional[Dict[str, Any]] = None):
        """
        Initialize schema resolver.

        Args:
            registry: Contract-declared schemas keyed by name
        """
        self.registry = registry or {}

    def resolve(self, schema: Any, _seen: Tuple[str, ...] = ()) -> SchemaNode:
        """
        Resolve a raw schema into a concrete node.

        Args:
            schema: Raw schema dict (may contain $ref/oneOf/anyOf/allOf/enum)

        Returns:
            Resolved SchemaNode
        """
        current = schema
        seen = _seen
        resolved_ref = None

        while True:
            if not isinstance(current, dict):
                logger.warning(f"Schema is not an object ({type(current).__name__}), using generic fallback")
                return self._fallback()

            if '$ref' in current:
                name = ref_name(current['$ref'])
                if name in seen:
                    logger.warning(f"Circular schema reference: {' -> '.join(seen + (name,))}")
                    return self._fallback(name)

                target = self.registry.get(name)
                if not isinstance(target, dict):
                    logger.warning(f"Schema reference not found: {current['$ref']}")
                    return self._fallback(name)

                seen = seen + (name,)
                resolved_ref = name
                current = target
                continue

            union_key = 'oneOf' if 'oneOf' in current else 'anyOf' if 'anyOf' in current else None
            if union_key:
                variants = current[union_key]
                if not isinstance(variants, list) or not variants:
                    logger.warning(f"Empty {union_key} in schema, using generic fallback")
                    return self._fallback(resolved_ref)
                # Only the first variant is ever generated
                current = variants[0]
                continue

            break

        if isinstance(current.get('allOf'), list) and current['allOf']:
            return self._resolve_all_of(current, seen, resolved_ref)

        return self._build_node(current, resolved_ref)

    def _resolve_all_of(
        self,
        schema: Dict[str, Any],
        seen: Tuple[str, ...],
        resolved_ref: Optional[str]
    ) -> SchemaNode:
        """Resolve every allOf member, plus any sibling properties as a last member."""
        members = [self.resolve(sub, seen) for sub in schema['allOf']]

        siblings = {k: v for k, v in schema.items() if k != 'allOf'}
        if siblings.get('properties') or siblings.get('required'):
            members.append(self._build_node(siblings, None))

        required = []
        for member in members:
            for name in member.required:
                if name not in required:
                    required.append(name)

        return SchemaNode(
            kind='all_of',
            declared_type='object',
            required=tuple(required),
            all_of=tuple(members),
            ref=resolved_ref
        )

    def _build_node(self, schema: Dict[str, Any], resolved_ref: Optional[str]) -> SchemaNode:
        """Build a node from a schema that has no $ref/oneOf/allOf left."""
        declared_type = self._declared_type(schema.get('type'))
        enum_values = schema.get('enum')

        if isinstance(enum_values, list) and enum_values:
            kind = 'enum'
        elif declared_type is None:
            if 'properties' in schema:
                kind = 'object'
            elif 'items' in schema:
                kind = 'array'
            else:
                kind = 'string'
        elif declared_type in KNOWN_TYPES:
            kind = declared_type
        else:
            kind = 'unknown'

        properties = schema.get('properties')
        required = schema.get('required')

        return SchemaNode(
            kind=kind,
            declared_type=declared_type,
            properties=dict(properties) if isinstance(properties, dict) else {},
            required=tuple(required) if isinstance(required, list) else (),
            items=schema.get('items') if isinstance(schema.get('items'), dict) else None,
            format=schema.get('format'),
            enum=tuple(enum_values) if isinstance(enum_values, list) else (),
            minimum=schema.get('minimum'),
            maximum=schema.get('maximum'),
            min_length=schema.get('minLength'),
            max_length=schema.get('maxLength'),
            ref=resolved_ref
        )

    @staticmethod
    def _declared_type(type_value: Any) -> Optional[str]:
        """Normalise ``type``, picking the first non-null entry of a 3.1 type list."""
        if isinstance(type_value, list):
            non_null = [t for t in type_value if t != 'null']
            return non_null[0] if non_null else None
        return type_value if isinstance(type_value, str) else None

    def _fallback(self, name: Optional[str] = None) -> SchemaNode:
        node = self._build_node(GENERIC_FALLBACK_SCHEMA, name)
        return SchemaNode(
            kind=node.kind,
            declared_type=node.declared_type,
            properties=node.properties,
            required=node.required,
            ref=name,
            fallback=True
        )

    def flatten(self, node: SchemaNode) -> Tuple[Dict[str, Any], Tuple[str, ...]]:
        """
        Merge an object or allOf node into one property map.

        Later allOf members override earlier ones on property collisions;
        required names are unioned in declaration order.

        Args:
            node: Resolved node

        Returns:
            Tuple of (properties, required)
        """
        if node.kind != 'all_of':
            return dict(node.properties), node.required

        properties: Dict[str, Any] = {}
        required = list(node.required)
        for member in node.all_of:
            member_props, member_required = self.flatten(member)
            properties.update(member_props)
            for name in member_required:
                if name not in required:
                    required.append(name)

        return properties, tuple(required)

    def item_property_count(self, node: SchemaNode) -> Optional[int]:
        """Property count of an array node's item object, None for non-object items."""
        if node.items is None:
            return None
        item = self.resolve(node.items)
        if not item.is_object:
            return None
        properties, _ = self.flatten(item)
        return len(properties)
