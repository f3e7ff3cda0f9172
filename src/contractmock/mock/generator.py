"""
ContractMock Mock Data Generator

Schema-driven mock data generation for the mock server.

Features:
- Recursive generation from resolved contract schemas
- Scenario size policies (demo, realistic, large, errors)
- Memory-bounded arrays (item ceilings by item complexity)
- Context-aware values (product names for products, person names for users)
- Id correlation with the requested path parameter
- Total: every schema, even a broken one, yields a usable value
- Seedable Faker instance for reproducible runs
"""

import base64
import json
import logging
import math
import re
import string
from datetime import timezone
from enum import Enum
from typing import Any, Dict, Optional, Union

from faker import Faker

from ..common import coerce_int
from .context import ContextInferencer, GenerationContext
from .schema import SchemaNode, SchemaResolver


logger = logging.getLogger(__name__)


# Array memory limits
DEFAULT_MAX_ITEMS = 1000
MAX_ITEMS_VERY_COMPLEX_OBJECTS = 50
MAX_ITEMS_MODERATELY_COMPLEX_OBJECTS = 100
MAX_ITEMS_SIMPLE_OBJECTS = 200

MAX_DEPTH = 10


class Scenario(str, Enum):
    """Named generation policy."""

    DEMO = 'demo'
    REALISTIC = 'realistic'
    LARGE = 'large'
    ERRORS = 'errors'

    @classmethod
    def parse(cls, value: Union[str, 'Scenario']) -> 'Scenario':
        """Parse a scenario name (case-insensitive)."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            choices = ', '.join(s.value for s in cls)
            raise ValueError(f"Unknown scenario '{value}'. Choose one of: {choices}") from None


# (min, max) item count per scenario
ITEM_COUNT_RANGES = {
    Scenario.DEMO: (3, 3),
    Scenario.REALISTIC: (5, 15),
    Scenario.LARGE: (50, 100),
    Scenario.ERRORS: (2, 8),
}

ID_FIELD_PATTERN = re.compile(r'(^(id|ID|uuid|guid)$)|(_id|Id|ID|_uuid|Uuid)$')

_ALPHANUMERIC = string.ascii_letters + string.digits

_DEPARTMENTS = (
    'Books', 'Movies', 'Music', 'Games', 'Electronics', 'Computers', 'Home',
    'Garden', 'Tools', 'Grocery', 'Health', 'Beauty', 'Toys', 'Kids', 'Baby',
    'Clothing', 'Shoes', 'Jewelery', 'Sports', 'Outdoors', 'Automotive', 'Industrial'
)

_PRODUCT_ADJECTIVES = (
    'Small', 'Ergonomic', 'Rustic', 'Intelligent', 'Gorgeous', 'Incredible',
    'Fantastic', 'Practical', 'Sleek', 'Awesome', 'Generic', 'Handcrafted',
    'Handmade', 'Licensed', 'Refined', 'Unbranded', 'Tasty', 'Elegant'
)

_PRODUCT_MATERIALS = (
    'Steel', 'Wooden', 'Concrete', 'Plastic', 'Cotton', 'Granite', 'Rubber',
    'Metal', 'Soft', 'Fresh', 'Frozen', 'Bronze', 'Silk', 'Leather'
)

_PRODUCT_NOUNS = (
    'Chair', 'Car', 'Computer', 'Keyboard', 'Mouse', 'Bike', 'Ball', 'Gloves',
    'Pants', 'Shirt', 'Table', 'Shoes', 'Hat', 'Towels', 'Soap', 'Tuna',
    'Chicken', 'Fish', 'Cheese', 'Bacon', 'Pizza', 'Salad', 'Sausages', 'Chips'
)

_PERSON_NAME_KEYS = ('fullname', 'displayname', 'firstname', 'lastname', 'username')


def is_id_field(name: str) -> bool:
    """Whether a property name denotes an identifier (``id``, ``userId``, ``user_id``)."""
    return bool(ID_FIELD_PATTERN.search(name))


def _normalize_key(name: str) -> str:
    return re.sub(r'[_\-\s]', '', name.lower())


class MockDataGenerator:
    """
    Schema-driven mock data generator.

    Walks a contract schema and produces a value for it, applying (in order)
    entity-specific heuristics, property name/format heuristics and finally a
    scenario-sensitive fallback per declared type.

    Example:
        generator = MockDataGenerator(
            resolver=SchemaResolver(contract['components']['schemas']),
            scenario='realistic',
            seed=42
        )
        pets = generator.generate({'type': 'array', 'items': {'$ref': '#/components/schemas/Pet'}})

        # Correlate the generated id with a path parameter
        context = GenerationContext(entity='pet').with_correlation('7', 'integer')
        pet = generator.generate({'$ref': '#/components/schemas/Pet'}, context=context)
        assert pet['id'] == 7
    """

    def __init__(
        self,
        resolver: Optional[SchemaResolver] = None,
        inferencer: Optional[ContextInferencer] = None,
        scenario: Union[str, Scenario] = Scenario.DEMO,
        seed: Optional[int] = None,
        locale: str = 'en_US',
        max_depth: int = MAX_DEPTH
    ):
        """
        Initialize mock data generator.

        Args:
            resolver: Schema resolver holding the contract's schemas
            inferencer: Context inferencer used for nested objects
            scenario: Default generation scenario
            seed: Seed for reproducible output (None = random)
            locale: Faker locale
            max_depth: Recursion depth past which fallbacks are used
        """
        self.resolver = resolver or SchemaResolver()
        self.inferencer = inferencer or ContextInferencer()
        self.scenario = Scenario.parse(scenario)
        self.max_depth = max_depth

        self.faker = Faker(locale)
        if seed is not None:
            self.faker.seed_instance(seed)

    def generate(
        self,
        schema: Any,
        context: Optional[GenerationContext] = None,
        scenario: Optional[Union[str, Scenario]] = None
    ) -> Any:
        """
        Generate a value for a schema.

        Args:
            schema: Raw schema dict or resolved SchemaNode
            context: Generation context (endpoint semantics, correlation id)
            scenario: Scenario override for this call

        Returns:
            Generated value; never None
        """
        active = Scenario.parse(scenario) if scenario is not None else self.scenario
        if schema is None:
            logger.warning("generate called without a schema")
            return {'_mock': True}

        return self._generate(schema, active, context or GenerationContext(), 0)

    def _generate(self, schema: Any, scenario: Scenario, context: GenerationContext, depth: int) -> Any:
        try:
            value = self._generate_node(schema, scenario, context, depth)
        except Exception as e:
            logger.warning(f"Mock generation failed ({type(e).__name__}: {e}), using fallback value")
            return self._fallback_for(schema)

        if value is None:
            return self._fallback_for(schema)
        return value

    def _generate_node(self, schema: Any, scenario: Scenario, context: GenerationContext, depth: int) -> Any:
        node = schema if isinstance(schema, SchemaNode) else self.resolver.resolve(schema)

        if depth > self.max_depth:
            logger.debug(f"Maximum generation depth {self.max_depth} reached in {context.path or 'schema'}")
            return self._depth_fallback(node, scenario)

        if node.ref is not None:
            # A named schema is expanded at most once per branch
            if node.ref in context.ref_chain:
                logger.debug(f"Recursive schema '{node.ref}' cut off in {context.path or 'schema'}")
                return self._depth_fallback(node, scenario)
            context = context.expanding(node.ref)

        if node.kind == 'all_of':
            return self._generate_all_of(node, scenario, context, depth)
        if node.kind == 'enum':
            return self._pick_enum(node, scenario)
        if node.kind == 'array':
            return self._generate_array(node, scenario, context, depth)
        if node.kind == 'object':
            return self._generate_object(node, scenario, context, depth)

        return self.generate_primitive_value(node, scenario)

    # ------------------------------------------------------------------
    # Structured values
    # ------------------------------------------------------------------

    def max_items_for(self, node: SchemaNode) -> int:
        """Item ceiling for an array node, derived from its item complexity."""
        property_count = self.resolver.item_property_count(node)
        if property_count is None:
            return DEFAULT_MAX_ITEMS
        if property_count > 10:
            return MAX_ITEMS_VERY_COMPLEX_OBJECTS
        if property_count > 5:
            return MAX_ITEMS_MODERATELY_COMPLEX_OBJECTS
        return MAX_ITEMS_SIMPLE_OBJECTS

    def item_count(self, scenario: Scenario, max_items: int = DEFAULT_MAX_ITEMS) -> int:
        """Draw an array length for the scenario, clamped to max_items."""
        low, high = ITEM_COUNT_RANGES.get(scenario, (3, 3))
        count = low if low == high else self.faker.random_int(min=low, max=high)
        return min(count, max_items, DEFAULT_MAX_ITEMS)

    def _generate_array(self, node: SchemaNode, scenario: Scenario, context: GenerationContext, depth: int) -> list:
        item_node = self.resolver.resolve(node.items if node.items is not None else {'type': 'string'})
        if item_node.ref is not None and item_node.ref in context.ref_chain:
            logger.debug(f"Recursive array of '{item_node.ref}' left empty in {context.path or 'schema'}")
            return []

        count = self.item_count(scenario, self.max_items_for(node))
        item_context = context.without_correlation()

        items = []
        for _ in range(count):
            try:
                item = self._generate_node(item_node, scenario, item_context, depth + 1)
            except Exception as e:
                logger.warning(f"Array item generation failed ({type(e).__name__}: {e}), using fallback item")
                item = self.generate_fallback_item(item_node)
            items.append(item)
        return items

    def _generate_object(self, node: SchemaNode, scenario: Scenario, context: GenerationContext, depth: int) -> Dict[str, Any]:
        obj: Dict[str, Any] = {}

        for prop_name, prop_schema in node.properties.items():
            if prop_name == 'id' and context.correlation_id is not None:
                obj[prop_name] = self._correlated_id(context, prop_schema)
            else:
                obj[prop_name] = self.generate_property_value(prop_name, prop_schema, scenario, context, depth + 1)

        # Required names the schema never declared as properties
        for prop_name in node.required:
            if prop_name not in obj:
                obj[prop_name] = self.generate_property_value(
                    prop_name, {'type': 'string'}, scenario, context.without_correlation(), depth + 1
                )

        return obj

    def _generate_all_of(self, node: SchemaNode, scenario: Scenario, context: GenerationContext, depth: int) -> Any:
        merged: Dict[str, Any] = {}
        last_value = None

        for member in node.all_of:
            value = self._generate(member, scenario, context, depth)
            if isinstance(value, dict):
                # Later members win on key collisions
                merged.update(value)
            else:
                last_value = value

        if merged or last_value is None:
            return merged
        return last_value

    def _correlated_id(self, context: GenerationContext, prop_schema: Any) -> Any:
        """Requested id in the representation the schema declares."""
        id_type = context.correlation_id_type or self.resolver.resolve(prop_schema).declared_type
        correlation_id = context.correlation_id

        if id_type in ('integer', 'number'):
            numeric = coerce_int(correlation_id)
            if numeric is not None:
                return numeric
            logger.warning(
                f"Requested id '{correlation_id}' is not numeric but the schema declares {id_type}; "
                f"keeping it as a string"
            )

        return correlation_id if isinstance(correlation_id, str) else str(correlation_id)

    def _pick_enum(self, node: SchemaNode, scenario: Scenario) -> Any:
        choices = [value for value in node.enum if value is not None]
        if not choices:
            return self.generate_primitive_value(SchemaNode(kind='string'), scenario)
        if scenario == Scenario.DEMO:
            return choices[0]
        return self.faker.random_element(choices)

    # ------------------------------------------------------------------
    # Property values
    # ------------------------------------------------------------------

    def generate_property_value(
        self,
        prop_name: str,
        schema: Any,
        scenario: Scenario,
        context: GenerationContext,
        depth: int = 1
    ) -> Any:
        """
        Generate the value of a named property.

        Args:
            prop_name: Property name (drives the heuristics)
            schema: Raw property schema
            scenario: Active scenario
            context: Context of the enclosing object
            depth: Current recursion depth

        Returns:
            Generated value
        """
        try:
            node = self.resolver.resolve(schema)

            if node.kind == 'array':
                return self._generate(node, scenario, context.without_correlation(), depth)

            if node.is_object:
                nested = self.inferencer.infer_nested_context(prop_name, context).without_correlation()
                return self._generate(node, scenario, nested, depth)

            if node.kind == 'enum':
                return self._pick_enum(node, scenario)

            value = self.generate_domain_specific_value(prop_name, node, context, scenario)
            if value is None:
                value = self._heuristic_value(prop_name, node, scenario)
            if value is None:
                value = self.generate_primitive_value(node, scenario)
            return value

        except Exception as e:
            logger.warning(f"Mock generation failed for property '{prop_name}' ({e}), using fallback value")
            return self._fallback_for(schema)

    def generate_domain_specific_value(
        self,
        prop_name: str,
        node: SchemaNode,
        context: GenerationContext,
        scenario: Scenario
    ) -> Optional[str]:
        """Entity-aware text for name/description/title properties, or None."""
        if node.kind != 'string':
            return None

        key = _normalize_key(prop_name)
        entity = context.entity

        if 'name' in key and key not in _PERSON_NAME_KEYS:
            if entity == 'category':
                return self.generate_category_name()
            if entity == 'product':
                return self.generate_product_name()
            if entity == 'user':
                return self.faker.name()
            if entity == 'review':
                return self.generate_review_title(scenario)
            return self._words(2)

        if 'description' in key or 'bio' in key:
            if entity == 'category':
                return self.faker.sentence() if scenario == Scenario.DEMO else self.faker.paragraph()
            if entity == 'product':
                return self.generate_product_description()
            if entity == 'review':
                return self.generate_review_comment(scenario)
            return self.faker.sentence() if scenario == Scenario.DEMO else self._paragraphs()

        if 'title' in key:
            if entity == 'review':
                return self.generate_review_title(scenario)
            if entity == 'product':
                return self.generate_product_name()
            return self._words(self.faker.random_int(min=3, max=8))

        return None

    def _heuristic_value(self, prop_name: str, node: SchemaNode, scenario: Scenario) -> Any:
        """Property name and format heuristics independent of the entity."""
        key = _normalize_key(prop_name)
        declared = node.declared_type
        textual = node.kind == 'string'
        fmt = node.format

        if textual:
            if fmt == 'email' or 'email' in key:
                return self.faker.email()
            if 'token' in key or 'jwt' in key:
                return self._jwt()
            if 'apikey' in key:
                return self._alphanumeric(32)
            if 'secret' in key or key.endswith('key'):
                return self._alphanumeric(64)
            if 'bearer' in key or 'authorization' in key:
                return f"Bearer {self._jwt()}"
            if fmt == 'date-time' or 'createdat' in key or 'updatedat' in key:
                return self._recent_datetime()
            if fmt == 'date' or 'date' in key:
                return self._recent_date()

        if is_id_field(prop_name):
            return self._id_value(prop_name, node, scenario)

        if textual:
            if fmt == 'uuid':
                return self.faker.uuid4()
            if 'username' in key:
                return self.faker.user_name()
            if 'firstname' in key:
                return self.faker.first_name()
            if 'lastname' in key:
                return self.faker.last_name()
            if 'name' in key:
                return self.faker.name()
            if 'address' in key:
                return self.faker.street_address()
            if 'city' in key:
                return self.faker.city()
            if 'country' in key:
                return self.faker.country()
            if 'phone' in key:
                return self.faker.phone_number()
            if fmt in ('uri', 'url') or 'url' in key or 'link' in key:
                return self.faker.url()

        if declared in (None, 'boolean') and ('active' in key or 'enabled' in key or 'verified' in key):
            return True if scenario == Scenario.DEMO else self.faker.pybool()

        if declared in (None, 'number', 'integer') and ('price' in key or 'amount' in key or 'cost' in key):
            return self._price(node.minimum, node.maximum, integral=declared == 'integer')

        if textual and ('description' in key or 'bio' in key):
            return self.faker.sentence() if scenario == Scenario.DEMO else self._paragraphs()

        return None

    def _id_value(self, prop_name: str, node: SchemaNode, scenario: Scenario) -> Any:
        """Id value honouring the declared type before any scenario guess."""
        upper = 100 if scenario == Scenario.DEMO else 100000

        if node.declared_type in ('integer', 'number'):
            return self.faker.random_int(min=1, max=upper)
        if node.declared_type == 'string':
            return self.faker.uuid4() if node.format == 'uuid' else self._alphanumeric(8)
        if node.format == 'uuid':
            return self.faker.uuid4()

        implied = 'integer' if scenario == Scenario.DEMO else 'uuid'
        logger.warning(
            f"ID field '{prop_name}' has no explicit type in schema, "
            f"defaulting to {implied} for scenario '{scenario.value}'"
        )
        return self.faker.random_int(min=1, max=100) if scenario == Scenario.DEMO else self.faker.uuid4()

    # ------------------------------------------------------------------
    # Primitive values
    # ------------------------------------------------------------------

    def generate_primitive_value(self, node: SchemaNode, scenario: Optional[Scenario] = None) -> Any:
        """
        Generic value for a primitive node, scenario-sensitive.

        Args:
            node: Resolved node
            scenario: Active scenario (defaults to the generator's)

        Returns:
            Generated primitive
        """
        scenario = scenario or self.scenario
        kind = node.kind

        if kind == 'string':
            formatted = self._format_value(node.format)
            if formatted is not None:
                return formatted
            if node.min_length is not None or node.max_length is not None:
                return self._bounded_text(node)
            return self._words(2) if scenario == Scenario.DEMO else self.faker.sentence()

        if kind == 'integer':
            low = node.minimum if node.minimum is not None else 1
            high = node.maximum if node.maximum is not None else (10000 if scenario == Scenario.LARGE else 1000)
            low, high = int(math.ceil(low)), int(math.floor(high))
            if high < low:
                return low
            return self.faker.random_int(min=low, max=high)

        if kind == 'number':
            low = node.minimum if node.minimum is not None else 0
            high = node.maximum if node.maximum is not None else (10000 if scenario == Scenario.LARGE else 1000)
            if high < low:
                return float(low)
            return round(self.faker.random.uniform(low, high), 2)

        if kind == 'boolean':
            return True if scenario == Scenario.DEMO else self.faker.pybool()

        if kind == 'array':
            logger.error("Array schema reached primitive generation")
            return []

        if kind in ('object', 'all_of'):
            return {}

        logger.warning(f"Unknown primitive type: {node.declared_type}, defaulting to string")
        return self._words(2)

    def _format_value(self, fmt: Optional[str]) -> Optional[str]:
        if fmt == 'email':
            return self.faker.email()
        if fmt == 'uuid':
            return self.faker.uuid4()
        if fmt == 'date-time':
            return self._recent_datetime()
        if fmt == 'date':
            return self._recent_date()
        if fmt in ('uri', 'url'):
            return self.faker.url()
        return None

    def _bounded_text(self, node: SchemaNode) -> str:
        min_length = node.min_length or 0
        max_length = node.max_length if node.max_length is not None else max(min_length, 50)

        text = self._words(max(1, math.ceil(max_length / 5)))
        text = text[:max_length].rstrip() if len(text) > max_length else text
        if len(text) < min_length:
            text += self._alphanumeric(min_length - len(text))
        return text

    # ------------------------------------------------------------------
    # Domain generators
    # ------------------------------------------------------------------

    def generate_category_name(self) -> str:
        return self.faker.random_element(_DEPARTMENTS)

    def generate_product_name(self) -> str:
        return ' '.join([
            self.faker.random_element(_PRODUCT_ADJECTIVES),
            self.faker.random_element(_PRODUCT_MATERIALS),
            self.faker.random_element(_PRODUCT_NOUNS)
        ])

    def generate_product_description(self) -> str:
        noun = self.faker.random_element(_PRODUCT_NOUNS)
        material = self.faker.random_element(_PRODUCT_MATERIALS).lower()
        return f"{self.faker.random_element(_PRODUCT_ADJECTIVES)} {material} {noun.lower()}. {self.faker.sentence()}"

    def generate_review_title(self, scenario: Scenario) -> str:
        upper = 6 if scenario == Scenario.DEMO else 8
        return self._words(self.faker.random_int(min=3, max=upper)).capitalize()

    def generate_review_comment(self, scenario: Scenario) -> str:
        if scenario == Scenario.DEMO:
            return self.faker.sentence()
        return self._paragraphs(self.faker.random_int(min=1, max=3))

    # ------------------------------------------------------------------
    # Fallbacks
    # ------------------------------------------------------------------

    def fallback_object(self) -> Dict[str, Any]:
        """Minimal object used when generation cannot produce anything better."""
        return {
            'id': self.faker.uuid4(),
            'name': self._words(2),
            '_fallback': True
        }

    def generate_fallback_item(self, schema: Any) -> Any:
        """Replacement for an array item that failed to generate."""
        if isinstance(schema, dict) and (
            schema.get('type') == 'object' or 'properties' in schema or '$ref' in schema
        ):
            return self.fallback_object()
        node = schema if isinstance(schema, SchemaNode) else self.resolver.resolve(schema or {'type': 'string'})
        if not node.is_primitive:
            return self.fallback_object()
        return self.generate_primitive_value(node)

    def _depth_fallback(self, node: SchemaNode, scenario: Scenario) -> Any:
        if node.kind == 'array':
            return []
        if node.is_object:
            return self.fallback_object()
        if node.kind == 'enum':
            return self._pick_enum(node, scenario)
        return self.generate_primitive_value(node, scenario)

    def _fallback_for(self, schema: Any) -> Any:
        """Fallback that cannot itself fail."""
        if isinstance(schema, SchemaNode):
            kind = schema.kind
        elif isinstance(schema, dict):
            kind = schema.get('type')
        else:
            kind = None

        if kind == 'string':
            return 'mock'
        if kind == 'integer':
            return 1
        if kind == 'number':
            return 1.0
        if kind == 'boolean':
            return True
        if kind == 'array':
            return []

        try:
            return self.fallback_object()
        except Exception:
            return {'id': 'fallback', 'name': 'fallback', '_fallback': True}

    # ------------------------------------------------------------------
    # Text helpers
    # ------------------------------------------------------------------

    def _words(self, count: int) -> str:
        return ' '.join(self.faker.words(nb=count))

    def _paragraphs(self, count: int = 3) -> str:
        return '\n'.join(self.faker.paragraphs(nb=count))

    def _alphanumeric(self, length: int) -> str:
        return self.faker.lexify('?' * length, letters=_ALPHANUMERIC)

    def _price(
        self,
        minimum: Optional[float] = None,
        maximum: Optional[float] = None,
        integral: bool = False
    ) -> Union[int, float]:
        """Money amount, 1-1000 unless the schema declares tighter bounds."""
        low = 1 if minimum is None else minimum
        high = 1000 if maximum is None else maximum
        if minimum is None:
            low = min(low, high)
        if maximum is None:
            high = max(high, low)

        if integral:
            low, high = int(math.ceil(low)), int(math.floor(high))
            if high < low:
                return low
            return self.faker.random_int(min=low, max=high)

        if high < low:
            return float(low)
        # Rounding may step past a bound
        return float(min(max(round(self.faker.random.uniform(low, high), 2), low), high))

    def _recent_datetime(self) -> str:
        moment = self.faker.date_time_between(start_date='-1d', end_date='now', tzinfo=timezone.utc)
        return moment.isoformat(timespec='milliseconds').replace('+00:00', 'Z')

    def _recent_date(self) -> str:
        return self.faker.date_between(start_date='-30d', end_date='today').isoformat()

    def _jwt(self) -> str:
        def encode(data: bytes) -> str:
            return base64.urlsafe_b64encode(data).rstrip(b'=').decode('ascii')

        header = {'alg': 'HS256', 'typ': 'JWT'}
        payload = {
            'sub': self.faker.uuid4(),
            'name': self.faker.name(),
            'iat': int(self.faker.unix_time())
        }
        return '.'.join([
            encode(json.dumps(header, separators=(',', ':')).encode()),
            encode(json.dumps(payload, separators=(',', ':')).encode()),
            encode(self.faker.binary(length=32))
        ])
