"""
ContractMock Context Inferencer

Derives the semantic context (domain + entity) used to pick realistic values
during mock data generation, e.g. "commerce/product" for ``GET /products``.

Contexts are immutable: descending into a nested object returns a re-tagged
copy, never a mutated parent, so generation stays purely functional.
"""

import re
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from ..common import Endpoint, singularize


@dataclass(frozen=True)
class GenerationContext:
    """Semantic context threaded through recursive generation."""

    domain: str = 'generic'
    entity: str = 'item'
    tags: Tuple[str, ...] = ()
    path: str = ''
    method: str = ''
    operation_id: Optional[str] = None
    correlation_id: Optional[Any] = None
    correlation_id_type: Optional[str] = None
    ref_chain: Tuple[str, ...] = ()  # named schemas being expanded, outermost first

    def expanding(self, ref: str) -> 'GenerationContext':
        """Copy recording that the named schema ``ref`` is being expanded."""
        return replace(self, ref_chain=self.ref_chain + (ref,))

    def with_correlation(self, correlation_id: Any, correlation_id_type: Optional[str] = None) -> 'GenerationContext':
        """Copy carrying the id a generated record must use."""
        return replace(self, correlation_id=correlation_id, correlation_id_type=correlation_id_type)

    def without_correlation(self) -> 'GenerationContext':
        if self.correlation_id is None:
            return self
        return replace(self, correlation_id=None, correlation_id_type=None)


@dataclass(frozen=True)
class EntityPattern:
    """Data-only rule mapping a property or path name to an entity and domain."""

    pattern: re.Pattern
    entity: str
    domain: str

    def matches(self, name: str) -> bool:
        return bool(self.pattern.search(name))


def _pattern(regex: str) -> re.Pattern:
    return re.compile(regex, re.IGNORECASE)


DEFAULT_ENTITY_PATTERNS: Tuple[EntityPattern, ...] = (
    EntityPattern(_pattern(r'^(user|author|customer|owner|creator)s?$'), 'user', 'users'),
    EntityPattern(_pattern(r'^categor(y|ies)$'), 'category', 'commerce'),
    EntityPattern(_pattern(r'^products?$'), 'product', 'commerce'),
    EntityPattern(_pattern(r'^reviews?$'), 'review', 'commerce'),
    EntityPattern(_pattern(r'^orders?$'), 'order', 'commerce'),
    EntityPattern(_pattern(r'^carts?$'), 'cart', 'commerce'),
)

# First endpoint tag -> (domain, entity)
DEFAULT_TAG_MAPPINGS: Dict[str, Tuple[str, str]] = {
    'categories': ('commerce', 'category'),
    'products': ('commerce', 'product'),
    'users': ('users', 'user'),
    'orders': ('commerce', 'order'),
    'reviews': ('commerce', 'review'),
    'cart': ('commerce', 'cart'),
    'authentication': ('auth', 'auth'),
}

# Path substring -> domain, checked in order
DEFAULT_PATH_DOMAINS: Tuple[Tuple[Tuple[str, ...], str], ...] = (
    (('/products', '/categories', '/orders', '/cart'), 'commerce'),
    (('/users', '/profile'), 'users'),
    (('/auth',), 'auth'),
)

PatternSpec = Union[EntityPattern, Tuple[str, str, str], Tuple[str, str]]


class ContextInferencer:
    """
    Infers generation contexts from endpoints, paths and property names.

    Entity detection is driven by an ordered table of (pattern, entity, domain)
    triples. Caller-supplied patterns are checked before the defaults and
    replace any default rule for the same entity.

    Example:
        inferencer = ContextInferencer(
            entity_patterns=[(r'^(buyer|seller)s?$', 'user', 'users')],
            domain_mappings={'review': 'feedback'}
        )
        context = inferencer.extract_endpoint_context(endpoint)
        nested = inferencer.infer_nested_context('buyer', context)
    """

    def __init__(
        self,
        entity_patterns: Optional[Union[Iterable[PatternSpec], Dict[str, str]]] = None,
        domain_mappings: Optional[Dict[str, str]] = None,
        tag_mappings: Optional[Dict[str, Tuple[str, str]]] = None
    ):
        """
        Initialize context inferencer.

        Args:
            entity_patterns: Extra rules, either (regex, entity, domain) triples,
                (regex, entity) pairs, EntityPattern instances, or a mapping of
                entity -> regex
            domain_mappings: entity -> domain overrides applied to every rule
            tag_mappings: Extra tag -> (domain, entity) entries
        """
        self.domain_mappings = dict(domain_mappings or {})
        self.tag_mappings = {**DEFAULT_TAG_MAPPINGS, **(tag_mappings or {})}
        self.entity_patterns = self._build_patterns(entity_patterns)

    def _build_patterns(self, overrides) -> List[EntityPattern]:
        custom: List[EntityPattern] = []

        if isinstance(overrides, dict):
            overrides = [(regex, entity) for entity, regex in overrides.items()]

        for override in overrides or ():
            if isinstance(override, EntityPattern):
                custom.append(override)
                continue
            regex, entity = override[0], override[1]
            domain = override[2] if len(override) > 2 else self.domain_mappings.get(entity, 'generic')
            compiled = regex if isinstance(regex, re.Pattern) else _pattern(regex)
            custom.append(EntityPattern(compiled, entity, domain))

        overridden = {p.entity for p in custom}
        patterns = custom + [p for p in DEFAULT_ENTITY_PATTERNS if p.entity not in overridden]

        # Domain overrides win over whatever the rule declared
        return [
            replace(p, domain=self.domain_mappings[p.entity]) if p.entity in self.domain_mappings else p
            for p in patterns
        ]

    def match_entity(self, name: str) -> Optional[EntityPattern]:
        """First entity rule matching a name, if any."""
        for rule in self.entity_patterns:
            if rule.matches(name):
                return rule
        return None

    def extract_endpoint_context(self, endpoint: Union[Endpoint, Dict[str, Any]]) -> GenerationContext:
        """
        Derive the generation context for an endpoint.

        The first tag is looked up in the tag table; unmapped tags and untagged
        endpoints fall through to path inference.

        Args:
            endpoint: Endpoint (or raw endpoint dict)

        Returns:
            GenerationContext for the endpoint
        """
        if isinstance(endpoint, dict):
            endpoint = Endpoint.from_dict(endpoint)

        mapped = None
        if endpoint.tags:
            mapped = self.tag_mappings.get(str(endpoint.tags[0]).lower())

        if mapped:
            domain, entity = mapped
        else:
            domain = self.infer_domain_from_path(endpoint.path)
            entity = self.infer_entity_from_path(endpoint.path)

        return GenerationContext(
            domain=domain,
            entity=entity,
            tags=tuple(endpoint.tags),
            path=endpoint.path,
            method=endpoint.method,
            operation_id=endpoint.operation_id
        )

    @staticmethod
    def infer_domain_from_path(path: str) -> str:
        path_lower = path.lower()
        for keywords, domain in DEFAULT_PATH_DOMAINS:
            if any(keyword in path_lower for keyword in keywords):
                return domain
        return 'generic'

    @staticmethod
    def infer_entity_from_path(path: str) -> str:
        """Entity name from the last non-parameter path segment, singularised."""
        segments = _static_segments(path)
        if not segments:
            return 'item'
        return singularize(segments[-1])

    def infer_nested_context(
        self,
        property_name: str,
        parent: Optional[GenerationContext]
    ) -> GenerationContext:
        """
        Re-derive the context for a nested object property.

        Args:
            property_name: Name of the property being descended into
            parent: Context of the enclosing object

        Returns:
            Re-tagged context on a pattern match, otherwise the parent unchanged
        """
        if parent is None:
            return GenerationContext()

        rule = self.match_entity(property_name)
        if rule is None:
            return parent

        return replace(parent, entity=rule.entity, domain=rule.domain)

    def extract_entity_type(self, path: str) -> str:
        """
        Store key for an endpoint path.

        Uses the last static segment so nested collections get their own store
        (``/users/{id}/orders`` -> ``order``).
        """
        segments = _static_segments(path)
        if not segments:
            return 'item'

        base = segments[-1]
        rule = self.match_entity(base)
        if rule is not None:
            return rule.entity
        return singularize(base)


def _static_segments(path: str) -> List[str]:
    return [s for s in re.sub(r'\{[^}]+\}', '', path or '').split('/') if s]
