"""
Metadata filter expressions for vector memory search.

Expressions render to OpenSearch query DSL and can also be evaluated against a
plain metadata dict, so in-process backends apply the same predicate.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Tuple


class FilterExpression:
    """Boolean predicate over metadata fields."""

    def to_query(self) -> Dict[str, Any]:
        raise NotImplementedError

    def matches(self, metadata: Dict[str, Any]) -> bool:
        raise NotImplementedError

    def __and__(self, other: 'FilterExpression') -> 'FilterExpression':
        return And((self, other))

    def __or__(self, other: 'FilterExpression') -> 'FilterExpression':
        return Or((self, other))


@dataclass(frozen=True)
class Eq(FilterExpression):
    field: str
    value: Any

    def to_query(self) -> Dict[str, Any]:
        return {'term': {self.field: self.value}}

    def matches(self, metadata: Dict[str, Any]) -> bool:
        return metadata.get(self.field) == self.value


@dataclass(frozen=True)
class In(FilterExpression):
    field: str
    values: Tuple[Any, ...]

    def to_query(self) -> Dict[str, Any]:
        return {'terms': {self.field: list(self.values)}}

    def matches(self, metadata: Dict[str, Any]) -> bool:
        return metadata.get(self.field) in self.values


@dataclass(frozen=True)
class And(FilterExpression):
    operands: Tuple[FilterExpression, ...]

    def to_query(self) -> Dict[str, Any]:
        return {'bool': {'filter': [op.to_query() for op in self.operands]}}

    def matches(self, metadata: Dict[str, Any]) -> bool:
        return all(op.matches(metadata) for op in self.operands)


@dataclass(frozen=True)
class Or(FilterExpression):
    operands: Tuple[FilterExpression, ...]

    def to_query(self) -> Dict[str, Any]:
        return {'bool': {'should': [op.to_query() for op in self.operands], 'minimum_should_match': 1}}

    def matches(self, metadata: Dict[str, Any]) -> bool:
        return any(op.matches(metadata) for op in self.operands)


def all_of(expressions: Iterable[FilterExpression]) -> FilterExpression:
    """AND together a non-empty sequence, without wrapping a single operand."""
    expressions = tuple(expressions)
    if not expressions:
        raise ValueError('all_of() needs at least one expression')
    if len(expressions) == 1:
        return expressions[0]
    return And(expressions)
