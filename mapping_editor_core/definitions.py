"""
Definition catalog - callee, operator and struct definitions for intermediate nodes.

Functions and structs come from the metadata service (cached per catalog);
operators come from a built-in table that environments may extend.
"""

import logging
from typing import Dict, Iterable, Optional, Tuple

from .exceptions import DefinitionNotFound, MetadataServiceError
from .models import (
    Definition, DefinitionKind, Expression, ExpressionKind, Parameter, node_label
)


BINARY_OPERATORS = ('+', '-', '*', '/', '%', '==', '!=', '<', '>', '<=', '>=', '&&', '||', '&', '|', '^')
UNARY_OPERATORS = ('-', '+', '!', '~')
TERNARY_OPERATOR = '?:'

_OPERAND_NAMES = {
    ExpressionKind.BINARY_OP: ('left', 'right'),
    ExpressionKind.UNARY_OP: ('operand',),
    ExpressionKind.TERNARY_OP: ('condition', 'then', 'else'),
}


def operator_definition(kind: ExpressionKind, operator: str) -> Definition:
    """Build a polymorphic operator definition (untyped operands, one result)."""
    return Definition(
        name=operator,
        kind=DefinitionKind.OPERATOR,
        parameters=tuple(Parameter(name) for name in _OPERAND_NAMES[kind]),
        return_params=(Parameter('result'),),
    )


def default_operators() -> Dict[Tuple[ExpressionKind, str], Definition]:
    table = {}
    for op in BINARY_OPERATORS:
        table[(ExpressionKind.BINARY_OP, op)] = operator_definition(ExpressionKind.BINARY_OP, op)
    for op in UNARY_OPERATORS:
        table[(ExpressionKind.UNARY_OP, op)] = operator_definition(ExpressionKind.UNARY_OP, op)
    table[(ExpressionKind.TERNARY_OP, TERNARY_OPERATOR)] = operator_definition(
        ExpressionKind.TERNARY_OP, TERNARY_OPERATOR)
    return table


class DefinitionCatalog:
    """Looks up definitions for invocations, operators and struct types."""

    def __init__(self, metadata_service=None, definitions: Iterable[Definition] = (),
                 include_default_operators: bool = True):
        self.metadata_service = metadata_service
        self.logger = logging.getLogger(__name__)
        self._functions: Dict[Tuple[str, str], Optional[Definition]] = {}
        self._structs: Dict[Tuple[str, str], Optional[Definition]] = {}
        self._operators: Dict[Tuple[ExpressionKind, str], Definition] = (
            default_operators() if include_default_operators else {}
        )
        for definition in definitions:
            self.register(definition)

    def register(self, definition: Definition):
        """Register a definition locally, shadowing the metadata service."""
        key = (definition.package_name or '', definition.name)
        if definition.kind == DefinitionKind.FUNCTION:
            self._functions[key] = definition
        elif definition.kind == DefinitionKind.STRUCT:
            self._structs[key] = definition
        else:
            arity = len(definition.parameters)
            kind = {1: ExpressionKind.UNARY_OP, 2: ExpressionKind.BINARY_OP,
                    3: ExpressionKind.TERNARY_OP}.get(arity)
            if kind is None:
                raise ValueError(f"Operator {definition.name} must take 1 to 3 operands, not {arity}")
            self._operators[(kind, definition.name)] = definition

    def _fetch(self, cache: Dict, package_name: Optional[str], name: str,
               kind: DefinitionKind) -> Optional[Definition]:
        key = (package_name or '', name)
        if key in cache:
            return cache[key]
        definition = None
        if self.metadata_service is not None:
            try:
                definition = self.metadata_service.get_definition(package_name, name)
            except MetadataServiceError as e:
                self.logger.error(f"Definition lookup for {name} failed: {e}")
                return None
            if definition is not None and definition.kind != kind:
                definition = None
        cache[key] = definition
        return definition

    def get_function(self, package_name: Optional[str], name: str) -> Optional[Definition]:
        return self._fetch(self._functions, package_name, name, DefinitionKind.FUNCTION)

    def get_struct(self, package_name: Optional[str], type_name: str) -> Optional[Definition]:
        return self._fetch(self._structs, package_name, type_name, DefinitionKind.STRUCT)

    def get_operator(self, kind: ExpressionKind, operator: str) -> Optional[Definition]:
        return self._operators.get((kind, operator))

    def definition_for(self, expr: Expression) -> Definition:
        """Get the definition backing an intermediate-node expression.

        Raises DefinitionNotFound when the callee or operator is unknown.
        """
        if expr.kind == ExpressionKind.INVOCATION:
            definition = self.get_function(expr.package_name, expr.function_name)
        elif expr.kind in _OPERAND_NAMES:
            definition = self.get_operator(expr.kind, expr.operator)
        else:
            definition = None
        if definition is None:
            raise DefinitionNotFound(node_label(expr), getattr(expr, 'package_name', None),
                                     {'expressionId': expr.id})
        return definition
