"""
Expression resolver.

Compilers introduce temporary variables to hold intermediate results, e.g.

    int __temp1 = <int> s1;
    b = foo(__temp1);

On the mapping canvas such temporaries are invisible: ``foo`` should appear to
read ``s1`` directly. The resolver follows temporary-variable indirection to
the expression that actually produces the value.
"""

import re
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Pattern, Union

from .config import DEFAULT_TEMP_PATTERN
from .models import (
    Expression, ExpressionKind, Statement, StatementKind, VariableDef
)


@dataclass(frozen=True)
class Resolution:
    """Result of resolving an expression."""
    result: Expression
    is_temporary: bool = False


class ExpressionResolver:
    """Resolves temporary-variable references within one statement list."""

    def __init__(self, statements: Iterable[Statement],
                 temp_pattern: Union[str, Pattern] = DEFAULT_TEMP_PATTERN):
        self.temp_regex = re.compile(temp_pattern) if isinstance(temp_pattern, str) else temp_pattern
        self._temporaries: Dict[str, VariableDef] = {}
        for statement in statements:
            if statement.kind == StatementKind.VARIABLE_DEF and self.is_temporary_name(statement.name):
                # First definition wins
                self._temporaries.setdefault(statement.name, statement)

    def is_temporary_name(self, name: Optional[str]) -> bool:
        return bool(name) and self.temp_regex.match(name) is not None

    def is_temporary_ref(self, expr: Optional[Expression]) -> bool:
        """Check if an expression is a plain reference to a temporary variable."""
        return (expr is not None and expr.kind == ExpressionKind.SIMPLE_REF
                and self.is_temporary_name(expr.name))

    def temporary_definition(self, name: str) -> Optional[VariableDef]:
        return self._temporaries.get(name)

    def resolve(self, expr: Expression, statement: Optional[Statement] = None) -> Resolution:
        """Follow temporary indirection from ``expr``.

        A temporary defined by ``statement`` itself is not substituted. Chains of
        temporaries are followed until a non-temporary expression is reached.
        """
        current = expr
        is_temporary = False
        seen = set()
        while current.kind == ExpressionKind.SIMPLE_REF and self.is_temporary_name(current.name):
            definition = self._temporaries.get(current.name)
            if definition is None or definition.initial_expression is None:
                break
            if statement is not None and definition.id == statement.id:
                break
            if definition.id in seen:
                break
            seen.add(definition.id)
            current = definition.initial_expression
            is_temporary = True
        return Resolution(current, is_temporary)
