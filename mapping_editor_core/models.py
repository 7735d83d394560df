"""
Core data models for the Mapping Editor.

This module defines the fundamental data structures used by the graph synthesis engine,
including the expression and statement trees read from the AST layer, the vertices
(endpoints) shown on either side of the mapping, the synthesized intermediate nodes and
the connections drawn between them.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple, Union
from enum import Enum
import uuid


def _new_id() -> str:
    return str(uuid.uuid4())


# =============================================================================
# EXPRESSIONS - closed tagged union, tag = ExpressionKind
# =============================================================================

class ExpressionKind(Enum):
    """Enumeration of supported expression shapes."""
    LITERAL = "literal"
    SIMPLE_REF = "simple_ref"
    FIELD_ACCESS = "field_access"
    INVOCATION = "invocation"
    BINARY_OP = "binary_op"
    UNARY_OP = "unary_op"
    TERNARY_OP = "ternary_op"
    COMMENT = "comment"


# Shapes that become intermediate nodes on the mapping canvas
NODE_KINDS = frozenset({
    ExpressionKind.INVOCATION,
    ExpressionKind.BINARY_OP,
    ExpressionKind.UNARY_OP,
    ExpressionKind.TERNARY_OP,
})

# Shapes that name an endpoint path (``a`` or ``a.b.c``)
PATH_KINDS = frozenset({ExpressionKind.SIMPLE_REF, ExpressionKind.FIELD_ACCESS})


@dataclass(frozen=True)
class Literal:
    """A literal value such as ``42`` or ``"name"``."""
    value: Any
    type: Optional[str] = None
    id: str = field(default_factory=_new_id)
    source: str = ""
    kind = ExpressionKind.LITERAL


@dataclass(frozen=True)
class SimpleRef:
    """A reference to a variable by name."""
    name: str
    type: Optional[str] = None
    id: str = field(default_factory=_new_id)
    source: str = ""
    kind = ExpressionKind.SIMPLE_REF


@dataclass(frozen=True)
class FieldAccess:
    """Access of a struct field, ``base.field``."""
    base: "Expression"
    field: str
    type: Optional[str] = None
    id: str = field(default_factory=_new_id)
    source: str = ""
    kind = ExpressionKind.FIELD_ACCESS


@dataclass(frozen=True)
class Invocation:
    """A function call, optionally package qualified."""
    function_name: str
    args: Tuple["Expression", ...] = ()
    package_name: Optional[str] = None
    type: Optional[str] = None
    id: str = field(default_factory=_new_id)
    source: str = ""
    kind = ExpressionKind.INVOCATION

    @property
    def qualified_name(self) -> str:
        if self.package_name:
            return f"{self.package_name}:{self.function_name}"
        return self.function_name


@dataclass(frozen=True)
class BinaryOp:
    """A binary operator application such as ``a + b``."""
    operator: str
    left: "Expression"
    right: "Expression"
    type: Optional[str] = None
    id: str = field(default_factory=_new_id)
    source: str = ""
    kind = ExpressionKind.BINARY_OP


@dataclass(frozen=True)
class UnaryOp:
    """A unary operator application such as ``!flag``."""
    operator: str
    operand: "Expression"
    type: Optional[str] = None
    id: str = field(default_factory=_new_id)
    source: str = ""
    kind = ExpressionKind.UNARY_OP


@dataclass(frozen=True)
class TernaryOp:
    """A conditional expression ``condition ? then : else``."""
    condition: "Expression"
    then_expr: "Expression"
    else_expr: "Expression"
    type: Optional[str] = None
    id: str = field(default_factory=_new_id)
    source: str = ""
    kind = ExpressionKind.TERNARY_OP

    @property
    def operator(self) -> str:
        return "?:"


@dataclass(frozen=True)
class Comment:
    """A comment carried in the expression tree."""
    text: str
    type: Optional[str] = None
    id: str = field(default_factory=_new_id)
    source: str = ""
    kind = ExpressionKind.COMMENT


Expression = Union[Literal, SimpleRef, FieldAccess, Invocation, BinaryOp, UnaryOp, TernaryOp, Comment]


def _no_operands(expr) -> Optional[List["Expression"]]:
    return None


def require_exhaustive(table: Dict, kinds, name: str):
    """Raise if a dispatch table keyed by kind misses any member of ``kinds``."""
    missing = [k.value for k in kinds if k not in table]
    if missing:
        raise RuntimeError(f"{name} table is missing kinds: {', '.join(missing)}")


# Operand accessors for every expression shape. ``None`` means the shape is a leaf.
OPERAND_ACCESSORS: Dict[ExpressionKind, Callable[[Any], Optional[List["Expression"]]]] = {
    ExpressionKind.LITERAL: _no_operands,
    ExpressionKind.SIMPLE_REF: _no_operands,
    ExpressionKind.FIELD_ACCESS: _no_operands,
    ExpressionKind.COMMENT: _no_operands,
    ExpressionKind.INVOCATION: lambda e: list(e.args),
    ExpressionKind.BINARY_OP: lambda e: [e.left, e.right],
    ExpressionKind.UNARY_OP: lambda e: [e.operand],
    ExpressionKind.TERNARY_OP: lambda e: [e.condition, e.then_expr, e.else_expr],
}

require_exhaustive(OPERAND_ACCESSORS, ExpressionKind, "Operand accessor")


def operands_of(expr: Expression) -> List[Expression]:
    """Get the operand expressions of an intermediate-node shaped expression."""
    return OPERAND_ACCESSORS[expr.kind](expr) or []


def is_node_expression(expr: Optional[Expression]) -> bool:
    """Check if an expression becomes an intermediate node."""
    return expr is not None and expr.kind in NODE_KINDS


def is_path_expression(expr: Optional[Expression]) -> bool:
    """Check if an expression names an endpoint path."""
    return expr is not None and expr.kind in PATH_KINDS


def expression_path(expr: Expression, separator: str = ".") -> Optional[str]:
    """Get the dotted endpoint path of a reference or field access.

    Returns None when the expression (or any base in a field access chain)
    is not a path shape.
    """
    if expr.kind == ExpressionKind.SIMPLE_REF:
        return expr.name
    if expr.kind == ExpressionKind.FIELD_ACCESS:
        base_path = expression_path(expr.base, separator)
        if base_path is None:
            return None
        return f"{base_path}{separator}{expr.field}"
    return None


def node_label(expr: Expression) -> str:
    """Display name of an intermediate node expression."""
    if expr.kind == ExpressionKind.INVOCATION:
        return expr.qualified_name
    return getattr(expr, "operator", expr.kind.value)


# =============================================================================
# STATEMENTS
# =============================================================================

class StatementKind(Enum):
    """Enumeration of statement shapes found in a mapping body."""
    ASSIGNMENT = "assignment"
    VARIABLE_DEF = "variable_def"
    COMMENT = "comment"


@dataclass(frozen=True)
class Assignment:
    """``targets = rhs``; targets are lvalue expressions."""
    targets: Tuple[Expression, ...]
    rhs: Expression
    id: str = field(default_factory=_new_id)
    source: str = ""
    kind = StatementKind.ASSIGNMENT


@dataclass(frozen=True)
class VariableDef:
    """``declared_type name = initial_expression``."""
    name: str
    declared_type: Optional[str] = None
    initial_expression: Optional[Expression] = None
    id: str = field(default_factory=_new_id)
    source: str = ""
    kind = StatementKind.VARIABLE_DEF

    def target_ref(self) -> SimpleRef:
        """The defined variable as an lvalue reference."""
        return SimpleRef(name=self.name, type=self.declared_type,
                         id=f"{self.id}:variable", source=self.name)


@dataclass(frozen=True)
class CommentStatement:
    """A comment line in the statement list."""
    comment: Comment
    id: str = field(default_factory=_new_id)
    source: str = ""
    kind = StatementKind.COMMENT


Statement = Union[Assignment, VariableDef, CommentStatement]


# =============================================================================
# DEFINITIONS - functions, operators and structs from the definition catalog
# =============================================================================

class DefinitionKind(Enum):
    """What a definition describes."""
    FUNCTION = "function"
    OPERATOR = "operator"
    STRUCT = "struct"


@dataclass(frozen=True)
class Parameter:
    """A typed parameter, return value or struct field.

    ``type`` of None marks a polymorphic slot (operators accept any operand).
    """
    name: str
    type: Optional[str] = None
    package_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {'name': self.name, 'type': self.type, 'packageName': self.package_name}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'Parameter':
        return cls(name=d['name'], type=d.get('type'), package_name=d.get('packageName'))


@dataclass(frozen=True)
class Definition:
    """A function, operator or struct definition."""
    name: str
    kind: DefinitionKind = DefinitionKind.FUNCTION
    package_name: Optional[str] = None
    parameters: Tuple[Parameter, ...] = ()
    return_params: Tuple[Parameter, ...] = ()
    fields: Tuple[Parameter, ...] = ()

    @property
    def qualified_name(self) -> str:
        if self.package_name:
            return f"{self.package_name}:{self.name}"
        return self.name

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'kind': self.kind.value,
            'packageName': self.package_name,
            'parameters': [p.to_dict() for p in self.parameters],
            'returnParams': [p.to_dict() for p in self.return_params],
            'fields': [f.to_dict() for f in self.fields],
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'Definition':
        return cls(
            name=d['name'],
            kind=DefinitionKind(d.get('kind', 'function')),
            package_name=d.get('packageName'),
            parameters=tuple(Parameter.from_dict(p) for p in d.get('parameters', [])),
            return_params=tuple(Parameter.from_dict(p) for p in d.get('returnParams', [])),
            fields=tuple(Parameter.from_dict(f) for f in d.get('fields', [])),
        )


# =============================================================================
# GRAPH ELEMENTS - vertices, intermediate nodes, connections
# =============================================================================

@dataclass
class Vertex:
    """A named, typed endpoint. Struct variables carry nested field vertices."""
    name: str
    type: Optional[str] = None
    display_name: str = ""
    declaration_text: str = ""
    properties: List['Vertex'] = field(default_factory=list)
    constraint_type: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        if not self.display_name:
            self.display_name = self.name

    def walk(self):
        """Yield this vertex and every nested field vertex, depth first."""
        yield self
        for prop in self.properties:
            yield from prop.walk()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'displayName': self.display_name,
            'type': self.type,
            'declarationText': self.declaration_text,
            'properties': [p.to_dict() for p in self.properties],
            'constraintType': self.constraint_type,
        }


class IntermediateNodeKind(Enum):
    """Intermediate nodes are either function calls or operator applications."""
    FUNCTION = "function"
    OPERATOR = "operator"


@dataclass(frozen=True)
class IntermediateNode:
    """A synthesized graph node for one function call or operator application."""
    kind: IntermediateNodeKind
    definition: Definition
    expression: Expression
    statement: Statement
    operand_expressions: Tuple[Expression, ...] = ()
    parent_expression: Optional[Expression] = None

    @property
    def node_id(self) -> str:
        return self.expression.id

    @property
    def parent_id(self) -> Optional[str]:
        return self.parent_expression.id if self.parent_expression is not None else None

    @property
    def arity_matches(self) -> bool:
        return len(self.operand_expressions) == len(self.definition.parameters)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.node_id,
            'kind': self.kind.value,
            'name': node_label(self.expression),
            'definition': self.definition.to_dict(),
            'operandCount': len(self.operand_expressions),
            'parentId': self.parent_id,
            'statementId': self.statement.id,
        }


@dataclass(frozen=True)
class Connection:
    """A directed connection between two rendered element ids."""
    source_id: str
    target_id: str
    folded: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {'sourceId': self.source_id, 'targetId': self.target_id, 'folded': self.folded}
