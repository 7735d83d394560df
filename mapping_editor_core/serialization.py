"""
JSON codec for mapping payloads.

Expressions and statements travel as plain dicts tagged with ``kind``; keys are
camelCase to match the editor frontend. Ids are optional on input and are
generated when missing.
"""

from typing import Any, Callable, Dict, List

from .builder import MappingView
from .models import (
    Assignment, BinaryOp, Comment, CommentStatement, Expression, ExpressionKind, FieldAccess,
    Invocation, Literal, SimpleRef, Statement, StatementKind, TernaryOp, UnaryOp, VariableDef,
    require_exhaustive
)


class SerializationError(ValueError):
    """Raised when a payload cannot be decoded."""
    pass


def _common(data: Dict[str, Any]) -> Dict[str, Any]:
    kwargs = {'type': data.get('type'), 'source': data.get('source', '')}
    if data.get('id'):
        kwargs['id'] = str(data['id'])
    return kwargs


def _statement_common(data: Dict[str, Any]) -> Dict[str, Any]:
    kwargs = {'source': data.get('source', '')}
    if data.get('id'):
        kwargs['id'] = str(data['id'])
    return kwargs


# =============================================================================
# EXPRESSIONS
# =============================================================================

_EXPRESSION_DECODERS: Dict[ExpressionKind, Callable[[Dict[str, Any]], Expression]] = {
    ExpressionKind.LITERAL: lambda d: Literal(value=d.get('value'), **_common(d)),
    ExpressionKind.SIMPLE_REF: lambda d: SimpleRef(name=d['name'], **_common(d)),
    ExpressionKind.FIELD_ACCESS: lambda d: FieldAccess(
        base=expression_from_dict(d['base']), field=d['field'], **_common(d)),
    ExpressionKind.INVOCATION: lambda d: Invocation(
        function_name=d['functionName'],
        args=tuple(expression_from_dict(a) for a in d.get('args', [])),
        package_name=d.get('packageName'), **_common(d)),
    ExpressionKind.BINARY_OP: lambda d: BinaryOp(
        operator=d['operator'], left=expression_from_dict(d['left']),
        right=expression_from_dict(d['right']), **_common(d)),
    ExpressionKind.UNARY_OP: lambda d: UnaryOp(
        operator=d['operator'], operand=expression_from_dict(d['operand']), **_common(d)),
    ExpressionKind.TERNARY_OP: lambda d: TernaryOp(
        condition=expression_from_dict(d['condition']),
        then_expr=expression_from_dict(d['then']),
        else_expr=expression_from_dict(d['else']), **_common(d)),
    ExpressionKind.COMMENT: lambda d: Comment(text=d.get('text', ''), **_common(d)),
}

_EXPRESSION_ENCODERS: Dict[ExpressionKind, Callable[[Any], Dict[str, Any]]] = {
    ExpressionKind.LITERAL: lambda e: {'value': e.value},
    ExpressionKind.SIMPLE_REF: lambda e: {'name': e.name},
    ExpressionKind.FIELD_ACCESS: lambda e: {'base': expression_to_dict(e.base), 'field': e.field},
    ExpressionKind.INVOCATION: lambda e: {
        'functionName': e.function_name,
        'packageName': e.package_name,
        'args': [expression_to_dict(a) for a in e.args],
    },
    ExpressionKind.BINARY_OP: lambda e: {
        'operator': e.operator,
        'left': expression_to_dict(e.left),
        'right': expression_to_dict(e.right),
    },
    ExpressionKind.UNARY_OP: lambda e: {'operator': e.operator, 'operand': expression_to_dict(e.operand)},
    ExpressionKind.TERNARY_OP: lambda e: {
        'condition': expression_to_dict(e.condition),
        'then': expression_to_dict(e.then_expr),
        'else': expression_to_dict(e.else_expr),
    },
    ExpressionKind.COMMENT: lambda e: {'text': e.text},
}

require_exhaustive(_EXPRESSION_DECODERS, ExpressionKind, "Expression decoder")
require_exhaustive(_EXPRESSION_ENCODERS, ExpressionKind, "Expression encoder")


def _kind(enum_cls, data: Any, what: str):
    if not isinstance(data, dict):
        raise SerializationError(f"{what} must be an object, got {type(data).__name__}")
    try:
        return enum_cls(data.get('kind'))
    except ValueError:
        raise SerializationError(f"Unknown {what} kind: {data.get('kind')!r}")


def expression_from_dict(data: Dict[str, Any]) -> Expression:
    kind = _kind(ExpressionKind, data, "expression")
    try:
        return _EXPRESSION_DECODERS[kind](data)
    except KeyError as e:
        raise SerializationError(f"Missing field {e} in {kind.value} expression")


def expression_to_dict(expr: Expression) -> Dict[str, Any]:
    data = {'kind': expr.kind.value, 'id': expr.id, 'type': expr.type, 'source': expr.source}
    data.update(_EXPRESSION_ENCODERS[expr.kind](expr))
    return data


# =============================================================================
# STATEMENTS
# =============================================================================

def _optional_expression(data: Any):
    return expression_from_dict(data) if data is not None else None


_STATEMENT_DECODERS: Dict[StatementKind, Callable[[Dict[str, Any]], Statement]] = {
    StatementKind.ASSIGNMENT: lambda d: Assignment(
        targets=tuple(expression_from_dict(t) for t in d['targets']),
        rhs=expression_from_dict(d['rhs']), **_statement_common(d)),
    StatementKind.VARIABLE_DEF: lambda d: VariableDef(
        name=d['name'], declared_type=d.get('declaredType'),
        initial_expression=_optional_expression(d.get('initialExpression')),
        **_statement_common(d)),
    StatementKind.COMMENT: lambda d: CommentStatement(
        comment=expression_from_dict(d['comment']), **_statement_common(d)),
}

require_exhaustive(_STATEMENT_DECODERS, StatementKind, "Statement decoder")


def statement_from_dict(data: Dict[str, Any]) -> Statement:
    kind = _kind(StatementKind, data, "statement")
    try:
        return _STATEMENT_DECODERS[kind](data)
    except KeyError as e:
        raise SerializationError(f"Missing field {e} in {kind.value} statement")


def statement_to_dict(statement: Statement) -> Dict[str, Any]:
    data = {'kind': statement.kind.value, 'id': statement.id, 'source': statement.source}
    if statement.kind == StatementKind.ASSIGNMENT:
        data['targets'] = [expression_to_dict(t) for t in statement.targets]
        data['rhs'] = expression_to_dict(statement.rhs)
    elif statement.kind == StatementKind.VARIABLE_DEF:
        data['name'] = statement.name
        data['declaredType'] = statement.declared_type
        data['initialExpression'] = (
            expression_to_dict(statement.initial_expression)
            if statement.initial_expression is not None else None
        )
    else:
        data['comment'] = expression_to_dict(statement.comment)
    return data


def statements_from_list(items: List[Dict[str, Any]]) -> List[Statement]:
    if not isinstance(items, list):
        raise SerializationError("statements must be a list")
    return [statement_from_dict(item) for item in items]


# =============================================================================
# VIEWS
# =============================================================================

def view_from_dict(data: Dict[str, Any]) -> MappingView:
    """Decode a view: ``{viewId, statements, inputs, outputs, foldedEndpoints, foldedNodes}``."""
    if not isinstance(data, dict):
        raise SerializationError("view must be an object")
    return MappingView(
        view_id=str(data.get('viewId') or 'view'),
        statements=statements_from_list(data.get('statements', [])),
        inputs=list(data.get('inputs', [])),
        outputs=list(data.get('outputs', [])),
        folded_endpoints=set(data.get('foldedEndpoints', [])),
        folded_nodes=set(data.get('foldedNodes', [])),
    )


def view_to_dict(view: MappingView) -> Dict[str, Any]:
    return {
        'viewId': view.view_id,
        'statements': [statement_to_dict(s) for s in view.statements],
        'inputs': list(view.inputs),
        'outputs': list(view.outputs),
        'foldedEndpoints': sorted(view.folded_endpoints),
        'foldedNodes': sorted(view.folded_nodes),
    }
