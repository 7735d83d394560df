"""
Unit tests for the JSON codec.
"""

import pytest

from mapping_editor_core.builder import _RHS_HANDLERS
from mapping_editor_core.extractor import _NODE_KINDS
from mapping_editor_core.models import (
    OPERAND_ACCESSORS, ExpressionKind, StatementKind, TernaryOp, require_exhaustive
)
from mapping_editor_core.serialization import (
    _EXPRESSION_DECODERS, _EXPRESSION_ENCODERS, _STATEMENT_DECODERS, SerializationError,
    expression_from_dict, expression_to_dict, statement_from_dict, statement_to_dict,
    view_from_dict, view_to_dict
)


CALL = {
    'kind': 'invocation',
    'id': 'X',
    'functionName': 'foo',
    'packageName': 'lib',
    'args': [
        {'kind': 'field_access', 'base': {'kind': 'simple_ref', 'name': 'p'}, 'field': 'name'},
        {'kind': 'literal', 'value': 3, 'type': 'int'},
    ],
}


class TestExpressionCodec:
    """Test cases for expression decoding and encoding."""

    def test_decode_invocation(self):
        """Test decoding a nested invocation."""
        expr = expression_from_dict(CALL)
        assert expr.kind == ExpressionKind.INVOCATION
        assert expr.id == 'X'
        assert expr.qualified_name == 'lib:foo'
        assert expr.args[0].base.name == 'p'
        assert expr.args[1].value == 3

    def test_missing_id_is_generated(self):
        """Test that ids are optional on input."""
        expr = expression_from_dict({'kind': 'simple_ref', 'name': 'a'})
        assert expr.id

    def test_ternary_keys(self):
        """Test the then/else key names of conditionals."""
        expr = expression_from_dict({
            'kind': 'ternary_op',
            'condition': {'kind': 'simple_ref', 'name': 'ok'},
            'then': {'kind': 'simple_ref', 'name': 'a'},
            'else': {'kind': 'literal', 'value': 0},
        })
        assert isinstance(expr, TernaryOp)
        assert expression_to_dict(expr)['then']['name'] == 'a'

    def test_encode_keeps_identity(self):
        """Test that encoding preserves ids and structure."""
        expr = expression_from_dict(CALL)
        data = expression_to_dict(expr)
        assert data['id'] == 'X'
        assert data['args'][0]['field'] == 'name'
        assert expression_from_dict(data) == expr

    def test_unknown_kind(self):
        """Test that unknown expression kinds are rejected."""
        with pytest.raises(SerializationError):
            expression_from_dict({'kind': 'lambda'})

    def test_missing_field(self):
        """Test that incomplete expressions are rejected."""
        with pytest.raises(SerializationError):
            expression_from_dict({'kind': 'binary_op', 'operator': '+'})

    def test_not_an_object(self):
        """Test that non-dict payloads are rejected."""
        with pytest.raises(SerializationError):
            expression_from_dict(['simple_ref'])


class TestStatementCodec:
    """Test cases for statement and view decoding."""

    def test_variable_definition(self):
        """Test decoding a variable definition with initializer."""
        stmt = statement_from_dict({
            'kind': 'variable_def', 'id': 's1', 'name': '__temp1', 'declaredType': 'int',
            'initialExpression': {'kind': 'simple_ref', 'name': 'a'}, 'source': 'int __temp1 = a;',
        })
        assert stmt.kind == StatementKind.VARIABLE_DEF
        assert stmt.initial_expression.name == 'a'
        assert statement_to_dict(stmt)['declaredType'] == 'int'

    def test_declaration_without_initializer(self):
        """Test that initializers are optional."""
        stmt = statement_from_dict({'kind': 'variable_def', 'name': 'x'})
        assert stmt.initial_expression is None
        assert statement_to_dict(stmt)['initialExpression'] is None

    def test_comment_statement(self):
        """Test decoding a comment line."""
        stmt = statement_from_dict({'kind': 'comment', 'comment': {'kind': 'comment', 'text': '// hi'}})
        assert stmt.comment.text == '// hi'

    def test_view(self):
        """Test decoding a complete view."""
        view = view_from_dict({
            'viewId': 'v1',
            'statements': [{'kind': 'assignment', 'targets': [{'kind': 'simple_ref', 'name': 'b'}], 'rhs': CALL}],
            'inputs': ['p'],
            'outputs': ['b'],
            'foldedNodes': ['X'],
        })
        assert view.view_id == 'v1'
        assert view.statements[0].rhs.id == 'X'
        assert view.folded_nodes == {'X'}
        assert view_to_dict(view)['foldedNodes'] == ['X']

    def test_statements_must_be_a_list(self):
        """Test that malformed views are rejected."""
        with pytest.raises(SerializationError):
            view_from_dict({'statements': {'kind': 'assignment'}})


class TestDispatchTables:
    """Test cases for the kind-keyed dispatch tables."""

    def test_tables_cover_every_kind(self):
        """Test that every expression and statement kind has an entry."""
        assert set(OPERAND_ACCESSORS) == set(ExpressionKind)
        assert set(_RHS_HANDLERS) == set(ExpressionKind)
        assert set(_NODE_KINDS) == set(ExpressionKind)
        assert set(_EXPRESSION_DECODERS) == set(ExpressionKind)
        assert set(_EXPRESSION_ENCODERS) == set(ExpressionKind)
        assert set(_STATEMENT_DECODERS) == set(StatementKind)

    def test_incomplete_table_raises(self):
        """Test that a table missing a kind is refused."""
        table = {kind: None for kind in StatementKind if kind != StatementKind.COMMENT}
        with pytest.raises(RuntimeError, match="comment"):
            require_exhaustive(table, StatementKind, "Statement decoder")
