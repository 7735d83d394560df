"""
Intermediate node extraction.

Walks an expression tree and produces one IntermediateNode per function call or
operator application. Children are visited left to right before their parent is
emitted, so nested calls precede the node that consumes their result.
"""

import logging
from typing import Dict, List, Optional

from .definitions import DefinitionCatalog
from .diagnostics import DiagnosticSink
from .exceptions import DefinitionNotFound
from .models import (
    Expression, ExpressionKind, IntermediateNode, IntermediateNodeKind, Statement, operands_of,
    require_exhaustive
)


_NODE_KINDS: Dict[ExpressionKind, Optional[IntermediateNodeKind]] = {
    ExpressionKind.INVOCATION: IntermediateNodeKind.FUNCTION,
    ExpressionKind.BINARY_OP: IntermediateNodeKind.OPERATOR,
    ExpressionKind.UNARY_OP: IntermediateNodeKind.OPERATOR,
    ExpressionKind.TERNARY_OP: IntermediateNodeKind.OPERATOR,
    ExpressionKind.LITERAL: None,
    ExpressionKind.SIMPLE_REF: None,
    ExpressionKind.FIELD_ACCESS: None,
    ExpressionKind.COMMENT: None,
}

require_exhaustive(_NODE_KINDS, ExpressionKind, "Node kind")


class IntermediateNodeExtractor:
    """Collects the intermediate nodes of an expression tree."""

    def __init__(self, definitions: DefinitionCatalog, sink: Optional[DiagnosticSink] = None):
        self.definitions = definitions
        self.sink = sink or DiagnosticSink()
        self.logger = logging.getLogger(__name__)

    def extract(self, expr: Expression, statement: Statement,
                parent: Optional[Expression] = None) -> List[IntermediateNode]:
        """Get the intermediate nodes of ``expr`` in emission order."""
        nodes: List[IntermediateNode] = []
        self._collect(expr, statement, parent, nodes)
        return nodes

    def _collect(self, expr: Expression, statement: Statement, parent: Optional[Expression],
                 nodes: List[IntermediateNode]):
        node_kind = _NODE_KINDS[expr.kind]
        if node_kind is None:
            return

        operands = operands_of(expr)
        for operand in operands:
            self._collect(operand, statement, expr, nodes)

        try:
            definition = self.definitions.definition_for(expr)
        except DefinitionNotFound as e:
            self.sink.report(e, statement_id=statement.id)
            return

        nodes.append(IntermediateNode(
            kind=node_kind,
            definition=definition,
            expression=expr,
            statement=statement,
            operand_expressions=tuple(operands),
            parent_expression=parent,
        ))
