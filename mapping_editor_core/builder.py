"""
Connection builder - derives the mapping graph from a statement list.

For every statement the builder resolves the right-hand side through temporary
variables and then either

    * draws one connection per target for a plain reference / field access, or
    * wires the intermediate node subtree: operands into parameter slots
      (nested nodes into their own parent), then return slots into targets.

Each statement is processed in isolation. Errors become diagnostics on the
snapshot and never abort the build. The output is an immutable GraphSnapshot
recomputed from scratch on every build.
"""

import logging
import threading
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Set, Tuple

from .config import MappingConfig
from .definitions import DefinitionCatalog
from .diagnostics import Diagnostic, DiagnosticSink
from .exceptions import (
    ArityMismatch, MappingError, ReentrantBuildError, UnresolvedExpressionShape, VertexNotFound
)
from .extractor import IntermediateNodeExtractor
from .folding import ElementRegistry, EndpointKind, FoldingResolver
from .models import (
    Connection, Expression, ExpressionKind, IntermediateNode, Statement, StatementKind, Vertex,
    expression_path, is_node_expression, is_path_expression, node_label, require_exhaustive
)
from .resolver import ExpressionResolver, Resolution
from .type_lattice import ConnectionValidator
from .vertex_catalog import VertexCatalog


@dataclass
class MappingView:
    """Per-view state the builder reads: statements, chosen endpoints and fold state."""
    view_id: str
    statements: List[Statement] = field(default_factory=list)
    inputs: List[str] = field(default_factory=list)
    outputs: List[str] = field(default_factory=list)
    folded_endpoints: Set[str] = field(default_factory=set)
    folded_nodes: Set[str] = field(default_factory=set)


@dataclass
class BuildContext:
    """Everything a build needs, passed explicitly into each build call."""
    view: MappingView
    catalog: VertexCatalog
    definitions: DefinitionCatalog
    validator: ConnectionValidator


@dataclass(frozen=True)
class GraphSnapshot:
    """Immutable result of one build."""
    view_id: str
    sources: Tuple[Vertex, ...] = ()
    targets: Tuple[Vertex, ...] = ()
    intermediate_nodes: Tuple[IntermediateNode, ...] = ()
    connections: Tuple[Connection, ...] = ()
    diagnostics: Tuple[Diagnostic, ...] = ()
    source_elements: Mapping[str, Optional[str]] = field(default_factory=lambda: MappingProxyType({}))
    target_elements: Mapping[str, Optional[str]] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def vertices(self) -> Tuple[Vertex, ...]:
        return self.sources + self.targets

    def connections_touching(self, element_id: str) -> List[Connection]:
        return [c for c in self.connections if element_id in (c.source_id, c.target_id)]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'viewId': self.view_id,
            'sources': [v.to_dict() for v in self.sources],
            'targets': [v.to_dict() for v in self.targets],
            'intermediateNodes': [n.to_dict() for n in self.intermediate_nodes],
            'connections': [c.to_dict() for c in self.connections],
            'diagnostics': [d.to_dict() for d in self.diagnostics],
        }


def _statement_parts(statement: Statement) -> Optional[Tuple[List[Expression], Optional[Expression]]]:
    if statement.kind == StatementKind.ASSIGNMENT:
        return list(statement.targets), statement.rhs
    if statement.kind == StatementKind.VARIABLE_DEF:
        return [statement.target_ref()], statement.initial_expression
    return None


# Right-hand side handler per resolved expression shape
_RHS_HANDLERS = {
    ExpressionKind.SIMPLE_REF: '_connect_direct',
    ExpressionKind.FIELD_ACCESS: '_connect_direct',
    ExpressionKind.INVOCATION: '_connect_node',
    ExpressionKind.BINARY_OP: '_connect_node',
    ExpressionKind.UNARY_OP: '_connect_node',
    ExpressionKind.TERNARY_OP: '_connect_node',
    ExpressionKind.LITERAL: '_skip_literal',
    ExpressionKind.COMMENT: '_reject_shape',
}

require_exhaustive(_RHS_HANDLERS, ExpressionKind, "Right-hand side handler")


class _BuildRun:
    """State of a single build. Discarded when the build returns."""

    def __init__(self, context: BuildContext, config: MappingConfig, sink: DiagnosticSink):
        self.view = context.view
        self.view_id = context.view.view_id
        self.catalog = context.catalog
        self.validator = context.validator
        self.separator = config.path_separator
        self.sink = sink
        self.logger = logging.getLogger(__name__)
        self.resolver = ExpressionResolver(self.view.statements, config.temp_regex)
        self.extractor = IntermediateNodeExtractor(context.definitions, sink)
        self.nodes: Dict[str, IntermediateNode] = {}
        self.connections: List[Connection] = []
        self.registry: Optional[ElementRegistry] = None
        self.folding: Optional[FoldingResolver] = None

    def run(self) -> GraphSnapshot:
        if len(self.catalog) == 0:
            # Without vertices no endpoint can be drawn
            self.logger.debug(f"View {self.view_id} has no vertices yet, skipping build")
            return GraphSnapshot(view_id=self.view_id, diagnostics=tuple(self.sink.diagnostics))

        sources = self._select_vertices(self.view.inputs, EndpointKind.SOURCE)
        targets = self._select_vertices(self.view.outputs, EndpointKind.TARGET)
        node_list = self._extract_nodes()

        self.registry = ElementRegistry.for_view(
            self.view_id, sources, targets, node_list,
            folded_endpoints=self.view.folded_endpoints,
            folded_nodes=self.view.folded_nodes,
        )
        self.folding = FoldingResolver(self.registry, self.separator)

        for statement in self.view.statements:
            try:
                self._connect_statement(statement)
            except MappingError as e:
                self.sink.report(e, statement_id=statement.id)
            except Exception as e:
                self.logger.exception(f"Unexpected error mapping statement {statement.id}")
                self.sink.error(f"Could not map statement: {e}", code="InternalError",
                                statementId=statement.id)

        return GraphSnapshot(
            view_id=self.view_id,
            sources=tuple(sources),
            targets=tuple(targets),
            intermediate_nodes=tuple(node_list),
            connections=tuple(self.connections),
            diagnostics=tuple(self.sink.diagnostics),
            source_elements=MappingProxyType(self.registry.types(EndpointKind.SOURCE)),
            target_elements=MappingProxyType(self.registry.types(EndpointKind.TARGET)),
        )

    # ------------------------------------------------------------------
    # Vertices and nodes
    # ------------------------------------------------------------------

    def _select_vertices(self, names: List[str], kind: EndpointKind) -> List[Vertex]:
        selected = []
        for name in names:
            vertex = self.catalog.find(name)
            if vertex is None:
                self.sink.report(VertexNotFound(name, kind.value))
                continue
            selected.append(vertex)
        return selected

    def _extract_nodes(self) -> List[IntermediateNode]:
        node_list: List[IntermediateNode] = []
        for statement in self.view.statements:
            parts = _statement_parts(statement)
            if parts is None or parts[1] is None:
                continue
            resolution = self.resolver.resolve(parts[1], statement)
            # Nodes reached through a temporary are extracted from the temporary's own definition
            if resolution.is_temporary or not is_node_expression(resolution.result):
                continue
            for node in self.extractor.extract(resolution.result, statement):
                if node.node_id not in self.nodes:
                    self.nodes[node.node_id] = node
                    node_list.append(node)
        return node_list

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    def _connect_statement(self, statement: Statement):
        parts = _statement_parts(statement)
        if parts is None:
            self.logger.debug(f"Skipping comment statement {statement.id}")
            return
        targets, rhs = parts
        if rhs is None:
            return
        resolution = self.resolver.resolve(rhs, statement)
        handler = getattr(self, _RHS_HANDLERS[resolution.result.kind])
        handler(resolution, targets, statement)

    def _target_path(self, target: Expression) -> str:
        path = expression_path(target, self.separator) if is_path_expression(target) else None
        if path is None:
            raise UnresolvedExpressionShape(
                f'Unsupported mapping target "{target.source or target.kind.value}"',
                target.kind.value,
            )
        return path

    def _emit(self, source_id: str, target_id: str, folded: bool, statement: Statement):
        connection = Connection(source_id, target_id, folded)
        self.connections.append(connection)
        if not folded:
            self.validator.check_existing(
                connection,
                self.registry.type_of(source_id, EndpointKind.SOURCE),
                self.registry.type_of(target_id, EndpointKind.TARGET),
                self.sink,
                statement_id=statement.id,
            )

    def _skip_literal(self, resolution: Resolution, targets: List[Expression], statement: Statement):
        # Default values are not drawn
        return

    def _reject_shape(self, resolution: Resolution, targets: List[Expression], statement: Statement):
        raise UnresolvedExpressionShape(
            f"Invalid expression type {resolution.result.kind.value} in mapping statement",
            resolution.result.kind.value,
        )

    def _connect_direct(self, resolution: Resolution, targets: List[Expression], statement: Statement):
        source_path = expression_path(resolution.result, self.separator)
        if source_path is None:
            raise UnresolvedExpressionShape(
                f'Unsupported mapping source "{resolution.result.source}"',
                resolution.result.kind.value,
            )
        for target in targets:
            if self.resolver.is_temporary_ref(target):
                continue
            try:
                source_id, source_folded = self.folding.locate(source_path, EndpointKind.SOURCE)
                target_id, target_folded = self.folding.locate(self._target_path(target), EndpointKind.TARGET)
            except MappingError as e:
                self.sink.report(e, statement_id=statement.id)
                continue
            self._emit(source_id, target_id, source_folded or target_folded, statement)

    def _connect_node(self, resolution: Resolution, targets: List[Expression], statement: Statement):
        node = self.nodes.get(resolution.result.id)
        if node is None:
            # The definition lookup already failed (and was reported) during extraction
            return
        if not resolution.is_temporary:
            self._wire_operands(node, statement)

        returns = node.definition.return_params
        if len(returns) != len(targets):
            self.sink.report(ArityMismatch(
                f'Function outputs and mapping count does not match in "{node_label(node.expression)}"',
                expected=len(returns), actual=len(targets), details={'nodeId': node.node_id},
            ), statement_id=statement.id)

        for index, target in enumerate(targets[:len(returns)]):
            if self.resolver.is_temporary_ref(target):
                continue
            source_id, source_folded = self.folding.slot(node.node_id, index, EndpointKind.SOURCE)
            try:
                target_id, target_folded = self.folding.locate(self._target_path(target), EndpointKind.TARGET)
            except MappingError as e:
                self.sink.report(e, statement_id=statement.id)
                continue
            self._emit(source_id, target_id, source_folded or target_folded, statement)

    def _wire_operands(self, node: IntermediateNode, statement: Statement):
        operands = node.operand_expressions
        params = node.definition.parameters
        if len(operands) != len(params):
            self.sink.report(ArityMismatch(
                f'Inputs and mapping count does not match in "{node_label(node.expression)}"',
                expected=len(params), actual=len(operands), details={'nodeId': node.node_id},
            ), statement_id=statement.id)

        for index in range(min(len(operands), len(params))):
            resolution = self.resolver.resolve(operands[index], statement)
            operand = resolution.result

            if is_node_expression(operand):
                child = self.nodes.get(operand.id)
                if child is None:
                    continue
                if not resolution.is_temporary:
                    self._wire_operands(child, statement)
                if not child.definition.return_params:
                    continue
                source_id, source_folded = self.folding.slot(child.node_id, 0, EndpointKind.SOURCE)
                target_id, target_folded = self.folding.slot(node.node_id, index, EndpointKind.TARGET)
                self._emit(source_id, target_id, source_folded or target_folded, statement)

            elif is_path_expression(operand):
                path = expression_path(operand, self.separator)
                if path is None:
                    self.sink.report(UnresolvedExpressionShape(
                        f'Unsupported operand "{operand.source}"', operand.kind.value,
                    ), statement_id=statement.id)
                    continue
                try:
                    source_id, source_folded = self.folding.locate(path, EndpointKind.SOURCE)
                except MappingError as e:
                    self.sink.report(e, statement_id=statement.id)
                    continue
                target_id, target_folded = self.folding.slot(node.node_id, index, EndpointKind.TARGET)
                self._emit(source_id, target_id, source_folded or target_folded, statement)

            elif operand.kind != ExpressionKind.LITERAL:
                self.sink.report(UnresolvedExpressionShape(
                    f"Unhandled operand type {operand.kind.value}", operand.kind.value,
                ), statement_id=statement.id)


class ConnectionBuilder:
    """Builds graph snapshots. At most one build runs per view at a time."""

    def __init__(self, config: Optional[MappingConfig] = None):
        self.config = config or MappingConfig()
        self.logger = logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._active_views: Set[str] = set()

    def is_building(self, view_id: str) -> bool:
        return view_id in self._active_views

    def build(self, context: BuildContext,
              on_alert: Optional[Callable[[Diagnostic], None]] = None) -> GraphSnapshot:
        """Recompute the full graph for a view."""
        view_id = context.view.view_id
        with self._lock:
            if view_id in self._active_views:
                raise ReentrantBuildError(view_id)
            self._active_views.add(view_id)
        try:
            sink = DiagnosticSink(on_alert=on_alert, logger=self.logger)
            snapshot = _BuildRun(context, self.config, sink).run()
            self.logger.debug(
                f"Built view {view_id}: {len(snapshot.intermediate_nodes)} nodes, "
                f"{len(snapshot.connections)} connections, {len(snapshot.diagnostics)} diagnostics"
            )
            return snapshot
        finally:
            with self._lock:
                self._active_views.discard(view_id)
