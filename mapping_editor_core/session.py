"""
Mapping session - the per-view controller behind the mapping editor.

The session owns the view state (chosen inputs/outputs, fold state), triggers
builds, and turns user gestures into mutation requests for the AST layer. It
never edits statements itself: every change goes through the AstMutator
interface and comes back as a new statement list.

Interactive connection drawing runs on the same thread as builds. A rebuild
requested while a drag is active is deferred until the drag ends, so the
dragged source id always refers to the graph the user started from.
"""

import concurrent.futures
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, List, Optional

from .builder import BuildContext, ConnectionBuilder, GraphSnapshot, MappingView
from .config import MappingConfig
from .definitions import DefinitionCatalog
from .diagnostics import Diagnostic, DiagnosticSink, Severity
from .exceptions import IncompatibleConnection, MetadataServiceError, VertexNotFound
from .models import Connection, Expression, IntermediateNode, Statement, VariableDef, Vertex
from .type_lattice import ConnectionValidator, TypeLattice
from .vertex_catalog import LoadResult, LoadStatus, LoadTicket, VertexCatalog, VertexLoader


class AstMutator(ABC):
    """Mutation requests the mapping core issues back to the AST layer."""

    @abstractmethod
    def add_input(self, name: str):
        """Add a variable as a mapping input."""
        pass

    @abstractmethod
    def add_output(self, name: str):
        """Add a variable as a mapping output."""
        pass

    @abstractmethod
    def remove_source_type(self, vertex: Vertex):
        """Remove an input (and its declaration if declared in the view)."""
        pass

    @abstractmethod
    def remove_target_type(self, vertex: Vertex):
        """Remove an output (and its declaration if declared in the view)."""
        pass

    @abstractmethod
    def create_statement_edge(self, connection: Connection):
        """Rewrite statements so that ``connection`` exists."""
        pass

    @abstractmethod
    def remove_statement_edge(self, connection: Connection):
        """Rewrite statements so that ``connection`` no longer exists."""
        pass

    @abstractmethod
    def remove_intermediate_node(self, expression: Expression, parent: Optional[Expression],
                                 statement: Statement):
        """Remove a function/operator application from its statement."""
        pass

    @abstractmethod
    def add_new_variable(self, kind: str) -> VariableDef:
        """Declare a fresh variable for the given side and return its definition."""
        pass

    @abstractmethod
    def update_variable(self, name: str, statement_text: str, kind: str) -> bool:
        """Replace a variable declaration. Returns False if the text is invalid."""
        pass


@dataclass
class DragOperation:
    """Represents a connection being drawn."""
    source_id: str
    source_type: Optional[str]
    hovered_target_id: Optional[str] = None
    is_valid: bool = False


class MappingSession:
    """Manages one mapping view: builds, endpoint selection and connection drawing."""

    def __init__(self, view: MappingView, metadata_service, lattice: TypeLattice,
                 mutator: AstMutator, config: Optional[MappingConfig] = None,
                 definitions: Optional[DefinitionCatalog] = None,
                 on_alert: Optional[Callable[[Diagnostic], None]] = None):
        self.view = view
        self.config = config or MappingConfig()
        self.mutator = mutator
        self.logger = logging.getLogger(__name__)
        self.sink = DiagnosticSink(on_alert=on_alert, logger=self.logger)

        self.definitions = definitions or DefinitionCatalog(metadata_service)
        self.catalog = VertexCatalog()
        self.validator = ConnectionValidator(lattice)
        self.builder = ConnectionBuilder(self.config)
        self.loader = VertexLoader(
            self.catalog, metadata_service, self.definitions,
            max_workers=self.config.loader_workers, separator=self.config.path_separator,
        )

        self.snapshot: Optional[GraphSnapshot] = None
        self.drag_operation: Optional[DragOperation] = None
        self.rebuild_pending = False

        # Vertices are loaded wholesale on mount
        self.mount_ticket = self.loader.request_load(self.view.statements)

        # Event callbacks
        self.on_snapshot: Optional[Callable[[GraphSnapshot], None]] = None
        self.on_connection_created: Optional[Callable[[Connection], None]] = None

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    def context(self) -> BuildContext:
        return BuildContext(self.view, self.catalog, self.definitions, self.validator)

    def rebuild(self) -> Optional[GraphSnapshot]:
        """Recompute the graph. Deferred (returns None) while a drag is active."""
        if self.drag_operation is not None:
            self.rebuild_pending = True
            self.logger.debug(f"Deferring rebuild of view {self.view.view_id} until drag completes")
            return None
        self.rebuild_pending = False
        self.snapshot = self.builder.build(self.context(), on_alert=self.sink.on_alert)
        if self.on_snapshot:
            self.on_snapshot(self.snapshot)
        return self.snapshot

    def update_statements(self, statements: List[Statement], reload_vertices: bool = False):
        """Accept a new statement list from the AST layer."""
        self.view.statements = list(statements)
        if reload_vertices:
            self.reload_vertices()
        return self.rebuild()

    def reload_vertices(self, timeout: Optional[float] = None) -> LoadResult:
        """Reload vertices from the metadata service and wait for the result."""
        return self._await_load(self.loader.request_load(self.view.statements), timeout)

    def wait_until_loaded(self, timeout: Optional[float] = None) -> LoadResult:
        """Wait for the load issued when the session was mounted."""
        return self._await_load(self.mount_ticket, timeout)

    def _await_load(self, ticket: LoadTicket, timeout: Optional[float]) -> LoadResult:
        if timeout is None:
            timeout = self.config.load_timeout
        try:
            result = ticket.result(timeout=timeout)
        except concurrent.futures.TimeoutError:
            error = MetadataServiceError(
                f"Vertex load {ticket.request_id} did not finish within {timeout}s",
                details={'requestId': ticket.request_id},
            )
            self.sink.report(error)
            return LoadResult(ticket.request_id, LoadStatus.FAILED, error=error.message)
        if result.status == LoadStatus.FAILED:
            self.sink.error(f"Could not initialize mapping view: {result.error}", code="MetadataServiceError")
        return result

    def close(self):
        self.loader.shutdown(wait=False)

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    def suggestions(self) -> List[Vertex]:
        """Vertices that are not yet used as an input or output."""
        used = set(self.view.inputs) | set(self.view.outputs)
        return [v for v in self.catalog.vertices if v.name not in used]

    def _vertex_exists(self, name: str, kind: str) -> bool:
        if self.catalog.exists(name):
            return True
        self.sink.report(VertexNotFound(name, kind))
        return False

    def add_source(self, name: str) -> bool:
        if not self._vertex_exists(name, "source"):
            return False
        self.mutator.add_input(name)
        if name not in self.view.inputs:
            self.view.inputs.append(name)
        return True

    def add_target(self, name: str) -> bool:
        if not self._vertex_exists(name, "target"):
            return False
        self.mutator.add_output(name)
        if name not in self.view.outputs:
            self.view.outputs.append(name)
        return True

    def add_new_variable(self, kind: str) -> Vertex:
        """Declare a new variable and use it as a source or target."""
        definition = self.mutator.add_new_variable(kind)
        vertex = Vertex(
            name=definition.name,
            type=definition.declared_type,
            declaration_text=definition.source,
        )
        self.catalog.add(vertex)
        if kind == "source":
            self.add_source(vertex.name)
        else:
            self.add_target(vertex.name)
        return vertex

    def remove_source_type(self, vertex: Vertex):
        self.catalog.remove_declared(vertex.name)
        self.mutator.remove_source_type(vertex)
        if vertex.name in self.view.inputs:
            self.view.inputs.remove(vertex.name)

    def remove_target_type(self, vertex: Vertex):
        self.catalog.remove_declared(vertex.name)
        self.mutator.remove_target_type(vertex)
        if vertex.name in self.view.outputs:
            self.view.outputs.remove(vertex.name)

    def update_variable(self, name: str, statement_text: str, kind: str) -> bool:
        if self.mutator.update_variable(name, statement_text, kind):
            self.reload_vertices()
            return True
        self.sink.error("Invalid value for variable", code="InvalidVariable", name=name)
        return False

    def remove_endpoint(self, element_id: str) -> List[Connection]:
        """Remove every connection attached to an element."""
        if self.snapshot is None:
            return []
        removed = self.snapshot.connections_touching(element_id)
        for connection in removed:
            self.mutator.remove_statement_edge(connection)
        return removed

    def disconnect(self, connection: Connection):
        self.mutator.remove_statement_edge(connection)

    def remove_intermediate_node(self, node: IntermediateNode):
        self.mutator.remove_intermediate_node(node.expression, node.parent_expression, node.statement)

    def fold_endpoint(self, path: str) -> bool:
        """Toggle folding of a struct endpoint. Returns the new folded state."""
        folded = self._toggle(self.view.folded_endpoints, path)
        self.rebuild()
        return folded

    def fold_node(self, node_id: str) -> bool:
        """Toggle collapsing of an intermediate node. Returns the new collapsed state."""
        collapsed = self._toggle(self.view.folded_nodes, node_id)
        self.rebuild()
        return collapsed

    @staticmethod
    def _toggle(keys: set, key: str) -> bool:
        if key in keys:
            keys.discard(key)
            return False
        keys.add(key)
        return True

    # ------------------------------------------------------------------
    # Connection drawing
    # ------------------------------------------------------------------

    def begin_drag(self, source_id: str) -> DragOperation:
        if self.snapshot is None or source_id not in self.snapshot.source_elements:
            raise VertexNotFound(source_id, "source")
        self.drag_operation = DragOperation(source_id, self.snapshot.source_elements[source_id])
        return self.drag_operation

    def hover(self, target_id: str) -> bool:
        """Live validity of dropping the dragged connection on ``target_id``."""
        if self.drag_operation is None:
            return False
        drag = self.drag_operation
        drag.hovered_target_id = target_id
        if target_id not in self.snapshot.target_elements:
            drag.is_valid = False
        else:
            drag.is_valid = self.validator.accepts(drag.source_type, self.snapshot.target_elements[target_id])
        return drag.is_valid

    def drop(self, target_id: str) -> Optional[Connection]:
        """Finish a drag. Returns the new connection, or None if rejected."""
        if self.drag_operation is None:
            return None
        drag = self.drag_operation
        self.drag_operation = None
        try:
            if target_id not in self.snapshot.target_elements:
                self.logger.debug(f"Connection from {drag.source_id} dropped outside any target")
                return None
            target_type = self.snapshot.target_elements[target_id]
            try:
                self.validator.validate_drop(drag.source_type, target_type,
                                             {'sourceId': drag.source_id, 'targetId': target_id})
            except IncompatibleConnection as e:
                self.sink.report(e, severity=Severity.ERROR)
                return None
            connection = Connection(drag.source_id, target_id)
            self.mutator.create_statement_edge(connection)
            if self.on_connection_created:
                self.on_connection_created(connection)
            return connection
        finally:
            self._after_drag()

    def abort_drag(self):
        self.drag_operation = None
        self._after_drag()

    def _after_drag(self):
        if self.rebuild_pending:
            self.rebuild()
