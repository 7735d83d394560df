"""
Rendered element registry and endpoint folding.

Every connect point the renderer will draw has a composite id scoped to the view:

    <path>:<viewId>                     endpoint (variable or struct field)
    <exprId>:<index>:<viewId>           intermediate node parameter
    <exprId>:<index>:return:<viewId>    intermediate node return value
    <exprId>:<viewId>                   collapsed intermediate node

When a struct field is folded away, connections to it are drawn to the nearest
ancestor that is still visible. The search peels one trailing segment at a time
(``a.b.c`` → ``a.b`` → ``a``) and stops at the first registered id.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .exceptions import VertexNotFound
from .models import IntermediateNode, Vertex


class EndpointKind(Enum):
    """Which side of a connection an element sits on."""
    SOURCE = "source"
    TARGET = "target"


def endpoint_id(path: str, view_id: str) -> str:
    return f"{path}:{view_id}"


def node_handle_id(expr_id: str, view_id: str) -> str:
    return f"{expr_id}:{view_id}"


def param_slot_id(expr_id: str, index: int, view_id: str) -> str:
    return f"{expr_id}:{index}:{view_id}"


def return_slot_id(expr_id: str, index: int, view_id: str) -> str:
    return f"{expr_id}:{index}:return:{view_id}"


@dataclass(frozen=True)
class RenderedElement:
    """A connect point the renderer will draw."""
    element_id: str
    kind: EndpointKind
    type: Optional[str] = None
    label: str = ""


class ElementRegistry:
    """Arena of rendered element ids for a single build."""

    def __init__(self, view_id: str):
        self.view_id = view_id
        self._elements: Dict[EndpointKind, Dict[str, RenderedElement]] = {
            EndpointKind.SOURCE: {},
            EndpointKind.TARGET: {},
        }

    def register(self, element_id: str, kind: EndpointKind, type_name: Optional[str] = None,
                 label: str = "") -> RenderedElement:
        element = RenderedElement(element_id, kind, type_name, label)
        self._elements[kind][element_id] = element
        return element

    def has(self, element_id: str, kind: EndpointKind) -> bool:
        return element_id in self._elements[kind]

    def get(self, element_id: str, kind: EndpointKind) -> Optional[RenderedElement]:
        return self._elements[kind].get(element_id)

    def type_of(self, element_id: str, kind: EndpointKind) -> Optional[str]:
        element = self._elements[kind].get(element_id)
        return element.type if element else None

    def ids(self, kind: EndpointKind) -> List[str]:
        return list(self._elements[kind])

    def types(self, kind: EndpointKind) -> Dict[str, Optional[str]]:
        return {element_id: e.type for element_id, e in self._elements[kind].items()}

    # ------------------------------------------------------------------
    # Population from the view
    # ------------------------------------------------------------------

    def register_vertex(self, vertex: Vertex, kind: EndpointKind, folded_endpoints: Set[str]):
        """Register a vertex and, unless it is folded, its visible fields."""
        self.register(endpoint_id(vertex.name, self.view_id), kind, vertex.type, vertex.display_name)
        if vertex.name in folded_endpoints:
            return
        for prop in vertex.properties:
            self.register_vertex(prop, kind, folded_endpoints)

    def register_node(self, node: IntermediateNode, collapsed: bool):
        """Register an intermediate node's handle and, when expanded, its slots."""
        handle = node_handle_id(node.node_id, self.view_id)
        label = node.definition.qualified_name
        self.register(handle, EndpointKind.SOURCE, label=label)
        self.register(handle, EndpointKind.TARGET, label=label)
        if collapsed:
            return
        for index, param in enumerate(node.definition.parameters):
            self.register(param_slot_id(node.node_id, index, self.view_id),
                          EndpointKind.TARGET, param.type, param.name)
        for index, ret in enumerate(node.definition.return_params):
            self.register(return_slot_id(node.node_id, index, self.view_id),
                          EndpointKind.SOURCE, ret.type, ret.name or str(index))

    @classmethod
    def for_view(cls, view_id: str, sources: Iterable[Vertex], targets: Iterable[Vertex],
                 nodes: Iterable[IntermediateNode], folded_endpoints: Set[str] = frozenset(),
                 folded_nodes: Set[str] = frozenset()) -> 'ElementRegistry':
        registry = cls(view_id)
        for vertex in sources:
            registry.register_vertex(vertex, EndpointKind.SOURCE, folded_endpoints)
        for vertex in targets:
            registry.register_vertex(vertex, EndpointKind.TARGET, folded_endpoints)
        for node in nodes:
            registry.register_node(node, node.node_id in folded_nodes)
        return registry


class FoldingResolver:
    """Maps endpoint paths to the nearest visible rendered element."""

    def __init__(self, registry: ElementRegistry, separator: str = "."):
        self.registry = registry
        self.separator = separator

    def fold(self, path: str, view_id: str, kind: EndpointKind) -> str:
        """Get the id of ``path`` or of its nearest visible ancestor.

        Falls back to the root id when no level of the path is registered.
        """
        current = path
        candidate = endpoint_id(current, view_id)
        while self.separator in current and not self.registry.has(candidate, kind):
            current = current[:current.rindex(self.separator)]
            candidate = endpoint_id(current, view_id)
        return candidate

    def locate(self, path: str, kind: EndpointKind) -> Tuple[str, bool]:
        """Resolve an endpoint path to ``(element_id, folded)``.

        Raises VertexNotFound when the root of the path is not rendered, so that
        no connection ever points at a nonexistent element.
        """
        view_id = self.registry.view_id
        exact = endpoint_id(path, view_id)
        if self.registry.has(exact, kind):
            return exact, False
        folded_id = self.fold(path, view_id, kind)
        if not self.registry.has(folded_id, kind):
            root = path.split(self.separator, 1)[0]
            raise VertexNotFound(root, kind.value, {'path': path})
        return folded_id, True

    def slot(self, expr_id: str, index: int, kind: EndpointKind) -> Tuple[str, bool]:
        """Resolve an intermediate node slot, falling back to the collapsed node handle."""
        view_id = self.registry.view_id
        if kind == EndpointKind.TARGET:
            exact = param_slot_id(expr_id, index, view_id)
        else:
            exact = return_slot_id(expr_id, index, view_id)
        if self.registry.has(exact, kind):
            return exact, False
        return node_handle_id(expr_id, view_id), True
