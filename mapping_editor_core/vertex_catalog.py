"""
Vertex catalog - the set of known endpoints for one mapping view.

Vertices are built from the metadata service's variable records. Struct-typed
variables are expanded into nested field vertices (``a``, ``a.b``, ``a.b.c``);
variables with a struct constraint (``json<Person>``) are expanded the same
way, with every field taking the variable's base type.

Loading is the only asynchronous boundary of the engine. ``VertexLoader`` runs
loads on a thread pool and applies them with an issue-order policy: issuing a
new load cancels the previous one if it has not started, and a load that
finishes after a newer one was issued is reported STALE and never applied.
"""

import logging
import threading
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

from .definitions import DefinitionCatalog
from .exceptions import MappingError
from .models import Definition, Statement, StatementKind, Vertex


# =============================================================================
# VERTEX CONSTRUCTION
# =============================================================================

def qualified_type(package_name: Optional[str], type_name: str) -> str:
    return f"{package_name}:{type_name}" if package_name else type_name


class VertexFactory:
    """Turns metadata records into vertices."""

    def __init__(self, definitions: DefinitionCatalog, separator: str = "."):
        self.definitions = definitions
        self.separator = separator

    def struct_vertex(self, name: str, type_name: str, struct_def: Definition,
                      path: Optional[str] = None, display_name: Optional[str] = None,
                      _visiting: Optional[Set[str]] = None) -> Vertex:
        """Build a vertex for a struct variable with one nested vertex per field."""
        path = path or name
        visiting = set(_visiting or ())
        visiting.add(struct_def.qualified_name)
        vertex = Vertex(name=path, type=type_name, display_name=display_name or name)
        for struct_field in struct_def.fields:
            field_path = f"{path}{self.separator}{struct_field.name}"
            nested = None
            if struct_field.type:
                nested = self.definitions.get_struct(struct_field.package_name, struct_field.type)
            if nested is not None and nested.qualified_name not in visiting:
                vertex.properties.append(self.struct_vertex(
                    struct_field.name,
                    qualified_type(struct_field.package_name, struct_field.type),
                    nested, path=field_path, display_name=struct_field.name, _visiting=visiting,
                ))
            else:
                vertex.properties.append(Vertex(
                    name=field_path, type=struct_field.type, display_name=struct_field.name,
                ))
        return vertex

    @staticmethod
    def convert_field_types(properties: Iterable[Vertex], type_name: str):
        """Force every nested field vertex to ``type_name``."""
        for prop in properties:
            prop.type = type_name
            VertexFactory.convert_field_types(prop.properties, type_name)

    def from_record(self, record: Dict[str, Any], declarations: Dict[str, str]) -> Vertex:
        name = record['name']
        type_name = record.get('type')
        package_name = record.get('pkgName')
        constraint = record.get('constraint')

        struct_def = self.definitions.get_struct(package_name, type_name) if type_name else None
        if struct_def is not None:
            vertex = self.struct_vertex(name, qualified_type(package_name, type_name), struct_def)
        elif constraint:
            constraint_name = qualified_type(constraint.get('packageName'), constraint['type'])
            constrained_type = f"{type_name}<{constraint_name}>"
            constraint_def = self.definitions.get_struct(constraint.get('packageName'), constraint['type'])
            if constraint_def is not None:
                vertex = self.struct_vertex(name, constrained_type, constraint_def)
                # Constrained field access yields the variable's type, not the struct field's
                self.convert_field_types(vertex.properties, type_name)
            else:
                vertex = Vertex(name=name, type=constrained_type)
            vertex.constraint_type = dict(constraint)
        else:
            vertex = Vertex(name=name, type=type_name)
        vertex.declaration_text = declarations.get(name, '')
        return vertex

    def build(self, records: Iterable[Dict[str, Any]], statements: Iterable[Statement] = ()) -> List[Vertex]:
        declarations = {
            stmt.name: stmt.source
            for stmt in statements if stmt.kind == StatementKind.VARIABLE_DEF
        }
        return [self.from_record(record, declarations) for record in records]


# =============================================================================
# CATALOG
# =============================================================================

class VertexCatalog:
    """Single source of truth for which endpoints exist in a view."""

    def __init__(self, vertices: Iterable[Vertex] = ()):
        self._lock = threading.RLock()
        self._vertices: List[Vertex] = list(vertices)
        self.version = 0

    @property
    def vertices(self) -> List[Vertex]:
        with self._lock:
            return list(self._vertices)

    def replace(self, vertices: Iterable[Vertex]) -> bool:
        """Replace all vertices. Returns True if the set actually changed."""
        new_vertices = list(vertices)
        with self._lock:
            if [v.to_dict() for v in new_vertices] == [v.to_dict() for v in self._vertices]:
                return False
            self._vertices = new_vertices
            self.version += 1
            return True

    def find(self, name: str) -> Optional[Vertex]:
        """Find a top-level vertex by name."""
        with self._lock:
            for vertex in self._vertices:
                if vertex.name == name:
                    return vertex
        return None

    def find_path(self, path: str) -> Optional[Vertex]:
        """Find a vertex or nested field vertex by its full path."""
        with self._lock:
            for vertex in self._vertices:
                for candidate in vertex.walk():
                    if candidate.name == path:
                        return candidate
        return None

    def exists(self, name: str) -> bool:
        return self.find(name) is not None

    def add(self, vertex: Vertex):
        with self._lock:
            self._vertices.append(vertex)
            self.version += 1

    def remove_declared(self, name: str) -> bool:
        """Remove a vertex declared inside the view. Outer variables are kept."""
        with self._lock:
            before = len(self._vertices)
            self._vertices = [
                v for v in self._vertices if not (v.name == name and v.declaration_text)
            ]
            removed = len(self._vertices) != before
            if removed:
                self.version += 1
            return removed

    def __len__(self) -> int:
        return len(self._vertices)


# =============================================================================
# ASYNC LOADING
# =============================================================================

class LoadStatus(Enum):
    """Outcome of a vertex load request."""
    SUCCESS = "success"
    STALE = "stale"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class LoadResult:
    """Typed result of a vertex load."""
    request_id: int
    status: LoadStatus
    vertices: Tuple[Vertex, ...] = ()
    changed: bool = False
    error: Optional[str] = None

    @property
    def applied(self) -> bool:
        return self.status == LoadStatus.SUCCESS


class LoadTicket:
    """Handle for one issued load request."""

    def __init__(self, request_id: int, future: Future):
        self.request_id = request_id
        self.future = future

    def cancel(self) -> bool:
        return self.future.cancel()

    def done(self) -> bool:
        return self.future.done()

    def result(self, timeout: Optional[float] = None) -> LoadResult:
        try:
            return self.future.result(timeout=timeout)
        except CancelledError:
            return LoadResult(self.request_id, LoadStatus.CANCELLED)


class VertexLoader:
    """Loads vertices from the metadata service off the build thread."""

    def __init__(self, catalog: VertexCatalog, metadata_service, definitions: DefinitionCatalog,
                 max_workers: int = 2, separator: str = ".",
                 on_loaded: Optional[Callable[[LoadResult], None]] = None):
        self.catalog = catalog
        self.metadata_service = metadata_service
        self.factory = VertexFactory(definitions, separator)
        self.on_loaded = on_loaded
        self.logger = logging.getLogger(__name__)
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="vertex-loader")
        self._lock = threading.Lock()
        self._latest_request = 0
        self._pending: Optional[LoadTicket] = None

    @property
    def latest_request(self) -> int:
        return self._latest_request

    def request_load(self, statements: Iterable[Statement] = ()) -> LoadTicket:
        """Issue a new load. Supersedes every earlier request."""
        statements = list(statements)
        with self._lock:
            self._latest_request += 1
            request_id = self._latest_request
            if self._pending is not None and not self._pending.done():
                if self._pending.cancel():
                    self.logger.debug(f"Cancelled vertex load {self._pending.request_id}")
            future = self._executor.submit(self._run, request_id, statements)
            ticket = LoadTicket(request_id, future)
            self._pending = ticket
        return ticket

    def load_now(self, statements: Iterable[Statement] = ()) -> LoadResult:
        """Issue a load and run it on the calling thread."""
        with self._lock:
            self._latest_request += 1
            request_id = self._latest_request
        return self._run(request_id, list(statements))

    def _run(self, request_id: int, statements: List[Statement]) -> LoadResult:
        try:
            records = self.metadata_service.load_vertices()
            vertices = self.factory.build(records, statements)
        except MappingError as e:
            self.logger.error(f"Could not load vertices: {e}")
            return self._finish(LoadResult(request_id, LoadStatus.FAILED, error=str(e)))
        except Exception as e:
            self.logger.error(f"Unexpected error while loading vertices: {e}")
            return self._finish(LoadResult(request_id, LoadStatus.FAILED, error=str(e)))

        with self._lock:
            if request_id != self._latest_request:
                result = LoadResult(request_id, LoadStatus.STALE, tuple(vertices))
            else:
                changed = self.catalog.replace(vertices)
                result = LoadResult(request_id, LoadStatus.SUCCESS, tuple(vertices), changed=changed)
        if result.status == LoadStatus.STALE:
            self.logger.info(f"Discarded stale vertex load {request_id} (latest is {self._latest_request})")
        return self._finish(result)

    def _finish(self, result: LoadResult) -> LoadResult:
        if self.on_loaded:
            try:
                self.on_loaded(result)
            except Exception as e:
                self.logger.error(f"Vertex load callback failed: {e}")
        return result

    def shutdown(self, wait: bool = True):
        self._executor.shutdown(wait=wait)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()
