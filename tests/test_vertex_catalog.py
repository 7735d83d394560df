"""
Unit tests for vertex construction, the vertex catalog and async loading.
"""

import threading

import pytest

from mapping_editor_core.definitions import DefinitionCatalog
from mapping_editor_core.exceptions import MetadataServiceError
from mapping_editor_core.metadata import StaticMetadataService
from mapping_editor_core.models import Definition, DefinitionKind, Parameter, SimpleRef, VariableDef, Vertex
from mapping_editor_core.vertex_catalog import LoadStatus, VertexCatalog, VertexFactory, VertexLoader


WAIT = 5


class GatedMetadataService(StaticMetadataService):
    """Blocks the first load until released; later loads answer immediately."""

    def __init__(self):
        super().__init__()
        self.calls = 0
        self.first_started = threading.Event()
        self.release = threading.Event()

    def load_vertices(self):
        self.calls += 1
        if self.calls == 1:
            self.first_started.set()
            self.release.wait(WAIT)
            return [{'name': 'old', 'type': 'int'}]
        return [{'name': 'new', 'type': 'int'}]


class FailingMetadataService(StaticMetadataService):
    def load_vertices(self):
        raise MetadataServiceError("service down", status_code=503)


class TestVertexFactory:
    """Test cases for building vertices from metadata records."""

    def test_plain_vertex(self, definitions):
        """Test that a primitive record becomes a leaf vertex."""
        vertex = VertexFactory(definitions).from_record({'name': 'a', 'type': 'int'}, {})
        assert vertex.name == 'a'
        assert vertex.type == 'int'
        assert vertex.properties == []
        assert vertex.declaration_text == ''

    def test_struct_expansion(self, definitions):
        """Test that struct variables expand into nested field vertices."""
        vertex = VertexFactory(definitions).from_record({'name': 'p', 'type': 'Person', 'pkgName': 'app'}, {})
        assert vertex.type == 'app:Person'
        assert [v.name for v in vertex.walk()] == ['p', 'p.name', 'p.address', 'p.address.street', 'p.address.city']
        address = vertex.properties[1]
        assert address.type == 'app:Address'
        assert address.display_name == 'address'

    def test_recursive_struct_terminates(self):
        """Test that self-referencing structs are not expanded forever."""
        node_def = Definition('Node', DefinitionKind.STRUCT, 'app', fields=(
            Parameter('value', 'int'),
            Parameter('next', 'Node', 'app'),
        ))
        definitions = DefinitionCatalog(StaticMetadataService(definitions=[node_def]))
        vertex = VertexFactory(definitions).from_record({'name': 'n', 'type': 'Node', 'pkgName': 'app'}, {})
        assert [v.name for v in vertex.walk()] == ['n', 'n.value', 'n.next']

    def test_constrained_type(self, definitions):
        """Test that constrained fields take the variable's base type."""
        record = {'name': 'j', 'type': 'json', 'constraint': {'packageName': 'app', 'type': 'Address'}}
        vertex = VertexFactory(definitions).from_record(record, {})
        assert vertex.type == 'json<app:Address>'
        assert vertex.constraint_type == {'packageName': 'app', 'type': 'Address'}
        assert [(v.name, v.type) for v in vertex.properties] == [('j.street', 'json'), ('j.city', 'json')]

    def test_unknown_constraint_keeps_plain_vertex(self, definitions):
        """Test that an unresolvable constraint still yields the variable."""
        record = {'name': 'j', 'type': 'json', 'constraint': {'type': 'Ghost'}}
        vertex = VertexFactory(definitions).from_record(record, {})
        assert vertex.type == 'json<Ghost>'
        assert vertex.properties == []

    def test_declaration_text_from_statements(self, definitions):
        """Test that variables declared in the view carry their declaration."""
        stmt = VariableDef('tmp', 'int', SimpleRef('a'), source='int tmp = a;')
        vertices = VertexFactory(definitions).build(
            [{'name': 'tmp', 'type': 'int'}, {'name': 'a', 'type': 'int'}], [stmt]
        )
        assert vertices[0].declaration_text == 'int tmp = a;'
        assert vertices[1].declaration_text == ''


class TestVertexCatalog:
    """Test cases for the catalog of known endpoints."""

    def test_find_and_exists(self):
        """Test lookups by top-level name and by path."""
        catalog = VertexCatalog([Vertex('p', properties=[Vertex('p.name', 'string')])])
        assert catalog.exists('p')
        assert not catalog.exists('p.name')
        assert catalog.find_path('p.name').type == 'string'

    def test_replace_reports_change(self):
        """Test that replacing with an equal set is not a change."""
        catalog = VertexCatalog()
        assert catalog.replace([Vertex('a', 'int')])
        assert catalog.version == 1
        assert not catalog.replace([Vertex('a', 'int')])
        assert catalog.version == 1

    def test_remove_declared_only(self):
        """Test that only view-declared vertices can be removed."""
        catalog = VertexCatalog([Vertex('outer', 'int'), Vertex('local', 'int', declaration_text='int local;')])
        assert not catalog.remove_declared('outer')
        assert catalog.remove_declared('local')
        assert [v.name for v in catalog.vertices] == ['outer']


class TestVertexLoader:
    """Test cases for issue-order vertex loading."""

    def test_load_now(self, metadata_service, definitions):
        """Test a synchronous load."""
        catalog = VertexCatalog()
        with VertexLoader(catalog, metadata_service, definitions) as loader:
            result = loader.load_now()
        assert result.status == LoadStatus.SUCCESS
        assert result.changed
        assert catalog.exists('p')

    def test_async_load(self, metadata_service, definitions):
        """Test that a background load is applied and reported."""
        catalog = VertexCatalog()
        seen = []
        with VertexLoader(catalog, metadata_service, definitions, on_loaded=seen.append) as loader:
            result = loader.request_load().result(timeout=WAIT)
        assert result.applied
        assert seen == [result]
        assert len(catalog) == len(metadata_service.vertices)

    def test_older_load_finishing_late_is_stale(self, definitions):
        """Test that a superseded load never overwrites a newer one."""
        service = GatedMetadataService()
        catalog = VertexCatalog()
        with VertexLoader(catalog, service, definitions, max_workers=2) as loader:
            first = loader.request_load()
            assert service.first_started.wait(WAIT)
            second = loader.request_load()
            assert second.result(timeout=WAIT).status == LoadStatus.SUCCESS
            service.release.set()
            assert first.result(timeout=WAIT).status == LoadStatus.STALE
        assert catalog.exists('new')
        assert not catalog.exists('old')

    def test_pending_load_is_cancelled(self, definitions):
        """Test that a queued load is cancelled when a newer one is issued."""
        service = GatedMetadataService()
        catalog = VertexCatalog()
        with VertexLoader(catalog, service, definitions, max_workers=1) as loader:
            first = loader.request_load()
            assert service.first_started.wait(WAIT)
            queued = loader.request_load()
            latest = loader.request_load()
            assert queued.result(timeout=WAIT).status == LoadStatus.CANCELLED
            service.release.set()
            assert first.result(timeout=WAIT).status == LoadStatus.STALE
            assert latest.result(timeout=WAIT).status == LoadStatus.SUCCESS
        assert catalog.exists('new')

    def test_failed_load_keeps_catalog(self, definitions):
        """Test that a failing service leaves existing vertices untouched."""
        catalog = VertexCatalog([Vertex('a', 'int')])
        with VertexLoader(catalog, FailingMetadataService(), definitions) as loader:
            result = loader.request_load().result(timeout=WAIT)
        assert result.status == LoadStatus.FAILED
        assert 'service down' in result.error
        assert catalog.exists('a')
