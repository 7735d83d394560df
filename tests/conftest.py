"""
Shared fixtures for the mapping editor tests.
"""

import pytest

from mapping_editor_core.builder import BuildContext, ConnectionBuilder, MappingView
from mapping_editor_core.config import MappingConfig
from mapping_editor_core.definitions import DefinitionCatalog
from mapping_editor_core.metadata import StaticMetadataService
from mapping_editor_core.models import Definition, DefinitionKind, Parameter
from mapping_editor_core.type_lattice import ConnectionValidator, TypeLattice
from mapping_editor_core.vertex_catalog import VertexCatalog, VertexFactory


VIEW_ID = "v"

VERTEX_RECORDS = [
    {'name': 'a', 'type': 'int'},
    {'name': 'a2', 'type': 'int'},
    {'name': 'a3', 'type': 'int'},
    {'name': 'b', 'type': 'int'},
    {'name': 'c', 'type': 'int'},
    {'name': 's', 'type': 'string'},
    {'name': 'f', 'type': 'float'},
    {'name': 'p', 'type': 'Person', 'pkgName': 'app'},
    {'name': 'q', 'type': 'Person', 'pkgName': 'app'},
    {'name': 'j', 'type': 'json', 'constraint': {'packageName': 'app', 'type': 'Address'}},
]


def function(name, params=(), returns=('int',), package_name=None):
    """Shorthand for an ``int``-typed function definition."""
    return Definition(
        name=name,
        kind=DefinitionKind.FUNCTION,
        package_name=package_name,
        parameters=tuple(Parameter(f"p{i}", t) for i, t in enumerate(params)),
        return_params=tuple(Parameter(f"r{i}", t) for i, t in enumerate(returns)),
    )


DEFINITIONS = [
    function('foo', ['int']),
    function('bar', ['int']),
    function('add2', ['int', 'int']),
    function('toText', ['int'], ['string']),
    function('split', ['int'], ['int', 'int']),
    function('now', [], ['int'], package_name='time'),
    Definition('Person', DefinitionKind.STRUCT, 'app', fields=(
        Parameter('name', 'string'),
        Parameter('address', 'Address', 'app'),
    )),
    Definition('Address', DefinitionKind.STRUCT, 'app', fields=(
        Parameter('street', 'string'),
        Parameter('city', 'string'),
    )),
]


@pytest.fixture
def lattice():
    """int widens to float; nothing converts to string implicitly."""
    return TypeLattice.from_dict({
        'int': ['float'],
        'float': [],
        'string': [],
        'boolean': [],
        'json': [],
        'app:Person': [],
        'app:Address': [],
    })


@pytest.fixture
def metadata_service():
    return StaticMetadataService(VERTEX_RECORDS, DEFINITIONS)


@pytest.fixture
def definitions(metadata_service):
    return DefinitionCatalog(metadata_service)


@pytest.fixture
def build(metadata_service, lattice):
    """Build a snapshot for a statement list against the shared vertex records."""

    def _build(statements, inputs=(), outputs=(), folded_endpoints=(), folded_nodes=(),
               config=None, on_alert=None):
        definitions = DefinitionCatalog(metadata_service)
        factory = VertexFactory(definitions)
        catalog = VertexCatalog(factory.build(metadata_service.load_vertices(), statements))
        view = MappingView(
            view_id=VIEW_ID,
            statements=list(statements),
            inputs=list(inputs),
            outputs=list(outputs),
            folded_endpoints=set(folded_endpoints),
            folded_nodes=set(folded_nodes),
        )
        context = BuildContext(view, catalog, definitions, ConnectionValidator(lattice))
        return ConnectionBuilder(config or MappingConfig()).build(context, on_alert=on_alert)

    return _build
