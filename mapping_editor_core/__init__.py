"""
Mapping Editor Core - data-flow graph synthesis for the visual mapping editor.

This package derives a renderable graph of endpoints, intermediate nodes and
connections from a mapping statement list, and turns connection edits made on
the canvas back into mutation requests for the AST layer.
"""

__version__ = "0.1.0"
__author__ = "VPyD Development Team"

from .models import (
    Expression, ExpressionKind, Literal, SimpleRef, FieldAccess, Invocation, BinaryOp, UnaryOp,
    TernaryOp, Comment, Statement, StatementKind, Assignment, VariableDef, CommentStatement,
    Definition, DefinitionKind, Parameter, Vertex, IntermediateNode, IntermediateNodeKind, Connection
)
from .exceptions import (
    MappingError, DefinitionNotFound, ArityMismatch, UnresolvedExpressionShape,
    IncompatibleConnection, VertexNotFound, ReentrantBuildError, MetadataServiceError
)
from .diagnostics import Diagnostic, DiagnosticSink, Severity
from .config import MappingConfig
from .type_lattice import TypeLattice, ConnectionValidator
from .resolver import ExpressionResolver, Resolution
from .definitions import DefinitionCatalog
from .metadata import MetadataService, StaticMetadataService, HttpMetadataService
from .vertex_catalog import VertexCatalog, VertexFactory, VertexLoader, LoadResult, LoadStatus
from .folding import ElementRegistry, FoldingResolver, EndpointKind
from .extractor import IntermediateNodeExtractor
from .builder import ConnectionBuilder, BuildContext, MappingView, GraphSnapshot
from .session import MappingSession, AstMutator, DragOperation

__all__ = [
    # Models
    'Expression', 'ExpressionKind', 'Literal', 'SimpleRef', 'FieldAccess', 'Invocation',
    'BinaryOp', 'UnaryOp', 'TernaryOp', 'Comment', 'Statement', 'StatementKind', 'Assignment',
    'VariableDef', 'CommentStatement', 'Definition', 'DefinitionKind', 'Parameter', 'Vertex',
    'IntermediateNode', 'IntermediateNodeKind', 'Connection',

    # Errors and diagnostics
    'MappingError', 'DefinitionNotFound', 'ArityMismatch', 'UnresolvedExpressionShape',
    'IncompatibleConnection', 'VertexNotFound', 'ReentrantBuildError', 'MetadataServiceError',
    'Diagnostic', 'DiagnosticSink', 'Severity',

    # Engine
    'MappingConfig', 'TypeLattice', 'ConnectionValidator', 'ExpressionResolver', 'Resolution',
    'DefinitionCatalog', 'MetadataService', 'StaticMetadataService', 'HttpMetadataService',
    'VertexCatalog', 'VertexFactory', 'VertexLoader', 'LoadResult', 'LoadStatus',
    'ElementRegistry', 'FoldingResolver', 'EndpointKind', 'IntermediateNodeExtractor',
    'ConnectionBuilder', 'BuildContext', 'MappingView', 'GraphSnapshot',

    # Editing
    'MappingSession', 'AstMutator', 'DragOperation',
]
