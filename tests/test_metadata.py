"""
Unit tests for the metadata service clients and the definition catalog.
"""

from unittest import mock

import pytest
import requests

from mapping_editor_core.definitions import DefinitionCatalog
from mapping_editor_core.exceptions import DefinitionNotFound, MetadataServiceError
from mapping_editor_core.metadata import HttpMetadataService, StaticMetadataService
from mapping_editor_core.models import (
    BinaryOp, Definition, DefinitionKind, ExpressionKind, Invocation, Parameter, SimpleRef
)


def _response(status_code=200, payload=None):
    resp = mock.Mock()
    resp.status_code = status_code
    resp.json.return_value = payload
    return resp


class TestHttpMetadataService:
    """Test cases for the HTTP metadata client."""

    def test_load_vertices_list(self):
        """Test a plain list payload."""
        session = mock.Mock()
        session.get.return_value = _response(payload=[{'name': 'a', 'type': 'int'}])
        service = HttpMetadataService('http://meta/api/', timeout=2.0, session=session)
        assert service.load_vertices() == [{'name': 'a', 'type': 'int'}]
        session.get.assert_called_once_with('http://meta/api/vertices', params=None, timeout=2.0)

    def test_load_vertices_wrapped(self):
        """Test the {'success', 'data'} envelope."""
        session = mock.Mock()
        session.get.return_value = _response(payload={'success': True, 'data': [{'name': 'b'}]})
        assert HttpMetadataService('http://meta', session=session).load_vertices() == [{'name': 'b'}]

    def test_load_vertices_http_error(self):
        """Test that a failing status becomes a MetadataServiceError."""
        session = mock.Mock()
        session.get.return_value = _response(status_code=503)
        with pytest.raises(MetadataServiceError) as exc_info:
            HttpMetadataService('http://meta', session=session).load_vertices()
        assert exc_info.value.status_code == 503

    def test_unreachable_service(self):
        """Test that connection errors are wrapped."""
        session = mock.Mock()
        session.get.side_effect = requests.ConnectionError("refused")
        with pytest.raises(MetadataServiceError):
            HttpMetadataService('http://meta', session=session).load_vertices()

    def test_get_definition(self):
        """Test decoding a definition payload."""
        payload = {
            'name': 'foo', 'kind': 'function', 'packageName': 'lib',
            'parameters': [{'name': 'x', 'type': 'int'}],
            'returnParams': [{'name': 'r', 'type': 'int'}],
        }
        session = mock.Mock()
        session.get.return_value = _response(payload=payload)
        definition = HttpMetadataService('http://meta', session=session).get_definition('lib', 'foo')
        assert definition.qualified_name == 'lib:foo'
        assert definition.parameters == (Parameter('x', 'int'),)
        session.get.assert_called_once_with(
            'http://meta/definitions', params={'name': 'foo', 'pkg': 'lib'}, timeout=5.0
        )

    def test_get_definition_not_found(self):
        """Test that 404 means an unknown definition."""
        session = mock.Mock()
        session.get.return_value = _response(status_code=404)
        assert HttpMetadataService('http://meta', session=session).get_definition(None, 'foo') is None

    def test_get_definition_bad_payload(self):
        """Test that malformed definitions are reported."""
        session = mock.Mock()
        session.get.return_value = _response(payload={'kind': 'function'})
        with pytest.raises(MetadataServiceError):
            HttpMetadataService('http://meta', session=session).get_definition(None, 'foo')


class TestDefinitionCatalog:
    """Test cases for definition lookup and caching."""

    def test_lookup_is_cached(self):
        """Test that the metadata service is asked once per name."""
        service = mock.Mock(wraps=StaticMetadataService(definitions=[Definition('foo')]))
        catalog = DefinitionCatalog(service)
        assert catalog.get_function(None, 'foo').name == 'foo'
        assert catalog.get_function(None, 'foo').name == 'foo'
        service.get_definition.assert_called_once_with(None, 'foo')

    def test_kind_mismatch_is_not_a_match(self):
        """Test that a struct is not returned for a function lookup."""
        struct = Definition('Person', DefinitionKind.STRUCT)
        catalog = DefinitionCatalog(StaticMetadataService(definitions=[struct]))
        assert catalog.get_function(None, 'Person') is None
        assert catalog.get_struct(None, 'Person') is struct

    def test_service_error_is_not_cached(self):
        """Test that a failed lookup is retried later."""
        service = mock.Mock()
        service.get_definition.side_effect = [MetadataServiceError("down"), Definition('foo')]
        catalog = DefinitionCatalog(service)
        assert catalog.get_function(None, 'foo') is None
        assert catalog.get_function(None, 'foo').name == 'foo'

    def test_default_operators(self):
        """Test the built-in operator table."""
        catalog = DefinitionCatalog()
        plus = catalog.get_operator(ExpressionKind.BINARY_OP, '+')
        assert plus.kind == DefinitionKind.OPERATOR
        assert [p.type for p in plus.parameters] == [None, None]
        assert catalog.get_operator(ExpressionKind.UNARY_OP, '!') is not None
        assert catalog.get_operator(ExpressionKind.TERNARY_OP, '?:') is not None

    def test_register_custom_operator(self):
        """Test that operators are keyed by their operand count."""
        catalog = DefinitionCatalog(include_default_operators=False)
        catalog.register(Definition('**', DefinitionKind.OPERATOR,
                                    parameters=(Parameter('base', 'int'), Parameter('exp', 'int')),
                                    return_params=(Parameter('result', 'int'),)))
        expr = BinaryOp('**', SimpleRef('a'), SimpleRef('b'))
        assert catalog.definition_for(expr).parameters[0].type == 'int'
        with pytest.raises(DefinitionNotFound):
            catalog.definition_for(BinaryOp('+', SimpleRef('a'), SimpleRef('b')))

    def test_register_rejects_bad_operator(self):
        """Test that operators need one to three operands."""
        with pytest.raises(ValueError):
            DefinitionCatalog().register(Definition('nop', DefinitionKind.OPERATOR))

    def test_definition_for_invocation(self):
        """Test lookup through a package-qualified call."""
        catalog = DefinitionCatalog(definitions=[Definition('now', package_name='time')])
        assert catalog.definition_for(Invocation('now', package_name='time')).name == 'now'
        with pytest.raises(DefinitionNotFound) as exc_info:
            catalog.definition_for(Invocation('now'))
        assert exc_info.value.name == 'now'
