"""
Flask web interface for the Mapping Editor Core.

Provides a small REST API the editor frontend calls to build the mapping graph
of a view and to check connection compatibility while the user drags.
"""

import logging
from typing import Any, Dict

from flask import Flask, request, jsonify
from flask_cors import CORS

from mapping_editor_core import (
    BuildContext, ConnectionBuilder, ConnectionValidator, Definition, DefinitionCatalog,
    HttpMetadataService, MappingConfig, MappingError, StaticMetadataService, TypeLattice,
    VertexCatalog, VertexLoader, __version__
)
from mapping_editor_core.serialization import SerializationError, view_from_dict

config = MappingConfig.from_env()

logging.basicConfig(
    level=getattr(logging, config.log_level, logging.INFO),
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)
logger = logging.getLogger(__name__)

app = Flask(__name__)
CORS(app)

builder = ConnectionBuilder(config)


def _metadata_service(payload: Dict[str, Any]):
    """Inline vertex records win; otherwise ask the configured completion service."""
    if 'vertices' in payload or not config.metadata_url:
        return StaticMetadataService(
            payload.get('vertices', []),
            [Definition.from_dict(d) for d in payload.get('definitions', [])],
        )
    return HttpMetadataService(config.metadata_url, timeout=config.metadata_timeout)


def _lattice(payload: Dict[str, Any]) -> TypeLattice:
    table = payload.get('lattice', {})
    if not isinstance(table, dict):
        raise SerializationError("lattice must be an object of type -> [types]")
    return TypeLattice.from_dict(table)


def _error(message: str, status: int):
    return jsonify({
        'success': False,
        'error': message
    }), status


@app.route('/api/health', methods=['GET'])
def health():
    """Simple liveness endpoint."""
    return jsonify({
        'success': True,
        'data': {'status': 'ok', 'version': __version__}
    })


@app.route('/api/mapping/build', methods=['POST'])
def build_mapping():
    """Build the graph snapshot of one mapping view."""
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return _error('Request body must be a JSON object', 400)
    try:
        view = view_from_dict(payload.get('view', {}))
        metadata_service = _metadata_service(payload)
        definitions = DefinitionCatalog(metadata_service)
        catalog = VertexCatalog()
        with VertexLoader(catalog, metadata_service, definitions,
                          max_workers=config.loader_workers,
                          separator=config.path_separator) as loader:
            load = loader.load_now(view.statements)
        if not load.applied:
            return _error(f'Could not load vertices: {load.error}', 502)

        context = BuildContext(view, catalog, definitions, ConnectionValidator(_lattice(payload)))
        snapshot = builder.build(context)
        return jsonify({
            'success': True,
            'data': snapshot.to_dict()
        })
    except (SerializationError, KeyError) as e:
        return _error(f'Invalid mapping payload: {e}', 400)
    except MappingError as e:
        logger.warning(f"Mapping build rejected: {e.message}")
        return _error(e.message, 409)
    except Exception as e:
        logger.exception("Mapping build failed")
        return _error(str(e), 500)


@app.route('/api/mapping/validate', methods=['POST'])
def validate_connection():
    """Check whether a dragged connection may be dropped."""
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return _error('Request body must be a JSON object', 400)
    try:
        validator = ConnectionValidator(_lattice(payload))
        source_type = payload.get('sourceType')
        target_type = payload.get('targetType')
        compatible = validator.accepts(source_type, target_type)
        data = {'compatible': compatible}
        if not compatible:
            data['message'] = f'Type "{source_type}" is not compatible with type "{target_type}"'
        return jsonify({
            'success': True,
            'data': data
        })
    except SerializationError as e:
        return _error(str(e), 400)


if __name__ == '__main__':
    app.run(debug=False, host='0.0.0.0', port=5000)
