"""
Metadata service clients.

The completion / type inference service supplies the variables visible at the
mapping statement and the definitions of structs and functions. The engine only
depends on the MetadataService interface; two implementations are provided:

    StaticMetadataService  - in-memory records (tests, the web API, demos)
    HttpMetadataService    - JSON over HTTP against a running completion service
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

import requests

from .exceptions import MetadataServiceError
from .models import Definition


class MetadataService(ABC):
    """Interface of the external metadata (completion) service."""

    @abstractmethod
    def load_vertices(self) -> List[Dict[str, Any]]:
        """Get visible variables as ``{name, type, pkgName?, constraint?}`` records."""
        pass

    @abstractmethod
    def get_definition(self, package_name: Optional[str], name: str) -> Optional[Definition]:
        """Get a struct or function definition, or None if not found."""
        pass


class StaticMetadataService(MetadataService):
    """Metadata service backed by in-memory records."""

    def __init__(self, vertices: Iterable[Dict[str, Any]] = (),
                 definitions: Iterable[Definition] = ()):
        self.vertices = [dict(v) for v in vertices]
        self.definitions: Dict[tuple, Definition] = {}
        for definition in definitions:
            self.add_definition(definition)

    def add_definition(self, definition: Definition):
        self.definitions[(definition.package_name or '', definition.name)] = definition

    def load_vertices(self) -> List[Dict[str, Any]]:
        return [dict(v) for v in self.vertices]

    def get_definition(self, package_name: Optional[str], name: str) -> Optional[Definition]:
        return self.definitions.get((package_name or '', name))


class HttpMetadataService(MetadataService):
    """Metadata service reached over HTTP.

    Endpoints (relative to ``base_url``):
        GET /vertices                         → list of vertex records
        GET /definitions?pkg=<p>&name=<n>     → definition JSON, 404 when unknown
    """

    def __init__(self, base_url: str, timeout: float = 5.0,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()
        self.logger = logging.getLogger(__name__)

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            return self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise MetadataServiceError(f"Metadata service unreachable at {url}: {e}")

    def load_vertices(self) -> List[Dict[str, Any]]:
        resp = self._get('/vertices')
        if resp.status_code != 200:
            raise MetadataServiceError(
                f"Loading vertices failed with HTTP {resp.status_code}", status_code=resp.status_code
            )
        try:
            data = resp.json()
        except ValueError as e:
            raise MetadataServiceError(f"Invalid vertex payload: {e}")
        if isinstance(data, dict):
            data = data.get('data', [])
        self.logger.debug(f"Loaded {len(data)} vertex records from {self.base_url}")
        return list(data)

    def get_definition(self, package_name: Optional[str], name: str) -> Optional[Definition]:
        params = {'name': name}
        if package_name:
            params['pkg'] = package_name
        resp = self._get('/definitions', params=params)
        if resp.status_code == 404:
            return None
        if resp.status_code != 200:
            raise MetadataServiceError(
                f"Definition lookup for {name} failed with HTTP {resp.status_code}",
                status_code=resp.status_code
            )
        try:
            return Definition.from_dict(resp.json())
        except (ValueError, KeyError) as e:
            raise MetadataServiceError(f"Invalid definition payload for {name}: {e}")
