"""
Type compatibility lattice and connection validity checking.

The lattice is a directed relation over type names supplied by the environment
at construction time. It answers "can a value of type A flow into a target of
type B". Types the lattice has never heard of are compatible with nothing, so a
connection between unknown types always surfaces a diagnostic instead of being
drawn silently.
"""

import logging
from typing import Dict, FrozenSet, Iterable, Mapping, Optional, Tuple

from .diagnostics import DiagnosticSink, Severity
from .exceptions import IncompatibleConnection
from .models import Connection


class TypeLattice:
    """Immutable directed compatibility relation over type names."""

    def __init__(self, pairs: Iterable[Tuple[str, str]] = (), types: Iterable[str] = ()):
        pair_set = frozenset((a, b) for a, b in pairs)
        known = set(types)
        for a, b in pair_set:
            known.add(a)
            known.add(b)
        self._pairs: FrozenSet[Tuple[str, str]] = pair_set
        self._types: FrozenSet[str] = frozenset(known)

    @classmethod
    def from_dict(cls, table: Mapping[str, Iterable[str]]) -> 'TypeLattice':
        """Build from ``{source_type: [target types it may flow into]}``."""
        pairs = [(source, target) for source, targets in table.items() for target in targets]
        return cls(pairs, types=table.keys())

    def to_dict(self) -> Dict[str, list]:
        table: Dict[str, list] = {t: [] for t in sorted(self._types)}
        for a, b in sorted(self._pairs):
            table[a].append(b)
        return table

    @property
    def types(self) -> FrozenSet[str]:
        return self._types

    def _known_name(self, type_name: str) -> Optional[str]:
        # Constrained types (json<Person>) fall back to their base type
        if type_name in self._types:
            return type_name
        if '<' in type_name:
            base = type_name.split('<', 1)[0]
            if base in self._types:
                return base
        return None

    def is_known(self, type_name: Optional[str]) -> bool:
        return type_name is not None and self._known_name(type_name) is not None

    def is_compatible(self, source_type: Optional[str], target_type: Optional[str]) -> bool:
        """Check if a value of ``source_type`` may flow into ``target_type``."""
        if source_type is None or target_type is None:
            return False
        if source_type == target_type:
            return self.is_known(source_type)
        source = self._known_name(source_type)
        target = self._known_name(target_type)
        if source is None or target is None:
            return False
        return source == target or (source, target) in self._pairs

    def __contains__(self, type_name: str) -> bool:
        return self.is_known(type_name)

    def __repr__(self) -> str:
        return f"TypeLattice(types={len(self._types)}, pairs={len(self._pairs)})"


class ConnectionValidator:
    """Consults the lattice for build-time warnings and interactive drag gating."""

    def __init__(self, lattice: TypeLattice):
        self.lattice = lattice
        self.logger = logging.getLogger(__name__)

    def is_compatible(self, source_type: Optional[str], target_type: Optional[str]) -> bool:
        return self.lattice.is_compatible(source_type, target_type)

    def accepts(self, source_type: Optional[str], target_type: Optional[str]) -> bool:
        """Interactive check. Polymorphic (untyped) slots connect to any known type.

        Untyped slots occur on both sides: operator parameters are targets,
        operator results and collapsed node handles are sources.
        """
        if source_type is None:
            return self.lattice.is_known(target_type) or target_type is None
        if target_type is None:
            return self.lattice.is_known(source_type) or source_type is None
        return self.is_compatible(source_type, target_type)

    def validate_drop(self, source_type: Optional[str], target_type: Optional[str],
                      details: Optional[Dict] = None):
        """Blocking check used when a dragged connection is dropped."""
        if not self.accepts(source_type, target_type):
            raise IncompatibleConnection(source_type, target_type, details)

    def check_existing(self, connection: Connection, source_type: Optional[str],
                       target_type: Optional[str], sink: DiagnosticSink,
                       statement_id: Optional[str] = None) -> bool:
        """Non-blocking check of a connection derived from existing statements.

        Slots without a declared type are polymorphic and are not checked.
        """
        if source_type is None or target_type is None:
            return True
        if self.is_compatible(source_type, target_type):
            return True
        sink.report(
            IncompatibleConnection(source_type, target_type, {
                'sourceId': connection.source_id,
                'targetId': connection.target_id,
            }),
            severity=Severity.WARNING,
            statement_id=statement_id,
        )
        return False
