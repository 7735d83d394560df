"""
Mapping-specific exceptions for the Mapping Editor Core.
"""

from typing import Optional, Any, Dict


class MappingError(Exception):
    """Base exception for all mapping graph errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class DefinitionNotFound(MappingError):
    """Raised when a function, operator or struct definition cannot be found."""

    def __init__(self, name: str, package_name: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(f'Definition for "{name}" cannot be found', details)
        self.name = name
        self.package_name = package_name


class ArityMismatch(MappingError):
    """Raised when supplied operands or targets do not match a definition's slot count."""

    def __init__(self, message: str, expected: int, actual: int,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.expected = expected
        self.actual = actual


class UnresolvedExpressionShape(MappingError):
    """Raised when an expression has a shape the builder cannot map."""

    def __init__(self, message: str, expression_kind: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.expression_kind = expression_kind


class IncompatibleConnection(MappingError):
    """Raised when the type lattice rejects a connection."""

    def __init__(self, source_type: Optional[str], target_type: Optional[str],
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(
            f'Type "{source_type}" is not compatible with type "{target_type}"', details
        )
        self.source_type = source_type
        self.target_type = target_type


class VertexNotFound(MappingError):
    """Raised when a mapping source or target endpoint is not a known vertex."""

    def __init__(self, name: str, endpoint_kind: str = "source",
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(f'Mapping {endpoint_kind} "{name}" cannot be found', details)
        self.name = name
        self.endpoint_kind = endpoint_kind


class ReentrantBuildError(MappingError):
    """Raised when a build is started for a view that is already building."""

    def __init__(self, view_id: str):
        super().__init__(f"A build is already running for view {view_id}")
        self.view_id = view_id


class MetadataServiceError(MappingError):
    """Raised when the metadata service cannot be reached or answers badly."""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.status_code = status_code
