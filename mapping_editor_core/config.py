"""
Configuration for the Mapping Editor Core.

Every setting resolves env → default. A project-level ``.env`` file is loaded
first so that local overrides do not need to be exported in the shell:

    MAPPER_TEMP_PATTERN        regex naming compiler-introduced temporaries
    MAPPER_PATH_SEPARATOR      field access separator in endpoint paths
    MAPPER_METADATA_URL        base URL of the completion / metadata service
    MAPPER_METADATA_TIMEOUT    HTTP timeout in seconds
    MAPPER_LOADER_WORKERS      worker threads used for vertex loading
    MAPPER_LOAD_TIMEOUT        seconds a session waits for a vertex load
    MAPPER_LOG_LEVEL           log level used by the web interface
"""

import os
import re
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


DEFAULT_TEMP_PATTERN = r"^__temp\d*$"
DEFAULT_PATH_SEPARATOR = "."
DEFAULT_METADATA_URL = "http://localhost:5002/api/metadata"
DEFAULT_METADATA_TIMEOUT = 5.0
DEFAULT_LOADER_WORKERS = 2
DEFAULT_LOAD_TIMEOUT = 30.0
DEFAULT_LOG_LEVEL = "INFO"

ENV_FILE = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), '.env')


def resolve_setting(env_var: str, default: str) -> str:
    """Two-tier resolution: env → default."""
    env_val = os.environ.get(env_var, '').strip()
    if env_val:
        return env_val
    return default


@dataclass
class MappingConfig:
    """Mapping engine configuration settings."""
    temp_pattern: str = DEFAULT_TEMP_PATTERN
    path_separator: str = DEFAULT_PATH_SEPARATOR
    metadata_url: Optional[str] = DEFAULT_METADATA_URL
    metadata_timeout: float = DEFAULT_METADATA_TIMEOUT
    loader_workers: int = DEFAULT_LOADER_WORKERS
    load_timeout: float = DEFAULT_LOAD_TIMEOUT
    log_level: str = DEFAULT_LOG_LEVEL

    def __post_init__(self):
        """Validate configuration after initialization."""
        try:
            re.compile(self.temp_pattern)
        except re.error as e:
            raise ValueError(f"Invalid temporary variable pattern {self.temp_pattern!r}: {e}")
        if not self.path_separator:
            raise ValueError("Path separator cannot be empty")
        if self.metadata_timeout <= 0:
            raise ValueError("Metadata timeout must be positive")
        if self.loader_workers < 1:
            raise ValueError("Vertex loader needs at least one worker")
        if self.load_timeout <= 0:
            raise ValueError("Load timeout must be positive")
        self.log_level = self.log_level.upper()

    @property
    def temp_regex(self):
        return re.compile(self.temp_pattern)

    @classmethod
    def from_env(cls, env_file: Optional[str] = ENV_FILE) -> 'MappingConfig':
        """Build a configuration from the environment (and ``.env`` if present)."""
        if env_file:
            load_dotenv(env_file)
        return cls(
            temp_pattern=resolve_setting('MAPPER_TEMP_PATTERN', DEFAULT_TEMP_PATTERN),
            path_separator=resolve_setting('MAPPER_PATH_SEPARATOR', DEFAULT_PATH_SEPARATOR),
            metadata_url=resolve_setting('MAPPER_METADATA_URL', DEFAULT_METADATA_URL),
            metadata_timeout=float(resolve_setting('MAPPER_METADATA_TIMEOUT', str(DEFAULT_METADATA_TIMEOUT))),
            loader_workers=int(resolve_setting('MAPPER_LOADER_WORKERS', str(DEFAULT_LOADER_WORKERS))),
            load_timeout=float(resolve_setting('MAPPER_LOAD_TIMEOUT', str(DEFAULT_LOAD_TIMEOUT))),
            log_level=resolve_setting('MAPPER_LOG_LEVEL', DEFAULT_LOG_LEVEL),
        )
