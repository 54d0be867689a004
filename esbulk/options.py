"""Session options shared read-only by the orchestrator and every writer."""
import os
from dataclasses import dataclass, field
from typing import Tuple
from urllib.parse import urlsplit

from esbulk.exceptions import ConfigurationError

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 9200
DEFAULT_BATCH_SIZE = 1000
DEFAULT_DOC_TYPE = ""


def _cpu_count() -> int:
    return os.cpu_count() or 1


@dataclass(frozen=True)
class Options:
    index: str = ""
    scheme: str = "http"
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    doc_type: str = DEFAULT_DOC_TYPE
    batch_size: int = DEFAULT_BATCH_SIZE
    num_workers: int = field(default_factory=_cpu_count)
    id_field: str = ""
    username: str = ""
    password: str = ""
    verbose: bool = False
    purge: bool = False
    mapping: str = ""
    zero_replica: bool = False
    fail_on_doc_errors: bool = False

    @property
    def server_url(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"{self.scheme}://{host}:{self.port}"

    @property
    def has_basic_auth(self) -> bool:
        return bool(self.username and self.password)

    def validate(self) -> None:
        """Raise ConfigurationError unless the options describe a runnable session."""
        if not self.index:
            raise ConfigurationError("index name required")
        if self.batch_size < 1:
            raise ConfigurationError(f"batch size must be positive, got {self.batch_size}")
        if self.num_workers < 1:
            raise ConfigurationError(f"worker count must be positive, got {self.num_workers}")


def parse_server(url: str) -> Tuple[str, str, int]:
    """Split a server URL like https://host:9243 into (scheme, host, port)."""
    parts = urlsplit(url.strip())
    if parts.scheme not in ("http", "https"):
        raise ConfigurationError(f"server URL must start with http:// or https://, got {url!r}")
    if not parts.hostname:
        raise ConfigurationError(f"server URL has no host: {url!r}")
    try:
        port = parts.port or DEFAULT_PORT
    except ValueError:
        raise ConfigurationError(f"invalid port in server URL: {url!r}")
    return parts.scheme, parts.hostname, port


def parse_credentials(value: str) -> Tuple[str, str]:
    """Split curl-style "username:password" credentials."""
    parts = value.split(":")
    if len(parts) != 2:
        raise ConfigurationError("http basic auth syntax is: username:password")
    return parts[0], parts[1]
