"""Client for tenant-hosted external log sources."""

from external.errors import FetchError, FetchTimeoutError
from external.log_client import ExternalLogClient, ExternalLogRecord

__all__ = [
    "ExternalLogClient",
    "ExternalLogRecord",
    "FetchError",
    "FetchTimeoutError",
]
