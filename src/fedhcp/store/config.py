"""
Store service configuration.

Usage:
    from fedhcp.store.config import config

    config.STORE_PORT = 9000
    config.DB_FILE = "/tmp/fedhcp.db"
"""

from dataclasses import dataclass

from fedhcp.models.enums import LogLevel


@dataclass
class StoreConfig:
    """
    Resource store service configuration.

    Attributes:
        STORE_BIND_IP: IP address to bind the HTTP API to.
        STORE_PORT: HTTP API port.
        DB_FILE: Path to the SQLite database file.
        ALLOCATOR_ENABLED: Run the reference address allocator in-process.
        ALLOCATOR_INTERVAL_SECONDS: Delay between allocator passes.
        LOG_LEVEL: Logging verbosity level.
    """

    # -------------------------------------------------------------------------
    # Network Configuration
    # -------------------------------------------------------------------------

    STORE_BIND_IP: str = "127.0.0.1"
    STORE_PORT: int = 8080

    # -------------------------------------------------------------------------
    # Path Configuration
    # -------------------------------------------------------------------------

    DB_FILE: str = "/var/lib/fedhcp/store.db"
    LOG_FILE: str = ""

    # -------------------------------------------------------------------------
    # Allocator Configuration
    # -------------------------------------------------------------------------

    ALLOCATOR_ENABLED: bool = True
    ALLOCATOR_INTERVAL_SECONDS: float = 0.5

    # -------------------------------------------------------------------------
    # Logging Configuration
    # -------------------------------------------------------------------------

    LOG_LEVEL: LogLevel = LogLevel.INFO


config = StoreConfig()
