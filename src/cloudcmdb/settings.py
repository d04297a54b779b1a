"""Shared settings loaded from environment / .env file."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Configuration for the cloudcmdb core and its REST API server.

    Values are read from environment variables (prefix ``CMDB_``) and from a
    ``.env`` file in the working directory.
    """

    model_config = SettingsConfigDict(
        env_prefix="CMDB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Shared
    log_level: str = "INFO"

    # REST API
    api_server_host: str = "localhost"
    api_server_port: int = 8000
    # Cloud Run injects PORT (unprefixed); takes precedence over api_server_port
    port: int | None = Field(default=None, validation_alias="PORT")

    @property
    def effective_port(self) -> int:
        """Return the port to listen on (Cloud Run PORT takes precedence)."""
        return self.port if self.port is not None else self.api_server_port

    # Topology
    topology_max_nodes: int = 5000  # hard cap per traversal, independent of depth

    # Listing
    default_page_size: int = 100

    # Catalog
    load_builtin_catalog: bool = True
    catalog_path: Path | None = None  # overrides the packaged builtin.yaml
