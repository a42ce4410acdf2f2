"""
Configuration for FastData SDK clients.

Uses pydantic-settings for environment variable loading. Every setting can
be overridden with a FASTDATA_ prefixed variable, e.g. FASTDATA_API_URL.
"""

from pydantic import Field
from pydantic_settings import BaseSettings

# Protocol constants
CHUNK_SIZE = 1 << 20  # 1 MiB
MAX_FILE_SIZE = 32 * CHUNK_SIZE  # 32 MiB
MAX_RELATIVE_PATH_LENGTH = 1024
MAX_KEYS_PER_COMMIT = 256

KV_METHOD = "__fastdata_kv"
FASTFS_METHOD = "__fastdata_fastfs"


class ClientSettings(BaseSettings):
    """SDK configuration loaded from environment."""

    # FastData API
    api_url: str = Field(default="http://localhost:3001", description="FastData API base URL")
    request_timeout: float = Field(default=10.0, description="Per-request timeout seconds")

    # Contracts
    kv_contract_id: str = Field(default="contextual.near", description="Contract for KV social writes")
    fastfs_contract_id: str = Field(default="fastfs.near", description="Contract for FastFS uploads")

    # Gas hints passed to the transaction submitter
    kv_gas: str = Field(default="1 Tgas")
    fastfs_gas: str = Field(default="1 Tgas")

    # Caches
    profile_cache_ttl: float = Field(default=60.0, description="Profile cache TTL seconds")
    follow_cache_ttl: float = Field(default=180.0, description="Follow list cache TTL seconds")

    # Public gateway for uploaded files
    fastfs_gateway: str = Field(default="fastfs.io", description="Host suffix for uploaded file URLs")

    model_config = {"env_prefix": "FASTDATA_"}
