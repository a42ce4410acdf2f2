"""
Configuration for the FastData sandbox API.
"""

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Sandbox configuration."""

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3001)
    log_level: str = Field(default="INFO")

    # Contracts served by default
    kv_contract_id: str = Field(default="contextual.near")
    fastfs_contract_id: str = Field(default="fastfs.near")

    # Account that writes through the /v1/sandbox endpoints when none is given
    default_signer_id: str = Field(default="sandbox.near")

    # CORS
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173", "http://localhost:8080"],
    )

    model_config = {"env_prefix": "PLAYGROUND_"}
