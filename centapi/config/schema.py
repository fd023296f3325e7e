"""Pydantic model for centapi client configuration."""

from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ClientConfig(BaseModel):
    """Configuration for CentClient.

    Example config.json:
        {
            "addr": "http://localhost:8000/api",
            "api_key_env": "CENTRIFUGO_API_KEY",
            "timeout": 5.0
        }
    """

    model_config = ConfigDict(extra="forbid")

    addr: str | None = None
    """Server API endpoint URL. Required unless an endpoint resolver is passed to the client."""

    api_key: str | None = None
    """API key sent as 'Authorization: apikey <key>'. Prefer api_key_env over storing it here."""

    api_key_env: str = "CENTRIFUGO_API_KEY"
    """Environment variable holding the API key. It overrides api_key in load_config()."""

    timeout: float = Field(default=1.0, gt=0)
    """HTTP request timeout in seconds."""

    max_connections: int = Field(default=100, gt=0)
    """Maximum number of pooled connections to the server."""

    verify_ssl: bool = True
    """Verify TLS certificates. Disable only for self-signed test deployments."""

    clear_pipe_on_send: bool = False
    """Remove sent commands from a pipe after a successful send_pipe()."""

    @field_validator("addr")
    @classmethod
    def validate_addr(cls, v: str | None) -> str | None:
        """Require an absolute http(s) URL."""
        if v is None:
            return v
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"addr must be an absolute http(s) URL, got: {v!r}")
        return v
