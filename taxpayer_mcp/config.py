"""
Application configuration loaded from environment variables.

Uses pydantic-settings to define typed configuration that automatically reads
from environment variables (prefixed with MCP_) or a local .env file.

The settings are read once at import time into the module-level `settings`
object. Components never import it themselves: the app factory in server.py
reads it and passes plain values (secret, audience, timeouts) into the
token validator, repository and middleware, so tests can build isolated
instances with their own values.
"""

from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Server configuration with environment variable bindings.

    Each field maps to an environment variable with the MCP_ prefix.
    For example, `port` reads from MCP_PORT and `jwt_secret_key` reads
    from MCP_JWT_SECRET_KEY. List fields (cors_allowed_origins) are
    given as JSON arrays in the environment.
    """

    # --- Server settings ---

    host: str = "127.0.0.1"
    port: int = 8080
    log_level: str = "info"

    # "development" disables the Strict-Transport-Security header.
    environment: str = "development"

    # --- Authentication settings ---

    # Symmetric HS256 signing secret shared with the token issuer.
    # The default is for local development only.
    jwt_secret_key: str = "dev-secret-change-me-before-deploying-anywhere"

    # Tokens must be minted for this resource server by this issuer.
    jwt_audience: str = "taxpayer-mcp-server"
    jwt_issuer: str = "taxpayer-auth-server"
    jwt_validate_audience: bool = True
    jwt_validate_issuer: bool = True

    # Shorter secrets are accepted but logged as a warning at startup.
    jwt_min_secret_length: int = 32

    # --- HTTP surface ---

    cors_allowed_origins: list[str] = ["https://vscode.dev", "https://github.dev"]
    cors_allow_credentials: bool = True

    # Fixed-window request budget per client address.
    rate_limit_enabled: bool = True
    rate_limit_requests: int = 100
    rate_limit_window_seconds: float = 60.0

    # --- Data settings ---

    # JSON seed file for taxpayer records. When unset (or missing on disk)
    # the server starts with the built-in sample data.
    data_file: Path | None = None

    # Upper bound on a single backing-store call.
    repository_timeout_seconds: float = 5.0

    model_config = {
        "env_prefix": "MCP_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }


# Singleton instance, read by server.py when no explicit Settings are given.
settings = Settings()
