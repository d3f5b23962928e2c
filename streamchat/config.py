"""Configuration management for the chat streaming service."""

import os
from typing import Any

import yaml
from dotenv import load_dotenv

from streamchat.exceptions import ConfigurationError

# Map provider names to environment variable names
PROVIDER_KEY_MAP = {
    "gemini": "GEMINI_API_KEY",
}


class Configuration:
    """Manages configuration and environment variables for server and client."""

    def __init__(self, config_path: str | None = None) -> None:
        """Initialize configuration from YAML and environment variables."""
        self.load_env()  # Load .env for API keys
        self._config_path = config_path or os.path.join(
            os.path.dirname(__file__), "config.yaml"
        )
        self._config = self._load_yaml_config()

    @staticmethod
    def load_env() -> None:
        """Load environment variables from .env file."""
        load_dotenv()

    def _load_yaml_config(self) -> dict[str, Any]:
        """Load configuration from YAML file."""
        with open(self._config_path) as file:
            config = yaml.safe_load(file)
            if not isinstance(config, dict):
                raise ConfigurationError(
                    f"Config file must be YAML dict, got {type(config)}"
                )
            return config

    @property
    def active_provider(self) -> str:
        return self._config.get("llm", {}).get("active", "gemini")

    @property
    def llm_api_key(self) -> str:
        """Get the API key for the active LLM provider.

        Read on every access so a credential added to the environment after
        startup is picked up by the next request.

        Raises:
            ConfigurationError: If the API key is not found in environment variables.
        """
        env_key = PROVIDER_KEY_MAP.get(self.active_provider)
        if not env_key:
            raise ConfigurationError(
                f"Unknown provider '{self.active_provider}' - no API key mapping found"
            )

        api_key = os.getenv(env_key)
        if not api_key:
            raise ConfigurationError(
                f"API key '{env_key}' not found in environment variables "
                f"for provider '{self.active_provider}'"
            )

        return api_key

    def get_config_dict(self) -> dict[str, Any]:
        """Get the full configuration dictionary."""
        return self._config

    def get_llm_config(self) -> dict[str, Any]:
        """Get active LLM provider configuration.

        Raises:
            ConfigurationError: If the active provider or its model is not configured.
        """
        providers = self._config.get("llm", {}).get("providers", {})

        if self.active_provider not in providers:
            raise ConfigurationError(
                f"Active provider '{self.active_provider}' not found in providers config"
            )

        provider_config = providers[self.active_provider]
        if not provider_config.get("model"):
            raise ConfigurationError(
                f"llm.providers.{self.active_provider}.model must be explicitly "
                "configured in config.yaml"
            )
        return provider_config

    @property
    def model(self) -> str:
        """Model identifier used by the streaming endpoint."""
        return self.get_llm_config()["model"]

    def get_server_config(self) -> dict[str, Any]:
        """Get HTTP server configuration.

        Raises:
            ConfigurationError: If required server parameters are missing or invalid.
        """
        server_config = self._config.get("server", {})

        required_keys = ["host", "port", "stream_path"]
        for key in required_keys:
            if key not in server_config:
                raise ConfigurationError(
                    f"server.{key} must be explicitly configured in config.yaml"
                )

        if not str(server_config["stream_path"]).startswith("/"):
            raise ConfigurationError("server.stream_path must start with '/'")
        if not isinstance(server_config["port"], int) or server_config["port"] < 1:
            raise ConfigurationError("server.port must be a positive integer")

        return server_config

    def get_client_config(self) -> dict[str, Any]:
        """Get stream client configuration.

        Raises:
            ConfigurationError: If required client parameters are missing or invalid.
        """
        client_config = self._config.get("client", {})

        required_keys = ["base_url", "timeout"]
        for key in required_keys:
            if key not in client_config:
                raise ConfigurationError(
                    f"client.{key} must be explicitly configured in config.yaml"
                )

        if client_config["timeout"] <= 0:
            raise ConfigurationError("client.timeout must be positive")

        return client_config

    def get_logging_config(self) -> dict[str, Any]:
        """Get logging configuration."""
        return self._config.get("logging", {})

    def get_repository_config(self) -> dict[str, Any]:
        """Get repository configuration.

        Raises:
            ConfigurationError: If the database path is not configured.
        """
        repo_config = {**self._config.get("repository", {})}
        if not repo_config.get("path"):
            raise ConfigurationError(
                "repository.path must be explicitly configured in config.yaml"
            )
        return repo_config
