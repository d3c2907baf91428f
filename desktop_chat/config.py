"""Configuration management for the desktop chat client."""

import os
from typing import Any

import yaml
from dotenv import load_dotenv

API_KEY_ENV = "ANTHROPIC_API_KEY"


class Configuration:
    """Manages configuration and environment variables for the chat client."""

    def __init__(self, config_path: str | None = None) -> None:
        """Initialize configuration from YAML and environment variables.

        Args:
            config_path: YAML file to load. Defaults to the packaged config.yaml.
        """
        self.load_env()  # Load .env for API keys
        self.config_path = config_path or os.path.join(
            os.path.dirname(__file__), "config.yaml"
        )
        self._config = self._load_yaml_config(self.config_path)

    @staticmethod
    def load_env() -> None:
        """Load environment variables from .env file."""
        load_dotenv()

    @staticmethod
    def _load_yaml_config(config_path: str) -> dict[str, Any]:
        """Load configuration from YAML file."""
        with open(config_path) as file:
            config = yaml.safe_load(file)
            if not isinstance(config, dict):
                raise ValueError(
                    f"Config file must be YAML dict, got {type(config)}"
                )
            return config

    @property
    def llm_api_key(self) -> str:
        """Get the API key from the environment.

        Returns:
            The API key as a string.

        Raises:
            ValueError: If the API key is not found in environment variables.
        """
        api_key = os.getenv(API_KEY_ENV)
        if not api_key:
            raise ValueError(
                f"API key '{API_KEY_ENV}' not found in environment variables"
            )
        return api_key

    def get_api_config(self) -> dict[str, Any]:
        """Get Messages API configuration from YAML.

        Returns:
            API configuration dictionary with validated values.

        Raises:
            ValueError: If required API parameters are missing or invalid.
        """
        api_config = self._config.get("api", {})

        required_keys = [
            "default_endpoint", "default_model", "messages_path",
            "anthropic_version", "anthropic_beta", "max_tokens",
        ]
        for key in required_keys:
            if key not in api_config:
                raise ValueError(
                    f"api.{key} must be explicitly configured in config.yaml"
                )

        max_tokens = api_config["max_tokens"]
        if not isinstance(max_tokens, int) or max_tokens < 1:
            raise ValueError("api.max_tokens must be a positive integer")

        if not str(api_config["messages_path"]).startswith("/"):
            raise ValueError("api.messages_path must start with '/'")

        for key in ("temperature", "top_p"):
            value = api_config.get(key)
            if value is not None and not 0.0 <= value <= 1.0:
                raise ValueError(f"api.{key} must be between 0 and 1")

        return {
            "default_endpoint": api_config["default_endpoint"],
            "default_model": api_config["default_model"],
            "messages_path": api_config["messages_path"],
            "anthropic_version": str(api_config["anthropic_version"]),
            "anthropic_beta": api_config["anthropic_beta"],
            "max_tokens": max_tokens,
            "system": api_config.get("system"),
            "temperature": api_config.get("temperature"),
            "top_p": api_config.get("top_p"),
        }

    def get_http_client_config(self) -> dict[str, Any]:
        """Get HTTP client timeouts from YAML.

        Returns:
            HTTP client configuration dictionary. A None timeout means no limit.

        Raises:
            ValueError: If required HTTP client parameters are missing or invalid.
        """
        http_config = self._config.get("api", {}).get("http_client", {})

        required_keys = [
            "connect_timeout", "read_timeout", "write_timeout", "pool_timeout"
        ]
        for key in required_keys:
            if key not in http_config:
                raise ValueError(
                    f"api.http_client.{key} must be explicitly configured "
                    "in config.yaml"
                )
            value = http_config[key]
            if value is not None and value <= 0:
                raise ValueError(f"api.http_client.{key} must be positive or null")

        return {key: http_config[key] for key in required_keys}

    def get_simulation_config(self) -> dict[str, Any]:
        """Get simulated streaming configuration from YAML.

        Raises:
            ValueError: If chunk sizes or cadence are missing or invalid.
        """
        sim_config = self._config.get("simulation", {})

        required_keys = ["chunk_min_chars", "chunk_max_chars", "interval_ms"]
        for key in required_keys:
            if key not in sim_config:
                raise ValueError(
                    f"simulation.{key} must be explicitly configured in config.yaml"
                )

        chunk_min = sim_config["chunk_min_chars"]
        chunk_max = sim_config["chunk_max_chars"]
        interval_ms = sim_config["interval_ms"]

        if chunk_min < 1:
            raise ValueError("simulation.chunk_min_chars must be at least 1")
        if chunk_max < chunk_min:
            raise ValueError(
                "simulation.chunk_max_chars must be >= chunk_min_chars"
            )
        if interval_ms < 0:
            raise ValueError("simulation.interval_ms must be non-negative")

        return {
            "chunk_min_chars": chunk_min,
            "chunk_max_chars": chunk_max,
            "interval_ms": interval_ms,
        }

    def get_storage_config(self) -> dict[str, Any]:
        """Get local store configuration from YAML.

        Raises:
            ValueError: If required storage parameters are missing.
        """
        storage_config = self._config.get("storage", {})

        required_keys = ["path", "lock_timeout", "fsync_enabled"]
        for key in required_keys:
            if key not in storage_config:
                raise ValueError(
                    f"storage.{key} must be explicitly configured in config.yaml"
                )

        if storage_config["lock_timeout"] <= 0:
            raise ValueError("storage.lock_timeout must be positive")

        return {
            "path": os.path.expanduser(storage_config["path"]),
            "lock_timeout": storage_config["lock_timeout"],
            "fsync_enabled": bool(storage_config["fsync_enabled"]),
        }

    def get_chat_config(self) -> dict[str, Any]:
        """Get chat session configuration from YAML."""
        chat_config = self._config.get("chat", {})

        for key in ("default_title", "title_max_length"):
            if key not in chat_config:
                raise ValueError(
                    f"chat.{key} must be explicitly configured in config.yaml"
                )

        if chat_config["title_max_length"] < 1:
            raise ValueError("chat.title_max_length must be at least 1")

        return {
            "default_title": chat_config["default_title"],
            "title_max_length": chat_config["title_max_length"],
        }

    def get_logging_config(self) -> dict[str, Any]:
        """Get logging configuration from YAML."""
        return self._config.get("logging", {})

    def get_default_settings(self) -> dict[str, Any]:
        """Settings used before the user has saved any."""
        api_config = self.get_api_config()
        return {
            "credential": "",
            "endpoint": api_config["default_endpoint"],
            "model": api_config["default_model"],
            "alternate_endpoint": None,
        }
