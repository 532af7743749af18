"""
Configuration loader with environment variable and secrets handling.

Loads configuration from:
1. the YAML config file (config/config.yaml by default)
2. .env.local beside it (secrets file; loaded into process env)
3. Environment variables (highest priority)

Secrets are NEVER logged or displayed.
"""

import copy
import json
from pathlib import Path
from typing import Any, Dict

import yaml
from dotenv import load_dotenv

from .env import ENV_PREFIX, env_flag, env_value


class ConfigLoader:
    """
    Loads and merges configuration from multiple sources.

    Priority (highest to lowest):
    1. OS Environment variables
    2. .env.local file in the config file's directory
    3. the YAML config file

    Recognised environment overrides:
        ORDERDESK_HOST, ORDERDESK_PORT, ORDERDESK_HEARTBEAT_SECONDS,
        ORDERDESK_LOG_LEVEL, ORDERDESK_JSON_LOGS, ORDERDESK_LOG_DIR,
        ORDERDESK_AUTH_TOKENS (JSON list of token entries)
    """

    # Secrets that must never be logged
    SECRET_KEYS = {
        "token",
        "auth_tokens",
    }

    def __init__(self, config_path: Path = Path("config/config.yaml")):
        self.config_file = Path(config_path)
        self.config_dir = self.config_file.parent
        self.secrets_file = self.config_dir / ".env.local"

    def load(self) -> Dict[str, Any]:
        """
        Load configuration from all sources.

        Returns:
            Merged configuration dictionary

        Raises:
            FileNotFoundError: If the config file doesn't exist
            ValueError: If configuration is invalid
        """
        if not self.config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_file}")

        # 1) Base config from YAML
        with open(self.config_file, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f)

        if config is None:
            raise ValueError(f"Empty configuration file: {self.config_file}")
        if not isinstance(config, dict):
            raise ValueError(f"Configuration root must be a mapping: {self.config_file}")

        # 2) Load secrets from .env.local if present.
        #    Important: do NOT override already-set OS env vars.
        if self.secrets_file.exists():
            load_dotenv(self.secrets_file, override=False)

        # 3) Environment overrides
        self._apply_env_overrides(config)

        return config

    def load_and_validate(self):
        """
        Load and validate configuration.

        Returns:
            ConfigSchema instance
        """
        from .schema import ConfigSchema

        config_dict = self.load()

        try:
            return ConfigSchema(**config_dict)
        except Exception as e:
            raise ValueError(f"Configuration validation failed: {self.scrub_message(str(e), config_dict)}") from e

    @staticmethod
    def _apply_env_overrides(config: Dict[str, Any]) -> None:
        server = config.setdefault("server", {})
        host = env_value("HOST")
        if host:
            server["host"] = host
        port = env_value("PORT")
        if port:
            try:
                server["port"] = int(port)
            except ValueError:
                raise ValueError(f"{ENV_PREFIX}PORT must be an integer, got {port!r}") from None

        heartbeat = env_value("HEARTBEAT_SECONDS")
        if heartbeat:
            try:
                config.setdefault("streaming", {})["heartbeat_interval_seconds"] = float(heartbeat)
            except ValueError:
                raise ValueError(f"{ENV_PREFIX}HEARTBEAT_SECONDS must be a number, got {heartbeat!r}") from None

        logging_cfg = config.setdefault("logging", {})
        log_level = env_value("LOG_LEVEL")
        if log_level:
            logging_cfg["log_level"] = log_level.upper()
            logging_cfg["console_level"] = log_level.upper()
        if env_value("JSON_LOGS") is not None:
            logging_cfg["json_logs"] = env_flag("JSON_LOGS")
        log_dir = env_value("LOG_DIR")
        if log_dir:
            logging_cfg["log_dir"] = log_dir

        # Tokens stay out of YAML in deployed setups
        tokens = env_value("AUTH_TOKENS")
        if tokens:
            try:
                parsed = json.loads(tokens)
            except json.JSONDecodeError:
                raise ValueError(f"{ENV_PREFIX}AUTH_TOKENS must be a JSON list") from None
            if not isinstance(parsed, list):
                raise ValueError(f"{ENV_PREFIX}AUTH_TOKENS must be a JSON list")
            config.setdefault("auth", {})["tokens"] = parsed

    @classmethod
    def scrub_message(cls, message: str, config_dict: Dict[str, Any]) -> str:
        """Replace any secret value that leaked into an error message."""
        for value in cls._secret_values(config_dict):
            if value and value in message:
                message = message.replace(value, "[REDACTED]")
        return message

    @classmethod
    def _secret_values(cls, node: Any):
        if isinstance(node, dict):
            for key, value in node.items():
                if key.lower() in cls.SECRET_KEYS and isinstance(value, str):
                    yield value
                else:
                    yield from cls._secret_values(value)
        elif isinstance(node, list):
            for item in node:
                yield from cls._secret_values(item)

    @staticmethod
    def scrub_secrets(config_dict: Dict[str, Any]) -> Dict[str, Any]:
        """
        Replace secret values with [REDACTED] for logging.

        Args:
            config_dict: Configuration dictionary

        Returns:
            Copy with secrets redacted
        """
        scrubbed = copy.deepcopy(config_dict)

        def _scrub_recursive(d: Dict[str, Any]) -> None:
            for key, value in d.items():
                if key.lower() in ConfigLoader.SECRET_KEYS:
                    d[key] = "[REDACTED]"
                elif isinstance(value, dict):
                    _scrub_recursive(value)
                elif isinstance(value, list):
                    for item in value:
                        if isinstance(item, dict):
                            _scrub_recursive(item)

        _scrub_recursive(scrubbed)
        return scrubbed


def load_config(config_path: Path = Path("config/config.yaml")):
    """
    Convenience function to load and validate configuration.

    Args:
        config_path: YAML config file; .env.local is read from its directory

    Returns:
        Validated ConfigSchema instance
    """
    loader = ConfigLoader(config_path)
    return loader.load_and_validate()
