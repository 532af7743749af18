"""
Configuration system with Pydantic validation.

Single source of truth for all configuration parameters.
"""

from .schema import (
    ConfigSchema,
    ServerConfig,
    StreamingConfig,
    OrdersConfig,
    LoggingConfig,
    AuthConfig,
    TokenConfig,
    MerchantConfig,
    LogLevel,
    Role,
    UserAccountStatus,
)

from .loader import (
    ConfigLoader,
    load_config,
)

from .env import load_env, env_flag, env_value

__all__ = [
    "ConfigSchema",
    "ServerConfig",
    "StreamingConfig",
    "OrdersConfig",
    "LoggingConfig",
    "AuthConfig",
    "TokenConfig",
    "MerchantConfig",
    "LogLevel",
    "Role",
    "UserAccountStatus",
    "ConfigLoader",
    "load_config",
    "load_env",
    "env_flag",
    "env_value",
]
