"""
Configuration schema using Pydantic for validation.

Single source of truth for all configuration parameters.
Validates on load, fails fast on invalid config.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# ============================================================================
# ENUMS
# ============================================================================

class LogLevel(str, Enum):
    """Log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class Role(str, Enum):
    CONSUMER = "consumer"
    MERCHANT = "merchant"
    ADMIN = "admin"


class UserAccountStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    BANNED = "banned"


# ============================================================================
# SERVER / STREAMING / ORDERS
# ============================================================================

class ServerConfig(BaseModel):
    """HTTP server binding."""

    host: str = Field(default="127.0.0.1", description="Bind address")
    port: int = Field(ge=1, le=65535, default=8000, description="Bind port")
    cors_origins: List[str] = Field(default_factory=list, description="Allowed CORS origins")


class StreamingConfig(BaseModel):
    """Push connection settings."""

    heartbeat_interval_seconds: float = Field(
        gt=0,
        le=300,
        default=10.0,
        description="Seconds between heartbeat comments on idle streams",
    )

    outbox_max_frames: int = Field(
        ge=1,
        default=1000,
        description="Frames buffered per connection before the client is considered stuck",
    )


class OrdersConfig(BaseModel):
    """Order intake rules."""

    default_pickup_method: str = Field(
        default="self_pickup",
        min_length=1,
        description="Pickup method used when the consumer does not choose one",
    )

    max_note_length: int = Field(
        ge=0,
        le=10_000,
        default=500,
        description="Maximum characters in an order note",
    )

    max_items: int = Field(
        ge=1,
        default=100,
        description="Maximum lines per order",
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    log_dir: Optional[Path] = Field(
        default=Path("logs"),
        description="Base log directory (null disables file logs)"
    )

    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="File logging level"
    )

    console_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Console logging level"
    )

    json_logs: bool = Field(
        default=True,
        description="Use JSON formatting for file logs"
    )

    max_bytes: int = Field(
        ge=1_000_000,
        le=100_000_000,
        default=10_000_000,
        description="Max bytes per log file"
    )

    backup_count: int = Field(
        ge=1,
        le=20,
        default=5,
        description="Number of backup files"
    )


# ============================================================================
# AUTH
# ============================================================================

class TokenConfig(BaseModel):
    """One static bearer token and the identity it resolves to."""

    token: str = Field(min_length=8)
    user_id: str = Field(min_length=1)
    role: Role = Role.CONSUMER
    merchant_id: Optional[str] = None
    account_status: UserAccountStatus = UserAccountStatus.ACTIVE

    @model_validator(mode="after")
    def _merchant_role_needs_merchant(self):
        if self.role == Role.MERCHANT and not self.merchant_id:
            raise ValueError(f"merchant token for user {self.user_id} needs merchant_id")
        return self


class AuthConfig(BaseModel):
    tokens: List[TokenConfig] = Field(default_factory=list)

    @field_validator("tokens")
    @classmethod
    def _unique_tokens(cls, tokens: List[TokenConfig]) -> List[TokenConfig]:
        seen = set()
        for entry in tokens:
            if entry.token in seen:
                raise ValueError(f"duplicate token for user {entry.user_id}")
            seen.add(entry.token)
        return tokens


# ============================================================================
# SEED MERCHANTS
# ============================================================================

class PickupMethodConfig(BaseModel):
    id: str = Field(min_length=1)
    label_en: str
    label_zh: str = ""
    enabled: bool = True
    requires_table_number: bool = False


class KitchenStationConfig(BaseModel):
    id: str = Field(min_length=1)
    name_en: str
    name_zh: str = ""


class MenuItemConfig(BaseModel):
    name: str = Field(min_length=1)
    price: Decimal = Field(ge=Decimal("0"))
    available: bool = True
    station_ids: List[str] = Field(default_factory=list)


class MerchantConfig(BaseModel):
    """Merchant record seeded into the in-memory directory at startup."""

    merchant_id: str = Field(min_length=1)
    owner_user_id: str = Field(min_length=1)
    name: str
    online: bool = True
    account_status: str = "active"
    pickup_methods: List[PickupMethodConfig] = Field(default_factory=list)
    kitchen_stations: List[KitchenStationConfig] = Field(default_factory=list)
    menu: List[MenuItemConfig] = Field(default_factory=list)

    @field_validator("account_status")
    @classmethod
    def _known_account_status(cls, value: str) -> str:
        allowed = {"free_trial", "active", "expired", "suspended", "banned"}
        if value not in allowed:
            raise ValueError(f"account_status must be one of {sorted(allowed)}")
        return value

    @model_validator(mode="after")
    def _menu_stations_exist(self):
        if not self.kitchen_stations:
            return self
        known = {s.id for s in self.kitchen_stations}
        for item in self.menu:
            unknown = set(item.station_ids) - known
            if unknown:
                raise ValueError(f"menu item {item.name} routes to unknown stations {sorted(unknown)}")
        return self


# ============================================================================
# MASTER CONFIGURATION
# ============================================================================

class ConfigSchema(BaseModel):
    """
    Master configuration schema.

    Single source of truth for all parameters.
    Validates on load, fails fast on invalid config.
    """

    server: ServerConfig = Field(default_factory=ServerConfig)
    streaming: StreamingConfig = Field(default_factory=StreamingConfig)
    orders: OrdersConfig = Field(default_factory=OrdersConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    merchants: List[MerchantConfig] = Field(default_factory=list)

    model_config = ConfigDict(validate_assignment=True)

    @model_validator(mode="after")
    def _unique_merchants(self):
        ids = [m.merchant_id for m in self.merchants]
        duplicates = {i for i in ids if ids.count(i) > 1}
        if duplicates:
            raise ValueError(f"duplicate merchant ids: {sorted(duplicates)}")
        return self

    @classmethod
    def from_yaml(cls, path: Path) -> "ConfigSchema":
        """Load config from YAML file."""
        import yaml
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return cls(**data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConfigSchema":
        """Load config from dictionary."""
        return cls(**data)
