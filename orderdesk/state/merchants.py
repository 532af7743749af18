"""
Merchant directory collaborator.

The lifecycle engine reads merchant records to check that a merchant is
taking orders, to resolve the pickup method and to inherit kitchen station
routing tags from the menu. Menu and account management live elsewhere.
"""

from __future__ import annotations

import copy
import threading
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Tuple

from orderdesk.errors import PreconditionFailedError


class AccountStatus(str, Enum):
    FREE_TRIAL = "free_trial"
    ACTIVE = "active"
    EXPIRED = "expired"
    SUSPENDED = "suspended"
    BANNED = "banned"


# Account states that stop a merchant from receiving new orders.
BLOCKED_ACCOUNT_STATUSES = frozenset({
    AccountStatus.EXPIRED,
    AccountStatus.SUSPENDED,
    AccountStatus.BANNED,
})


@dataclass(frozen=True)
class PickupMethod:
    id: str
    label_en: str
    label_zh: str = ""
    enabled: bool = True
    requires_table_number: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "label_en": self.label_en,
            "label_zh": self.label_zh,
            "enabled": self.enabled,
            "requires_table_number": self.requires_table_number,
        }


DEFAULT_PICKUP_METHODS: Tuple[PickupMethod, ...] = (
    PickupMethod("self_pickup", "Self Pickup", "自取", enabled=True, requires_table_number=False),
    PickupMethod("table_delivery", "Table Delivery", "送餐到桌", enabled=True, requires_table_number=True),
)


@dataclass(frozen=True)
class KitchenStation:
    id: str
    name_en: str
    name_zh: str = ""


@dataclass(frozen=True)
class MenuItem:
    name: str
    price: Decimal
    available: bool = True
    station_ids: Tuple[str, ...] = ()


@dataclass
class Merchant:
    """Directory record for one merchant."""
    merchant_id: str
    owner_user_id: str
    name: str
    online: bool = True
    account_status: AccountStatus = AccountStatus.ACTIVE
    pickup_methods: List[PickupMethod] = field(default_factory=list)
    kitchen_stations: List[KitchenStation] = field(default_factory=list)
    menu: List[MenuItem] = field(default_factory=list)

    def effective_pickup_methods(self) -> List[PickupMethod]:
        """Configured pickup methods, or the defaults when none are configured."""
        return list(self.pickup_methods) if self.pickup_methods else list(DEFAULT_PICKUP_METHODS)

    def resolve_pickup_method(self, method_id: str) -> PickupMethod:
        """
        Look up an enabled pickup method.

        Raises:
            PreconditionFailedError: (400) unknown or disabled method
        """
        for method in self.effective_pickup_methods():
            if method.id == method_id:
                if not method.enabled:
                    raise PreconditionFailedError(
                        f"Pickup method {method_id} is not enabled",
                        http_status=400,
                        pickup_method=method_id,
                    )
                return method
        raise PreconditionFailedError(
            f"Invalid pickup method: {method_id}",
            http_status=400,
            pickup_method=method_id,
        )

    def menu_station_ids(self, item_name: str) -> Tuple[str, ...]:
        """Routing tags of the menu item with this name (empty if none)."""
        for menu_item in self.menu:
            if menu_item.name == item_name:
                return menu_item.station_ids
        return ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Merchant":
        """Build a record from a plain mapping (seed config, fixtures)."""
        return cls(
            merchant_id=str(data["merchant_id"]),
            owner_user_id=str(data["owner_user_id"]),
            name=str(data.get("name", data["merchant_id"])),
            online=bool(data.get("online", True)),
            account_status=AccountStatus(data.get("account_status", AccountStatus.ACTIVE.value)),
            pickup_methods=[PickupMethod(**m) for m in data.get("pickup_methods", [])],
            kitchen_stations=[KitchenStation(**s) for s in data.get("kitchen_stations", [])],
            menu=[
                MenuItem(
                    name=m["name"],
                    price=Decimal(str(m.get("price", "0"))),
                    available=bool(m.get("available", True)),
                    station_ids=tuple(m.get("station_ids", ())),
                )
                for m in data.get("menu", [])
            ],
        )


class MerchantDirectory(Protocol):
    def get_merchant(self, merchant_id: str) -> Optional[Merchant]: ...

    def get_merchant_for_user(self, user_id: str) -> Optional[Merchant]: ...


class InMemoryMerchantDirectory:
    """Thread-safe in-memory merchant directory keyed by merchant id."""

    def __init__(self, merchants: Optional[Iterable[Merchant]] = None):
        self._merchants: Dict[str, Merchant] = {}
        self._lock = threading.Lock()
        for merchant in merchants or ():
            self.add_merchant(merchant)

    def add_merchant(self, merchant: Merchant) -> None:
        with self._lock:
            self._merchants[merchant.merchant_id] = copy.deepcopy(merchant)

    def get_merchant(self, merchant_id: str) -> Optional[Merchant]:
        with self._lock:
            merchant = self._merchants.get(merchant_id)
            return copy.deepcopy(merchant) if merchant is not None else None

    def get_merchant_for_user(self, user_id: str) -> Optional[Merchant]:
        with self._lock:
            for merchant in self._merchants.values():
                if merchant.owner_user_id == user_id:
                    return copy.deepcopy(merchant)
            return None

    def set_online(self, merchant_id: str, online: bool) -> None:
        with self._lock:
            self._merchants[merchant_id].online = online

    def set_account_status(self, merchant_id: str, status: AccountStatus) -> None:
        with self._lock:
            self._merchants[merchant_id].account_status = status

    def __len__(self) -> int:
        with self._lock:
            return len(self._merchants)
