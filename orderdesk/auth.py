"""
Identity resolution collaborator.

Maps a bearer credential to an Identity. Token issuance lives elsewhere;
StaticTokenResolver serves a fixed token table from configuration.
"""

import hmac
import threading
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Protocol

from orderdesk.config.schema import Role, TokenConfig, UserAccountStatus
from orderdesk.errors import AuthenticationError
from orderdesk.logging import get_logger, LogStream

BEARER_PREFIX = "bearer "


@dataclass(frozen=True)
class Identity:
    user_id: str
    role: Role = Role.CONSUMER
    merchant_id: Optional[str] = None
    account_status: UserAccountStatus = UserAccountStatus.ACTIVE

    @property
    def is_blocked(self) -> bool:
        return self.account_status in (UserAccountStatus.BANNED, UserAccountStatus.SUSPENDED)

    @property
    def is_merchant(self) -> bool:
        return self.merchant_id is not None


class IdentityResolver(Protocol):
    def resolve_identity(self, credential: Optional[str]) -> Identity: ...


def parse_bearer(header_value: Optional[str]) -> Optional[str]:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    if not header_value:
        return None
    if header_value[:len(BEARER_PREFIX)].lower() != BEARER_PREFIX:
        return None
    token = header_value[len(BEARER_PREFIX):].strip()
    return token or None


class StaticTokenResolver:
    """
    Resolves tokens from a fixed table.

    Lookups compare every entry with hmac.compare_digest so timing does not
    reveal which prefix matched.
    """

    def __init__(self, tokens: Optional[Iterable[TokenConfig]] = None):
        self.logger = get_logger(LogStream.API)
        self._identities: Dict[str, Identity] = {}
        self._lock = threading.Lock()
        for entry in tokens or ():
            self.register(entry)

    def register(self, entry: TokenConfig) -> None:
        identity = Identity(
            user_id=entry.user_id,
            role=entry.role,
            merchant_id=entry.merchant_id,
            account_status=entry.account_status,
        )
        with self._lock:
            self._identities[entry.token] = identity

    def resolve_identity(self, credential: Optional[str]) -> Identity:
        """
        Raises:
            AuthenticationError: credential missing or unknown
        """
        if not credential:
            raise AuthenticationError("Missing bearer token")

        match: Optional[Identity] = None
        with self._lock:
            entries = list(self._identities.items())
        for token, identity in entries:
            if hmac.compare_digest(token.encode(), credential.encode()):
                match = identity

        if match is None:
            self.logger.warning("Rejected unknown token")
            raise AuthenticationError("Invalid or expired token")
        return match

    def __len__(self) -> int:
        with self._lock:
            return len(self._identities)
