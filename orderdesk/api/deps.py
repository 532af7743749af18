"""Request dependencies: container lookup and caller identity."""

from typing import Optional

from fastapi import Header, Request

from orderdesk.auth import Identity, parse_bearer
from orderdesk.di.container import Container
from orderdesk.errors import AuthorizationError


def get_container(request: Request) -> Container:
    return request.app.state.container


def current_identity(
    request: Request,
    authorization: Optional[str] = Header(default=None),
) -> Identity:
    """Resolve the bearer token; raises AuthenticationError (401)."""
    container = get_container(request)
    return container.get_identity_resolver().resolve_identity(parse_bearer(authorization))


def require_active(identity: Identity) -> Identity:
    """Banned and suspended accounts may read but not act."""
    if identity.is_blocked:
        raise AuthorizationError(
            f"Account is {identity.account_status.value}",
            account_status=identity.account_status.value,
        )
    return identity


def merchant_id_for(container: Container, identity: Identity) -> Optional[str]:
    """Merchant the caller owns, from the token or the merchant directory."""
    if identity.merchant_id:
        return identity.merchant_id
    merchant = container.get_merchant_directory().get_merchant_for_user(identity.user_id)
    return merchant.merchant_id if merchant is not None else None


def require_merchant(container: Container, identity: Identity) -> str:
    merchant_id = merchant_id_for(container, identity)
    if not merchant_id:
        raise AuthorizationError("Caller is not a merchant")
    return merchant_id
