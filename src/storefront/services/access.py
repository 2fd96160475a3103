"""
Caller identity and capability checks

Every order operation asks ``authorize`` before touching storage. The
viewer is resolved once per request by the auth gate and trusted as-is.
"""
from dataclasses import dataclass
from typing import Optional, Union
from storefront.exceptions import AuthenticationRequired, Forbidden
import enum
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Anonymous:
    """Caller without a token"""
    user_id: Optional[int] = None
    is_admin = False


@dataclass(frozen=True)
class Customer:
    user_id: int
    username: Optional[str] = None
    is_admin = False


@dataclass(frozen=True)
class Admin:
    user_id: int
    username: Optional[str] = None
    is_admin = True


Viewer = Union[Anonymous, Customer, Admin]


class Capability(str, enum.Enum):
    PLACE_ORDER = "place_order"
    READ_OWN_ORDERS = "read_own_orders"
    READ_ORDER = "read_order"
    READ_ALL_ORDERS = "read_all_orders"
    SET_ORDER_STATUS = "set_order_status"


ADMIN_ONLY = frozenset({Capability.READ_ALL_ORDERS, Capability.SET_ORDER_STATUS})


def authorize(viewer: Viewer, capability: Capability) -> None:
    """Raise unless ``viewer`` may exercise ``capability``."""
    if isinstance(viewer, Anonymous):
        logger.warning(f"Anonymous caller denied {capability.value}")
        raise AuthenticationRequired()

    if capability in ADMIN_ONLY and not isinstance(viewer, Admin):
        logger.warning(f"User {viewer.user_id} denied {capability.value}: admin role required")
        raise Forbidden()


def can_see_order(viewer: Viewer, owner_id: int) -> bool:
    """Admins see every order, customers only their own."""
    if isinstance(viewer, Admin):
        return True
    if isinstance(viewer, Customer):
        return viewer.user_id == owner_id
    return False
