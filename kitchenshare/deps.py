"""FastAPI dependencies for the KitchenShare API.

Provides:
- Store dependency (built once per app in the lifespan handler)
- Household resolution from the X-Household-Id header
- Service factories bound to the store
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException, Request

from .db import Store
from .services.access_tiers import AccessTierResolver
from .services.copy_on_write import CopyOnWriteEngine
from .services.orphan_cleanup import OrphanCleanup
from .services.permissions import PermissionChecker
from .services.subscriptions import SubscriptionManager


def get_store(request: Request) -> Store:
    return request.app.state.store


def get_household_id(
    x_household_id: Optional[str] = Header(None, alias="X-Household-Id"),
) -> int:
    """Household of the caller, resolved upstream by the auth gateway.

    Raises:
        HTTPException 401 if the header is missing, 400 if it is not an id
    """
    if x_household_id is None:
        raise HTTPException(status_code=401, detail="X-Household-Id header required")
    try:
        household_id = int(x_household_id)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid household id '{x_household_id}'")
    if household_id <= 0:
        raise HTTPException(status_code=400, detail=f"Invalid household id '{x_household_id}'")
    return household_id


def get_subscriptions(store: Store = Depends(get_store)) -> SubscriptionManager:
    return SubscriptionManager(store)


def get_cow_engine(subscriptions: SubscriptionManager = Depends(get_subscriptions)) -> CopyOnWriteEngine:
    return CopyOnWriteEngine(subscriptions.store, subscriptions)


def get_cleanup(store: Store = Depends(get_store)) -> OrphanCleanup:
    return OrphanCleanup(store)


def get_access_resolver(store: Store = Depends(get_store)) -> AccessTierResolver:
    return AccessTierResolver(store)


def get_permissions(store: Store = Depends(get_store)) -> PermissionChecker:
    return PermissionChecker(store)
