"""Collections API router.

Endpoints:
- GET /api/collections/browse - Public collections (browsing tier)
- GET /api/collections/planning - Owned + subscribed collections (planning tier)
- POST /api/collections/{id}/copy - Copy a collection (recipes are linked, not copied)
- POST /api/collections/{id}/subscription - Subscribe
- DELETE /api/collections/{id}/subscription - Unsubscribe
- POST /api/collections/{id}/toggle-subscription - Flip subscription state
"""

from fastapi import APIRouter, Depends

from ..deps import get_household_id, get_cow_engine, get_subscriptions, get_access_resolver
from ..schemas import CollectionCopyOut, CollectionListing, SubscriptionChange, ToggleSubscriptionResult
from ..services.access_tiers import AccessTierResolver
from ..services.copy_on_write import CopyOnWriteEngine
from ..services.subscriptions import SubscriptionManager

router = APIRouter(prefix="/collections")


@router.get("/browse", response_model=list[CollectionListing])
def browse_collections(
    household_id: int = Depends(get_household_id),
    resolver: AccessTierResolver = Depends(get_access_resolver),
):
    return resolver.browsing_collections(household_id)


@router.get("/planning", response_model=list[CollectionListing])
def planning_collections(
    household_id: int = Depends(get_household_id),
    resolver: AccessTierResolver = Depends(get_access_resolver),
):
    return resolver.planning_collections(household_id)


@router.post("/{collection_id}/copy", response_model=CollectionCopyOut, status_code=201)
def copy_collection(
    collection_id: int,
    household_id: int = Depends(get_household_id),
    engine: CopyOnWriteEngine = Depends(get_cow_engine),
):
    new_id = engine.copy_collection_optimized(collection_id, household_id)
    return CollectionCopyOut(new_collection_id=new_id)


@router.post("/{collection_id}/subscription", response_model=SubscriptionChange)
def subscribe(
    collection_id: int,
    household_id: int = Depends(get_household_id),
    subscriptions: SubscriptionManager = Depends(get_subscriptions),
):
    """Subscribe; `changed` is false when the subscription already existed."""
    changed = subscriptions.subscribe_to_collection(household_id, collection_id)
    return SubscriptionChange(collection_id=collection_id, changed=changed, subscribed=True)


@router.delete("/{collection_id}/subscription", response_model=SubscriptionChange)
def unsubscribe(
    collection_id: int,
    household_id: int = Depends(get_household_id),
    subscriptions: SubscriptionManager = Depends(get_subscriptions),
):
    changed = subscriptions.unsubscribe_from_collection(household_id, collection_id)
    return SubscriptionChange(collection_id=collection_id, changed=changed, subscribed=False)


@router.post("/{collection_id}/toggle-subscription", response_model=ToggleSubscriptionResult)
def toggle_subscription(
    collection_id: int,
    household_id: int = Depends(get_household_id),
    subscriptions: SubscriptionManager = Depends(get_subscriptions),
):
    return subscriptions.toggle_subscription(household_id, collection_id)
