from fastapi import APIRouter, Depends

from ..deps import get_household_id, get_subscriptions
from ..schemas import SubscribedCollectionOut, SubscriptionStats
from ..services.subscriptions import SubscriptionManager

router = APIRouter(prefix="/subscriptions")


@router.get("", response_model=list[SubscribedCollectionOut])
def list_subscriptions(
    household_id: int = Depends(get_household_id),
    subscriptions: SubscriptionManager = Depends(get_subscriptions),
):
    return subscriptions.get_subscribed_collections(household_id)


@router.get("/stats", response_model=SubscriptionStats)
def subscription_stats(
    household_id: int = Depends(get_household_id),
    subscriptions: SubscriptionManager = Depends(get_subscriptions),
):
    return subscriptions.get_subscription_stats(household_id)
