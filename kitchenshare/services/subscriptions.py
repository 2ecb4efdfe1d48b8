"""Collection subscriptions.

A household can subscribe to a public collection it does not own. The
subscription grants browsing/planning access; forking the collection makes it
redundant, so the copy-on-write engine drops it through drop_subscription().
"""

import logging
from typing import Optional

from sqlalchemy import select, delete, func
from sqlalchemy.orm import Session

from ..db import Store
from ..errors import NotFoundError, SubscriptionError
from ..models import Collection, CollectionRecipe, CollectionSubscription, Household
from ..schemas import (
    SubscribedCollectionOut,
    SubscriptionStats,
    ToggleSubscriptionResult,
)

logger = logging.getLogger("kitchenshare.subscriptions")


def drop_subscription(db: Session, household_id: int, collection_id: int) -> bool:
    """Delete a subscription inside the caller's transaction."""
    result = db.execute(
        delete(CollectionSubscription).where(
            CollectionSubscription.household_id == household_id,
            CollectionSubscription.collection_id == collection_id,
        )
    )
    return result.rowcount > 0


def subscription_exists(db: Session, household_id: int, collection_id: int) -> bool:
    return db.get(CollectionSubscription, (household_id, collection_id)) is not None


class SubscriptionManager:
    def __init__(self, store: Store):
        self.store = store

    def subscribe_to_collection(self, household_id: int, collection_id: int) -> bool:
        """Subscribe to a public collection.

        Returns False when the subscription already exists.

        Raises:
            NotFoundError: collection does not exist
            SubscriptionError: collection is owned by the household or private
        """
        with self.store.unit_of_work() as db:
            collection = db.get(Collection, collection_id)
            if collection is None:
                raise NotFoundError("collection", collection_id)
            if collection.household_id == household_id:
                raise SubscriptionError("Cannot subscribe to your own collection")
            if not collection.public:
                raise SubscriptionError("Cannot subscribe to private collection")

            if subscription_exists(db, household_id, collection_id):
                return False

            db.add(CollectionSubscription(household_id=household_id, collection_id=collection_id))
            db.flush()

        logger.info(f"Household {household_id} subscribed to collection {collection_id}")
        return True

    def unsubscribe_from_collection(self, household_id: int, collection_id: int) -> bool:
        with self.store.unit_of_work() as db:
            removed = drop_subscription(db, household_id, collection_id)
        if removed:
            logger.info(f"Household {household_id} unsubscribed from collection {collection_id}")
        return removed

    def toggle_subscription(self, household_id: int, collection_id: int) -> ToggleSubscriptionResult:
        if self.is_subscribed(household_id, collection_id):
            success = self.unsubscribe_from_collection(household_id, collection_id)
            return ToggleSubscriptionResult(
                collection_id=collection_id, action="unsubscribed", subscribed=False, success=success
            )

        success = self.subscribe_to_collection(household_id, collection_id)
        return ToggleSubscriptionResult(
            collection_id=collection_id, action="subscribed", subscribed=True, success=success
        )

    def drop_subscription(self, db: Session, household_id: int, collection_id: int) -> bool:
        """Remove a subscription made redundant by a fork, in the fork's transaction."""
        removed = drop_subscription(db, household_id, collection_id)
        if removed:
            logger.info(f"Household {household_id} subscription to collection {collection_id} dropped after fork")
        return removed

    def is_subscribed(self, household_id: int, collection_id: int) -> bool:
        with self.store.session() as db:
            return subscription_exists(db, household_id, collection_id)

    def get_subscribed_collections(
        self, household_id: int, limit: Optional[int] = None
    ) -> list[SubscribedCollectionOut]:
        """Subscribed collections, newest subscription first."""
        with self.store.session() as db:
            return _subscribed_collections(db, household_id, limit)

    def get_subscription_stats(self, household_id: int) -> SubscriptionStats:
        with self.store.session() as db:
            total_subscriptions = db.scalar(
                select(func.count()).select_from(CollectionSubscription)
                .where(CollectionSubscription.household_id == household_id)
            )
            total_recipes = db.scalar(
                select(func.count(CollectionRecipe.recipe_id))
                .join(
                    CollectionSubscription,
                    CollectionSubscription.collection_id == CollectionRecipe.collection_id,
                )
                .where(CollectionSubscription.household_id == household_id)
            )
            recent = _subscribed_collections(db, household_id, limit=5)

        return SubscriptionStats(
            total_subscriptions=total_subscriptions or 0,
            total_subscribed_recipes=total_recipes or 0,
            recent_subscriptions=recent,
        )


def _subscribed_collections(db: Session, household_id: int, limit: Optional[int]) -> list[SubscribedCollectionOut]:
    recipe_count = (
        select(func.count(CollectionRecipe.recipe_id))
        .where(CollectionRecipe.collection_id == Collection.id)
        .correlate(Collection)
        .scalar_subquery()
    )
    stmt = (
        select(Collection, Household.name, recipe_count, CollectionSubscription.subscribed_at)
        .join(Household, Household.id == Collection.household_id)
        .join(CollectionSubscription, CollectionSubscription.collection_id == Collection.id)
        .where(CollectionSubscription.household_id == household_id)
        .order_by(CollectionSubscription.subscribed_at.desc(), Collection.title.asc())
    )
    if limit is not None:
        stmt = stmt.limit(limit)

    return [
        SubscribedCollectionOut(
            id=collection.id,
            title=collection.title,
            subtitle=collection.subtitle,
            url_slug=collection.url_slug,
            household_id=collection.household_id,
            owner_name=owner_name,
            recipe_count=count or 0,
            subscribed_at=subscribed_at,
        )
        for collection, owner_name, count, subscribed_at in db.execute(stmt).all()
    ]
