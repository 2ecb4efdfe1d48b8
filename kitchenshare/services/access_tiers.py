"""Three-tier access model.

Tier 1 - Browsing: public collections, for discovery
Tier 2 - Planning: owned + subscribed collections, for meal planning
Tier 3 - Ingredients: owned ingredients plus those reachable through the
essentials collection or a subscription

Access type precedence is owned > subscribed > accessible/public > none.
A recipe or ingredient is "accessible" when it is reachable through a
collection the household owns or subscribes to (or, for ingredients, through
one of its own recipes or the essentials collection).
"""

from typing import Optional, Union

from sqlalchemy import select, func, or_, and_, case, literal
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ColumnElement

from ..db import Store
from ..models import (
    Collection,
    CollectionRecipe,
    CollectionSubscription,
    Household,
    Ingredient,
    Recipe,
    RecipeIngredient,
)
from ..schemas import (
    AccessContext,
    AccessRequest,
    AccessTier,
    AccessType,
    CollectionListing,
    IngredientListing,
    ResolvedAccess,
    ResourceType,
)
from ..settings import settings

MODELS: dict[ResourceType, type[Union[Collection, Recipe, Ingredient]]] = {
    ResourceType.COLLECTION: Collection,
    ResourceType.RECIPE: Recipe,
    ResourceType.INGREDIENT: Ingredient,
}


# --- Reachability predicates ---

def subscribed_collection_ids(household_id: int):
    return select(CollectionSubscription.collection_id).where(
        CollectionSubscription.household_id == household_id
    )


def reachable_collection(household_id: int, *, include_essentials: bool = False) -> ColumnElement[bool]:
    """Collections the household owns or subscribes to."""
    conditions = [
        Collection.household_id == household_id,
        Collection.id.in_(subscribed_collection_ids(household_id)),
    ]
    if include_essentials:
        conditions.append(Collection.id == settings.essentials_collection_id)
    return or_(*conditions)


def recipe_in_collections(
    db: Session, recipe_id: int, condition: ColumnElement[bool], collection_id: Optional[int] = None
) -> bool:
    """Whether a collection matching `condition` contains the recipe."""
    stmt = (
        select(CollectionRecipe.collection_id)
        .join(Collection, Collection.id == CollectionRecipe.collection_id)
        .where(CollectionRecipe.recipe_id == recipe_id, condition)
    )
    if collection_id is not None:
        stmt = stmt.where(Collection.id == collection_id)
    return bool(db.scalar(select(stmt.exists())))


def ingredient_in_collections(
    db: Session, ingredient_id: int, condition: ColumnElement[bool], collection_id: Optional[int] = None
) -> bool:
    """Whether a recipe using the ingredient sits in a collection matching `condition`."""
    stmt = (
        select(RecipeIngredient.id)
        .join(CollectionRecipe, CollectionRecipe.recipe_id == RecipeIngredient.recipe_id)
        .join(Collection, Collection.id == CollectionRecipe.collection_id)
        .where(RecipeIngredient.ingredient_id == ingredient_id, condition)
    )
    if collection_id is not None:
        stmt = stmt.where(Collection.id == collection_id)
    return bool(db.scalar(select(stmt.exists())))


def ingredient_in_owned_recipe(db: Session, ingredient_id: int, household_id: int) -> bool:
    stmt = (
        select(RecipeIngredient.id)
        .join(Recipe, Recipe.id == RecipeIngredient.recipe_id)
        .where(RecipeIngredient.ingredient_id == ingredient_id, Recipe.household_id == household_id)
    )
    return bool(db.scalar(select(stmt.exists())))


# --- Resolution ---

def resolve_collection(db: Session, household_id: int, collection_id: int) -> Optional[ResolvedAccess]:
    collection = db.get(Collection, collection_id)
    if collection is None:
        return None
    if collection.household_id == household_id:
        return ResolvedAccess(access_type=AccessType.OWNED, can_edit=True)

    subscribed = db.get(CollectionSubscription, (household_id, collection_id)) is not None
    if subscribed:
        return ResolvedAccess(access_type=AccessType.SUBSCRIBED, can_edit=False)
    if collection.public:
        return ResolvedAccess(access_type=AccessType.PUBLIC, can_edit=False, can_subscribe=True)
    return None


def resolve_recipe(db: Session, household_id: int, recipe_id: int) -> Optional[ResolvedAccess]:
    recipe = db.get(Recipe, recipe_id)
    if recipe is None:
        return None
    if recipe.household_id == household_id:
        return ResolvedAccess(access_type=AccessType.OWNED, can_edit=True)
    if recipe_in_collections(db, recipe_id, reachable_collection(household_id)):
        return ResolvedAccess(access_type=AccessType.ACCESSIBLE, can_edit=False)
    if recipe_in_collections(db, recipe_id, Collection.public.is_(True)):
        return ResolvedAccess(access_type=AccessType.PUBLIC, can_edit=False)
    return None


def resolve_ingredient(db: Session, household_id: int, ingredient_id: int) -> Optional[ResolvedAccess]:
    ingredient = db.get(Ingredient, ingredient_id)
    if ingredient is None:
        return None
    if ingredient.household_id == household_id:
        return ResolvedAccess(access_type=AccessType.OWNED, can_edit=True)
    if ingredient_in_owned_recipe(db, ingredient_id, household_id) or ingredient_in_collections(
        db, ingredient_id, reachable_collection(household_id, include_essentials=True)
    ):
        return ResolvedAccess(access_type=AccessType.ACCESSIBLE, can_edit=False)
    if ingredient_in_collections(db, ingredient_id, Collection.public.is_(True)):
        return ResolvedAccess(access_type=AccessType.PUBLIC, can_edit=False)
    return None


_RESOLVERS = {
    ResourceType.COLLECTION: resolve_collection,
    ResourceType.RECIPE: resolve_recipe,
    ResourceType.INGREDIENT: resolve_ingredient,
}


def resolve_access(db: Session, household_id: int, resource_type: ResourceType, resource_id: int) -> Optional[ResolvedAccess]:
    return _RESOLVERS[ResourceType(resource_type)](db, household_id, resource_id)


def has_required_access(context: Optional[AccessContext], required: str) -> bool:
    """Check a resolved context against "view", "edit" or "subscribe"."""
    if context is None:
        return False
    if required == "view":
        return True
    if required == "edit":
        return context.can_edit
    if required == "subscribe":
        return context.can_subscribe
    return False


class AccessTierResolver:
    def __init__(self, store: Store):
        self.store = store

    def resolve_access(self, household_id: int, resource_type: ResourceType, resource_id: int) -> Optional[ResolvedAccess]:
        with self.store.session() as db:
            return resolve_access(db, household_id, resource_type, resource_id)

    def validate_access_tier(
        self,
        household_id: int,
        resource_type: ResourceType,
        resource_id: int,
        required_tier: AccessTier,
    ) -> Optional[AccessContext]:
        """Access context when the household reaches `required_tier`, else None.

        Public and accessible resources satisfy browsing, subscriptions satisfy
        planning, ownership satisfies every tier.
        """
        with self.store.session() as db:
            return _validate(db, household_id, resource_type, resource_id, AccessTier(required_tier))

    def validate_multiple_access_tiers(
        self, household_id: int, requests: list[AccessRequest]
    ) -> dict[str, Optional[AccessContext]]:
        with self.store.session() as db:
            return {
                f"{ResourceType(r.type).value}_{r.id}": _validate(db, household_id, r.type, r.id, r.required_tier)
                for r in requests
            }

    has_required_access = staticmethod(has_required_access)

    # --- Tier listings ---

    def browsing_collections(self, household_id: int) -> list[CollectionListing]:
        """Tier 1: every public collection, with the household's subscription state."""
        subscription = (
            select(CollectionSubscription.collection_id)
            .where(CollectionSubscription.household_id == household_id)
            .subquery()
        )
        stmt = (
            select(Collection, Household.name, _active_recipe_count(), subscription.c.collection_id)
            .join(Household, Household.id == Collection.household_id)
            .outerjoin(subscription, subscription.c.collection_id == Collection.id)
            .where(Collection.public.is_(True))
            .order_by(Collection.title.asc())
        )
        with self.store.session() as db:
            rows = db.execute(stmt).all()

        listings = []
        for collection, owner_name, count, subscribed in rows:
            listings.append(_listing(
                collection, owner_name, count,
                access_type=AccessType.SUBSCRIBED if subscribed is not None else AccessType.PUBLIC,
                can_edit=False,
                can_subscribe=subscribed is None and collection.household_id != household_id,
            ))
        return listings

    def planning_collections(self, household_id: int) -> list[CollectionListing]:
        """Tier 2: owned collections first, then subscribed ones, each by title."""
        owned_first = case((Collection.household_id == household_id, literal(0)), else_=literal(1))
        stmt = (
            select(Collection, Household.name, _active_recipe_count())
            .join(Household, Household.id == Collection.household_id)
            .where(reachable_collection(household_id))
            .order_by(owned_first, Collection.title.asc())
        )
        with self.store.session() as db:
            rows = db.execute(stmt).all()

        return [
            _listing(
                collection, owner_name, count,
                access_type=AccessType.OWNED if collection.household_id == household_id else AccessType.SUBSCRIBED,
                can_edit=collection.household_id == household_id,
                can_subscribe=False,
            )
            for collection, owner_name, count in rows
        ]

    def ingredients_access(self, household_id: int) -> list[IngredientListing]:
        """Tier 3: owned ingredients plus those used in essentials or subscribed collections.

        A foreign ingredient the household already forked is hidden behind its copy.
        """
        used_in_reachable = (
            select(RecipeIngredient.ingredient_id)
            .join(CollectionRecipe, CollectionRecipe.recipe_id == RecipeIngredient.recipe_id)
            .join(Collection, Collection.id == CollectionRecipe.collection_id)
            .where(or_(
                Collection.id == settings.essentials_collection_id,
                Collection.id.in_(subscribed_collection_ids(household_id)),
            ))
        )
        forked_sources = (
            select(Ingredient.parent_id)
            .where(Ingredient.household_id == household_id, Ingredient.parent_id.is_not(None))
        )
        owned_first = case((Ingredient.household_id == household_id, literal(0)), else_=literal(1))
        stmt = (
            select(Ingredient)
            .where(
                or_(
                    Ingredient.household_id == household_id,
                    and_(
                        Ingredient.id.in_(used_in_reachable),
                        Ingredient.id.not_in(forked_sources),
                    ),
                )
            )
            .order_by(owned_first, Ingredient.name.asc())
        )
        with self.store.session() as db:
            ingredients = db.scalars(stmt).all()

        return [
            IngredientListing(
                id=i.id,
                name=i.name,
                household_id=i.household_id,
                parent_id=i.parent_id,
                access_type=AccessType.OWNED if i.household_id == household_id else AccessType.ACCESSIBLE,
                can_edit=i.household_id == household_id,
            )
            for i in ingredients
        ]


def _validate(
    db: Session, household_id: int, resource_type: ResourceType, resource_id: int, required_tier: AccessTier
) -> Optional[AccessContext]:
    resolved = resolve_access(db, household_id, resource_type, resource_id)
    if resolved is None:
        return None
    if resolved.access_type.tier_index < AccessTier(required_tier).level:
        return None

    return AccessContext(
        tier=required_tier,
        household_id=household_id,
        access_type=resolved.access_type,
        can_edit=resolved.access_type is AccessType.OWNED,
        can_subscribe=ResourceType(resource_type) is ResourceType.COLLECTION and resolved.can_subscribe,
    )


def _active_recipe_count():
    """Correlated count of a collection's non-archived recipes."""
    return (
        select(func.count(CollectionRecipe.recipe_id))
        .join(Recipe, Recipe.id == CollectionRecipe.recipe_id)
        .where(CollectionRecipe.collection_id == Collection.id, Recipe.archived.is_(False))
        .correlate(Collection)
        .scalar_subquery()
    )


def _listing(collection: Collection, owner_name: str, count: Optional[int], **flags) -> CollectionListing:
    return CollectionListing(
        id=collection.id,
        title=collection.title,
        subtitle=collection.subtitle,
        url_slug=collection.url_slug,
        household_id=collection.household_id,
        household_name=owner_name,
        recipe_count=count or 0,
        **flags,
    )
