"""Permission checks for household-owned resources.

Resources are editable only by the owning household. Viewing follows the
access tiers: ownership, a subscription, or reachability through a public
collection.
"""

from typing import Optional

from sqlalchemy import select, true

from ..db import Store
from ..models import Collection, CollectionRecipe, Ingredient, Recipe, User
from ..schemas import AccessInfo, AccessType, Action, ResourceType, SlugAccess
from .access_tiers import (
    MODELS,
    ingredient_in_collections,
    ingredient_in_owned_recipe,
    reachable_collection,
    recipe_in_collections,
    resolve_access,
    resolve_collection,
)


class PermissionChecker:
    def __init__(self, store: Store):
        self.store = store

    def can_edit_resource(self, household_id: int, resource_type: ResourceType, resource_id: int) -> bool:
        model = MODELS[ResourceType(resource_type)]
        with self.store.session() as db:
            owner = db.scalar(select(model.household_id).where(model.id == resource_id))
        return owner is not None and owner == household_id

    def get_collection_access(self, household_id: int, collection_id: int) -> Optional[AccessType]:
        with self.store.session() as db:
            resolved = resolve_collection(db, household_id, collection_id)
        return resolved.access_type if resolved else None

    def can_access_collection(self, household_id: int, collection_id: int) -> bool:
        return self.get_collection_access(household_id, collection_id) is not None

    def can_access_recipe(self, household_id: int, recipe_id: int, collection_id: Optional[int] = None) -> bool:
        """Recipe is owned or sits in an owned, subscribed or public collection.

        With `collection_id`, access only counts through that collection, so the
        recipe must be a member of it.
        """
        with self.store.session() as db:
            recipe = db.get(Recipe, recipe_id)
            if recipe is None:
                return False
            reach = reachable_collection(household_id) | Collection.public.is_(True)
            if collection_id is not None:
                if not recipe_in_collections(db, recipe_id, true(), collection_id):
                    return False
                return recipe.household_id == household_id or recipe_in_collections(
                    db, recipe_id, reach, collection_id
                )
            return recipe.household_id == household_id or recipe_in_collections(db, recipe_id, reach)

    def can_access_ingredient(self, household_id: int, ingredient_id: int, collection_id: Optional[int] = None) -> bool:
        """Ingredient is owned, used by an owned recipe, or used in a reachable collection.

        The essentials collection is always reachable.
        """
        with self.store.session() as db:
            ingredient = db.get(Ingredient, ingredient_id)
            if ingredient is None:
                return False
            reach = reachable_collection(household_id, include_essentials=True) | Collection.public.is_(True)
            if collection_id is not None:
                if not ingredient_in_collections(db, ingredient_id, true(), collection_id):
                    return False
                return ingredient.household_id == household_id or ingredient_in_collections(
                    db, ingredient_id, reach, collection_id
                )
            return (
                ingredient.household_id == household_id
                or ingredient_in_owned_recipe(db, ingredient_id, household_id)
                or ingredient_in_collections(db, ingredient_id, reach)
            )

    def validate_recipe_in_collection(self, household_id: int, recipe_id: int, collection_id: int) -> bool:
        # Membership of a collection the household cannot see is never revealed
        if not self.can_access_collection(household_id, collection_id):
            return False
        with self.store.session() as db:
            link = db.get(CollectionRecipe, (collection_id, recipe_id))
        return link is not None

    def can_edit_multiple_resources(
        self, household_id: int, resource_type: ResourceType, resource_ids: list[int]
    ) -> dict[int, bool]:
        if not resource_ids:
            return {}
        model = MODELS[ResourceType(resource_type)]
        permissions = {resource_id: False for resource_id in resource_ids}
        with self.store.session() as db:
            rows = db.execute(select(model.id, model.household_id).where(model.id.in_(resource_ids))).all()
        for resource_id, owner in rows:
            permissions[resource_id] = owner == household_id
        return permissions

    def is_admin(self, user_id: int) -> bool:
        with self.store.session() as db:
            flag = db.scalar(select(User.is_admin).where(User.id == user_id))
        return bool(flag)

    # --- Actions ---

    def validate_action(self, household_id: int, resource_type: ResourceType, resource_id: int, action: Action) -> bool:
        with self.store.session() as db:
            resolved = resolve_access(db, household_id, resource_type, resource_id)
        return _allows(ResourceType(resource_type), resolved.access_type if resolved else None, Action(action))

    def get_access_info(self, household_id: int, resource_type: ResourceType, resource_id: int) -> Optional[AccessInfo]:
        resource_type = ResourceType(resource_type)
        with self.store.session() as db:
            resolved = resolve_access(db, household_id, resource_type, resource_id)
        if resolved is None:
            return None

        access_type = resolved.access_type
        info = AccessInfo(
            has_access=True,
            access_type=access_type,
            can_view=_allows(resource_type, access_type, Action.VIEW),
            can_edit=_allows(resource_type, access_type, Action.EDIT),
            can_copy=_allows(resource_type, access_type, Action.COPY),
        )
        if resource_type is ResourceType.COLLECTION:
            info.can_subscribe = _allows(resource_type, access_type, Action.SUBSCRIBE)
            info.can_unsubscribe = _allows(resource_type, access_type, Action.UNSUBSCRIBE)
        return info

    def validate_slug_access(
        self, household_id: int, collection_slug: str, recipe_slug: Optional[str] = None
    ) -> Optional[SlugAccess]:
        """Resolve URL slugs to ids, only for collections/recipes the household may view."""
        with self.store.session() as db:
            visible = reachable_collection(household_id) | Collection.public.is_(True)
            collection_id = db.scalar(
                select(Collection.id)
                .where(Collection.url_slug == collection_slug, visible)
                .order_by(Collection.id)
                .limit(1)
            )
            if collection_id is None:
                return None
            if recipe_slug is None:
                return SlugAccess(collection_id=collection_id)

            recipe_id = db.scalar(
                select(Recipe.id)
                .join(CollectionRecipe, CollectionRecipe.recipe_id == Recipe.id)
                .where(Recipe.url_slug == recipe_slug, CollectionRecipe.collection_id == collection_id)
                .order_by(Recipe.id)
                .limit(1)
            )
        if recipe_id is None:
            return None
        return SlugAccess(collection_id=collection_id, recipe_id=recipe_id)


def _allows(resource_type: ResourceType, access_type: Optional[AccessType], action: Action) -> bool:
    if access_type is None:
        return False

    if resource_type is ResourceType.COLLECTION:
        if action is Action.VIEW:
            return True
        if action is Action.EDIT:
            return access_type is AccessType.OWNED
        if action is Action.SUBSCRIBE:
            return access_type is AccessType.PUBLIC
        if action is Action.UNSUBSCRIBE:
            return access_type is AccessType.SUBSCRIBED
        if action is Action.COPY:
            return access_type in (AccessType.PUBLIC, AccessType.SUBSCRIBED)
        return False

    if action is Action.VIEW:
        return True
    if action is Action.EDIT:
        return access_type is AccessType.OWNED
    if action is Action.COPY:
        return access_type is not AccessType.OWNED
    return False
