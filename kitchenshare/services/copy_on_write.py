"""Copy-on-write engine.

A household may read collections, recipes and ingredients owned by others.
Editing one of them forks it: a private copy is inserted (parent_id points at
the source) and the household's own references are repointed to the copy.

Every public method runs in exactly one unit of work. The helpers below take
the open Session, so a failure at any level rolls back every earlier level.

Cascades resolve top-down (Collection -> Recipe -> Ingredient) and only fork
the levels the household does not own yet.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..db import Store
from ..errors import NotFoundError
from ..models import Collection, Recipe, Ingredient
from ..schemas import CopyResult, CascadeCopyResult, FullCascadeCopyResult, CascadeCopyLinks
from ..settings import settings
from .copy_operations import (
    ForkLedger,
    get_collection,
    get_recipe,
    get_ingredient,
    find_fork,
    get_url_slug,
    clone_collection,
    clone_recipe,
    clone_ingredient,
    clone_recipe_ingredients,
    clone_collection_recipes,
    repoint_household_collections,
    link_forked_recipe,
    repoint_household_recipe_ingredients,
)
from .subscriptions import SubscriptionManager

logger = logging.getLogger("kitchenshare.cow")

COLLECTION_COPIED = "collection_copied"
UNSUBSCRIBED_FROM_ORIGINAL = "unsubscribed_from_original"
RECIPE_COPIED = "recipe_copied"
INGREDIENT_COPIED = "ingredient_copied"


class CopyOnWriteEngine:
    def __init__(
        self,
        store: Store,
        subscriptions: Optional[SubscriptionManager] = None,
        *,
        title_suffix: Optional[str] = None,
    ):
        self.store = store
        self.subscriptions = subscriptions or SubscriptionManager(store)
        self.title_suffix = settings.copy_title_suffix if title_suffix is None else title_suffix

    # --- Single resource ---

    def copy_recipe_for_edit(self, recipe_id: int, household_id: int) -> CopyResult:
        """Return the recipe id the household should edit, forking if needed.

        An owned recipe is returned unchanged. Otherwise the household's copy
        (existing or new) replaces the original in all of its collections.
        """
        with self.store.unit_of_work() as db:
            recipe = _require(get_recipe(db, recipe_id), "recipe", recipe_id)
            if recipe.household_id == household_id:
                return CopyResult(copied=False, new_id=recipe_id)

            new_id, copied = self._fork_recipe(db, recipe, household_id, ForkLedger())
            repoint_household_collections(db, recipe_id, new_id, household_id)

        return CopyResult(copied=copied, new_id=new_id)

    def copy_ingredient_for_edit(self, ingredient_id: int, household_id: int) -> CopyResult:
        """Ingredient counterpart of copy_recipe_for_edit.

        The household keeps one private copy per source ingredient; every
        recipe line of its own recipes is pointed at that copy.
        """
        with self.store.unit_of_work() as db:
            ingredient = _require(get_ingredient(db, ingredient_id), "ingredient", ingredient_id)
            if ingredient.household_id == household_id:
                return CopyResult(copied=False, new_id=ingredient_id)

            new_id, copied = self._fork_ingredient(db, ingredient, household_id, ForkLedger())
            repoint_household_recipe_ingredients(db, ingredient_id, new_id, household_id)

        return CopyResult(copied=copied, new_id=new_id)

    def ensure_recipe_owned(self, household_id: int, recipe_id: int) -> int:
        return self.copy_recipe_for_edit(recipe_id, household_id).new_id

    def ensure_ingredient_owned(self, household_id: int, ingredient_id: int) -> int:
        return self.copy_ingredient_for_edit(ingredient_id, household_id).new_id

    # --- Cascades ---

    def cascade_copy_with_context(self, household_id: int, collection_id: int, recipe_id: int) -> CascadeCopyResult:
        """Fork the collection and/or recipe so the household can edit the recipe in place."""
        with self.store.unit_of_work() as db:
            return self._cascade(db, household_id, collection_id, recipe_id, ForkLedger())

    def cascade_copy_ingredient_with_context(
        self, household_id: int, collection_id: int, recipe_id: int, ingredient_id: int
    ) -> FullCascadeCopyResult:
        with self.store.unit_of_work() as db:
            ledger = ForkLedger()
            # Fail before any fork when the ingredient is missing
            ingredient = _require(get_ingredient(db, ingredient_id), "ingredient", ingredient_id)

            result = self._cascade(db, household_id, collection_id, recipe_id, ledger)
            actions = list(result.actions_taken)
            new_ingredient_id = ingredient_id

            if ingredient.household_id != household_id:
                new_ingredient_id, copied = self._fork_ingredient(db, ingredient, household_id, ledger)
                repoint_household_recipe_ingredients(db, ingredient_id, new_ingredient_id, household_id)
                if copied:
                    actions.append(INGREDIENT_COPIED)

            return FullCascadeCopyResult(
                new_collection_id=result.new_collection_id,
                new_recipe_id=result.new_recipe_id,
                new_ingredient_id=new_ingredient_id,
                actions_taken=actions,
            )

    def trigger_cascade_copy_with_context(self, household_id: int, collection_id: int, recipe_id: int) -> CascadeCopyLinks:
        """Cascade fork plus the slugs of the copies, for redirecting after an edit."""
        with self.store.unit_of_work() as db:
            result = self._cascade(db, household_id, collection_id, recipe_id, ForkLedger())
            links = CascadeCopyLinks(**result.model_dump())
            if COLLECTION_COPIED in result.actions_taken:
                links.new_collection_slug = get_url_slug(db, Collection, result.new_collection_id)
            if RECIPE_COPIED in result.actions_taken:
                links.new_recipe_slug = get_url_slug(db, Recipe, result.new_recipe_id)
        return links

    def copy_collection_optimized(self, source_collection_id: int, household_id: int) -> int:
        """Copy a collection record and its recipe links, without deep-copying recipes."""
        with self.store.unit_of_work() as db:
            source = _require(get_collection(db, source_collection_id), "collection", source_collection_id)
            existing = find_fork(db, Collection, household_id, source.id)
            if existing is not None:
                new_id = existing.id
            else:
                new_id = self._clone_collection(db, source, household_id, ForkLedger())
            self.subscriptions.drop_subscription(db, household_id, source.id)

        return new_id

    # --- Steps (caller's transaction) ---

    def _cascade(
        self, db: Session, household_id: int, collection_id: int, recipe_id: int, ledger: ForkLedger
    ) -> CascadeCopyResult:
        collection = _require(get_collection(db, collection_id), "collection", collection_id)
        recipe = _require(get_recipe(db, recipe_id), "recipe", recipe_id)
        actions: list[str] = []

        new_collection_id = collection_id
        if collection.household_id != household_id:
            existing = find_fork(db, Collection, household_id, collection.id)
            if existing is not None:
                new_collection_id = existing.id
            else:
                new_collection_id = self._clone_collection(db, collection, household_id, ledger)
                actions += [COLLECTION_COPIED, UNSUBSCRIBED_FROM_ORIGINAL]
            # Subscription and copy are never held at once
            self.subscriptions.drop_subscription(db, household_id, collection.id)

        new_recipe_id = recipe_id
        if recipe.household_id != household_id:
            new_recipe_id, copied = self._fork_recipe(db, recipe, household_id, ledger)
            if copied:
                actions.append(RECIPE_COPIED)

        if (new_collection_id, new_recipe_id) != (collection_id, recipe_id):
            # Only the collection being edited
            link_forked_recipe(db, new_collection_id, collection_id, recipe_id, new_recipe_id)

        return CascadeCopyResult(
            new_collection_id=new_collection_id,
            new_recipe_id=new_recipe_id,
            actions_taken=actions,
        )

    def _clone_collection(self, db: Session, collection: Collection, household_id: int, ledger: ForkLedger) -> int:
        clone = clone_collection(db, collection, household_id, ledger, title_suffix=self.title_suffix)
        linked = clone_collection_recipes(db, collection.id, clone.id)
        logger.info(
            f"Household {household_id} forked collection {collection.id} -> {clone.id} ({linked} recipes linked)"
        )
        return clone.id

    def _fork_recipe(self, db: Session, recipe: Recipe, household_id: int, ledger: ForkLedger) -> tuple[int, bool]:
        existing = find_fork(db, Recipe, household_id, recipe.id)
        if existing is not None:
            logger.info(f"Household {household_id} reuses recipe fork {existing.id} of {recipe.id}")
            return existing.id, False

        clone = clone_recipe(db, recipe, household_id, ledger)
        lines = clone_recipe_ingredients(db, recipe.id, clone.id)
        logger.info(f"Household {household_id} forked recipe {recipe.id} -> {clone.id} ({lines} ingredient lines)")
        return clone.id, True

    def _fork_ingredient(self, db: Session, ingredient: Ingredient, household_id: int, ledger: ForkLedger) -> tuple[int, bool]:
        existing = find_fork(db, Ingredient, household_id, ingredient.id)
        if existing is not None:
            logger.info(f"Household {household_id} reuses ingredient fork {existing.id} of {ingredient.id}")
            return existing.id, False

        clone = clone_ingredient(db, ingredient, household_id, ledger)
        logger.info(f"Household {household_id} forked ingredient {ingredient.id} -> {clone.id}")
        return clone.id, True


def _require(row, resource_type: str, resource_id: int):
    if row is None:
        raise NotFoundError(resource_type, resource_id)
    return row
