"""Cleanup after recipe deletion.

Deleting a recipe removes its ingredient lines and then garbage-collects the
household's ingredient copies that no recipe uses anymore. Only fork copies
(parent_id set) are collected; ingredients the household created itself stay.
"""

import logging
from typing import Optional

from sqlalchemy import select, delete
from sqlalchemy.orm import Session

from ..db import Store
from ..errors import NotFoundError, PermissionDeniedError
from ..models import Collection, CollectionRecipe, Ingredient, Recipe, RecipeIngredient
from ..schemas import (
    OrphanCleanupResult,
    RecipeIngredientCleanupResult,
    CompleteCleanupResult,
    RecipeDeleteResult,
)

logger = logging.getLogger("kitchenshare.cleanup")


def delete_recipe_ingredients(db: Session, recipe_id: int) -> int:
    result = db.execute(delete(RecipeIngredient).where(RecipeIngredient.recipe_id == recipe_id))
    return result.rowcount


def delete_orphaned_ingredients(db: Session, household_id: int, exclude_recipe_id: Optional[int] = None) -> list[int]:
    """Delete the household's ingredient copies no recipe line references.

    Lines of `exclude_recipe_id` (the recipe being deleted) do not count as
    references; any of them still pointing at an orphan are deleted with it.
    Lines of other households' recipes do count, since those recipes would
    otherwise point at a deleted row.
    """
    referenced = select(RecipeIngredient.ingredient_id)
    if exclude_recipe_id is not None:
        referenced = referenced.where(RecipeIngredient.recipe_id != exclude_recipe_id)

    orphan_ids = list(db.scalars(
        select(Ingredient.id).where(
            Ingredient.household_id == household_id,
            Ingredient.parent_id.is_not(None),
            Ingredient.id.not_in(referenced),
        ).order_by(Ingredient.id)
    ))
    if orphan_ids:
        if exclude_recipe_id is not None:
            db.execute(
                delete(RecipeIngredient).where(
                    RecipeIngredient.recipe_id == exclude_recipe_id,
                    RecipeIngredient.ingredient_id.in_(orphan_ids),
                )
            )
        db.execute(delete(Ingredient).where(Ingredient.id.in_(orphan_ids)))
    return orphan_ids


class OrphanCleanup:
    def __init__(self, store: Store):
        self.store = store

    def cleanup_orphaned_ingredients(self, household_id: int, deleted_recipe_id: int) -> OrphanCleanupResult:
        with self.store.unit_of_work() as db:
            deleted = delete_orphaned_ingredients(db, household_id, deleted_recipe_id)
        _log_orphans(household_id, deleted)
        return OrphanCleanupResult(deleted_ingredient_ids=deleted)

    def cleanup_orphaned_recipe_ingredients(self, recipe_id: int) -> RecipeIngredientCleanupResult:
        with self.store.unit_of_work() as db:
            count = delete_recipe_ingredients(db, recipe_id)
        return RecipeIngredientCleanupResult(deleted_count=count)

    def perform_complete_cleanup_after_recipe_delete(self, recipe_id: int, household_id: int) -> CompleteCleanupResult:
        with self.store.unit_of_work() as db:
            result = _complete_cleanup(db, recipe_id, household_id)
        _log_orphans(household_id, result.deleted_orphaned_ingredients)
        return result

    def delete_recipe(self, household_id: int, recipe_id: int, collection_id: Optional[int] = None) -> RecipeDeleteResult:
        """Delete an owned recipe, or take a foreign one out of an owned collection.

        Raises:
            NotFoundError: recipe (or the given collection) does not exist
            PermissionDeniedError: household owns neither the recipe nor the collection
        """
        with self.store.unit_of_work() as db:
            recipe = db.get(Recipe, recipe_id)
            if recipe is None:
                raise NotFoundError("recipe", recipe_id)

            if recipe.household_id == household_id:
                cleanup = _complete_cleanup(db, recipe_id, household_id)
                db.execute(delete(CollectionRecipe).where(CollectionRecipe.recipe_id == recipe_id))
                db.execute(delete(Recipe).where(Recipe.id == recipe_id))
                logger.info(f"Household {household_id} deleted recipe {recipe_id}")
                _log_orphans(household_id, cleanup.deleted_orphaned_ingredients)
                return RecipeDeleteResult(recipe_id=recipe_id, action="deleted", cleanup=cleanup)

            if collection_id is None:
                raise PermissionDeniedError("You can only delete recipes owned by your household")

            collection = db.get(Collection, collection_id)
            if collection is None:
                raise NotFoundError("collection", collection_id)
            if collection.household_id != household_id:
                raise PermissionDeniedError("You can only remove recipes from collections owned by your household")

            db.execute(
                delete(CollectionRecipe).where(
                    CollectionRecipe.collection_id == collection_id,
                    CollectionRecipe.recipe_id == recipe_id,
                )
            )
            logger.info(f"Household {household_id} removed recipe {recipe_id} from collection {collection_id}")
            return RecipeDeleteResult(recipe_id=recipe_id, action="removed_from_collection")


def _complete_cleanup(db: Session, recipe_id: int, household_id: int) -> CompleteCleanupResult:
    lines = delete_recipe_ingredients(db, recipe_id)
    orphans = delete_orphaned_ingredients(db, household_id, recipe_id)
    return CompleteCleanupResult(deleted_recipe_ingredients=lines, deleted_orphaned_ingredients=orphans)


def _log_orphans(household_id: int, ingredient_ids: list[int]):
    if ingredient_ids:
        logger.info(f"Household {household_id}: deleted {len(ingredient_ids)} orphaned ingredients {ingredient_ids}")
