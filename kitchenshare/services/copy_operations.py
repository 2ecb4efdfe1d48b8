"""Query helpers for copy-on-write forks.

Every helper takes the caller's active Session; none of them opens a
connection or commits. Statements are SQLAlchemy constructs with bound
parameters only.
"""

from __future__ import annotations

from typing import Optional, TypeVar, Union

from sqlalchemy import select, insert, update, delete, func, literal, inspect
from sqlalchemy.orm import Session

from ..errors import LineageError
from ..models import Collection, Recipe, Ingredient, CollectionRecipe, RecipeIngredient

Forkable = TypeVar("Forkable", Collection, Recipe, Ingredient)

collection_recipes = CollectionRecipe.__table__
recipe_ingredients = RecipeIngredient.__table__

# Columns that describe ownership/lineage rather than content
_LINEAGE_COLUMNS = {"id", "household_id", "parent_id", "created_at", "updated_at"}


class ForkLedger:
    """Rows inserted by the current operation.

    Forking from one of them would create a copy-of-a-copy inside a single
    cascade, which breaks the one-hop lineage of the fork forest.
    """

    def __init__(self):
        self._created: set[tuple[str, int]] = set()

    def record(self, row: Union[Collection, Recipe, Ingredient]) -> None:
        self._created.add((row.__tablename__, row.id))

    def check_source(self, row: Union[Collection, Recipe, Ingredient]) -> None:
        if (row.__tablename__, row.id) in self._created:
            raise LineageError(
                f"Refusing to fork {row.__tablename__} {row.id}: it was created by this operation"
            )


# --- Loads ---

def get_collection(db: Session, collection_id: int) -> Optional[Collection]:
    return db.get(Collection, collection_id)


def get_recipe(db: Session, recipe_id: int) -> Optional[Recipe]:
    return db.get(Recipe, recipe_id)


def get_ingredient(db: Session, ingredient_id: int) -> Optional[Ingredient]:
    return db.get(Ingredient, ingredient_id)


def find_fork(db: Session, model: type[Forkable], household_id: int, parent_id: int) -> Optional[Forkable]:
    """Existing copy of `parent_id` owned by the household, if any."""
    return db.scalar(
        select(model).where(model.household_id == household_id, model.parent_id == parent_id)
    )


def get_url_slug(db: Session, model: type[Union[Collection, Recipe]], resource_id: int) -> Optional[str]:
    return db.scalar(select(model.url_slug).where(model.id == resource_id))


# --- Row clones ---

def _clone(db: Session, source: Forkable, household_id: int, ledger: ForkLedger, **overrides) -> Forkable:
    ledger.check_source(source)
    model = type(source)
    values = {
        attr.key: getattr(source, attr.key)
        for attr in inspect(model).column_attrs
        if attr.key not in _LINEAGE_COLUMNS
    }
    values.update(overrides)
    clone = model(**values, household_id=household_id, parent_id=source.id)
    db.add(clone)
    db.flush()
    ledger.record(clone)
    return clone


def clone_collection(db: Session, collection: Collection, household_id: int, ledger: ForkLedger,
                     title_suffix: str = " (Copy)") -> Collection:
    """Copy a collection record. Copies always start private."""
    return _clone(
        db, collection, household_id, ledger,
        title=f"{collection.title}{title_suffix}",
        public=False,
    )


def clone_recipe(db: Session, recipe: Recipe, household_id: int, ledger: ForkLedger) -> Recipe:
    return _clone(db, recipe, household_id, ledger)


def clone_ingredient(db: Session, ingredient: Ingredient, household_id: int, ledger: ForkLedger) -> Ingredient:
    return _clone(db, ingredient, household_id, ledger)


# --- Junction clones ---

def clone_recipe_ingredients(db: Session, source_recipe_id: int, new_recipe_id: int) -> int:
    """Duplicate the ingredient lines of a recipe onto its copy.

    The copies keep the same ingredient references and remember the line they
    came from in parent_id.
    """
    ri = recipe_ingredients.c
    result = db.execute(
        insert(recipe_ingredients).from_select(
            ["recipe_id", "ingredient_id", "quantity", "quantity4", "measure_id",
             "preparation_id", "primary_ingredient", "parent_id"],
            select(
                literal(new_recipe_id), ri.ingredient_id, ri.quantity, ri.quantity4, ri.measure_id,
                ri.preparation_id, ri.primary_ingredient, ri.id,
            ).where(ri.recipe_id == source_recipe_id),
        )
    )
    return result.rowcount


def clone_collection_recipes(db: Session, source_collection_id: int, new_collection_id: int) -> int:
    """Point a collection copy at the same recipes, keeping display order."""
    cr = collection_recipes.c
    result = db.execute(
        insert(collection_recipes).from_select(
            ["collection_id", "recipe_id", "added_at", "display_order"],
            select(
                literal(new_collection_id), cr.recipe_id, func.now(), cr.display_order,
            ).where(cr.collection_id == source_collection_id),
        )
    )
    return result.rowcount


# --- Repointing ---

def repoint_household_collections(db: Session, old_recipe_id: int, new_recipe_id: int, household_id: int) -> int:
    """Swap old_recipe_id for new_recipe_id in every collection the household owns."""
    cr = collection_recipes.c
    owned_collections = select(Collection.id).where(Collection.household_id == household_id)
    already_linked = select(cr.collection_id).where(cr.recipe_id == new_recipe_id)

    # (collection_id, recipe_id) is the primary key: drop links that would collide
    db.execute(
        delete(collection_recipes).where(
            cr.recipe_id == old_recipe_id,
            cr.collection_id.in_(owned_collections),
            cr.collection_id.in_(already_linked),
        )
    )
    result = db.execute(
        update(collection_recipes)
        .where(cr.recipe_id == old_recipe_id, cr.collection_id.in_(owned_collections))
        .values(recipe_id=new_recipe_id)
    )
    return result.rowcount


def _is_linked(db: Session, collection_id: int, recipe_id: int) -> bool:
    cr = collection_recipes.c
    return bool(db.scalar(
        select(func.count()).select_from(collection_recipes)
        .where(cr.collection_id == collection_id, cr.recipe_id == recipe_id)
    ))


def relink_collection_recipe(db: Session, collection_id: int, old_recipe_id: int, new_recipe_id: int) -> int:
    """Swap the recipe referenced by one collection's junction row."""
    cr = collection_recipes.c
    if _is_linked(db, collection_id, new_recipe_id):
        result = db.execute(
            delete(collection_recipes)
            .where(cr.collection_id == collection_id, cr.recipe_id == old_recipe_id)
        )
        return result.rowcount

    result = db.execute(
        update(collection_recipes)
        .where(cr.collection_id == collection_id, cr.recipe_id == old_recipe_id)
        .values(recipe_id=new_recipe_id)
    )
    return result.rowcount


def link_forked_recipe(db: Session, collection_id: int, source_collection_id: int,
                       old_recipe_id: int, new_recipe_id: int) -> None:
    """Make `collection_id` contain `new_recipe_id` in place of `old_recipe_id`.

    A reused collection fork may not hold the recipe at all (added to the
    source after the fork, or removed from the copy). The link is then
    inserted with the display order the recipe has in the source collection.
    """
    cr = collection_recipes.c
    display_order = db.scalar(
        select(cr.display_order)
        .where(cr.collection_id == source_collection_id, cr.recipe_id == old_recipe_id)
    )
    if old_recipe_id != new_recipe_id:
        relink_collection_recipe(db, collection_id, old_recipe_id, new_recipe_id)
    if not _is_linked(db, collection_id, new_recipe_id):
        db.execute(
            insert(collection_recipes).values(
                collection_id=collection_id,
                recipe_id=new_recipe_id,
                display_order=display_order or 0,
            )
        )


def repoint_household_recipe_ingredients(db: Session, old_ingredient_id: int, new_ingredient_id: int,
                                         household_id: int) -> int:
    """Use the new ingredient in every recipe line of the household's own recipes."""
    ri = recipe_ingredients.c
    owned_recipes = select(Recipe.id).where(Recipe.household_id == household_id)
    result = db.execute(
        update(recipe_ingredients)
        .where(ri.ingredient_id == old_ingredient_id, ri.recipe_id.in_(owned_recipes))
        .values(ingredient_id=new_ingredient_id)
    )
    return result.rowcount
