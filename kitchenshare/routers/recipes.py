"""Recipe fork and delete API router.

Endpoints:
- POST /api/recipes/{id}/copy - Get an editable copy of a recipe
- DELETE /api/recipes/{id} - Delete an owned recipe (or remove it from a collection)
- POST /api/collections/{cid}/recipes/{rid}/fork - Fork collection/recipe for editing
- POST /api/collections/{cid}/recipes/{rid}/ingredients/{iid}/fork - Fork down to an ingredient
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from ..deps import get_household_id, get_cow_engine, get_cleanup
from ..schemas import CopyResult, CascadeCopyLinks, FullCascadeCopyResult, RecipeDeleteResult
from ..services.copy_on_write import CopyOnWriteEngine
from ..services.orphan_cleanup import OrphanCleanup

router = APIRouter()
limiter = Limiter(key_func=get_remote_address)


@router.post("/recipes/{recipe_id}/copy", response_model=CopyResult)
def copy_recipe(
    recipe_id: int,
    household_id: int = Depends(get_household_id),
    engine: CopyOnWriteEngine = Depends(get_cow_engine),
):
    """Return the recipe id to edit; forks the recipe when another household owns it."""
    return engine.copy_recipe_for_edit(recipe_id, household_id)


@router.delete("/recipes/{recipe_id}", response_model=RecipeDeleteResult)
def delete_recipe(
    recipe_id: int,
    collection_id: Optional[int] = Query(None),
    household_id: int = Depends(get_household_id),
    cleanup: OrphanCleanup = Depends(get_cleanup),
):
    return cleanup.delete_recipe(household_id, recipe_id, collection_id)


@router.post("/collections/{collection_id}/recipes/{recipe_id}/fork", response_model=CascadeCopyLinks)
@limiter.limit("30/minute")
def fork_recipe_in_collection(
    request: Request,  # Required for rate limiter
    collection_id: int,
    recipe_id: int,
    household_id: int = Depends(get_household_id),
    engine: CopyOnWriteEngine = Depends(get_cow_engine),
):
    return engine.trigger_cascade_copy_with_context(household_id, collection_id, recipe_id)


@router.post(
    "/collections/{collection_id}/recipes/{recipe_id}/ingredients/{ingredient_id}/fork",
    response_model=FullCascadeCopyResult,
)
@limiter.limit("30/minute")
def fork_ingredient_in_recipe(
    request: Request,  # Required for rate limiter
    collection_id: int,
    recipe_id: int,
    ingredient_id: int,
    household_id: int = Depends(get_household_id),
    engine: CopyOnWriteEngine = Depends(get_cow_engine),
):
    return engine.cascade_copy_ingredient_with_context(household_id, collection_id, recipe_id, ingredient_id)
