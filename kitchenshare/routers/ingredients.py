from fastapi import APIRouter, Depends

from ..deps import get_household_id, get_cow_engine, get_access_resolver
from ..schemas import CopyResult, IngredientListing
from ..services.access_tiers import AccessTierResolver
from ..services.copy_on_write import CopyOnWriteEngine

router = APIRouter()


@router.get("/ingredients", response_model=list[IngredientListing])
def list_ingredients(
    household_id: int = Depends(get_household_id),
    resolver: AccessTierResolver = Depends(get_access_resolver),
):
    """Ingredients-tier listing: owned first, then essentials and subscriptions."""
    return resolver.ingredients_access(household_id)


@router.post("/ingredients/{ingredient_id}/copy", response_model=CopyResult)
def copy_ingredient(
    ingredient_id: int,
    household_id: int = Depends(get_household_id),
    engine: CopyOnWriteEngine = Depends(get_cow_engine),
):
    return engine.copy_ingredient_for_edit(ingredient_id, household_id)
