"""Access checks API router.

Endpoints:
- GET /api/access/{type}/{id}?tier= - Access context for a tier (403 below it)
- POST /api/access/batch - Access contexts for several resources
- GET /api/access/{type}/{id}/info - Capability summary
- GET /api/access/{type}/{id}/actions/{action} - Whether one action is allowed
- GET /api/access/slug?collection=&recipe= - Resolve URL slugs to ids
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..deps import get_household_id, get_access_resolver, get_permissions
from ..schemas import AccessContext, AccessInfo, AccessRequest, AccessTier, Action, ResourceType, SlugAccess
from ..services.access_tiers import AccessTierResolver
from ..services.permissions import PermissionChecker

router = APIRouter(prefix="/access")


@router.get("/slug", response_model=SlugAccess)
def resolve_slug(
    collection: str = Query(...),
    recipe: Optional[str] = Query(None),
    household_id: int = Depends(get_household_id),
    permissions: PermissionChecker = Depends(get_permissions),
):
    access = permissions.validate_slug_access(household_id, collection, recipe)
    if access is None:
        raise HTTPException(status_code=404, detail="Not found")
    return access


@router.post("/batch", response_model=dict[str, Optional[AccessContext]])
def validate_batch(
    requests: list[AccessRequest],
    household_id: int = Depends(get_household_id),
    resolver: AccessTierResolver = Depends(get_access_resolver),
):
    return resolver.validate_multiple_access_tiers(household_id, requests)


@router.get("/{resource_type}/{resource_id}", response_model=AccessContext)
def validate_tier(
    resource_type: ResourceType,
    resource_id: int,
    tier: AccessTier = Query(AccessTier.BROWSING),
    household_id: int = Depends(get_household_id),
    resolver: AccessTierResolver = Depends(get_access_resolver),
):
    context = resolver.validate_access_tier(household_id, resource_type, resource_id, tier)
    if context is None:
        raise HTTPException(status_code=403, detail=f"No {tier.value} access to {resource_type.value} {resource_id}")
    return context


@router.get("/{resource_type}/{resource_id}/info", response_model=AccessInfo)
def access_info(
    resource_type: ResourceType,
    resource_id: int,
    household_id: int = Depends(get_household_id),
    permissions: PermissionChecker = Depends(get_permissions),
):
    # Inaccessible and missing resources look the same
    info = permissions.get_access_info(household_id, resource_type, resource_id)
    if info is None:
        raise HTTPException(status_code=404, detail=f"{resource_type.value.capitalize()} not found")
    return info


@router.get("/{resource_type}/{resource_id}/actions/{action}")
def check_action(
    resource_type: ResourceType,
    resource_id: int,
    action: Action,
    household_id: int = Depends(get_household_id),
    permissions: PermissionChecker = Depends(get_permissions),
):
    allowed = permissions.validate_action(household_id, resource_type, resource_id, action)
    return {"allowed": allowed}
