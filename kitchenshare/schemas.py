"""Pydantic schemas for KitchenShare.

Enums shared by the services and the API, plus request/response models for:
- Access tiers and permissions
- Copy-on-write results
- Subscriptions
- Cleanup results
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Literal

from pydantic import BaseModel, Field


# --- Enums ---

class ResourceType(str, Enum):
    COLLECTION = "collection"
    RECIPE = "recipe"
    INGREDIENT = "ingredient"


class AccessTier(str, Enum):
    BROWSING = "browsing"
    PLANNING = "planning"
    INGREDIENTS = "ingredients"

    @property
    def level(self) -> int:
        return _TIER_ORDER.index(self)


_TIER_ORDER = [AccessTier.BROWSING, AccessTier.PLANNING, AccessTier.INGREDIENTS]


class AccessType(str, Enum):
    OWNED = "owned"
    SUBSCRIBED = "subscribed"
    PUBLIC = "public"
    ACCESSIBLE = "accessible"

    @property
    def tier_index(self) -> int:
        """Tier level this kind of access satisfies."""
        if self is AccessType.OWNED:
            return 2
        if self is AccessType.SUBSCRIBED:
            return 1
        return 0


class Action(str, Enum):
    VIEW = "view"
    EDIT = "edit"
    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    COPY = "copy"


# --- Access ---

class ResolvedAccess(BaseModel):
    access_type: AccessType
    can_edit: bool
    can_subscribe: bool = False


class AccessContext(BaseModel):
    tier: AccessTier
    household_id: int
    access_type: AccessType
    can_edit: bool
    can_subscribe: bool


class AccessRequest(BaseModel):
    type: ResourceType
    id: int
    required_tier: AccessTier


class AccessInfo(BaseModel):
    has_access: bool
    access_type: Optional[AccessType]
    can_view: bool
    can_edit: bool
    can_copy: bool
    can_subscribe: Optional[bool] = None
    can_unsubscribe: Optional[bool] = None


class SlugAccess(BaseModel):
    collection_id: int
    recipe_id: Optional[int] = None


class CollectionListing(BaseModel):
    """Collection row as shown in the browsing/planning tiers."""
    id: int
    title: str
    subtitle: Optional[str] = None
    url_slug: str
    household_id: int
    household_name: str
    access_type: AccessType
    recipe_count: int
    can_edit: bool
    can_subscribe: bool


class IngredientListing(BaseModel):
    id: int
    name: str
    household_id: int
    parent_id: Optional[int] = None
    access_type: AccessType
    can_edit: bool


# --- Copy-on-write ---

class CopyResult(BaseModel):
    copied: bool
    new_id: int


class CascadeCopyResult(BaseModel):
    new_collection_id: int
    new_recipe_id: int
    actions_taken: list[str] = Field(default_factory=list)


class FullCascadeCopyResult(CascadeCopyResult):
    new_ingredient_id: int


class CascadeCopyLinks(CascadeCopyResult):
    """Cascade result plus the slugs a caller redirects to after a fork."""
    new_collection_slug: Optional[str] = None
    new_recipe_slug: Optional[str] = None


class CollectionCopyOut(BaseModel):
    new_collection_id: int


# --- Cleanup ---

class OrphanCleanupResult(BaseModel):
    deleted_ingredient_ids: list[int] = Field(default_factory=list)


class RecipeIngredientCleanupResult(BaseModel):
    deleted_count: int


class CompleteCleanupResult(BaseModel):
    deleted_recipe_ingredients: int
    deleted_orphaned_ingredients: list[int] = Field(default_factory=list)


class RecipeDeleteResult(BaseModel):
    recipe_id: int
    action: Literal["deleted", "removed_from_collection"]
    cleanup: Optional[CompleteCleanupResult] = None


# --- Subscriptions ---

class SubscribedCollectionOut(BaseModel):
    id: int
    title: str
    subtitle: Optional[str] = None
    url_slug: str
    household_id: int
    owner_name: str
    recipe_count: int
    subscribed_at: Optional[datetime] = None
    access_type: AccessType = AccessType.SUBSCRIBED
    can_edit: bool = False


class SubscriptionStats(BaseModel):
    total_subscriptions: int
    total_subscribed_recipes: int
    recent_subscriptions: list[SubscribedCollectionOut] = Field(default_factory=list)


class SubscriptionChange(BaseModel):
    collection_id: int
    changed: bool
    subscribed: bool


class ToggleSubscriptionResult(BaseModel):
    collection_id: int
    action: Literal["subscribed", "unsubscribed"]
    subscribed: bool
    success: bool
