"""SQLAlchemy ORM models for KitchenShare.

Tables:
- households: Tenants, the unit of data ownership
- users: Household members (only the admin flag matters here)
- collections / recipes / ingredients: Shared catalog, each row owned by one
  household; parent_id records the row a fork was copied from
- collection_recipes: Ordered Collection <-> Recipe junction
- recipe_ingredients: Recipe <-> Ingredient junction with quantities
- collection_subscriptions: Read/plan access to a public collection
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Text,
    Integer,
    Boolean,
    Numeric,
    ForeignKey,
    Index,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func, false

from .db import Base


class Household(Base):
    """Tenant. Every shared resource has exactly one owning household."""
    __tablename__ = "households"
    __table_args__ = (
        Index("ix_households_name", "name"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        Index("ix_users_household_id", "household_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    household_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("households.id", ondelete="SET NULL"), nullable=True
    )
    is_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())


class Collection(Base):
    """Ordered group of recipes; public collections can be subscribed to."""
    __tablename__ = "collections"
    __table_args__ = (
        Index("ix_collections_household_id", "household_id"),
        Index("ix_collections_parent_id", "parent_id"),
        Index("ix_collections_public", "public"),
        Index("ix_collections_url_slug", "url_slug"),
        # One fork per (household, source collection)
        UniqueConstraint("household_id", "parent_id", name="uq_collections_household_parent"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    subtitle: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    filename: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    filename_dark: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    household_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("households.id", ondelete="CASCADE"), nullable=False
    )
    parent_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("collections.id", ondelete="SET NULL"), nullable=True
    )
    public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    url_slug: Mapped[str] = mapped_column(String(255), nullable=False, default="", server_default="")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class Recipe(Base):
    """Recipe owned by a household, reachable through collections."""
    __tablename__ = "recipes"
    __table_args__ = (
        Index("ix_recipes_household_id", "household_id"),
        Index("ix_recipes_parent_id", "parent_id"),
        Index("ix_recipes_url_slug", "url_slug"),
        UniqueConstraint("household_id", "parent_id", name="uq_recipes_household_parent"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    prep_time: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    cook_time: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    season_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    primary_type_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    secondary_type_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    url_slug: Mapped[str] = mapped_column(String(255), nullable=False, default="", server_default="")
    image_filename: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    pdf_filename: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    household_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("households.id", ondelete="CASCADE"), nullable=False
    )
    parent_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("recipes.id", ondelete="SET NULL"), nullable=True
    )


class Ingredient(Base):
    """Catalog ingredient; forked per household on edit."""
    __tablename__ = "ingredients"
    __table_args__ = (
        Index("ix_ingredients_household_id", "household_id"),
        Index("ix_ingredients_parent_id", "parent_id"),
        UniqueConstraint("household_id", "parent_id", name="uq_ingredients_household_parent"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    fresh: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    supermarket_category_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    pantry_category_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    stockcode: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    household_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("households.id", ondelete="CASCADE"), nullable=False
    )
    parent_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("ingredients.id", ondelete="SET NULL"), nullable=True
    )


class CollectionRecipe(Base):
    """Collection <-> Recipe junction (ordered)."""
    __tablename__ = "collection_recipes"
    __table_args__ = (
        Index("ix_collection_recipes_recipe_collection", "recipe_id", "collection_id"),
        Index("ix_collection_recipes_display_order", "collection_id", "display_order"),
    )

    collection_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("collections.id", ondelete="CASCADE"), primary_key=True
    )
    recipe_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("recipes.id", ondelete="CASCADE"), primary_key=True
    )
    added_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")


class RecipeIngredient(Base):
    """Recipe <-> Ingredient junction carrying quantities."""
    __tablename__ = "recipe_ingredients"
    __table_args__ = (
        Index("ix_recipe_ingredients_recipe_id", "recipe_id"),
        Index("ix_recipe_ingredients_ingredient_id", "ingredient_id"),
        Index("ix_recipe_ingredients_parent_id", "parent_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    recipe_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False
    )
    # No cascade: an ingredient still referenced by a recipe must not vanish
    ingredient_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("ingredients.id"), nullable=False
    )
    quantity: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    quantity4: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    measure_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    preparation_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    primary_ingredient: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    parent_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


class CollectionSubscription(Base):
    """Grants a household read/plan access to a public collection it does not own."""
    __tablename__ = "collection_subscriptions"
    __table_args__ = (
        Index("ix_collection_subscriptions_household", "household_id"),
        Index("ix_collection_subscriptions_collection", "collection_id"),
    )

    household_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("households.id", ondelete="CASCADE"), primary_key=True
    )
    collection_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("collections.id", ondelete="CASCADE"), primary_key=True
    )
    subscribed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
