"""Household-shared catalog: collections, recipes, ingredients, junctions, subscriptions

Revision ID: 001_household_schema
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_household_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Households table
    op.create_table(
        "households",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_households_name", "households", ["name"])

    # Users table
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("household_id", sa.Integer, sa.ForeignKey("households.id", ondelete="SET NULL"), nullable=True),
        sa.Column("is_admin", sa.Boolean, nullable=False, server_default=sa.false()),
    )
    op.create_index("ix_users_household_id", "users", ["household_id"])

    # Collections table
    op.create_table(
        "collections",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("subtitle", sa.Text, nullable=True),
        sa.Column("filename", sa.String(255), nullable=True),
        sa.Column("filename_dark", sa.String(255), nullable=True),
        sa.Column("household_id", sa.Integer, sa.ForeignKey("households.id", ondelete="CASCADE"), nullable=False),
        sa.Column("parent_id", sa.Integer, sa.ForeignKey("collections.id", ondelete="SET NULL"), nullable=True),
        sa.Column("public", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("url_slug", sa.String(255), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("household_id", "parent_id", name="uq_collections_household_parent"),
    )
    op.create_index("ix_collections_household_id", "collections", ["household_id"])
    op.create_index("ix_collections_parent_id", "collections", ["parent_id"])
    op.create_index("ix_collections_public", "collections", ["public"])
    op.create_index("ix_collections_url_slug", "collections", ["url_slug"])

    # Recipes table
    op.create_table(
        "recipes",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("prep_time", sa.Integer, nullable=True),
        sa.Column("cook_time", sa.Integer, nullable=True),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("archived", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("season_id", sa.Integer, nullable=True),
        sa.Column("primary_type_id", sa.Integer, nullable=True),
        sa.Column("secondary_type_id", sa.Integer, nullable=True),
        sa.Column("public", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("url_slug", sa.String(255), nullable=False, server_default=""),
        sa.Column("image_filename", sa.String(255), nullable=True),
        sa.Column("pdf_filename", sa.String(255), nullable=True),
        sa.Column("household_id", sa.Integer, sa.ForeignKey("households.id", ondelete="CASCADE"), nullable=False),
        sa.Column("parent_id", sa.Integer, sa.ForeignKey("recipes.id", ondelete="SET NULL"), nullable=True),
        sa.UniqueConstraint("household_id", "parent_id", name="uq_recipes_household_parent"),
    )
    op.create_index("ix_recipes_household_id", "recipes", ["household_id"])
    op.create_index("ix_recipes_parent_id", "recipes", ["parent_id"])
    op.create_index("ix_recipes_url_slug", "recipes", ["url_slug"])

    # Ingredients table
    op.create_table(
        "ingredients",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("fresh", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("supermarket_category_id", sa.Integer, nullable=True),
        sa.Column("pantry_category_id", sa.Integer, nullable=True),
        sa.Column("cost", sa.Numeric(10, 2), nullable=True),
        sa.Column("stockcode", sa.String(64), nullable=True),
        sa.Column("public", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("household_id", sa.Integer, sa.ForeignKey("households.id", ondelete="CASCADE"), nullable=False),
        sa.Column("parent_id", sa.Integer, sa.ForeignKey("ingredients.id", ondelete="SET NULL"), nullable=True),
        sa.UniqueConstraint("household_id", "parent_id", name="uq_ingredients_household_parent"),
    )
    op.create_index("ix_ingredients_household_id", "ingredients", ["household_id"])
    op.create_index("ix_ingredients_parent_id", "ingredients", ["parent_id"])

    # Collection <-> Recipe junction
    op.create_table(
        "collection_recipes",
        sa.Column("collection_id", sa.Integer, sa.ForeignKey("collections.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("recipe_id", sa.Integer, sa.ForeignKey("recipes.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("added_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("display_order", sa.Integer, nullable=False, server_default="0"),
    )
    op.create_index("ix_collection_recipes_recipe_collection", "collection_recipes", ["recipe_id", "collection_id"])
    op.create_index("ix_collection_recipes_display_order", "collection_recipes", ["collection_id", "display_order"])

    # Recipe <-> Ingredient junction
    op.create_table(
        "recipe_ingredients",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("recipe_id", sa.Integer, sa.ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False),
        sa.Column("ingredient_id", sa.Integer, sa.ForeignKey("ingredients.id"), nullable=False),
        sa.Column("quantity", sa.String(32), nullable=True),
        sa.Column("quantity4", sa.String(32), nullable=True),
        sa.Column("measure_id", sa.Integer, nullable=True),
        sa.Column("preparation_id", sa.Integer, nullable=True),
        sa.Column("primary_ingredient", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("parent_id", sa.Integer, nullable=True),
    )
    op.create_index("ix_recipe_ingredients_recipe_id", "recipe_ingredients", ["recipe_id"])
    op.create_index("ix_recipe_ingredients_ingredient_id", "recipe_ingredients", ["ingredient_id"])
    op.create_index("ix_recipe_ingredients_parent_id", "recipe_ingredients", ["parent_id"])

    # Subscriptions
    op.create_table(
        "collection_subscriptions",
        sa.Column("household_id", sa.Integer, sa.ForeignKey("households.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("collection_id", sa.Integer, sa.ForeignKey("collections.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("subscribed_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_collection_subscriptions_household", "collection_subscriptions", ["household_id"])
    op.create_index("ix_collection_subscriptions_collection", "collection_subscriptions", ["collection_id"])


def downgrade() -> None:
    op.drop_table("collection_subscriptions")
    op.drop_table("recipe_ingredients")
    op.drop_table("collection_recipes")
    op.drop_table("ingredients")
    op.drop_table("recipes")
    op.drop_table("collections")
    op.drop_table("users")
    op.drop_table("households")
