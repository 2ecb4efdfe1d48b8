import os

# Settings are read at import time; never point tests at a real server
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from kitchenshare.main import app
from kitchenshare.db import Base, Store
from kitchenshare.deps import get_store
from kitchenshare.models import (
    Household,
    User,
    Collection,
    Recipe,
    Ingredient,
    CollectionRecipe,
    RecipeIngredient,
    CollectionSubscription,
)
from kitchenshare.services.access_tiers import AccessTierResolver
from kitchenshare.services.copy_on_write import CopyOnWriteEngine
from kitchenshare.services.orphan_cleanup import OrphanCleanup
from kitchenshare.services.permissions import PermissionChecker
from kitchenshare.services.subscriptions import SubscriptionManager
from kitchenshare.settings import settings

# --- Test Database Setup ---

SQLALCHEMY_DATABASE_URL = "sqlite://"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool  # One shared in-memory database for every session
)
# Built before the first connect so the foreign key pragma is applied
test_store = Store(engine=engine)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test, drop after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def essentials_id(monkeypatch):
    """Move the essentials collection out of the way of fixture ids.

    Tests that need it point the setting at a collection they created.
    """
    monkeypatch.setattr(settings, "essentials_collection_id", 10_000)
    return 10_000


@pytest.fixture
def store():
    return test_store


@pytest.fixture
def client():
    """Test client with store override."""
    app.dependency_overrides[get_store] = lambda: test_store
    app.state.store = test_store
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
    app.state.store = None


@pytest.fixture
def db_session():
    """Direct database session for setup and verification."""
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture
def engine_service(store):
    return CopyOnWriteEngine(store)


@pytest.fixture
def subscriptions(store):
    return SubscriptionManager(store)


@pytest.fixture
def cleanup(store):
    return OrphanCleanup(store)


@pytest.fixture
def resolver(store):
    return AccessTierResolver(store)


@pytest.fixture
def permissions(store):
    return PermissionChecker(store)


class Factory:
    """Creates committed rows; every helper returns the new row's id."""

    def __init__(self, session):
        self.session = session

    def _add(self, row):
        self.session.add(row)
        self.session.commit()
        return row

    def household(self, name="Household"):
        return self._add(Household(name=name)).id

    def user(self, household_id, email, is_admin=False):
        return self._add(User(email=email, name=email, household_id=household_id, is_admin=is_admin)).id

    def collection(self, household_id, title="Collection", public=False, url_slug=None, **kwargs):
        return self._add(Collection(
            title=title,
            household_id=household_id,
            public=public,
            url_slug=url_slug or title.lower().replace(" ", "-"),
            **kwargs,
        )).id

    def recipe(self, household_id, name="Recipe", url_slug=None, **kwargs):
        return self._add(Recipe(
            name=name,
            household_id=household_id,
            url_slug=url_slug or name.lower().replace(" ", "-"),
            **kwargs,
        )).id

    def ingredient(self, household_id, name="Ingredient", **kwargs):
        return self._add(Ingredient(name=name, household_id=household_id, **kwargs)).id

    def link(self, collection_id, recipe_id, display_order=0):
        self._add(CollectionRecipe(collection_id=collection_id, recipe_id=recipe_id, display_order=display_order))

    def line(self, recipe_id, ingredient_id, quantity="1", **kwargs):
        return self._add(RecipeIngredient(
            recipe_id=recipe_id, ingredient_id=ingredient_id, quantity=quantity, **kwargs
        )).id

    def subscribe(self, household_id, collection_id, **kwargs):
        self._add(CollectionSubscription(household_id=household_id, collection_id=collection_id, **kwargs))


@pytest.fixture
def factory(db_session):
    return Factory(db_session)


@pytest.fixture
def households(factory):
    """Two households: 1 is the acting household, 2 owns the shared catalog."""
    return factory.household("Mine"), factory.household("Theirs")


@pytest.fixture
def shared_catalog(factory, households):
    """Public collection of household 2 with one recipe using two ingredients."""
    mine, theirs = households
    collection_id = factory.collection(theirs, "Weeknight Dinners", public=True)
    recipe_id = factory.recipe(theirs, "Lentil Soup", prep_time=10, cook_time=30, description="Warming")
    onion = factory.ingredient(theirs, "Onion", fresh=True)
    lentils = factory.ingredient(theirs, "Red Lentils")
    factory.link(collection_id, recipe_id, display_order=3)
    factory.line(recipe_id, onion, quantity="1", primary_ingredient=False)
    factory.line(recipe_id, lentils, quantity="200", primary_ingredient=True)
    return {
        "collection": collection_id,
        "recipe": recipe_id,
        "onion": onion,
        "lentils": lentils,
    }


@pytest.fixture
def insert_counter():
    """INSERT statements sent to the database while the test runs."""
    statements = []

    def _record(conn, cursor, statement, parameters, context, executemany):
        if statement.lstrip().upper().startswith("INSERT"):
            statements.append(statement)

    event.listen(engine, "before_cursor_execute", _record)
    yield statements
    event.remove(engine, "before_cursor_execute", _record)
