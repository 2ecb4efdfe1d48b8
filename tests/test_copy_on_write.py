import itertools

import pytest
from sqlalchemy import func, select

from kitchenshare.errors import NotFoundError, ConstraintViolationError, LineageError
from kitchenshare.models import (
    Collection,
    CollectionRecipe,
    CollectionSubscription,
    Ingredient,
    Recipe,
    RecipeIngredient,
)
from kitchenshare.services.copy_operations import ForkLedger, clone_recipe


def count(db, model):
    db.expire_all()
    return db.scalar(select(func.count()).select_from(model))


def links(db, collection_id):
    db.expire_all()
    return db.execute(
        select(CollectionRecipe.recipe_id, CollectionRecipe.display_order)
        .where(CollectionRecipe.collection_id == collection_id)
        .order_by(CollectionRecipe.recipe_id)
    ).all()


def lines(db, recipe_id):
    db.expire_all()
    return db.scalars(
        select(RecipeIngredient).where(RecipeIngredient.recipe_id == recipe_id).order_by(RecipeIngredient.id)
    ).all()


# --- Single resource ---

def test_copy_foreign_recipe_clones_row_and_lines(engine_service, db_session, households, shared_catalog):
    mine, theirs = households
    recipe_id = shared_catalog["recipe"]

    result = engine_service.copy_recipe_for_edit(recipe_id, mine)

    assert result.copied is True
    assert result.new_id != recipe_id

    db_session.expire_all()
    clone = db_session.get(Recipe, result.new_id)
    assert clone.household_id == mine
    assert clone.parent_id == recipe_id
    assert (clone.name, clone.prep_time, clone.cook_time, clone.description) == ("Lentil Soup", 10, 30, "Warming")

    original_lines = lines(db_session, recipe_id)
    cloned_lines = lines(db_session, result.new_id)
    assert [(l.ingredient_id, l.quantity, l.primary_ingredient) for l in cloned_lines] == [
        (shared_catalog["onion"], "1", False),
        (shared_catalog["lentils"], "200", True),
    ]
    assert [l.parent_id for l in cloned_lines] == [l.id for l in original_lines]
    assert len(original_lines) == 2


def test_copy_owned_recipe_is_noop(engine_service, factory, households, insert_counter):
    mine, _ = households
    recipe_id = factory.recipe(mine, "Mine")
    insert_counter.clear()

    result = engine_service.copy_recipe_for_edit(recipe_id, mine)

    assert result.copied is False
    assert result.new_id == recipe_id
    assert insert_counter == []


def test_copy_recipe_twice_reuses_fork(engine_service, db_session, households, shared_catalog):
    mine, _ = households
    before = count(db_session, Recipe)

    first = engine_service.copy_recipe_for_edit(shared_catalog["recipe"], mine)
    second = engine_service.copy_recipe_for_edit(shared_catalog["recipe"], mine)
    on_copy = engine_service.copy_recipe_for_edit(first.new_id, mine)

    assert first.copied is True
    assert second.copied is False
    assert second.new_id == first.new_id
    assert on_copy.new_id == first.new_id
    assert count(db_session, Recipe) == before + 1


def test_copy_recipe_repoints_only_own_collections(engine_service, db_session, factory, households, shared_catalog):
    mine, theirs = households
    my_collection = factory.collection(mine, "My Picks")
    factory.link(my_collection, shared_catalog["recipe"], display_order=5)

    result = engine_service.copy_recipe_for_edit(shared_catalog["recipe"], mine)

    assert links(db_session, my_collection) == [(result.new_id, 5)]
    assert links(db_session, shared_catalog["collection"]) == [(shared_catalog["recipe"], 3)]


def test_copy_missing_recipe_raises_not_found(engine_service, households):
    mine, _ = households
    with pytest.raises(NotFoundError) as exc_info:
        engine_service.copy_recipe_for_edit(999, mine)
    assert "999" in str(exc_info.value)


def test_copy_foreign_ingredient_repoints_household_recipes(engine_service, db_session, factory, households, shared_catalog):
    mine, theirs = households
    onion = shared_catalog["onion"]
    soup = factory.recipe(mine, "My Soup")
    stew = factory.recipe(mine, "My Stew")
    soup_line = factory.line(soup, onion)
    stew_line = factory.line(stew, onion)

    result = engine_service.copy_ingredient_for_edit(onion, mine)

    assert result.copied is True
    db_session.expire_all()
    clone = db_session.get(Ingredient, result.new_id)
    assert (clone.household_id, clone.parent_id, clone.name, clone.fresh) == (mine, onion, "Onion", True)
    # One shared copy for the whole household
    assert db_session.get(RecipeIngredient, soup_line).ingredient_id == result.new_id
    assert db_session.get(RecipeIngredient, stew_line).ingredient_id == result.new_id
    # Their recipe keeps the original
    assert {l.ingredient_id for l in lines(db_session, shared_catalog["recipe"])} == {
        onion, shared_catalog["lentils"]
    }


def test_copy_owned_ingredient_is_noop(engine_service, factory, households, insert_counter):
    mine, _ = households
    salt = factory.ingredient(mine, "Salt")
    insert_counter.clear()

    result = engine_service.copy_ingredient_for_edit(salt, mine)

    assert (result.copied, result.new_id) == (False, salt)
    assert insert_counter == []


def test_ensure_owned_helpers_return_editable_ids(engine_service, households, shared_catalog):
    mine, _ = households
    recipe_id = engine_service.ensure_recipe_owned(mine, shared_catalog["recipe"])
    ingredient_id = engine_service.ensure_ingredient_owned(mine, shared_catalog["lentils"])

    assert recipe_id != shared_catalog["recipe"]
    assert ingredient_id != shared_catalog["lentils"]
    assert engine_service.ensure_recipe_owned(mine, recipe_id) == recipe_id


# --- Cascades ---

def test_cascade_forks_foreign_collection_and_recipe(engine_service, db_session, factory, households, shared_catalog):
    mine, _ = households
    factory.subscribe(mine, shared_catalog["collection"])

    result = engine_service.cascade_copy_with_context(mine, shared_catalog["collection"], shared_catalog["recipe"])

    assert result.actions_taken == ["collection_copied", "unsubscribed_from_original", "recipe_copied"]
    db_session.expire_all()
    new_collection = db_session.get(Collection, result.new_collection_id)
    assert new_collection.title == "Weeknight Dinners (Copy)"
    assert new_collection.public is False
    assert new_collection.parent_id == shared_catalog["collection"]
    assert new_collection.household_id == mine

    assert links(db_session, result.new_collection_id) == [(result.new_recipe_id, 3)]
    assert links(db_session, shared_catalog["collection"]) == [(shared_catalog["recipe"], 3)]
    assert db_session.get(CollectionSubscription, (mine, shared_catalog["collection"])) is None


def test_cascade_with_owned_collection_relinks_recipe(engine_service, db_session, factory, households, shared_catalog):
    mine, _ = households
    my_collection = factory.collection(mine, "My Picks")
    factory.link(my_collection, shared_catalog["recipe"])

    result = engine_service.cascade_copy_with_context(mine, my_collection, shared_catalog["recipe"])

    assert result.actions_taken == ["recipe_copied"]
    assert result.new_collection_id == my_collection
    assert links(db_session, my_collection) == [(result.new_recipe_id, 0)]


def test_cascade_reuses_existing_collection_fork(engine_service, db_session, households, shared_catalog):
    mine, _ = households
    first = engine_service.cascade_copy_with_context(mine, shared_catalog["collection"], shared_catalog["recipe"])
    second = engine_service.cascade_copy_with_context(mine, shared_catalog["collection"], shared_catalog["recipe"])

    assert second.new_collection_id == first.new_collection_id
    assert second.new_recipe_id == first.new_recipe_id
    assert second.actions_taken == []
    assert count(db_session, Collection) == 2
    assert count(db_session, Recipe) == 2


def test_reused_collection_fork_gains_recipe_added_after_fork(
    engine_service, db_session, permissions, factory, households, shared_catalog
):
    mine, theirs = households
    first = engine_service.cascade_copy_with_context(mine, shared_catalog["collection"], shared_catalog["recipe"])
    # Owner extends the original once the household already has its copy
    bread = factory.recipe(theirs, "Bread")
    factory.link(shared_catalog["collection"], bread, display_order=7)

    result = engine_service.cascade_copy_with_context(mine, shared_catalog["collection"], bread)

    assert result.new_collection_id == first.new_collection_id
    assert result.actions_taken == ["recipe_copied"]
    assert links(db_session, result.new_collection_id) == [(first.new_recipe_id, 3), (result.new_recipe_id, 7)]
    assert permissions.validate_recipe_in_collection(mine, result.new_recipe_id, result.new_collection_id) is True


def test_reused_collection_fork_relinks_recipe_removed_from_copy(
    engine_service, db_session, households, shared_catalog
):
    mine, _ = households
    fork_id = engine_service.copy_collection_optimized(shared_catalog["collection"], mine)
    db_session.query(CollectionRecipe).filter(CollectionRecipe.collection_id == fork_id).delete()
    db_session.commit()

    result = engine_service.cascade_copy_with_context(mine, shared_catalog["collection"], shared_catalog["recipe"])

    assert result.new_collection_id == fork_id
    assert links(db_session, fork_id) == [(result.new_recipe_id, 3)]


def test_reused_collection_fork_links_owned_recipe(engine_service, db_session, factory, households, shared_catalog):
    mine, _ = households
    fork_id = engine_service.copy_collection_optimized(shared_catalog["collection"], mine)
    my_recipe = factory.recipe(mine, "Own Soup")
    factory.link(shared_catalog["collection"], my_recipe, display_order=5)

    result = engine_service.cascade_copy_with_context(mine, shared_catalog["collection"], my_recipe)

    assert (result.new_collection_id, result.new_recipe_id) == (fork_id, my_recipe)
    assert result.actions_taken == []
    assert (my_recipe, 5) in links(db_session, fork_id)


def test_reused_collection_fork_drops_new_subscription(engine_service, db_session, factory, households, shared_catalog):
    mine, _ = households
    fork_id = engine_service.copy_collection_optimized(shared_catalog["collection"], mine)

    factory.subscribe(mine, shared_catalog["collection"])
    assert engine_service.copy_collection_optimized(shared_catalog["collection"], mine) == fork_id
    db_session.expire_all()
    assert db_session.get(CollectionSubscription, (mine, shared_catalog["collection"])) is None

    factory.subscribe(mine, shared_catalog["collection"])
    result = engine_service.cascade_copy_with_context(mine, shared_catalog["collection"], shared_catalog["recipe"])
    assert result.new_collection_id == fork_id
    assert "unsubscribed_from_original" not in result.actions_taken
    db_session.expire_all()
    assert db_session.get(CollectionSubscription, (mine, shared_catalog["collection"])) is None


def test_cascade_missing_recipe_forks_nothing(engine_service, db_session, households, shared_catalog):
    mine, _ = households
    with pytest.raises(NotFoundError):
        engine_service.cascade_copy_with_context(mine, shared_catalog["collection"], 999)
    assert count(db_session, Collection) == 1


def test_trigger_cascade_returns_slugs_for_copied_levels(engine_service, factory, households, shared_catalog):
    mine, _ = households

    links_result = engine_service.trigger_cascade_copy_with_context(
        mine, shared_catalog["collection"], shared_catalog["recipe"]
    )

    assert links_result.new_collection_slug == "weeknight-dinners"
    assert links_result.new_recipe_slug == "lentil-soup"

    own_collection = factory.collection(mine, "Own")
    own_recipe = factory.recipe(mine, "Own Recipe")
    factory.link(own_collection, own_recipe)
    untouched = engine_service.trigger_cascade_copy_with_context(mine, own_collection, own_recipe)
    assert untouched.actions_taken == []
    assert untouched.new_collection_slug is None
    assert untouched.new_recipe_slug is None


OWNERSHIP = list(itertools.product([True, False], repeat=3))


@pytest.mark.parametrize(
    "collection_owned,recipe_owned,ingredient_owned",
    OWNERSHIP,
    ids=["".join("O" if o else "F" for o in combo) for combo in OWNERSHIP],
)
def test_three_level_cascade_truth_table(
    engine_service, db_session, factory, households, collection_owned, recipe_owned, ingredient_owned
):
    mine, theirs = households
    collection_id = factory.collection(mine if collection_owned else theirs, "Menu", public=True)
    recipe_id = factory.recipe(mine if recipe_owned else theirs, "Curry")
    ingredient_id = factory.ingredient(mine if ingredient_owned else theirs, "Cumin")
    factory.link(collection_id, recipe_id)
    factory.line(recipe_id, ingredient_id)

    result = engine_service.cascade_copy_ingredient_with_context(mine, collection_id, recipe_id, ingredient_id)

    expected = []
    if not collection_owned:
        expected += ["collection_copied", "unsubscribed_from_original"]
    if not recipe_owned:
        expected.append("recipe_copied")
    if not ingredient_owned:
        expected.append("ingredient_copied")
    assert result.actions_taken == expected
    assert ("collection_copied" in result.actions_taken) == ("unsubscribed_from_original" in result.actions_taken)

    db_session.expire_all()
    for model, original, new, owned in [
        (Collection, collection_id, result.new_collection_id, collection_owned),
        (Recipe, recipe_id, result.new_recipe_id, recipe_owned),
        (Ingredient, ingredient_id, result.new_ingredient_id, ingredient_owned),
    ]:
        if owned:
            assert new == original
        else:
            assert new != original
            row = db_session.get(model, new)
            assert row.household_id == mine
            assert row.parent_id == original

    # The household ends up with collection -> recipe -> ingredient it owns
    assert db_session.get(CollectionRecipe, (result.new_collection_id, result.new_recipe_id)) is not None
    assert result.new_ingredient_id in {l.ingredient_id for l in lines(db_session, result.new_recipe_id)}


def test_cascade_is_atomic(engine_service, db_session, factory, households, shared_catalog, monkeypatch):
    mine, _ = households
    factory.subscribe(mine, shared_catalog["collection"])
    before = {m: count(db_session, m) for m in (Collection, Recipe, Ingredient, CollectionRecipe, RecipeIngredient)}

    def fail(*args, **kwargs):
        raise RuntimeError("disk full")

    monkeypatch.setattr("kitchenshare.services.copy_on_write.clone_ingredient", fail)

    with pytest.raises(RuntimeError, match="disk full"):
        engine_service.cascade_copy_ingredient_with_context(
            mine, shared_catalog["collection"], shared_catalog["recipe"], shared_catalog["onion"]
        )

    after = {m: count(db_session, m) for m in before}
    assert after == before
    assert db_session.get(CollectionSubscription, (mine, shared_catalog["collection"])) is not None


def test_copy_collection_optimized_links_without_deep_copy(engine_service, db_session, factory, households, shared_catalog):
    mine, _ = households
    factory.subscribe(mine, shared_catalog["collection"])

    new_id = engine_service.copy_collection_optimized(shared_catalog["collection"], mine)

    assert new_id != shared_catalog["collection"]
    assert links(db_session, new_id) == [(shared_catalog["recipe"], 3)]
    assert count(db_session, Recipe) == 1
    assert db_session.get(CollectionSubscription, (mine, shared_catalog["collection"])) is None
    assert engine_service.copy_collection_optimized(shared_catalog["collection"], mine) == new_id


def test_copy_collection_optimized_missing_collection(engine_service, households):
    mine, _ = households
    with pytest.raises(NotFoundError):
        engine_service.copy_collection_optimized(404, mine)


def test_custom_title_suffix(store, db_session, households, shared_catalog):
    from kitchenshare.services.copy_on_write import CopyOnWriteEngine

    mine, _ = households
    engine_service = CopyOnWriteEngine(store, title_suffix=" - mine")
    new_id = engine_service.copy_collection_optimized(shared_catalog["collection"], mine)

    db_session.expire_all()
    assert db_session.get(Collection, new_id).title == "Weeknight Dinners - mine"


# --- Lineage guards ---

def test_ledger_rejects_fork_of_row_created_in_same_operation(store, households, shared_catalog):
    mine, _ = households
    with pytest.raises(LineageError):
        with store.unit_of_work() as db:
            ledger = ForkLedger()
            first = clone_recipe(db, db.get(Recipe, shared_catalog["recipe"]), mine, ledger)
            clone_recipe(db, first, mine, ledger)


def test_duplicate_fork_violates_unique_constraint(store, households, shared_catalog):
    mine, _ = households
    with pytest.raises(ConstraintViolationError):
        with store.unit_of_work() as db:
            db.add_all([
                Recipe(name="Copy A", household_id=mine, parent_id=shared_catalog["recipe"]),
                Recipe(name="Copy B", household_id=mine, parent_id=shared_catalog["recipe"]),
            ])
            db.flush()
