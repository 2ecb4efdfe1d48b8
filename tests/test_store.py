import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session
from sqlalchemy.pool import QueuePool

from kitchenshare.db import Base, Store
from kitchenshare.errors import ConstraintViolationError, PoolExhaustionError, RollbackError
from kitchenshare.models import Household, Ingredient


@pytest.fixture
def tiny_store(tmp_path):
    """File-backed store whose pool holds a single connection."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'pool.db'}",
        poolclass=QueuePool,
        pool_size=1,
        max_overflow=0,
        pool_timeout=0.1,
    )
    store = Store(engine=engine)
    Base.metadata.create_all(bind=engine)
    yield store
    store.dispose()


def test_pool_exhaustion_is_reported_before_work_starts(tiny_store):
    with tiny_store.session():
        with pytest.raises(PoolExhaustionError):
            with tiny_store.unit_of_work():
                pytest.fail("unit of work must not start without a connection")


def test_unit_of_work_commits(tiny_store):
    with tiny_store.unit_of_work() as db:
        db.add(Household(name="Committed"))

    with tiny_store.session() as db:
        assert db.scalar(select(Household.name)) == "Committed"


def test_unit_of_work_rolls_back_on_error(tiny_store):
    with pytest.raises(ValueError):
        with tiny_store.unit_of_work() as db:
            db.add(Household(name="Rolled back"))
            db.flush()
            raise ValueError("abort")

    with tiny_store.session() as db:
        assert db.scalar(select(Household.id)) is None


def test_integrity_error_becomes_constraint_violation(store):
    with pytest.raises(ConstraintViolationError) as exc_info:
        with store.unit_of_work() as db:
            # household 99 does not exist
            db.add(Ingredient(name="Ghost", household_id=99))
            db.flush()
    assert exc_info.value.orig is not None


def test_failed_rollback_surfaces_rollback_error(store, monkeypatch):
    def broken_rollback(self):
        raise RuntimeError("connection lost")

    monkeypatch.setattr(Session, "rollback", broken_rollback)

    with pytest.raises(RollbackError) as exc_info:
        with store.unit_of_work():
            raise ValueError("original failure")
    assert isinstance(exc_info.value.original, ValueError)
