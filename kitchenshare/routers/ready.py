import logging

from fastapi import APIRouter, Depends
from sqlalchemy import select

from ..db import Store
from ..deps import get_store

router = APIRouter()
logger = logging.getLogger("kitchenshare.ready")


@router.get("/ready")
def ready(store: Store = Depends(get_store)):
    db_ok = False
    try:
        with store.session() as db:
            db.execute(select(1))
        db_ok = True
    except Exception as e:
        logger.warning(f"Readiness check: database unavailable: {e}")
    return {"ok": True, "db_ok": db_ok}
