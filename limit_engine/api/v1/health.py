from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from limit_engine.core.container import Container
from limit_engine.core.deps import get_container, get_db

router = APIRouter()


@router.get("/health")
def health(db: Session = Depends(get_db), container: Container = Depends(get_container)):
    db.execute(text("SELECT 1"))
    return {
        "status": "ok",
        "monitor_running": container.monitor.running,
        "chain_connected": container.chain.is_connected(),
    }
