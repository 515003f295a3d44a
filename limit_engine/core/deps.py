from fastapi import Header, HTTPException, Request

from limit_engine.core.container import Container
from limit_engine.db.session import get_db

__all__ = ["get_db", "get_container", "current_user_id"]


def get_container(request: Request) -> Container:
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise HTTPException(status_code=503, detail="Service is starting")
    return container


def current_user_id(x_user_id: int | None = Header(default=None, alias="X-User-Id")) -> int:
    if x_user_id is None:
        raise HTTPException(status_code=401, detail="X-User-Id header required")
    return x_user_id
