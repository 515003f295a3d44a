import logging

from fastapi import FastAPI

from limit_engine import models  # noqa: F401  register tables
from limit_engine.api.router import api_router
from limit_engine.core.config import settings
from limit_engine.core.container import build_container
from limit_engine.db.base import Base
from limit_engine.db.session import SessionLocal, engine

logger = logging.getLogger(__name__)

app = FastAPI(title="Limit Order Engine")
app.include_router(api_router, prefix="/api")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.on_event("startup")
def startup():
    configure_logging(settings.log_level)
    Base.metadata.create_all(bind=engine)

    container = build_container(settings, SessionLocal)
    app.state.container = container
    if settings.monitor_enabled:
        container.monitor.start()


@app.on_event("shutdown")
def shutdown():
    container = getattr(app.state, "container", None)
    if container is not None:
        container.close()
