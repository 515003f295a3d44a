"""Run the order monitor without the HTTP API (Ctrl+C to stop)."""
import logging
import time

from limit_engine.core.config import settings
from limit_engine.core.container import build_container
from limit_engine.db.base import Base
from limit_engine.db.session import SessionLocal, engine
from limit_engine.main import configure_logging

logger = logging.getLogger("limit_engine.run_monitor")


def run_monitor():
    configure_logging(settings.log_level)
    Base.metadata.create_all(bind=engine)

    container = build_container(settings, SessionLocal)
    if not container.chain.is_connected():
        logger.warning("Chain RPC %s not reachable yet; executions will retry", settings.chain_rpc_url)

    container.monitor.start()
    try:
        while container.monitor.running:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Stopping monitor...")
    finally:
        container.close()


if __name__ == "__main__":
    run_monitor()
