import logging

from fastapi import FastAPI

from loandesk.db.init_db import init_db
from loandesk.db.session import engine
from loandesk.utils.redis_client import close_redis_client

logger = logging.getLogger(__name__)


def register_event_handlers(app: FastAPI) -> None:
    @app.on_event("startup")
    async def on_startup() -> None:
        logger.info("Loandesk API starting")
        await init_db()

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        logger.info("Loandesk API stopping")
        await close_redis_client()
        await engine.dispose()
