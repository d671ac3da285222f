from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from kitchenpos.core.config import settings
from kitchenpos.core.logconfig import configure_logging
from kitchenpos.db import SessionLocal, init_db
from kitchenpos.middleware.errors import install_error_handlers
from kitchenpos.routers import cart, checkout, health, kitchen
from kitchenpos.services.store import KeyValueStore, SqlStore
from kitchenpos.services.terminal import PosTerminal


def create_app(store: Optional[KeyValueStore] = None, terminal: Optional[PosTerminal] = None) -> FastAPI:
    configure_logging()

    if terminal is None:
        if store is None:
            # Crea tablas faltantes (desarrollo)
            init_db()
            store = SqlStore(SessionLocal)
        terminal = PosTerminal(store)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await terminal.start()
        yield
        await terminal.shutdown()

    app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)
    app.state.terminal = terminal

    install_error_handlers(app)

    # Salud
    app.include_router(health.router)
    app.include_router(cart.router)
    app.include_router(checkout.router)
    app.include_router(kitchen.router)
    return app


app = create_app()
