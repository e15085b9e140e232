import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from mcnode.api.routers import servers
from mcnode.core.config import Settings
from mcnode.utils.server_utils import ServerManager


logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logging.basicConfig(level=settings.LOG_LEVEL)
        manager = app.state.server_manager
        manager.paths.root.mkdir(parents=True, exist_ok=True)
        logger.info("Serving %s, running: %s", manager.paths.root,
                    manager.running_servers())
        yield

    app = FastAPI(lifespan=lifespan)
    # Available before startup so TestClient without a context works too
    app.state.server_manager = ServerManager(settings)
    app.include_router(servers.router)
    return app


app = create_app()
