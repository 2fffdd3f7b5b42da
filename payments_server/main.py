from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from payments_server import __version__
from payments_server.api import create_api_router
from payments_server.api.errors import register_exception_handlers
from payments_server.core.config import get_settings
from payments_server.core.container import get_container
from payments_server.core.logging_config import configure_logging
from payments_server.infrastructure.database.session import init_db

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.log_level)
    await init_db()
    container = get_container()
    yield
    await container.aclose()


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.project_name,
        description="Wallet ledger, payouts, refunds and gift cards for the consultation marketplace",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)
    app.include_router(create_api_router(settings.api_prefix))

    @app.get("/health")
    async def health():
        return {"status": "ok", "version": __version__}

    return app


def run() -> None:
    uvicorn.run(
        "payments_server.main:app",
        host=settings.server.host,
        port=settings.server.port,
        reload=settings.server.reload,
    )


app = create_app()
