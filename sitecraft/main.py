import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sitecraft.api_routers.v1 import api_router
from sitecraft.features.health.routes.health import router as health_router
from sitecraft.platform.config import get_settings
from sitecraft.platform.container import ServiceContainer, build_container
from sitecraft.platform.exceptions import add_exception_handlers

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)


def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    """
    Build the API. The container is created in the lifespan unless one is
    passed in, and is reachable from handlers as `request.app.state.container`.
    """
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = container is None
        app.state.container = container or build_container(settings)
        try:
            yield
        finally:
            if owned:
                app.state.container.close()

    app = FastAPI(
        title=settings.APP_NAME,
        description="Fan-out website analysis with exactly-once completion",
        version="1.0.0",
        debug=settings.DEBUG,
        lifespan=lifespan,
    )

    @app.get("/", tags=["Info"])
    def root():
        return {
            "app_name": settings.APP_NAME,
            "description": "Accessibility, structure and performance analysis for websites.",
            "version": "1.0.0",
            "docs_url": "/docs",
            "api_base": settings.API_V1_PREFIX,
        }

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    add_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(api_router, prefix=settings.API_V1_PREFIX)

    return app
