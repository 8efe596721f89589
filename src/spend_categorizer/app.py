from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from spend_categorizer.api.routes import categorize, rules
from spend_categorizer.core import settings
from spend_categorizer.logger import get_logger, setup_logging
from spend_categorizer.manager import CategorizerService, build_classifier
from spend_categorizer.rules.kits import ensure_min_patterns_per_kit

logger = get_logger(__name__)


def create_app(data_dir: str | None = None) -> FastAPI:
    setup_logging()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("Initializing services...")
        settings.log_environment()

        # Refuse to start with undersized kits rather than fail mid-request.
        ensure_min_patterns_per_kit(settings.RULE_KIT_MIN_PATTERNS)

        target_dir = data_dir or settings.DATA_DIR
        settings.ensure_dirs(target_dir)
        service = CategorizerService(data_dir=target_dir, classifier=build_classifier())
        app.state.service = service

        logger.info("Services initialized.")
        yield
        await service.aclose()
        logger.info("Service shutting down.")

    app = FastAPI(title="Spend Categorizer", lifespan=lifespan)

    app.include_router(categorize.router)
    app.include_router(rules.router)

    return app
