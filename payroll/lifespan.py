"""
FastAPI lifespan context manager for application startup and shutdown.

This module provides a lifespan context manager that handles:
- Logging configuration
- Database connection pool initialization and cleanup
- Loading the payroll class registry from the master schema
- Creating the context router used by every request
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from payroll.database import close_db_pool, init_db_pool
from payroll.logging import setup_logging
from payroll.repository.registry import SchemaRegistry
from payroll.routing import close_context_router, init_context_router
from payroll.sentry import setup_sentry
from payroll.settings import get_settings

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    FastAPI lifespan context manager.

    A registry that cannot be read at startup is fatal: the process must not
    serve requests without knowing where each payroll class lives.

    Args:
        app: FastAPI application instance

    Yields:
        None
    """
    logger.debug("Application startup initiated")
    try:
        settings = get_settings()
        setup_logging(settings)
        setup_sentry(settings)

        db_pool = init_db_pool(settings.POSTGRES)
        await db_pool.connect()

        registry = SchemaRegistry(db_pool, settings.PAYROLL)
        await registry.load()

        router = init_context_router(db_pool, registry, settings.PAYROLL)
        # Administrative default for maintenance jobs that run outside requests.
        router.use_database(registry.master.id)

        pool_stats = await db_pool.get_pool_stats()
        logger.info(
            "Database routing initialized",
            master_schema=registry.master_schema,
            payroll_classes=len(registry.list_tenants()),
            **pool_stats,
        )

        logger.debug("Application startup completed successfully")

    except Exception as e:
        logger.error(
            "Failed to initialize application",
            error=str(e),
            exc_info=True,
        )
        raise

    yield

    logger.debug("Application shutdown initiated")

    try:
        await close_context_router()
        await close_db_pool()
        logger.debug("Application shutdown completed successfully")

    except Exception as e:
        logger.error(
            "Error during application shutdown",
            error=str(e),
            exc_info=True,
        )
        raise
