import asyncio

from uvicorn import run

from payroll.database import DatabasePool
from payroll.repository.registry import SchemaRegistry
from payroll.settings import get_settings


async def bootstrap_registry() -> None:
    """Create the registry table in the master schema if it is missing."""
    settings = get_settings()
    db_pool = DatabasePool(settings.POSTGRES)
    await db_pool.connect()
    try:
        await SchemaRegistry(db_pool, settings.PAYROLL).bootstrap()
    finally:
        await db_pool.disconnect()


def main():
    settings = get_settings()
    asyncio.run(bootstrap_registry())
    run(
        "payroll.app:app",
        host=settings.SERVER.HOST,
        port=settings.SERVER.PORT,
        workers=settings.SERVER.WORKERS,
        reload=settings.SERVER.RELOAD,
        reload_dirs=["payroll"],
        reload_excludes=["__pycache__", "*.pyc", "*.pyo", "*.pyd", "*.pyw", "*.pyz"],
        reload_includes=["*.py"],
    )


if __name__ == "__main__":
    main()
