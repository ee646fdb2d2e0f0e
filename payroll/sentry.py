import sentry_sdk
import structlog

logger = structlog.get_logger(__name__)


def setup_sentry(settings) -> bool:
    """Initialise Sentry when a DSN is configured. Returns whether it was."""
    if not settings.SENTRY_DSN:
        logger.debug("Sentry disabled, no DSN configured")
        return False
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENVIRONMENT,
        release=f"{settings.APP_NAME}@{settings.APP_VERSION}",
        # Payroll data: never attach request bodies or user details.
        send_default_pii=False,
        traces_sample_rate=0.1,
    )
    logger.info("Sentry initialised", environment=settings.ENVIRONMENT)
    return True
