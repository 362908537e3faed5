"""
Celery worker entry point.

Run with: celery -A main worker --loglevel=info
The API package is mounted at /api in the worker image.
"""
import logging
import os
import sys

sys.path.insert(0, os.environ.get("COUCHPROOF_API_PATH", "/api"))

import sentry_sdk  # noqa: E402
from sentry_sdk.integrations.celery import CeleryIntegration  # noqa: E402

from core.config import settings  # noqa: E402
from core.logging import setup_logging  # noqa: E402
from tasks import celery_app  # noqa: E402

setup_logging()
logger = logging.getLogger(__name__)

if settings.SENTRY_DSN:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENVIRONMENT,
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
        integrations=[CeleryIntegration()],
        send_default_pii=False,
    )
    logger.info(f"Worker Sentry initialized for environment: {settings.ENVIRONMENT}")


@celery_app.task(name="worker.health_check")
def health_check():
    return {"status": "ok", "environment": settings.ENVIRONMENT}
