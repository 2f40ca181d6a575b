"""
Celery Tasks
Background housekeeping that runs outside the request cycle.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.pool import NullPool

from qrdine.celery_worker import celery_app
from qrdine.core.config import get_settings
from qrdine.database import build_engine
from qrdine.services.tables import TableRegistry

logger = logging.getLogger(__name__)


async def _reset_counters() -> int:
    # Fresh engine per run: the worker's event loop is created by asyncio.run
    settings = get_settings()
    engine = build_engine(settings.database_url, poolclass=NullPool)
    try:
        session_maker = async_sessionmaker(engine, expire_on_commit=False)
        async with session_maker() as session:
            return await TableRegistry(session).reset_daily_counters()
    finally:
        await engine.dispose()


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=30,
    autoretry_for=(Exception,),
    retry_backoff=True
)
def reset_daily_counters(self) -> dict:
    """
    Zero every table's total_orders_today. Scheduled nightly by beat.

    Returns:
        dict: Number of tables reset and timing
    """
    task_id = self.request.id
    start_time = time.time()
    logger.info(f"Task {task_id}: resetting daily table counters")

    reset = asyncio.run(_reset_counters())

    elapsed = round(time.time() - start_time, 3)
    logger.info(f"Task {task_id}: {reset} tables reset in {elapsed}s")
    return {
        'success': True,
        'tables_reset': reset,
        'task_id': task_id,
        'processing_time_seconds': elapsed,
    }


@celery_app.task
def health_check() -> dict:
    """
    Simple health check task to verify Celery is working.
    """
    return {
        'status': 'healthy',
        'worker': 'celery',
        'timestamp': datetime.now(timezone.utc).isoformat()
    }
