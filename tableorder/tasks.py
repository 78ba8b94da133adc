"""
Celery Tasks
Background maintenance of the order lifecycle.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone

from tableorder.celery_worker import celery_app
from tableorder.core.config import get_settings
from tableorder.database import create_engine_from_url, create_session_maker
from tableorder.services.orders import OrderService

logger = logging.getLogger(__name__)


async def run_sweep(database_url: str) -> int:
    """
    Expire stale pending orders using a short-lived engine.

    Each task invocation runs in its own event loop, so it cannot share
    the API process's pooled connections.
    """
    engine = create_engine_from_url(database_url)
    try:
        async with create_session_maker(engine)() as session:
            return await OrderService(session).sweep_expired()
    finally:
        await engine.dispose()


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=5,
    autoretry_for=(Exception,),
    retry_backoff=True
)
def sweep_expired_orders(self) -> dict:
    """
    Move every pending order past its deadline to ``expired``.

    Same predicate as the read-path check, so running it is always safe.

    Returns:
        dict: Number of expired orders and run timestamp
    """
    start_time = time.time()

    expired = asyncio.run(run_sweep(get_settings().database_url))

    elapsed = round(time.time() - start_time, 3)
    logger.info(f"Task {self.request.id}: expired {expired} order(s) in {elapsed}s")

    return {
        'expired': expired,
        'timestamp': datetime.now(timezone.utc).isoformat(),
    }
