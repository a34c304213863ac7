"""
Celery utility functions for reliable task queueing.

Provides helper functions to ensure Celery tasks are queued successfully
even when called from FastAPI endpoints.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Optional, Tuple
from celery import Task
from kombu import Connection

logger = logging.getLogger(__name__)

# Queueing runs in a thread so it stays clear of uvicorn's event loop
_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="celery_queue")


def _queue_task_sync(task: Task, args: tuple, kwargs: dict, eta: Optional[datetime]) -> Tuple[bool, str, str]:
    """
    Internal function to queue task synchronously in a thread.

    Returns:
        Tuple[bool, str, str]: (success, task_id, error_message)
    """
    try:
        from app.core.config import settings

        # Fresh Kombu connection; the app's pooled one goes stale under uvicorn
        with Connection(settings.REDIS_URL) as conn:
            result = task.apply_async(
                args=args,
                kwargs=kwargs,
                eta=eta,
                connection=conn,
                retry=True,
                retry_policy={
                    'max_retries': 3,
                    'interval_start': 0,
                    'interval_step': 0.2,
                    'interval_max': 0.2,
                }
            )
            return (True, result.id, "")
    except Exception as e:
        return (False, "", str(e))


def queue_task_safely(task: Task, *args, eta: Optional[datetime] = None, **kwargs) -> bool:
    """
    Safely queue a Celery task with connection retry logic.

    Args:
        task: The Celery task to queue
        *args: Positional arguments for the task
        eta: Optional time at which the task should run
        **kwargs: Keyword arguments for the task

    Returns:
        bool: True if task was queued successfully, False otherwise

    Example:
        from app.tasks.notification_tasks import run_scheduled_job
        success = queue_task_safely(run_scheduled_job, "cleanup")
    """
    future = _executor.submit(_queue_task_sync, task, args, kwargs, eta)
    try:
        success, task_id, error = future.result(timeout=5)
    except Exception as e:
        success, task_id, error = False, "", str(e)

    if success:
        logger.info(f"Task {task.name} queued successfully: {task_id}")
        return True

    logger.error(f"Failed to queue task {task.name}: {error}")
    return False
