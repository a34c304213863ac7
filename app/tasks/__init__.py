"""
Celery tasks package.

- notification_tasks: scheduled notification jobs and one-off dispatches
"""

from app.tasks import notification_tasks

__all__ = ["notification_tasks"]
