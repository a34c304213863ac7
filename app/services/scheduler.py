"""
Scheduled notification jobs.

Four periodic jobs run under Celery beat:

- interviewReminders: every 15 minutes, reminders ahead of upcoming interviews
- applicationFollowUps: daily at 10:00, nudges for applications with no answer
- weeklyReports: Sundays at 18:00, a summary of the past week
- cleanup: daily at 02:00, purges old notifications and verification data

Each job is a plain function over a Session so it can be forced from the
admin API or called directly in tests. JobRegistry tracks which jobs are
enabled and produces the beat schedule.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence
from celery.schedules import crontab
import redis
from sqlalchemy.orm import Session

from app.core import verification
from app.core.clock import ensure_utc, resolve_now
from app.core.config import settings
from app.crud import notification as notification_crud
from app.models.application import Application, ApplicationStatus, Interview
from app.models.notification import NotificationPriority, NotificationSetting, NotificationType
from app.models.user import User
from app.services.notification_service import send_notification

logger = logging.getLogger(__name__)

REMINDER_TOLERANCE_MINUTES = 7
FOLLOW_UP_INTERVAL_DAYS = 7
FOLLOW_UP_STATUSES = (ApplicationStatus.APPLIED, ApplicationStatus.UNDER_REVIEW)
WEEKLY_UPCOMING_LIMIT = 5
DEFAULT_INTERVIEW_DURATION = 60
HIGH_PRIORITY_MINUTES = 60

DATE_FORMAT = "%A, %B %d, %Y at %H:%M UTC"


def match_reminder_offset(
    minutes_until: int,
    offsets: Sequence[int],
    tolerance: int = REMINDER_TOLERANCE_MINUTES
) -> Optional[int]:
    """
    Return the first reminder offset within tolerance of minutes_until.

    Only one reminder fires per run, so the order of offsets matters.
    """
    for offset in offsets:
        if offset is not None and abs(minutes_until - offset) <= tolerance:
            return offset
    return None


def is_follow_up_due(days_since: int) -> bool:
    return days_since > 0 and days_since % FOLLOW_UP_INTERVAL_DAYS == 0


def format_time_until(minutes: int) -> str:
    """Human readable lead time: minutes under an hour, hours under a day, else days."""
    if minutes < 60:
        return f"{minutes} minute{'s' if minutes > 1 else ''}"
    if minutes < 1440:
        hours = minutes // 60
        return f"{hours} hour{'s' if hours > 1 else ''}"
    days = minutes // 1440
    return f"{days} day{'s' if days > 1 else ''}"


def _users_with_category(db: Session, field: str) -> List[User]:
    """Users whose settings row exists and has the given category switched on."""
    return db.query(User).join(NotificationSetting, NotificationSetting.user_id == User.id).filter(
        getattr(NotificationSetting, field) == True  # noqa: E712
    ).all()


def check_interview_reminders(db: Session, now: Optional[datetime] = None) -> int:
    """
    Send reminders for interviews that sit at one of the user's reminder offsets.

    Returns:
        int: Number of reminders dispatched
    """
    now = resolve_now(now)
    logger.info(f"Checking interview reminders at {now.isoformat()}")
    sent = 0

    for user in _users_with_category(db, "interview_reminders"):
        offsets = user.notification_settings.reminder_timings

        interviews = db.query(Interview).join(Application).filter(
            Application.user_id == user.id,
            Interview.scheduled_at > now
        ).order_by(Interview.scheduled_at.asc()).all()

        for interview in interviews:
            delta = ensure_utc(interview.scheduled_at) - now
            minutes_until = math.floor(delta.total_seconds() / 60)

            if match_reminder_offset(minutes_until, offsets) is None:
                continue

            try:
                _send_interview_reminder(db, user, interview, minutes_until)
                sent += 1
            except Exception as e:
                logger.error(f"Failed to send interview reminder {interview.id} to user {user.id}: {str(e)}")

    logger.info(f"Interview reminders dispatched: {sent}")
    return sent


def _send_interview_reminder(db: Session, user: User, interview: Interview, minutes_until: int) -> None:
    application = interview.application
    time_until = format_time_until(minutes_until)
    interview_type = interview.interview_type.value
    priority = NotificationPriority.HIGH if minutes_until <= HIGH_PRIORITY_MINUTES else NotificationPriority.NORMAL

    logger.info(f"Sending interview reminder: {application.company} in {time_until} for user {user.id}")

    send_notification(
        db,
        user_id=user.id,
        notification_type=NotificationType.INTERVIEW_REMINDER,
        title=f"{application.company} interview in {time_until}",
        message=f"Your {interview_type} interview at {application.company} is coming up!",
        data={
            "company": application.company,
            "position": application.position,
            "type": interview_type,
            "date": ensure_utc(interview.scheduled_at).strftime(DATE_FORMAT),
            "time_until": time_until,
            "duration": interview.duration or DEFAULT_INTERVIEW_DURATION,
            "notes": interview.notes,
            "interviewers": ", ".join(interview.interviewers or []),
        },
        priority=priority,
        action_url=f"/applications/{application.id}"
    )


def check_application_follow_ups(db: Session, now: Optional[datetime] = None) -> int:
    """
    Nudge users about applications still waiting on an answer.

    A nudge fires for APPLIED or UNDER_REVIEW applications every seventh day
    after they were sent.

    Returns:
        int: Number of follow-ups dispatched
    """
    now = resolve_now(now)
    threshold = now - timedelta(days=FOLLOW_UP_INTERVAL_DAYS)
    logger.info(f"Checking application follow-ups at {now.isoformat()}")
    sent = 0

    for user in _users_with_category(db, "application_follow_ups"):
        applications = db.query(Application).filter(
            Application.user_id == user.id,
            Application.status.in_(FOLLOW_UP_STATUSES),
            Application.applied_at < threshold
        ).order_by(Application.applied_at.asc()).all()

        for application in applications:
            applied_at = ensure_utc(application.applied_at)
            days_since = (now - applied_at).days
            if not is_follow_up_due(days_since):
                continue

            logger.info(f"Sending follow-up: {application.company} ({days_since} days) for user {user.id}")
            try:
                send_notification(
                    db,
                    user_id=user.id,
                    notification_type=NotificationType.APPLICATION_FOLLOW_UP,
                    title=f"Follow up on {application.company}",
                    message="It might be time to follow up on your application!",
                    data={
                        "company": application.company,
                        "position": application.position,
                        "days_since": days_since,
                        "applied_date": applied_at.strftime("%Y-%m-%d"),
                    },
                    priority=NotificationPriority.NORMAL,
                    action_url=f"/applications/{application.id}"
                )
                sent += 1
            except Exception as e:
                logger.error(f"Failed to send follow-up for application {application.id}: {str(e)}")

    logger.info(f"Application follow-ups dispatched: {sent}")
    return sent


def send_weekly_reports(db: Session, now: Optional[datetime] = None) -> int:
    """
    Send each opted-in user a summary of the last seven days.

    Returns:
        int: Number of reports dispatched
    """
    now = resolve_now(now)
    week_start = now - timedelta(days=7)
    week_end = now + timedelta(days=7)
    logger.info(f"Generating weekly reports at {now.isoformat()}")
    sent = 0

    for user in _users_with_category(db, "weekly_reports"):
        new_applications = db.query(Application).filter(
            Application.user_id == user.id,
            Application.created_at >= week_start
        ).count()

        interviews = db.query(Interview).join(Application).filter(
            Application.user_id == user.id,
            Interview.created_at >= week_start
        ).count()

        upcoming = db.query(Interview).join(Application).filter(
            Application.user_id == user.id,
            Interview.scheduled_at >= now,
            Interview.scheduled_at < week_end
        ).order_by(Interview.scheduled_at.asc()).limit(WEEKLY_UPCOMING_LIMIT).all()

        upcoming_interviews = []
        for interview in upcoming:
            scheduled_at = ensure_utc(interview.scheduled_at)
            upcoming_interviews.append({
                "company": interview.application.company,
                "position": interview.application.position,
                "date": scheduled_at.strftime("%Y-%m-%d"),
                "time": scheduled_at.strftime("%H:%M"),
            })

        logger.info(
            f"Sending weekly report to user {user.id}: "
            f"{new_applications} applications, {interviews} interviews"
        )
        try:
            send_notification(
                db,
                user_id=user.id,
                notification_type=NotificationType.WEEKLY_REPORT,
                title="Your weekly report",
                message=f"This week: {new_applications} applications, {interviews} interviews scheduled",
                data={
                    "new_applications": new_applications,
                    "interviews": interviews,
                    "responses": 0,
                    "upcoming_interviews": upcoming_interviews,
                },
                priority=NotificationPriority.LOW
            )
            sent += 1
        except Exception as e:
            logger.error(f"Failed to send weekly report to user {user.id}: {str(e)}")

    logger.info(f"Weekly reports dispatched: {sent}")
    return sent


def run_cleanup(db: Session, now: Optional[datetime] = None) -> int:
    """
    Purge read notifications past retention, expired or spent codes and stale attempts.

    Returns:
        int: Total rows deleted
    """
    now = resolve_now(now)
    logger.info(f"Starting cleanup at {now.isoformat()}")

    notifications = notification_crud.cleanup_old_notifications(
        db, older_than_days=settings.NOTIFICATION_CLEANUP_DAYS, now=now
    )
    codes = verification.cleanup_expired_codes(db, now=now)
    attempts = verification.cleanup_verification_attempts(db, now=now)

    logger.info(
        f"Cleanup finished: {notifications} notifications, {codes} codes, {attempts} attempts deleted"
    )
    return notifications + codes + attempts


JobFunc = Callable[..., int]


@dataclass(frozen=True)
class ScheduledJob:
    name: str
    func: JobFunc
    schedule: crontab
    schedule_label: str
    description: str
    task_name: str = "run_scheduled_job"


class MemoryJobState:
    """Enabled flags held in process memory."""

    def __init__(self):
        self._enabled: Dict[str, bool] = {}

    def get(self, name: str) -> bool:
        return self._enabled.get(name, True)

    def set(self, name: str, enabled: bool) -> None:
        self._enabled[name] = enabled


class RedisJobState:
    """
    Enabled flags shared through Redis, so the API process can pause a job
    that the beat and worker processes run. Fails open like the rate limiter.
    """

    KEY_PREFIX = "scheduler:disabled:"

    def __init__(self, redis_client: Optional[redis.Redis] = None):
        self.redis_client = redis_client or redis.Redis(
            host=settings.REDIS_HOST,
            port=settings.REDIS_PORT,
            db=settings.REDIS_DB,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2
        )

    def get(self, name: str) -> bool:
        try:
            return not self.redis_client.exists(f"{self.KEY_PREFIX}{name}")
        except redis.RedisError as e:
            logger.warning(f"Could not read scheduler state for {name}: {str(e)}")
            return True

    def set(self, name: str, enabled: bool) -> None:
        key = f"{self.KEY_PREFIX}{name}"
        try:
            if enabled:
                self.redis_client.delete(key)
            else:
                self.redis_client.set(key, "1")
        except redis.RedisError as e:
            logger.error(f"Could not write scheduler state for {name}: {str(e)}")
            raise


class JobRegistry:
    """
    Registered periodic jobs and their enabled state.

    Built explicitly with build_job_registry() by whoever needs it (the Celery
    app, the API process, tests) rather than living in a module global.
    """

    def __init__(self, state=None):
        self._jobs: Dict[str, ScheduledJob] = {}
        self._state = state or MemoryJobState()

    def register(self, job: ScheduledJob) -> None:
        self._jobs[job.name] = job

    def names(self) -> List[str]:
        return list(self._jobs.keys())

    def get(self, name: str) -> Optional[ScheduledJob]:
        return self._jobs.get(name)

    def is_enabled(self, name: str) -> bool:
        return name in self._jobs and self._state.get(name)

    def enable(self, name: str) -> bool:
        if name not in self._jobs:
            logger.warning(f"Job not found: {name}")
            return False
        self._state.set(name, True)
        logger.info(f"Job started: {name}")
        return True

    def disable(self, name: str) -> bool:
        if name not in self._jobs:
            logger.warning(f"Job not found: {name}")
            return False
        self._state.set(name, False)
        logger.info(f"Job stopped: {name}")
        return True

    def start_all(self) -> None:
        for name in self._jobs:
            self._state.set(name, True)
        logger.info(f"All notification jobs started: {', '.join(self._jobs)}")

    def shutdown(self) -> None:
        for name in self._jobs:
            self._state.set(name, False)
        logger.info("All notification jobs stopped")

    def status(self) -> Dict[str, bool]:
        return {name: self.is_enabled(name) for name in self._jobs}

    def info(self) -> Dict[str, Dict[str, object]]:
        return {
            name: {
                "running": self.is_enabled(name),
                "description": job.description,
                "schedule": job.schedule_label,
            }
            for name, job in self._jobs.items()
        }

    def beat_schedule(self) -> Dict[str, Dict[str, object]]:
        """Celery beat entries; every job goes through the same dispatching task."""
        return {
            name: {
                "task": job.task_name,
                "schedule": job.schedule,
                "args": (name,),
            }
            for name, job in self._jobs.items()
        }

    def run(self, name: str, db: Session, now: Optional[datetime] = None) -> int:
        """
        Run a job synchronously, ignoring its enabled flag.

        Raises:
            KeyError: If no job has that name
        """
        job = self._jobs.get(name)
        if job is None:
            raise KeyError(name)

        logger.info(f"Running job {name}")
        result = job.func(db, now=now)
        logger.info(f"Job {name} finished: {result}")
        return result


def build_job_registry(state=None) -> JobRegistry:
    """Registry with the four default notification jobs."""
    registry = JobRegistry(state=state)
    registry.register(ScheduledJob(
        name="interviewReminders",
        func=check_interview_reminders,
        schedule=crontab(minute="*/15"),
        schedule_label="Every 15 minutes",
        description="Automatic interview reminders"
    ))
    registry.register(ScheduledJob(
        name="applicationFollowUps",
        func=check_application_follow_ups,
        schedule=crontab(minute=0, hour=10),
        schedule_label="Daily at 10:00",
        description="Follow-up nudges for unanswered applications"
    ))
    registry.register(ScheduledJob(
        name="weeklyReports",
        func=send_weekly_reports,
        schedule=crontab(minute=0, hour=18, day_of_week=0),
        schedule_label="Sundays at 18:00",
        description="Weekly activity reports"
    ))
    registry.register(ScheduledJob(
        name="cleanup",
        func=run_cleanup,
        schedule=crontab(minute=0, hour=2),
        schedule_label="Daily at 02:00",
        description="Cleanup of old notifications and verification data"
    ))
    return registry
