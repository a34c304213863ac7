"""
Tests for the scheduled notification jobs and the job registry.
"""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest
import redis

from app.models.application import Application, ApplicationStatus, Interview, InterviewType
from app.models.notification import Notification, NotificationPriority, NotificationType
from app.models.verification import VerificationCode, VerificationCodeType, VerificationMethod
from app.services.scheduler import (
    RedisJobState,
    build_job_registry,
    check_application_follow_ups,
    check_interview_reminders,
    format_time_until,
    is_follow_up_due,
    match_reminder_offset,
    run_cleanup,
    send_weekly_reports,
)
from app.tasks.notification_tasks import execute_scheduled_job, schedule_one_time_notification
from tests.conftest import NOW, make_user


def add_application(db, user, company="Acme", status=ApplicationStatus.APPLIED, applied_at=NOW, created_at=NOW):
    application = Application(
        user_id=user.id,
        company=company,
        position="Backend Engineer",
        status=status,
        applied_at=applied_at,
        created_at=created_at
    )
    db.add(application)
    db.commit()
    return application


def add_interview(db, application, scheduled_at, created_at=NOW, interviewers=None):
    interview = Interview(
        application_id=application.id,
        interview_type=InterviewType.VIDEO,
        scheduled_at=scheduled_at,
        duration=None,
        interviewers=interviewers or [],
        created_at=created_at
    )
    db.add(interview)
    db.commit()
    return interview


class TestHelpers:
    """Pure timing helpers"""

    @pytest.mark.parametrize("minutes_until,expected", [
        (1440, 1440),
        (1447, 1440),
        (1433, 1440),
        (1448, None),
        (60, 60),
        (53, 60),
        (15, 15),
        (8, 15),
        (7, None),
        (30, None),
    ])
    def test_match_reminder_offset(self, minutes_until, expected):
        assert match_reminder_offset(minutes_until, [1440, 60, 15]) == expected

    def test_first_matching_offset_wins(self):
        assert match_reminder_offset(20, [25, 15]) == 25

    @pytest.mark.parametrize("days,due", [(7, True), (14, True), (21, True), (8, False), (13, False), (0, False)])
    def test_follow_up_every_seven_days(self, days, due):
        assert is_follow_up_due(days) is due

    @pytest.mark.parametrize("minutes,label", [
        (1, "1 minute"), (15, "15 minutes"), (60, "1 hour"), (150, "2 hours"), (1440, "1 day"), (3000, "2 days"),
    ])
    def test_format_time_until(self, minutes, label):
        assert format_time_until(minutes) == label


class TestInterviewReminders:
    """check_interview_reminders"""

    def test_reminder_fires_at_offset(self, db_session, user, sent_emails):
        application = add_application(db_session, user)
        add_interview(db_session, application, NOW + timedelta(hours=24, minutes=3), interviewers=["Ann", "Bo"])

        assert check_interview_reminders(db_session, now=NOW) == 1

        row = db_session.query(Notification).one()
        assert row.notification_type == NotificationType.INTERVIEW_REMINDER
        assert row.priority == NotificationPriority.NORMAL
        assert row.data["company"] == "Acme"
        assert row.data["duration"] == 60
        assert row.data["interviewers"] == "Ann, Bo"
        assert row.data["time_until"] == "1 day"
        assert row.action_url == f"/applications/{application.id}"
        assert sent_emails.count == 1

    def test_close_reminder_is_high_priority(self, db_session, user):
        application = add_application(db_session, user)
        add_interview(db_session, application, NOW + timedelta(minutes=16))

        check_interview_reminders(db_session, now=NOW)

        row = db_session.query(Notification).one()
        assert row.priority == NotificationPriority.HIGH
        assert row.data["time_until"] == "16 minutes"

    def test_no_reminder_between_offsets(self, db_session, user):
        application = add_application(db_session, user)
        add_interview(db_session, application, NOW + timedelta(hours=5))

        assert check_interview_reminders(db_session, now=NOW) == 0

    def test_past_interviews_are_ignored(self, db_session, user):
        application = add_application(db_session, user)
        add_interview(db_session, application, NOW - timedelta(minutes=10))

        assert check_interview_reminders(db_session, now=NOW) == 0

    def test_users_with_reminders_off_or_no_settings_are_skipped(self, db_session):
        off = make_user(db_session, email="off@example.com", settings={"interview_reminders": False})
        bare = make_user(db_session, email="bare@example.com")
        for owner in (off, bare):
            add_interview(db_session, add_application(db_session, owner), NOW + timedelta(minutes=60))

        assert check_interview_reminders(db_session, now=NOW) == 0

    def test_custom_offsets(self, db_session):
        owner = make_user(db_session, settings={"reminder_timing_1": 120})
        add_interview(db_session, add_application(db_session, owner), NOW + timedelta(minutes=118))

        assert check_interview_reminders(db_session, now=NOW) == 1


class TestFollowUps:
    """check_application_follow_ups"""

    def test_fires_on_multiples_of_seven_days(self, db_session, user):
        add_application(db_session, user, company="Week", applied_at=NOW - timedelta(days=7, hours=2))
        add_application(db_session, user, company="TwoWeeks", applied_at=NOW - timedelta(days=14, hours=1))
        add_application(db_session, user, company="Nine", applied_at=NOW - timedelta(days=9))
        add_application(db_session, user, company="Fresh", applied_at=NOW - timedelta(days=3))

        assert check_application_follow_ups(db_session, now=NOW) == 2

        companies = sorted(n.data["company"] for n in db_session.query(Notification).all())
        assert companies == ["TwoWeeks", "Week"]

    def test_only_waiting_statuses(self, db_session, user):
        add_application(
            db_session, user, status=ApplicationStatus.UNDER_REVIEW, applied_at=NOW - timedelta(days=7, hours=1)
        )
        add_application(
            db_session, user, status=ApplicationStatus.REJECTED, applied_at=NOW - timedelta(days=7, hours=1)
        )

        assert check_application_follow_ups(db_session, now=NOW) == 1
        row = db_session.query(Notification).one()
        assert row.data["days_since"] == 7


class TestWeeklyReports:
    """send_weekly_reports"""

    def test_report_counts_last_week(self, db_session, user, sent_sms):
        recent = add_application(db_session, user, created_at=NOW - timedelta(days=2))
        add_application(db_session, user, company="Old", created_at=NOW - timedelta(days=20))
        add_interview(db_session, recent, NOW + timedelta(days=2), created_at=NOW - timedelta(days=1))
        add_interview(db_session, recent, NOW + timedelta(days=10), created_at=NOW - timedelta(days=1))

        assert send_weekly_reports(db_session, now=NOW) == 1

        row = db_session.query(Notification).one()
        assert row.notification_type == NotificationType.WEEKLY_REPORT
        assert row.priority == NotificationPriority.LOW
        assert row.data["new_applications"] == 1
        assert row.data["interviews"] == 2
        assert len(row.data["upcoming_interviews"]) == 1
        assert row.data["upcoming_interviews"][0]["company"] == "Acme"
        assert sent_sms.count == 0

    def test_opted_out_users_get_nothing(self, db_session):
        make_user(db_session, settings={"weekly_reports": False})
        assert send_weekly_reports(db_session, now=NOW) == 0


class TestCleanupJob:
    """run_cleanup"""

    def test_cleans_notifications_and_codes(self, db_session, user):
        old = Notification(
            user_id=user.id,
            notification_type=NotificationType.STATUS_UPDATE,
            title="t",
            message="m",
            is_read=True,
            created_at=NOW - timedelta(days=40)
        )
        expired = VerificationCode(
            user_id=user.id,
            code="123456",
            code_type=VerificationCodeType.TWO_FACTOR_AUTH,
            method=VerificationMethod.EMAIL,
            target=user.email,
            expires_at=NOW - timedelta(hours=1),
            created_at=NOW - timedelta(hours=2)
        )
        db_session.add_all([old, expired])
        db_session.commit()

        assert run_cleanup(db_session, now=NOW) == 2
        assert db_session.query(Notification).count() == 0
        assert db_session.query(VerificationCode).count() == 0


class TestJobRegistry:
    """JobRegistry"""

    def test_default_jobs(self):
        registry = build_job_registry()
        assert registry.names() == ["interviewReminders", "applicationFollowUps", "weeklyReports", "cleanup"]
        assert all(registry.status().values())

    def test_stop_and_start(self):
        registry = build_job_registry()

        assert registry.disable("weeklyReports") is True
        assert registry.status()["weeklyReports"] is False
        assert registry.info()["weeklyReports"]["running"] is False

        assert registry.enable("weeklyReports") is True
        assert registry.is_enabled("weeklyReports") is True

    def test_unknown_job(self):
        registry = build_job_registry()
        assert registry.disable("nope") is False
        assert registry.is_enabled("nope") is False
        with pytest.raises(KeyError):
            registry.run("nope", db=None)

    def test_shutdown_stops_everything(self):
        registry = build_job_registry()
        registry.shutdown()
        assert not any(registry.status().values())

        registry.start_all()
        assert all(registry.status().values())

    def test_beat_schedule_routes_through_one_task(self):
        schedule = build_job_registry().beat_schedule()

        assert set(schedule) == {"interviewReminders", "applicationFollowUps", "weeklyReports", "cleanup"}
        assert schedule["cleanup"]["task"] == "run_scheduled_job"
        assert schedule["cleanup"]["args"] == ("cleanup",)

    def test_run_forces_job(self, db_session, user):
        registry = build_job_registry()
        registry.disable("weeklyReports")

        assert registry.run("weeklyReports", db_session, now=NOW) == 1


class TestRedisJobState:
    """Shared enabled flags"""

    def test_disabled_flag_is_a_key(self):
        client = MagicMock()
        state = RedisJobState(redis_client=client)

        state.set("cleanup", False)
        client.set.assert_called_once_with("scheduler:disabled:cleanup", "1")

        state.set("cleanup", True)
        client.delete.assert_called_once_with("scheduler:disabled:cleanup")

    def test_read_fails_open(self):
        client = MagicMock()
        client.exists.side_effect = redis.ConnectionError("down")

        assert RedisJobState(redis_client=client).get("cleanup") is True


class TestJobExecution:
    """Celery-side job execution"""

    def test_runs_enabled_job_in_fresh_session(self, db_session, user):
        registry = build_job_registry()
        closed = []

        class SessionProxy:
            def __getattr__(self, name):
                return getattr(db_session, name)

            def close(self):
                closed.append(True)

        result = execute_scheduled_job("cleanup", registry, session_factory=SessionProxy)

        assert result["status"] == "success"
        assert closed == [True]

    def test_stopped_job_is_skipped(self):
        registry = build_job_registry()
        registry.disable("cleanup")

        def no_session():
            raise AssertionError("session should not be opened")

        assert execute_scheduled_job("cleanup", registry, session_factory=no_session)["status"] == "skipped"

    def test_failure_is_reraised(self):
        registry = build_job_registry()
        session = MagicMock()
        session.query.side_effect = RuntimeError("db down")

        with pytest.raises(RuntimeError):
            execute_scheduled_job("weeklyReports", registry, session_factory=lambda: session)
        session.close.assert_called_once()


class TestOneTimeNotification:
    """schedule_one_time_notification"""

    def test_past_time_dispatches_immediately(self, db_session, user):
        sent = schedule_one_time_notification(
            db_session, user.id, NotificationType.SYSTEM_NOTIFICATION, "Now", "Hello",
            execute_at=NOW - timedelta(minutes=1), now=NOW
        )

        assert sent is True
        assert db_session.query(Notification).count() == 1

    def test_future_time_is_queued_with_eta(self, db_session, user, monkeypatch):
        queued = []

        def fake_queue(task, *args, eta=None, **kwargs):
            queued.append((task.name, eta, kwargs))
            return True

        monkeypatch.setattr("app.tasks.notification_tasks.queue_task_safely", fake_queue)

        execute_at = NOW + timedelta(hours=2)
        assert schedule_one_time_notification(
            db_session, user.id, NotificationType.DEADLINE_ALERT, "Later", "Hello",
            execute_at=execute_at, priority=NotificationPriority.HIGH, now=NOW
        ) is True

        name, eta, kwargs = queued[0]
        assert name == "send_notification_task"
        assert eta == execute_at
        assert kwargs["user_id"] == str(user.id)
        assert kwargs["notification_type"] == "DEADLINE_ALERT"
        assert kwargs["priority"] == "HIGH"
        assert db_session.query(Notification).count() == 0
