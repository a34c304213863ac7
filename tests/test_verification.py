"""
Tests for verification code issuing, throttling, verification and cleanup.
"""

from datetime import timedelta

import pytest

from app.core import verification
from app.core.clock import ensure_utc
from app.core.verification import (
    INVALID_CODE_MESSAGE,
    TOO_MANY_ATTEMPTS_MESSAGE,
    calculate_resend_delay,
    can_request_code,
    cleanup_expired_codes,
    cleanup_verification_attempts,
    create_and_send_code,
    format_expiration,
    generate_verification_code,
    get_active_code,
    mask_target,
    verify_code,
)
from app.models.verification import (
    VerificationAttempt,
    VerificationCode,
    VerificationCodeType,
    VerificationMethod,
)
from tests.conftest import NOW, make_user

EMAIL = VerificationMethod.EMAIL
SMS = VerificationMethod.SMS
TWO_FACTOR = VerificationCodeType.TWO_FACTOR_AUTH


def issue(db, user, code_type=TWO_FACTOR, method=EMAIL, target="jane@example.com", now=NOW):
    result = create_and_send_code(db, user.id, code_type, method, target, now=now)
    code = get_active_code(db, user.id, code_type, now=now)
    return result, code


class TestHelpers:
    """Pure helpers"""

    def test_generated_codes_are_six_digits(self):
        for _ in range(200):
            code = generate_verification_code()
            assert len(code) == 6
            assert code.isdigit()
            assert 100000 <= int(code) <= 999999

    @pytest.mark.parametrize("count,expected", [
        (0, 1), (1, 2), (2, 5), (3, 10), (4, 15), (5, 30), (6, 60), (7, 60), (50, 60),
    ])
    def test_resend_delay_table_is_clamped(self, count, expected):
        assert calculate_resend_delay(count) == expected

    def test_expiration_labels(self):
        assert format_expiration(VerificationCodeType.EMAIL_VERIFICATION) == "24 hours"
        assert format_expiration(VerificationCodeType.PASSWORD_RESET) == "15 minutes"
        assert format_expiration(TWO_FACTOR) == "5 minutes"

    def test_mask_email(self):
        assert mask_target("jane@example.com", EMAIL) == "ja****@example.com"

    def test_mask_phone_keeps_last_four_digits(self):
        masked = mask_target("+33612345678", SMS)
        assert masked.endswith("5678")
        assert "+336" not in masked


class TestIssueCode:
    """create_and_send_code"""

    def test_issue_persists_code_and_attempt_and_sends_email(self, db_session, user, sent_emails):
        result, code = issue(db_session, user)

        assert result.success is True
        assert result.next_allowed_at == NOW + timedelta(minutes=1)
        assert ensure_utc(code.expires_at) == NOW + timedelta(minutes=5)
        assert code.attempts == 0
        assert code.max_attempts == 5
        assert code.is_used is False

        assert db_session.query(VerificationAttempt).count() == 1
        assert sent_emails.count == 1
        args, _ = sent_emails.calls[0]
        assert args[0] == "jane@example.com"
        assert code.code in str(sent_emails.calls[0])

    def test_issue_by_sms_uses_sms_channel(self, db_session, user, sent_emails, sent_sms):
        result, code = issue(
            db_session, user, code_type=VerificationCodeType.PHONE_VERIFICATION,
            method=SMS, target="+33612345678"
        )

        assert result.success is True
        assert sent_sms.count == 1
        assert sent_emails.count == 0
        assert code.code in str(sent_sms.calls[0])

    def test_code_email_greets_user_by_name(self, db_session, user, sent_emails):
        issue(db_session, user)

        html_body = sent_emails.calls[0][0][2]
        assert "Hi Jane Doe," in html_body

    def test_code_email_greeting_falls_back_to_email_name(self, db_session, sent_emails):
        nameless = make_user(db_session, email="sam@example.com", full_name=None, settings={})

        issue(db_session, nameless, target="sam@example.com")

        assert "Hi sam," in sent_emails.calls[0][0][2]

    def test_second_issue_invalidates_first_code(self, db_session, user):
        _, first = issue(db_session, user)
        first_code = first.code

        later = NOW + timedelta(minutes=2)
        _, second = issue(db_session, user, now=later)

        if first_code == second.code:
            pytest.skip("Random codes collided")

        assert verify_code(db_session, user.id, first_code, TWO_FACTOR, now=later).message == INVALID_CODE_MESSAGE
        assert verify_code(db_session, user.id, second.code, TWO_FACTOR, now=later).success is True

    def test_only_one_active_code_per_type(self, db_session, user):
        issue(db_session, user)
        issue(db_session, user, now=NOW + timedelta(minutes=2))

        active = db_session.query(VerificationCode).filter(
            VerificationCode.user_id == user.id,
            VerificationCode.code_type == TWO_FACTOR,
            VerificationCode.is_used == False  # noqa: E712
        ).count()
        assert active == 1

    def test_codes_of_other_types_stay_active(self, db_session, user):
        issue(db_session, user, code_type=VerificationCodeType.PASSWORD_RESET)
        issue(db_session, user, code_type=TWO_FACTOR)

        assert get_active_code(db_session, user.id, VerificationCodeType.PASSWORD_RESET, now=NOW) is not None
        assert get_active_code(db_session, user.id, TWO_FACTOR, now=NOW) is not None

    def test_throttled_request_writes_nothing(self, db_session, user, sent_emails):
        issue(db_session, user)
        result = create_and_send_code(
            db_session, user.id, TWO_FACTOR, EMAIL, "jane@example.com", now=NOW + timedelta(seconds=30)
        )

        assert result.success is False
        assert result.rate_limited is True
        assert result.next_allowed_at == NOW + timedelta(minutes=1)
        assert "1 minute" in result.message
        assert db_session.query(VerificationCode).count() == 1
        assert db_session.query(VerificationAttempt).count() == 1
        assert sent_emails.count == 1

    def test_unknown_user(self, db_session):
        import uuid
        result = create_and_send_code(db_session, uuid.uuid4(), TWO_FACTOR, EMAIL, "x@example.com", now=NOW)
        assert result.success is False
        assert result.message == "User not found"

    def test_metadata_is_stored(self, db_session, user):
        create_and_send_code(
            db_session, user.id, VerificationCodeType.SENSITIVE_ACTION, EMAIL, "jane@example.com",
            metadata={"action": "export"}, now=NOW
        )
        code = get_active_code(db_session, user.id, VerificationCodeType.SENSITIVE_ACTION, now=NOW)
        assert code.metadata_ == {"action": "export"}


class TestResendThrottle:
    """Progressive resend delays"""

    def test_cooldowns_escalate_one_two_five_minutes(self, db_session, user):
        t0 = NOW
        first, _ = issue(db_session, user, now=t0)
        assert first.next_allowed_at == t0 + timedelta(minutes=1)

        t1 = t0 + timedelta(minutes=1)
        second, _ = issue(db_session, user, now=t1)
        assert second.next_allowed_at == t1 + timedelta(minutes=2)

        t2 = t1 + timedelta(minutes=2)
        third, _ = issue(db_session, user, now=t2)
        assert third.next_allowed_at == t2 + timedelta(minutes=5)

    def test_can_request_right_after_send_is_refused(self, db_session, user):
        issue(db_session, user)

        status = can_request_code(db_session, user.id, TWO_FACTOR, EMAIL, "jane@example.com", now=NOW)
        assert status.allowed is False
        assert status.next_allowed_at == NOW + timedelta(minutes=1)

    def test_can_request_once_cooldown_passed(self, db_session, user):
        issue(db_session, user)

        status = can_request_code(
            db_session, user.id, TWO_FACTOR, EMAIL, "jane@example.com", now=NOW + timedelta(minutes=1)
        )
        assert status.allowed is True

    def test_throttle_is_per_target(self, db_session, user):
        issue(db_session, user)

        status = can_request_code(db_session, user.id, TWO_FACTOR, EMAIL, "other@example.com", now=NOW)
        assert status.allowed is True

    def test_delay_caps_at_sixty_minutes(self, db_session, user):
        now = NOW
        delays = []
        for _ in range(9):
            result, _ = issue(db_session, user, now=now)
            assert result.success is True
            delays.append(result.next_allowed_at - now)
            now = result.next_allowed_at

        assert [d.total_seconds() // 60 for d in delays] == [1, 2, 5, 10, 15, 30, 60, 60, 60]

    def test_attempts_older_than_a_day_do_not_escalate(self, db_session, user):
        issue(db_session, user, now=NOW)
        issue(db_session, user, now=NOW + timedelta(minutes=1))

        later = NOW + timedelta(hours=25)
        result, _ = issue(db_session, user, now=later)
        assert result.next_allowed_at == later + timedelta(minutes=1)


class TestDeliveryFailure:
    """A failed send keeps the code and spends the cool-down slot"""

    def test_failed_send_reports_failure_without_rollback(self, db_session, user, sent_emails):
        sent_emails.result = False

        result, code = issue(db_session, user)

        assert result.success is False
        assert result.delivery_failed is True
        assert result.next_allowed_at == NOW + timedelta(minutes=1)
        assert code is not None
        assert db_session.query(VerificationAttempt).count() == 1

        status = can_request_code(db_session, user.id, TWO_FACTOR, EMAIL, "jane@example.com", now=NOW)
        assert status.allowed is False

    def test_channel_exception_is_reported_as_failure(self, db_session, user, sent_emails):
        sent_emails.error = RuntimeError("SES down")

        result, _ = issue(db_session, user)

        assert result.success is False
        assert result.delivery_failed is True


class TestVerifyCode:
    """verify_code"""

    def test_correct_code_succeeds_once(self, db_session, user):
        _, code = issue(db_session, user)

        first = verify_code(db_session, user.id, code.code, TWO_FACTOR, now=NOW)
        second = verify_code(db_session, user.id, code.code, TWO_FACTOR, now=NOW)

        assert first.success is True
        assert second.success is False
        assert second.message == INVALID_CODE_MESSAGE

        db_session.refresh(code)
        assert code.is_used is True
        assert ensure_utc(code.used_at) == NOW
        assert code.attempts == 1

    def test_two_factor_code_expires_after_five_minutes(self, db_session, user):
        _, code = issue(db_session, user)
        value = code.code

        assert verify_code(db_session, user.id, value, TWO_FACTOR, now=NOW + timedelta(minutes=4)).success is True

        _, code = issue(db_session, user, now=NOW + timedelta(minutes=10))
        late = verify_code(db_session, user.id, code.code, TWO_FACTOR, now=NOW + timedelta(minutes=16))
        assert late.success is False
        assert late.message == INVALID_CODE_MESSAGE

    def test_wrong_type_does_not_match(self, db_session, user):
        _, code = issue(db_session, user)
        result = verify_code(db_session, user.id, code.code, VerificationCodeType.PASSWORD_RESET, now=NOW)
        assert result.success is False

    def test_other_users_code_does_not_match(self, db_session, user):
        _, code = issue(db_session, user)
        other = make_user(db_session, email="bob@example.com")

        result = verify_code(db_session, other.id, code.code, TWO_FACTOR, now=NOW)
        assert result.success is False

    def test_five_wrong_guesses_burn_the_code(self, db_session, user):
        _, code = issue(db_session, user)
        wrong = "000000" if code.code != "000000" else "111111"

        for _ in range(5):
            result = verify_code(db_session, user.id, wrong, TWO_FACTOR, now=NOW)
            assert result.message == INVALID_CODE_MESSAGE

        result = verify_code(db_session, user.id, code.code, TWO_FACTOR, now=NOW)
        assert result.success is False
        assert result.message == TOO_MANY_ATTEMPTS_MESSAGE

        db_session.refresh(code)
        assert code.is_used is True
        assert verify_code(db_session, user.id, code.code, TWO_FACTOR, now=NOW).success is False

    def test_attempts_never_exceed_max(self, db_session, user):
        _, code = issue(db_session, user)
        wrong = "000000" if code.code != "000000" else "111111"

        for _ in range(8):
            verify_code(db_session, user.id, wrong, TWO_FACTOR, now=NOW)

        db_session.refresh(code)
        assert code.attempts <= code.max_attempts

    def test_wrong_guess_without_active_code_is_harmless(self, db_session, user):
        result = verify_code(db_session, user.id, "123456", TWO_FACTOR, now=NOW)
        assert result.success is False
        assert result.message == INVALID_CODE_MESSAGE


class TestCleanup:
    """Maintenance deletes"""

    def _code(self, db, user, expires_at, created_at=NOW, is_used=False):
        code = VerificationCode(
            user_id=user.id,
            code="123456",
            code_type=TWO_FACTOR,
            method=EMAIL,
            target=user.email,
            expires_at=expires_at,
            created_at=created_at,
            is_used=is_used
        )
        db.add(code)
        db.commit()
        return code

    def test_deletes_only_the_expired_code(self, db_session, user):
        self._code(db_session, user, expires_at=NOW - timedelta(hours=1))
        live = self._code(db_session, user, expires_at=NOW + timedelta(hours=1))
        live_id = live.id

        assert cleanup_expired_codes(db_session, now=NOW) == 1
        remaining = db_session.query(VerificationCode).all()
        assert [c.id for c in remaining] == [live_id]

    def test_deletes_old_used_codes(self, db_session, user):
        self._code(
            db_session, user, expires_at=NOW + timedelta(days=1),
            created_at=NOW - timedelta(days=8), is_used=True
        )
        self._code(
            db_session, user, expires_at=NOW + timedelta(days=1),
            created_at=NOW - timedelta(days=1), is_used=True
        )

        assert cleanup_expired_codes(db_session, now=NOW) == 1

    def test_attempt_cleanup_keeps_recent_history(self, db_session, user):
        issue(db_session, user, now=NOW - timedelta(hours=30))
        issue(db_session, user, now=NOW - timedelta(minutes=10))

        assert cleanup_verification_attempts(db_session, now=NOW) == 1
        assert db_session.query(VerificationAttempt).count() == 1


def test_expiration_table_covers_every_type():
    for code_type in VerificationCodeType:
        assert verification.get_expiration_minutes(code_type) > 0
