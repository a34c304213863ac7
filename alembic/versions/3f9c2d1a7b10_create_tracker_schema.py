"""create_tracker_schema

Revision ID: 3f9c2d1a7b10
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3f9c2d1a7b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


VERIFICATION_CODE_TYPES = (
    'EMAIL_VERIFICATION', 'PASSWORD_RESET', 'TWO_FACTOR_AUTH',
    'PHONE_VERIFICATION', 'ACCOUNT_DELETION', 'SENSITIVE_ACTION',
)
NOTIFICATION_TYPES = (
    'INTERVIEW_REMINDER', 'APPLICATION_FOLLOW_UP', 'DEADLINE_ALERT', 'STATUS_UPDATE',
    'WEEKLY_REPORT', 'SYSTEM_NOTIFICATION', 'ACHIEVEMENT',
)
APPLICATION_STATUSES = (
    'APPLIED', 'UNDER_REVIEW', 'INTERVIEW_SCHEDULED', 'INTERVIEWED',
    'OFFER_RECEIVED', 'REJECTED', 'ACCEPTED', 'WITHDRAWN',
)


def upgrade() -> None:
    """
    Create users, applications, interviews, notifications, notification
    settings, verification codes and verification attempts.
    """
    code_type = sa.Enum(*VERIFICATION_CODE_TYPES, name='verificationcodetype')
    method = sa.Enum('EMAIL', 'SMS', name='verificationmethod')

    op.create_table(
        'users',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('full_name', sa.String(), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('is_verified', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('is_admin', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'applications',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('company', sa.String(), nullable=False),
        sa.Column('position', sa.String(), nullable=False),
        sa.Column('status', sa.Enum(*APPLICATION_STATUSES, name='applicationstatus'), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('applied_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_applications_id', 'applications', ['id'])
    op.create_index('ix_applications_user_id', 'applications', ['user_id'])

    op.create_table(
        'interviews',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('application_id', sa.UUID(), nullable=False),
        sa.Column(
            'interview_type',
            sa.Enum('PHONE', 'VIDEO', 'ONSITE', 'TECHNICAL', 'HR', 'FINAL', name='interviewtype'),
            nullable=False
        ),
        sa.Column('scheduled_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('duration', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('interviewers', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['application_id'], ['applications.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_interviews_id', 'interviews', ['id'])
    op.create_index('ix_interviews_application_id', 'interviews', ['application_id'])
    op.create_index('ix_interviews_scheduled_at', 'interviews', ['scheduled_at'])

    op.create_table(
        'notifications',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('notification_type', sa.Enum(*NOTIFICATION_TYPES, name='notificationtype'), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('data', sa.JSON(), nullable=True),
        sa.Column(
            'priority',
            sa.Enum('LOW', 'NORMAL', 'HIGH', 'URGENT', name='notificationpriority'),
            nullable=False
        ),
        sa.Column('action_url', sa.String(), nullable=True),
        sa.Column('is_read', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_notifications_id', 'notifications', ['id'])
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])
    op.create_index(
        'ix_notifications_user_read_created',
        'notifications',
        ['user_id', 'is_read', 'created_at']
    )

    op.create_table(
        'notification_settings',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('email_enabled', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('sms_enabled', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('push_enabled', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('interview_reminders', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('application_follow_ups', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('weekly_reports', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('deadline_alerts', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('status_updates', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('reminder_timing_1', sa.Integer(), server_default='1440', nullable=False),
        sa.Column('reminder_timing_2', sa.Integer(), server_default='60', nullable=False),
        sa.Column('reminder_timing_3', sa.Integer(), server_default='15', nullable=False),
        sa.Column('phone_number', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('user_id'),
    )
    op.create_index('ix_notification_settings_id', 'notification_settings', ['id'])

    op.create_table(
        'verification_codes',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('code', sa.String(length=6), nullable=False),
        sa.Column('code_type', code_type, nullable=False),
        sa.Column('method', method, nullable=False),
        sa.Column('target', sa.String(), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('used_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('attempts', sa.Integer(), server_default='0', nullable=False),
        sa.Column('max_attempts', sa.Integer(), server_default='5', nullable=False),
        sa.Column('is_used', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_verification_codes_id', 'verification_codes', ['id'])
    op.create_index('ix_verification_codes_user_id', 'verification_codes', ['user_id'])
    op.create_index('ix_verification_codes_user_type_used', 'verification_codes', ['user_id', 'code_type', 'is_used'])
    op.create_index('ix_verification_codes_code_expires', 'verification_codes', ['code', 'expires_at'])

    # Types already exist once verification_codes is created
    attempt_code_type = postgresql.ENUM(*VERIFICATION_CODE_TYPES, name='verificationcodetype', create_type=False)
    attempt_method = postgresql.ENUM('EMAIL', 'SMS', name='verificationmethod', create_type=False)

    op.create_table(
        'verification_attempts',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('code_type', attempt_code_type, nullable=False),
        sa.Column('method', attempt_method, nullable=False),
        sa.Column('target', sa.String(), nullable=False),
        sa.Column('sent_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('next_allowed_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_verification_attempts_id', 'verification_attempts', ['id'])
    op.create_index('ix_verification_attempts_user_id', 'verification_attempts', ['user_id'])
    op.create_index(
        'ix_verification_attempts_user_type_next',
        'verification_attempts',
        ['user_id', 'code_type', 'next_allowed_at']
    )


def downgrade() -> None:
    """
    Drop every tracker table and enum type.
    """
    op.drop_table('verification_attempts')
    op.drop_table('verification_codes')
    op.drop_table('notification_settings')
    op.drop_table('notifications')
    op.drop_table('interviews')
    op.drop_table('applications')
    op.drop_table('users')

    for enum_name in (
        'verificationcodetype', 'verificationmethod', 'notificationtype',
        'notificationpriority', 'interviewtype', 'applicationstatus',
    ):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
