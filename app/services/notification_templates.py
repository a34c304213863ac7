"""
Email and SMS renderings for notifications.

Each builder takes the merged dispatch payload (title, message and the
notification's data dict) and returns the channel content. Values coming
from user data are HTML-escaped in email bodies.
"""

import html
from typing import Any, Dict

from app.models.notification import NotificationType


def _e(value: Any) -> str:
    return html.escape("" if value is None else str(value))


def _layout(heading: str, color: str, background: str, inner: str) -> str:
    return f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
    <h2 style="color: {color};">{heading}</h2>
    <div style="background: {background}; padding: 20px; border-radius: 8px; margin: 20px 0;">
        {inner}
    </div>
</div>
"""


def build_interview_reminder_html(data: Dict[str, Any]) -> str:
    details = (
        f"<strong>Date:</strong> {_e(data.get('date'))}<br>"
        f"<strong>Type:</strong> {_e(data.get('type'))}<br>"
        f"<strong>Duration:</strong> {_e(data.get('duration'))} minutes"
    )
    extra = ""
    if data.get("notes"):
        extra += f'<p style="margin: 10px 0; color: #64748b;"><strong>Notes:</strong> {_e(data["notes"])}</p>'
    if data.get("interviewers"):
        extra += f'<p style="margin: 10px 0; color: #64748b;"><strong>Interviewers:</strong> {_e(data["interviewers"])}</p>'

    inner = f"""
        <h3 style="margin: 0; color: #1e293b;">{_e(data.get('company'))} - {_e(data.get('position'))}</h3>
        <p style="margin: 10px 0; color: #64748b;">{details}</p>
        {extra}
    """
    return _layout("Interview reminder", "#2563eb", "#f8fafc", inner) + \
        '<p style="color: #64748b;">Good luck!</p>'


def build_follow_up_html(data: Dict[str, Any]) -> str:
    inner = f"""
        <h3 style="margin: 0; color: #1e293b;">{_e(data.get('company'))} - {_e(data.get('position'))}</h3>
        <p style="margin: 10px 0; color: #64748b;">Application sent {_e(data.get('days_since'))} days ago.</p>
        <p style="margin: 10px 0; color: #64748b;">It may be time to follow up!</p>
    """
    return _layout("Application follow-up", "#059669", "#f0fdf4", inner)


def build_weekly_report_html(data: Dict[str, Any]) -> str:
    upcoming = "".join(
        f"""
        <div style="margin: 10px 0; padding: 10px; background: white; border-radius: 4px;">
            <strong>{_e(item.get('company'))}</strong> - {_e(item.get('position'))}<br>
            <small>{_e(item.get('date'))} at {_e(item.get('time'))}</small>
        </div>"""
        for item in data.get("upcoming_interviews") or []
    )
    if not upcoming:
        upcoming = "<p>No interviews scheduled for the coming week.</p>"

    inner = f"""
        <p><strong>This week:</strong></p>
        <ul>
            <li>{_e(data.get('new_applications', 0))} new applications</li>
            <li>{_e(data.get('interviews', 0))} interviews scheduled</li>
            <li>{_e(data.get('responses', 0))} responses received</li>
        </ul>
        <p><strong>Upcoming interviews:</strong></p>
        {upcoming}
    """
    return _layout("Weekly report", "#7c3aed", "#faf5ff", inner)


def build_generic_html(data: Dict[str, Any]) -> str:
    inner = f'<p style="margin: 0; color: #1e293b;">{_e(data.get("message"))}</p>'
    return _layout(_e(data.get("title")), "#1e293b", "#f8fafc", inner)


EMAIL_BUILDERS = {
    NotificationType.INTERVIEW_REMINDER: build_interview_reminder_html,
    NotificationType.APPLICATION_FOLLOW_UP: build_follow_up_html,
    NotificationType.WEEKLY_REPORT: build_weekly_report_html,
}


def render_email(notification_type: NotificationType, data: Dict[str, Any]) -> str:
    """HTML body for a notification email; unknown types get the generic layout."""
    builder = EMAIL_BUILDERS.get(notification_type, build_generic_html)
    return builder(data)


def render_sms(notification_type: NotificationType, data: Dict[str, Any]) -> str:
    """Short text for a notification SMS."""
    if notification_type == NotificationType.INTERVIEW_REMINDER:
        return (
            f"Reminder: {data.get('company')} {data.get('type')} interview in "
            f"{data.get('time_until')}. Date: {data.get('date')}. Good luck!"
        )
    if notification_type == NotificationType.DEADLINE_ALERT:
        return f"Reminder: application deadline for {data.get('company')} in {data.get('time_until')}!"
    return f"Candi Tracker: {data.get('message')}"
