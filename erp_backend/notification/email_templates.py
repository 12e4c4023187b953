# erp_backend/notification/email_templates.py
from __future__ import annotations

from html import escape
from typing import Optional, Tuple

SUBJECTS = {
    "task_assigned": "You were assigned to a task",
    "task_due_soon": "Task due soon",
    "task_overdue": "Task overdue",
    "review_requested": "Review requested",
    "review_completed": "Review completed",
    "comment_added": "New comment on a task",
    "note_added": "New note on a task",
    "document_uploaded": "New document on a task",
    "todo_completed": "To-Do completed",
    "bulletin_posted": "New bulletin",
    "project_updated": "Project updated",
    "project_closed": "Project closed",
    "project_reopened": "Project reopened",
}
DEFAULT_SUBJECT = "Notification"

LINK_LABELS = {
    "task": "View task",
    "project": "View project",
    "todo": "View to-do",
    "bulletin": "View bulletin",
}
DEFAULT_LINK_LABEL = "View in app"


def get_subject(notification_type: str) -> str:
    return SUBJECTS.get(notification_type, DEFAULT_SUBJECT)


def get_link_label(related_entity_type: Optional[str]) -> str:
    return LINK_LABELS.get(related_entity_type or "", DEFAULT_LINK_LABEL)


def build_view_url(
    related_entity_type: Optional[str],
    related_entity_id: Optional[object],
    app_url: Optional[str],
) -> str:
    if not app_url:
        return "#"
    base = app_url.rstrip("/")
    if related_entity_type == "task" and related_entity_id:
        return f"{base}/tasks/{related_entity_id}"
    if related_entity_type == "project" and related_entity_id:
        return f"{base}/projects/{related_entity_id}"
    if related_entity_type in ("todo", "bulletin"):
        return f"{base}/bulletin-board"
    return base


def build_email_html(
    title: str,
    message: str,
    related_entity_type: Optional[str],
    related_entity_id: Optional[object],
    app_url: Optional[str],
) -> str:
    view_url = build_view_url(related_entity_type, related_entity_id, app_url)
    link_label = get_link_label(related_entity_type)

    button_html = ""
    if view_url != "#":
        button_html = (
            '<table role="presentation" cellspacing="0" cellpadding="0" border="0" style="margin:24px 0;">'
            '<tr><td style="border-radius:6px;background-color:#18181b;">'
            f'<a href="{escape(view_url)}" target="_blank" style="display:inline-block;padding:12px 28px;'
            'font-size:14px;font-weight:600;color:#ffffff;text-decoration:none;border-radius:6px;">'
            f"{link_label} &rarr;</a>"
            "</td></tr></table>"
        )

    footer_link = ""
    if app_url:
        dashboard_url = f"{app_url.rstrip('/')}/dashboard"
        footer_link = (
            f' <a href="{escape(dashboard_url)}" style="color:#71717a;text-decoration:underline;">'
            "Open Dashboard</a>"
        )

    return f"""<!DOCTYPE html>
<html lang="en">
<head><meta charset="utf-8"><meta name="viewport" content="width=device-width,initial-scale=1.0"></head>
<body style="margin:0;padding:0;background-color:#f4f4f5;font-family:-apple-system,BlinkMacSystemFont,'Segoe UI',Roboto,Helvetica,Arial,sans-serif;">
  <table role="presentation" cellspacing="0" cellpadding="0" border="0" width="100%" style="background-color:#f4f4f5;">
    <tr>
      <td style="padding:32px 16px;">
        <table role="presentation" cellspacing="0" cellpadding="0" border="0" width="100%" style="max-width:520px;margin:0 auto;background-color:#ffffff;border-radius:8px;">
          <tr>
            <td style="padding:32px 28px;">
              <h1 style="margin:0 0 8px 0;font-size:18px;font-weight:700;color:#18181b;">{escape(title)}</h1>
              <p style="margin:0 0 4px 0;font-size:14px;line-height:1.6;color:#3f3f46;">{escape(message)}</p>
              {button_html}
            </td>
          </tr>
          <tr>
            <td style="padding:16px 28px;background-color:#fafafa;border-top:1px solid #e4e4e7;">
              <p style="margin:0;font-size:12px;color:#a1a1aa;">This is an automated notification.{footer_link}</p>
            </td>
          </tr>
        </table>
      </td>
    </tr>
  </table>
</body>
</html>"""


def render(
    notification_type: str,
    title: str,
    message: str,
    related_entity_type: Optional[str],
    related_entity_id: Optional[object],
    app_url: Optional[str],
) -> Tuple[str, str]:
    """Return (subject, html) for one notification record."""
    return (
        get_subject(notification_type),
        build_email_html(title, message, related_entity_type, related_entity_id, app_url),
    )
