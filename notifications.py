"""
In-app notifications and outgoing email events.

Transitions never send anything themselves: they prepend Notification records
to the State and return EmailEvent values, which the tracker hands to an
EmailSender after the new state is committed.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional, Sequence, Tuple

from schemas import Notification, NotificationType, State, User, evolve, new_id, utcnow
from transitions import Transition, commit, require_admin

logger = logging.getLogger(__name__)

SIGNATURE = "Thank you,\nThe OliLab Team"


@dataclass(frozen=True)
class EmailEvent:
    event_type: str
    recipients: Tuple[str, ...]
    subject: str
    body: str


def notification(message: str, type: NotificationType, now: datetime, related_log_id: Optional[str] = None) -> Notification:
    return Notification(
        id=new_id("notif"),
        message=message,
        type=type,
        read=False,
        timestamp=now,
        related_log_id=related_log_id,
    )


def mark_notifications_read(state: State, notification_ids: Iterable[str], actor_id: Optional[str] = None) -> Transition:
    require_admin(state, actor_id)
    ids = set(notification_ids)
    changed = []
    notifications = []
    for n in state.notifications:
        if n.id in ids and not n.read:
            n = evolve(n, read=True)
            changed.append(n)
        notifications.append(n)
    return Transition(commit(state, notifications=tuple(notifications)), changed)


def unread_notifications(state: State) -> Tuple[Notification, ...]:
    return tuple(n for n in state.notifications if not n.read)


# ---------------------------
# Email templates
# ---------------------------
def new_user_pending_email(new_user: User, admins: Sequence[User]) -> Optional[EmailEvent]:
    if not admins:
        return None
    details = [
        f"- Full Name: {new_user.full_name}",
        f"- Username: {new_user.username}",
        f"- Email: {new_user.email}",
        f"- Role: {new_user.role.value}",
    ]
    if new_user.lrn:
        details.append(f"- LRN: {new_user.lrn}")
    if new_user.grade_level:
        details.append(f"- Grade: {new_user.grade_level.value} - {new_user.section}")
    body = (
        "Hello OliLab Administrators,\n\n"
        "A new user has just signed up and is awaiting approval.\n\n"
        "User Details:\n" + "\n".join(details) + "\n\n"
        "Please visit the 'Users' page in the dashboard to approve or deny this registration request.\n\n"
        "Thank you,\nOliLab System"
    )
    return EmailEvent(
        event_type="new_user_pending",
        recipients=tuple(a.email for a in admins),
        subject=f"New User Registration Pending Approval: {new_user.full_name}",
        body=body,
    )


def account_approved_email(user: User) -> EmailEvent:
    body = (
        f"Hi {user.full_name},\n\n"
        "Great news! Your registration for OliLab has been approved by an administrator.\n"
        "You can now log in to your account and start using the system.\n\n"
        f"Welcome aboard!\n\n{SIGNATURE}"
    )
    return EmailEvent("account_approved", (user.email,), "Your OliLab Account Has Been Approved!", body)


def account_denied_email(user: User) -> EmailEvent:
    body = (
        f"Hi {user.full_name},\n\n"
        "Thank you for your interest in OliLab. After a review, we regret to inform you that your "
        "registration request has been denied at this time.\n"
        "If you believe this was a mistake, please contact a laboratory administrator directly.\n\n"
        f"{SIGNATURE}"
    )
    return EmailEvent("account_denied", (user.email,), "Update on Your OliLab Account Registration", body)


def profile_updated_email(user: User, changed_by_admin: bool = False) -> EmailEvent:
    note = "An administrator made this change on your behalf.\n" if changed_by_admin else ""
    body = (
        f"Hi {user.full_name},\n\n"
        "This email is to confirm that your account details have been successfully updated.\n"
        f"{note}\n"
        "If you did not request this change, please contact an administrator immediately.\n\n"
        f"{SIGNATURE}"
    )
    return EmailEvent("profile_updated", (user.email,), "Your OliLab Account Information Was Updated", body)


def login_alert_email(user: User, now: Optional[datetime] = None) -> EmailEvent:
    now = now or utcnow()
    body = (
        f"Hi {user.full_name},\n\n"
        "This is a confirmation that your OliLab account was just accessed.\n\n"
        f"Date & Time: {now.strftime('%Y-%m-%d %H:%M:%S %Z')}\n\n"
        "If this was you, you can safely ignore this email.\n"
        "If you do not recognize this activity, please change your password immediately and contact an administrator.\n\n"
        f"{SIGNATURE}"
    )
    return EmailEvent("login_alert", (user.email,), "Security Alert: Successful Login to Your OliLab Account", body)


# ---------------------------
# Delivery
# ---------------------------
class EmailSender:
    """Writes emails to the log instead of a mail server."""

    def send(self, event: EmailEvent) -> None:
        for to in event.recipients:
            logger.info("email %s to=%s subject=%r\n%s", event.event_type, to, event.subject, event.body)


def dispatch(sender: Optional[EmailSender], events: Iterable[EmailEvent]) -> int:
    """Send every event; failures are logged and never reach the caller."""
    sent = 0
    if sender is None:
        return sent
    for event in events:
        try:
            sender.send(event)
            sent += 1
        except Exception:
            logger.exception("failed to deliver %s email to %s", event.event_type, ", ".join(event.recipients))
    return sent
