"""
Email notifications for task activity.

Notifications are fire-and-forget: route handlers schedule them with
FastAPI ``BackgroundTasks`` after the mutation has been committed, and any
failure is logged and swallowed so it can never fail the originating
request.

When MAIL_SERVER is not configured, emails are logged but not sent
(dev/test mode).

Configuration (env vars):
    MAIL_SERVER     SMTP host (default: None → log-only mode)
    MAIL_PORT       SMTP port (default: 587)
    MAIL_USE_TLS    Use STARTTLS (default: true)
    MAIL_USERNAME   SMTP username
    MAIL_PASSWORD   SMTP password
    MAIL_DEFAULT_SENDER  Default from address
"""

import html
import logging
import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

import config
from repository import DocumentRepository

logger = logging.getLogger(__name__)

SMTP_TIMEOUT_SECONDS = 15


@dataclass(frozen=True)
class TaskEmail:
    recipient: str
    subject: str
    task_name: str
    first_paragraph: str
    task_url: str


def task_url(workspace_id: str, task_id: str) -> str:
    return f"{config.APP_URL}/workspaces/{workspace_id}/tasks/{task_id}"


def render_text(email: TaskEmail) -> str:
    return (
        f"{email.first_paragraph}{email.task_name}\n\n"
        f"Open the task: {email.task_url}\n"
    )


def render_html(email: TaskEmail) -> str:
    return f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
        <p style="color: #334155; line-height: 1.6;">
            {html.escape(email.first_paragraph)}<strong>{html.escape(email.task_name)}</strong>
        </p>
        <p>
            <a href="{html.escape(email.task_url, quote=True)}"
               style="background: #2563eb; color: white; padding: 8px 16px; border-radius: 6px;
                      text-decoration: none;">View task</a>
        </p>
    </div>
    """


class EmailNotifier:
    """Sends task emails over SMTP, or logs them when SMTP is not configured."""

    def __init__(
        self,
        server: Optional[str] = None,
        port: int = 587,
        use_tls: bool = True,
        username: Optional[str] = None,
        password: Optional[str] = None,
        sender: str = "no-reply@workspace-tracker.local",
    ):
        self.server = server
        self.port = port
        self.use_tls = use_tls
        self.username = username
        self.password = password
        self.sender = sender

    @classmethod
    def from_config(cls) -> "EmailNotifier":
        return cls(
            server=config.MAIL_SERVER,
            port=config.MAIL_PORT,
            use_tls=config.MAIL_USE_TLS,
            username=config.MAIL_USERNAME,
            password=config.MAIL_PASSWORD,
            sender=config.MAIL_DEFAULT_SENDER,
        )

    def _build_message(self, email: TaskEmail) -> MIMEMultipart:
        message = MIMEMultipart("alternative")
        message["Subject"] = email.subject
        message["From"] = self.sender
        message["To"] = email.recipient
        message.attach(MIMEText(render_text(email), "plain", "utf-8"))
        message.attach(MIMEText(render_html(email), "html", "utf-8"))
        return message

    def send(self, email: TaskEmail) -> bool:
        """
        Deliver one email. Never raises.

        Returns:
            True if the message was handed to the SMTP server, False if it was
            only logged or delivery failed
        """
        if not self.server:
            logger.info(f"[email log-only] To: {email.recipient} | Subject: {email.subject} | {email.task_url}")
            return False

        try:
            message = self._build_message(email)
            with smtplib.SMTP(host=self.server, port=self.port, timeout=SMTP_TIMEOUT_SECONDS) as smtp:
                if self.use_tls:
                    smtp.starttls()
                if self.username and self.password:
                    smtp.login(self.username, self.password)
                smtp.sendmail(self.sender, [email.recipient], message.as_string())
        except (smtplib.SMTPException, OSError) as e:
            logger.warning(f"Failed to send '{email.subject}' to {email.recipient}: {e}")
            return False

        logger.info(f"Email sent to {email.recipient}: {email.subject}")
        return True


def get_notifier() -> EmailNotifier:
    """FastAPI dependency returning the configured notifier."""
    return EmailNotifier.from_config()


def build_assignee_email(
    repo: DocumentRepository,
    assignee_id: Optional[str],
    task,
    subject: str,
    first_paragraph: str,
) -> Optional[TaskEmail]:
    """
    Resolve the assignee's email address and build the notification.

    Returns None when the task has no assignee or the member no longer
    exists; the caller then skips the notification.
    """
    if not assignee_id:
        return None
    member = repo.find("members", assignee_id)
    if member is None or member.user is None:
        logger.debug(f"Assignee {assignee_id} not found, skipping notification")
        return None
    return TaskEmail(
        recipient=member.user.email,
        subject=subject,
        task_name=task.name,
        first_paragraph=first_paragraph,
        task_url=task_url(task.workspace_id, task.id),
    )
