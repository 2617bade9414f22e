"""
Notification Service Module

Delivers SLA notifications to users: an in-app notification row for every
message, plus an email via aiosmtplib when SMTP is configured.
"""

import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path
from typing import Optional, Dict, Any, List, Union

import aiosmtplib
from jinja2 import Environment, FileSystemLoader, select_autoescape
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from incident_desk.core.config import settings
from incident_desk.core.exceptions import NotificationDeliveryError
from incident_desk.models.notification import Notification, NotificationType
from incident_desk.models.ticket import Ticket
from incident_desk.models.user import User


logger = logging.getLogger(__name__)

# Template directory
TEMPLATE_DIR = Path(__file__).parent.parent / "templates"

NOTIFICATION_KIND_LABELS = {
    NotificationType.SLA_BREACH: "breach",
    NotificationType.SLA_CRITICAL: "critical",
    NotificationType.SLA_WARNING: "warning",
}


class NotificationService:
    """
    Service for delivering notifications to users.

    Provides methods for:
    - Recording in-app notifications
    - Sending email notifications
    - Rendering email templates
    """

    def __init__(self, db: AsyncSession):
        """
        Initialize the notification service.

        Args:
            db: Async database session
        """
        self.db = db

        self.template_env = Environment(
            loader=FileSystemLoader(str(TEMPLATE_DIR)),
            autoescape=select_autoescape(['html', 'xml'])
        )

    # ========================================================================
    # Notifier interface
    # ========================================================================

    async def notify(
        self,
        user_id: str,
        ticket_id: str,
        kind: NotificationType,
        title: str,
        message: str
    ) -> Dict[str, Any]:
        """
        Deliver a notification to one user.

        The in-app notification is the delivery of record; email is an extra,
        best-effort channel whose failure is reported in the result only.

        Args:
            user_id: Recipient user ID
            ticket_id: Related ticket ID
            kind: Notification type
            title: Short title / email subject
            message: Message body

        Returns:
            Dictionary with 'notification_id' and 'email' (None when not sent)

        Raises:
            NotificationDeliveryError: if the in-app notification cannot be stored
        """
        kind = NotificationType(kind)
        notification = Notification(
            user_id=user_id,
            ticket_id=ticket_id,
            type=kind,
            title=title,
            message=message
        )

        try:
            self.db.add(notification)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to create notification for user {user_id}: {e}")
            raise NotificationDeliveryError(user_id, ticket_id, {"error": str(e)}) from e

        result = {"notification_id": notification.id, "email": None}

        if settings.NOTIFICATION_ENABLED and settings.email_enabled:
            try:
                result["email"] = await self._send_email_notification(
                    user_id, ticket_id, kind, title, message
                )
            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.error(f"Failed to look up email recipient for user {user_id}: {e}")
                result["email"] = {"success": False, "message_id": None, "error": str(e)}

        return result

    async def _send_email_notification(
        self,
        user_id: str,
        ticket_id: str,
        kind: NotificationType,
        title: str,
        message: str
    ) -> Optional[Dict[str, Any]]:
        user = await self.db.get(User, user_id)
        if not user or not user.email or not user.is_active:
            logger.debug(f"No email recipient for user {user_id}")
            return None

        ticket = await self.db.get(Ticket, ticket_id)
        context = {
            "app_name": settings.APP_NAME,
            "title": title,
            "message": message,
            "kind": NOTIFICATION_KIND_LABELS.get(kind, "warning"),
            "recipient_name": user.name,
            "ticket_id": ticket_id,
            "ticket_title": ticket.title if ticket else None,
            "sla_target": ticket.sla_target.strftime("%Y-%m-%d %H:%M UTC") if ticket and ticket.sla_target else None,
            "ticket_url": self._build_ticket_url(ticket_id),
        }

        try:
            html_body = self.render_template("sla_alert.html", context)
        except Exception:
            html_body = None

        text_body = f"{message}\n\nView ticket: {context['ticket_url']}\n"
        return await self.send_email(
            to=user.email,
            subject=f"[{settings.APP_NAME}] {title}",
            body=text_body,
            html_body=html_body
        )

    # ========================================================================
    # Email Methods
    # ========================================================================

    async def send_email(
        self,
        to: Union[str, List[str]],
        subject: str,
        body: str,
        html_body: Optional[str] = None,
        from_email: Optional[str] = None,
        from_name: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Send an email using async SMTP.

        Args:
            to: Recipient email address(es)
            subject: Email subject
            body: Plain text body
            html_body: Optional HTML body
            from_email: Optional sender email (defaults to config)
            from_name: Optional sender name (defaults to config)

        Returns:
            Dictionary with 'success', 'message_id', and optionally 'error'
        """
        if not settings.NOTIFICATION_ENABLED:
            logger.debug("Notifications are disabled")
            return {"success": False, "message_id": None, "error": "Notifications disabled"}

        if not settings.email_enabled:
            logger.warning("Email is not configured")
            return {"success": False, "message_id": None, "error": "Email not configured"}

        recipients = [to] if isinstance(to, str) else to

        sender_email = from_email or settings.SMTP_FROM_EMAIL or settings.SMTP_USER
        sender_name = from_name or settings.SMTP_FROM_NAME

        message = MIMEMultipart("alternative")
        message["Subject"] = subject
        message["From"] = f"{sender_name} <{sender_email}>" if sender_name else sender_email
        message["To"] = ", ".join(recipients)

        message.attach(MIMEText(body, "plain", "utf-8"))
        if html_body:
            message.attach(MIMEText(html_body, "html", "utf-8"))

        try:
            smtp_kwargs = {
                "hostname": settings.SMTP_HOST,
                "port": settings.SMTP_PORT,
                "timeout": settings.SMTP_TIMEOUT,
            }

            if settings.SMTP_USE_SSL:
                smtp_kwargs["use_tls"] = True
            elif settings.SMTP_USE_TLS:
                smtp_kwargs["start_tls"] = True

            async with aiosmtplib.SMTP(**smtp_kwargs) as smtp:
                if settings.SMTP_USER and settings.SMTP_PASSWORD:
                    await smtp.login(settings.SMTP_USER, settings.SMTP_PASSWORD)

                await smtp.send_message(message, recipients=recipients)

            logger.info(f"Email sent successfully to {recipients}")
            return {
                "success": True,
                "message_id": message.get("Message-ID"),
                "error": None
            }

        except aiosmtplib.SMTPException as e:
            logger.error(f"SMTP error sending email: {str(e)}")
            return {
                "success": False,
                "message_id": None,
                "error": f"SMTP error: {str(e)}"
            }
        except OSError as e:
            logger.error(f"Error sending email: {str(e)}")
            return {
                "success": False,
                "message_id": None,
                "error": str(e)
            }

    # ========================================================================
    # Template Rendering
    # ========================================================================

    def render_template(self, template_name: str, context: Dict[str, Any]) -> str:
        """
        Render an HTML template with the given context.

        Args:
            template_name: Name of the template file
            context: Dictionary of template variables

        Returns:
            Rendered HTML string
        """
        try:
            template = self.template_env.get_template(template_name)
            return template.render(**context)
        except Exception as e:
            logger.error(f"Error rendering template {template_name}: {str(e)}")
            raise

    # ========================================================================
    # Queries
    # ========================================================================

    async def get_user_notifications(
        self,
        user_id: str,
        unread_only: bool = False,
        limit: int = 50
    ) -> List[Notification]:
        """Get a user's notifications, newest first."""
        query = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            query = query.where(Notification.is_read == False)
        query = query.order_by(Notification.created_at.desc()).limit(limit)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    def _build_ticket_url(self, ticket_id: str) -> str:
        """Build the URL to view a ticket."""
        return f"{settings.FRONTEND_BASE_URL}/tickets/{ticket_id}"
