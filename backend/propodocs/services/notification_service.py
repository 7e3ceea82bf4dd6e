"""
Propodocs Backend — Notification Service
==========================================

What:  Tells proposal owners about activity (currently: a client opened a
       proposal) through the notification log, email and SMS.
How:   send_notification() always persists a Notification row first, then
       consults NotificationPreference per channel and dispatches through
       the configured senders.

Channel Rules:
    - Missing preference row → channel enabled
    - Email needs a sender (Resend key set) and a user email
    - SMS needs a sender (Twilio credentials set) and a user phone
    - A failing channel is logged and does not stop the other one
"""

import asyncio
import html
import logging
from typing import Any, Dict, Optional

import httpx
import resend
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from propodocs.config import settings
from propodocs.database import async_session_factory
from propodocs.models.notification import Notification, NotificationPreference
from propodocs.models.proposal import Proposal, User

logger = logging.getLogger(__name__)

SMS_MESSAGE_LIMIT = 140
PROPOSAL_VIEWED = "proposal_viewed"


# ══════════════════════════════════════════════════════════════════════════
# Channel senders
# ══════════════════════════════════════════════════════════════════════════


class ResendEmailSender:
    """Transactional email through the Resend API."""

    def __init__(self, api_key: str, from_email: str, from_name: str, frontend_url: str):
        resend.api_key = api_key
        self.sender = f"{from_name} <{from_email}>"
        self.frontend_url = frontend_url.rstrip("/")

    def render(self, title: str, message: str, link: Optional[str]) -> str:
        cta = f"{self.frontend_url}{link}" if link else self.frontend_url
        return (
            "<!DOCTYPE html><html><body style=\"font-family: sans-serif; background: #f3f4f6; padding: 32px;\">"
            "<div style=\"max-width: 600px; margin: 0 auto; background: #fff; border-radius: 12px; padding: 32px;\">"
            f"<h2 style=\"color: #1f2937;\">{html.escape(title)}</h2>"
            f"<p style=\"color: #6b7280; line-height: 1.6;\">{html.escape(message)}</p>"
            f"<a href=\"{html.escape(cta, quote=True)}\" style=\"background: #7A1E1E; color: #fff; "
            "padding: 12px 28px; border-radius: 8px; text-decoration: none;\">View Details</a>"
            f"<p style=\"color: #9ca3af; font-size: 12px; margin-top: 32px;\">"
            f"<a href=\"{html.escape(self.frontend_url)}/settings\">Manage notification preferences</a></p>"
            "</div></body></html>"
        )

    async def send(self, to: str, title: str, message: str, link: Optional[str] = None) -> None:
        params = {
            "from": self.sender,
            "to": [to],
            "subject": title,
            "html": self.render(title, message, link),
        }
        # The resend SDK is synchronous
        response = await asyncio.to_thread(resend.Emails.send, params)
        logger.info("Email notification sent to %s (%s)", to, response.get("id") if isinstance(response, dict) else response)


class TwilioSmsSender:
    """SMS through the Twilio REST API."""

    API_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"

    def __init__(self, account_sid: str, auth_token: str, from_number: str, frontend_url: str):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.frontend_url = frontend_url.rstrip("/")

    def format_body(self, title: str, message: str, link: Optional[str]) -> str:
        short_link = f" {self.frontend_url}{link}" if link else ""
        return f"{title}: {message[:SMS_MESSAGE_LIMIT]}{short_link}"

    async def send(self, to: str, title: str, message: str, link: Optional[str] = None) -> None:
        async with httpx.AsyncClient() as client:
            response = await client.post(
                self.API_URL.format(sid=self.account_sid),
                auth=(self.account_sid, self.auth_token),
                data={"To": to, "From": self.from_number, "Body": self.format_body(title, message, link)},
                timeout=10.0,
            )
            response.raise_for_status()
        logger.info("SMS notification sent to %s (%s)", to, response.json().get("sid"))


def build_email_sender() -> Optional[ResendEmailSender]:
    if not settings.resend_api_key:
        return None
    return ResendEmailSender(
        api_key=settings.resend_api_key,
        from_email=settings.from_email,
        from_name=settings.from_name,
        frontend_url=settings.frontend_url,
    )


def build_sms_sender() -> Optional[TwilioSmsSender]:
    if not settings.twilio_configured:
        return None
    return TwilioSmsSender(
        account_sid=settings.twilio_account_sid,
        auth_token=settings.twilio_auth_token,
        from_number=settings.twilio_phone_number,
        frontend_url=settings.frontend_url,
    )


# ══════════════════════════════════════════════════════════════════════════
# Service
# ══════════════════════════════════════════════════════════════════════════


class NotificationService:

    def __init__(self, email_sender=None, sms_sender=None):
        self.email_sender = email_sender
        self.sms_sender = sms_sender

    async def is_enabled(self, db: AsyncSession, user_id: int, channel: str, event_type: str) -> bool:
        result = await db.execute(
            select(NotificationPreference.enabled).where(
                NotificationPreference.user_id == user_id,
                NotificationPreference.channel == channel,
                NotificationPreference.event_type == event_type,
            )
        )
        enabled = result.scalar_one_or_none()
        return True if enabled is None else bool(enabled)

    async def send_notification(
        self,
        db: AsyncSession,
        user_id: int,
        event_type: str,
        title: str,
        message: str,
        data: Optional[Dict[str, Any]] = None,
        link: Optional[str] = None,
    ) -> Notification:
        """Persist the notification, then deliver it on every enabled channel."""
        notification = Notification(
            user_id=user_id,
            type=event_type,
            title=title,
            message=message,
            data=data or {},
            link=link,
            is_read=False,
        )
        db.add(notification)
        await db.flush()

        user = await db.get(User, user_id)
        if user is None:
            logger.warning("Notification %s logged for unknown user %s", notification.id, user_id)
            return notification

        if await self.is_enabled(db, user_id, "email", event_type):
            await self._deliver("email", self.email_sender, user.email, title, message, link)

        if await self.is_enabled(db, user_id, "sms", event_type):
            await self._deliver("sms", self.sms_sender, user.phone, title, message, link)

        return notification

    async def notify_proposal_viewed(self, db: AsyncSession, proposal_id: int) -> Optional[Notification]:
        proposal = await db.get(Proposal, proposal_id)
        if proposal is None:
            logger.warning("View notification skipped: proposal %s not found", proposal_id)
            return None

        return await self.send_notification(
            db,
            user_id=proposal.user_id,
            event_type=PROPOSAL_VIEWED,
            title="Your proposal was viewed",
            message=f'{proposal.client_name or "Someone"} viewed your proposal "{proposal.title}".',
            data={"proposalId": proposal_id},
            link=f"/proposals/{proposal_id}",
        )

    async def _deliver(
        self,
        channel: str,
        sender,
        address: Optional[str],
        title: str,
        message: str,
        link: Optional[str],
    ) -> bool:
        if sender is None:
            logger.debug("[%s skipped] sender not configured", channel)
            return False
        if not address:
            logger.debug("[%s skipped] no address on file", channel)
            return False
        try:
            await sender.send(address, title, message, link)
            return True
        except Exception as e:
            logger.error("%s notification to %s failed: %s", channel, address, e)
            return False


# ── Singleton Instance ────────────────────────────────────────────────────
notification_service = NotificationService(
    email_sender=build_email_sender(),
    sms_sender=build_sms_sender(),
)


async def notify_proposal_viewed_task(proposal_id: int) -> None:
    """
    BackgroundTasks entry point. Runs after the response is sent, so it
    owns its own session; failures are logged since no caller can see them.
    """
    async with async_session_factory() as db:
        try:
            await notification_service.notify_proposal_viewed(db, proposal_id)
            await db.commit()
        except Exception as e:
            await db.rollback()
            logger.error("View notification for proposal %s failed: %s", proposal_id, e, exc_info=True)
