"""Notification service for telling members about payment and leaving decisions.

Messages go out through a Telegram bot when a token is configured; otherwise
they are only logged. Delivery is fire-and-forget: a failed send is logged and
never undoes the state change that triggered it.
"""

import asyncio
import logging

from telegram import Bot

from pgmanager.config import settings
from pgmanager.models import (
    ApprovalStatus,
    LeavingRequest,
    LeavingRequestStatus,
    Member,
    PaymentRecord,
)

logger = logging.getLogger(__name__)


def payment_decision_text(member: Member, payment: PaymentRecord) -> str:
    """Message body for an approved or rejected payment attempt."""
    period = f"{payment.month:02d}/{payment.year}"
    if payment.approval_status == ApprovalStatus.APPROVED:
        return (
            f"Your payment of ₹{payment.amount} for {period} has been <b>approved</b>. "
            f"Thank you, {member.name}!"
        )
    return (
        f"Your payment for {period} (attempt {payment.attempt_number}) was <b>rejected</b>.\n"
        f"Reason: {payment.rejection_reason}\n"
        f"Please upload a new payment proof."
    )


def leaving_request_text(leaving_request: LeavingRequest) -> str:
    """Message body for a leaving-request decision."""
    leave_date = leaving_request.requested_leave_date
    if leaving_request.status == LeavingRequestStatus.APPROVED:
        return (
            f"Your leaving request for {leave_date} was approved. "
            f"Amount to settle: ₹{leaving_request.final_amount or 0}."
        )
    if leaving_request.status == LeavingRequestStatus.REJECTED:
        return (
            f"Your leaving request for {leave_date} was rejected.\n"
            f"Reason: {leaving_request.rejection_reason}"
        )
    return f"Your leaving request is now {leaving_request.status.value.lower()}."


class NotificationService:
    """Service for sending member notifications."""

    def __init__(self, bot: Bot | None = None):
        self.bot = bot
        self._pending: set[asyncio.Task] = set()

    async def send_message(self, chat_id: str, text: str) -> None:
        """Send a message to a Telegram chat.

        Args:
            chat_id: Telegram chat ID
            text: Message text (HTML)
        """
        if self.bot is None:
            logger.info(f"Notification (no bot configured) to {chat_id}: {text}")
            return
        await self.bot.send_message(chat_id=int(chat_id), text=text, parse_mode="HTML")

    def notify_payment_decision(self, member: Member, payment: PaymentRecord) -> None:
        """Fire-and-forget notification about an approved or rejected payment."""
        self._dispatch(member, payment_decision_text(member, payment))

    def notify_leaving_request_decision(
        self, member: Member, leaving_request: LeavingRequest
    ) -> None:
        """Fire-and-forget notification about a leaving-request decision."""
        self._dispatch(member, leaving_request_text(leaving_request))

    def _dispatch(self, member: Member, text: str) -> None:
        """Schedule a send on the running event loop without awaiting it."""
        if not member.telegram_chat_id:
            logger.debug(f"Member {member.id} has no chat configured, skipping notification")
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No event loop running (CLI jobs, unit tests) - skip notification
            logger.debug(f"No event loop for async notification, skipping member {member.id}")
            return

        task = loop.create_task(self._deliver(member.id, member.telegram_chat_id, text))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, member_id: int, chat_id: str, text: str) -> None:
        try:
            await self.send_message(chat_id, text)
        except Exception as e:
            # Delivery failures never roll back the decision that triggered them
            logger.error(f"Failed to notify member {member_id}: {e}")


_notification_service: NotificationService | None = None


def get_notification_service() -> NotificationService:
    """Process-wide notification service built from settings."""
    global _notification_service
    if _notification_service is None:
        bot = Bot(token=settings.telegram_bot_token) if settings.telegram_bot_token else None
        _notification_service = NotificationService(bot)
    return _notification_service


__all__ = [
    "NotificationService",
    "get_notification_service",
    "payment_decision_text",
    "leaving_request_text",
]
