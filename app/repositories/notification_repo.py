"""Notification repository."""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.notification import Notification


class NotificationRepository:
    """Encapsulates notification history queries."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find_recent(self, student_id: int, limit: int = 5) -> list[Notification]:
        """Most recent notifications for a student, newest first."""
        result = await self._session.execute(
            select(Notification)
            .where(Notification.student_id == student_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def create(
        self,
        student_id: int,
        notification_type: str,
        urgency: str,
        channel: str,
        mobile_message: str | None,
        email_subject: str | None,
        email_body: str | None,
        reasoning: str | None,
        now: datetime,
    ) -> Notification:
        """Persist a notification decision."""
        notification = Notification(
            student_id=student_id,
            notification_type=notification_type,
            urgency=urgency,
            channel=channel,
            mobile_message=mobile_message,
            email_subject=email_subject,
            email_body=email_body,
            reasoning=reasoning,
            created_at=now,
        )
        self._session.add(notification)
        await self._session.flush()
        await self._session.refresh(notification)
        return notification
