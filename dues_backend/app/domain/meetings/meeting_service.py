"""
Meeting Service.

Write side of the meeting store. Every change recomputes the affected
day's due inside the same transaction.
"""

import logging
from datetime import date
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from dues_backend.app.core.exceptions import (
    InsufficientPermissionsError, ResourceNotFoundError, ValidationError
)
from dues_backend.app.core.reliability import run_in_transaction
from dues_backend.app.domain.billing.dues_service import DuesService
from dues_backend.app.models.enums import MemberCategory, MeetingStatus
from dues_backend.app.models.meeting import Meeting
from dues_backend.app.services.audit import log_event, AuditAction
from dues_backend.app.services.dues_cache import DuesCache

logger = logging.getLogger("dues.meetings")


class MeetingService:

    @staticmethod
    async def get_meeting(db: AsyncSession, meeting_id: int) -> Meeting:
        meeting = await db.get(Meeting, meeting_id)
        if not meeting:
            raise ResourceNotFoundError("Meeting", meeting_id)
        return meeting

    @staticmethod
    async def _log_meeting(
        db: AsyncSession,
        client_id: int,
        scheduled_date: date,
        member_count: int,
        member_category: MemberCategory = MemberCategory.DOMESTIC,
        title: Optional[str] = None,
        proof_url: Optional[str] = None,
        actor_username: Optional[str] = None
    ) -> Meeting:
        if member_count < 0:
            raise ValidationError("Member count cannot be negative", details={"member_count": member_count})
        await DuesService.ensure_unsettled(db, client_id, scheduled_date)

        meeting = Meeting(
            client_id=client_id,
            title=title,
            scheduled_date=scheduled_date,
            member_count=member_count,
            member_category=member_category,
            proof_url=proof_url,
            status=MeetingStatus.ACTIVE
        )
        db.add(meeting)
        await db.flush()

        await log_event(
            db=db,
            action=AuditAction.MEETING_LOGGED,
            actor_id=client_id,
            actor_username=actor_username,
            client_id=client_id,
            metadata={
                "meeting_id": meeting.id,
                "date": scheduled_date.isoformat(),
                "members": member_count,
                "category": member_category.value
            }
        )
        await DuesService.refresh_day(db, client_id, scheduled_date)
        return meeting

    @staticmethod
    async def log_meeting(db: AsyncSession, client_id: int, scheduled_date: date, member_count: int, **kwargs) -> Meeting:
        """Record a meeting for the client and bill its day."""
        meeting = await run_in_transaction(
            db, MeetingService._log_meeting, client_id, scheduled_date, member_count, **kwargs
        )
        await DuesCache.invalidate(client_id)
        return meeting

    @staticmethod
    async def _attach_proof(
        db: AsyncSession,
        meeting_id: int,
        client_id: int,
        proof_url: str,
        actor_username: Optional[str] = None
    ) -> Meeting:
        if not proof_url or not proof_url.strip():
            raise ValidationError("Proof URL is required")

        meeting = await MeetingService.get_meeting(db, meeting_id)
        if meeting.client_id != client_id:
            raise InsufficientPermissionsError("You can only attach proof to your own meetings")
        await DuesService.ensure_unsettled(db, client_id, meeting.scheduled_date)

        meeting.proof_url = proof_url.strip()
        await db.flush()

        await log_event(
            db=db,
            action=AuditAction.MEETING_PROOF_ATTACHED,
            actor_id=client_id,
            actor_username=actor_username,
            client_id=client_id,
            metadata={"meeting_id": meeting.id, "date": meeting.scheduled_date.isoformat()}
        )
        await DuesService.refresh_day(db, client_id, meeting.scheduled_date)
        return meeting

    @staticmethod
    async def attach_proof(db: AsyncSession, meeting_id: int, client_id: int, proof_url: str, **kwargs) -> Meeting:
        """Attach attendance proof; the meeting becomes billable."""
        meeting = await run_in_transaction(
            db, MeetingService._attach_proof, meeting_id, client_id, proof_url, **kwargs
        )
        await DuesCache.invalidate(client_id)
        return meeting

    @staticmethod
    async def _set_status(
        db: AsyncSession,
        meeting_id: int,
        status: MeetingStatus,
        admin_id: int,
        admin_username: Optional[str] = None
    ) -> Meeting:
        meeting = await MeetingService.get_meeting(db, meeting_id)
        await DuesService.ensure_unsettled(db, meeting.client_id, meeting.scheduled_date)
        if status == MeetingStatus.NOT_LIVE:
            await DuesService.ensure_credit_covered(
                db, meeting.client_id, meeting.scheduled_date, dropping_meeting_id=meeting.id
            )

        old_status = meeting.status
        meeting.status = status
        await db.flush()

        await log_event(
            db=db,
            action=AuditAction.MEETING_STATUS_CHANGED,
            actor_id=admin_id,
            actor_username=admin_username,
            client_id=meeting.client_id,
            metadata={
                "meeting_id": meeting.id,
                "old_status": old_status.value if old_status else None,
                "new_status": status.value
            }
        )
        await DuesService.refresh_day(db, meeting.client_id, meeting.scheduled_date)
        return meeting

    @staticmethod
    async def set_status(db: AsyncSession, meeting_id: int, status: MeetingStatus, admin_id: int, **kwargs) -> Meeting:
        """Admin status change (e.g. marking a meeting NOT_LIVE removes it from billing)."""
        meeting = await run_in_transaction(
            db, MeetingService._set_status, meeting_id, status, admin_id, **kwargs
        )
        logger.info("Meeting %s set to %s by admin %s", meeting_id, status.value, admin_id)
        await DuesCache.invalidate(meeting.client_id)
        return meeting
