"""Raffle status transitions: sales target check and cancellation."""
import logging
from datetime import datetime, time, timedelta, timezone
from typing import List, Optional, Sequence

from sqlalchemy import select, update

from database.models import DrawMethod, Raffle, RaffleStatus, utc_now
from services import messages
from services.notifier import NotificationService
from services.raffle_locks import RaffleLocks
from services.raffle_queries import count_sold_tickets, participant_ids
from services.raffle_service import update_public_message
from utils.exceptions import InvalidInputError, InvalidStateError, RaffleNotFoundError

logger = logging.getLogger(__name__)

def next_draw_date(now: datetime, weekdays: Sequence[int] = (2, 5), utc_offset_hours: float = -3) -> datetime:
    """Next lottery draw day at least one day after `now`.

    Weekdays use Python numbering (Monday is 0) and are evaluated in the
    lottery's local calendar. The result is local midnight of that day,
    expressed in UTC.
    """
    if not weekdays:
        raise InvalidInputError("No lottery draw weekdays configured")
    local_tz = timezone(timedelta(hours=utc_offset_hours))
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    today = now.astimezone(local_tz).date()

    for days_ahead in range(1, 8):
        candidate = today + timedelta(days=days_ahead)
        if candidate.weekday() in weekdays:
            return datetime.combine(candidate, time(0, 0), tzinfo=local_tz).astimezone(timezone.utc)
    raise InvalidInputError(f"Invalid lottery draw weekdays: {list(weekdays)}")

class RaffleLifecycleService:
    """Moves raffles between lifecycle states and tells everyone about it."""

    @classmethod
    def from_bot(cls, bot):
        """Create a RaffleLifecycleService instance from a bot instance."""
        return cls(
            session_factory=bot.db_session,
            notifications=NotificationService(bot.notifier),
            draw_weekdays=bot.config.raffle.lottery_draw_weekdays,
            utc_offset_hours=bot.config.raffle.lottery_utc_offset_hours,
            locks=bot.raffle_locks
        )

    def __init__(
        self,
        session_factory,
        notifications: Optional[NotificationService] = None,
        draw_weekdays: Sequence[int] = (2, 5),
        utc_offset_hours: float = -3,
        locks: Optional[RaffleLocks] = None
    ):
        self.session_factory = session_factory
        self.notifications = notifications or NotificationService(None)
        self.draw_weekdays = tuple(draw_weekdays)
        self.utc_offset_hours = utc_offset_hours
        self.locks = locks or RaffleLocks()
        self.logger = logging.getLogger(__name__)

    async def check_lottery_thresholds(self, now: Optional[datetime] = None) -> List[int]:
        """Schedule the draw of every lottery raffle that reached its sales target.

        Returns:
            Ids of the raffles moved to awaiting_draw by this call
        """
        now = now or utc_now()
        async with self.session_factory() as session:
            result = await session.execute(
                select(Raffle).where(
                    Raffle.status == RaffleStatus.ACTIVE,
                    Raffle.draw_method == DrawMethod.EXTERNAL_LOTTERY
                )
            )
            candidates = list(result.scalars().all())

        scheduled = []
        for raffle in candidates:
            try:
                if await self._schedule_if_reached(raffle, now):
                    scheduled.append(raffle.id)
            except Exception as e:
                self.logger.error(f"Error checking sales target: {e}", extra={'raffle_id': raffle.id})
        return scheduled

    async def _schedule_if_reached(self, raffle: Raffle, now: datetime) -> bool:
        draw_date = next_draw_date(now, self.draw_weekdays, self.utc_offset_hours)

        async with self.locks.hold(raffle.id, "draw scheduling"):
            async with self.session_factory() as session:
                async with session.begin():
                    sold = await count_sold_tickets(session, raffle.id)
                    target = raffle.total_tickets * (raffle.completion_threshold_ratio or 1.0)
                    if sold < target:
                        return False

                    # Conditional on the old status so overlapping checks transition once
                    updated = await session.execute(
                        update(Raffle)
                        .where(Raffle.id == raffle.id, Raffle.status == RaffleStatus.ACTIVE)
                        .values(status=RaffleStatus.AWAITING_DRAW, draw_date=draw_date)
                        .execution_options(synchronize_session=False)
                    )
                    if updated.rowcount != 1:
                        return False
                    participants = await participant_ids(session, raffle.id)

        raffle.status = RaffleStatus.AWAITING_DRAW
        raffle.draw_date = draw_date
        self.logger.info(
            f"Sales target reached ({sold}/{raffle.total_tickets}), draw on {draw_date.date()}",
            extra={'raffle_id': raffle.id}
        )

        delivered = await self.notifications.send_to_users(participants, messages.draw_scheduled_message(raffle))
        self.logger.info(
            f"Draw date sent to {delivered}/{len(participants)} participants",
            extra={'raffle_id': raffle.id}
        )
        await update_public_message(self.session_factory, self.notifications, raffle.id)
        return True

    async def cancel_raffle(self, raffle_id: int, reason: str, notify: bool = True) -> List[str]:
        """Cancel an active raffle. Nothing is refunded automatically.

        Returns:
            Ids of the participants asked to request a refund
        """
        reason = (reason or "").strip()
        if not reason:
            raise InvalidInputError("A cancellation reason is required")

        async with self.locks.hold(raffle_id, "cancellation"):
            async with self.session_factory() as session:
                async with session.begin():
                    raffle = await session.get(Raffle, raffle_id, with_for_update=True)
                    if raffle is None:
                        raise RaffleNotFoundError(raffle_id)
                    if raffle.status != RaffleStatus.ACTIVE:
                        raise InvalidStateError(
                            f"Raffle {raffle_id} is '{raffle.status}', only active raffles can be cancelled",
                            raffle.status
                        )
                    raffle.status = RaffleStatus.CANCELLED
                    raffle.cancel_reason = reason
                    participants = await participant_ids(session, raffle_id)

        self.logger.info(f"Raffle cancelled: {reason}", extra={'raffle_id': raffle_id})
        if notify:
            await self.notifications.edit_or_send(
                raffle.channel_id, raffle.message_id, messages.raffle_cancelled_message(raffle, reason)
            )
            delivered = await self.notifications.send_to_users(
                participants, messages.participant_cancelled_message(raffle, reason)
            )
            self.logger.info(
                f"Cancellation sent to {delivered}/{len(participants)} participants",
                extra={'raffle_id': raffle_id}
            )
        return participants
