"""Winner selection: internal uniform draw and external lottery mapping."""
import logging
import random
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from sqlalchemy import select

from database.models import DrawMethod, Purchase, PurchaseStatus, Raffle, RaffleStatus, Ticket, User, utc_now
from services import messages
from services.notifier import NotificationService
from services.raffle_locks import RaffleLocks
from services.raffle_queries import approved_tickets, top_buyers
from services.ticket_allocator import ticket_padding
from utils.exceptions import (
    InvalidDrawNumberError,
    InvalidStateError,
    NoTicketsSoldError,
    RaffleNotFoundError,
)

_DIGITS = re.compile(r"^\d+$")

@dataclass
class DrawResult:
    raffle_id: int
    winning_number: str
    winner_id: Optional[str] = None
    winner_name: Optional[str] = None
    top_buyers: List[Tuple[str, int]] = field(default_factory=list)

    @property
    def has_winner(self) -> bool:
        return self.winner_id is not None

def lottery_winning_number(total_tickets: int, draw_number: str) -> str:
    """Map an announced lottery number onto the raffle's ticket numbers.

    Takes the rightmost padding digits, left-filled with zeros when the
    announced number is shorter than the padding.
    """
    draw_number = (draw_number or "").strip()
    if not _DIGITS.match(draw_number):
        raise InvalidDrawNumberError(draw_number)
    padding = ticket_padding(total_tickets)
    return draw_number[-padding:].zfill(padding)

class DrawService:
    """Finalizes raffles by picking the winning ticket."""

    @classmethod
    def from_bot(cls, bot):
        """Create a DrawService instance from a bot instance."""
        return cls(
            session_factory=bot.db_session,
            notifications=NotificationService(bot.notifier),
            locks=bot.raffle_locks
        )

    def __init__(
        self,
        session_factory,
        notifications: Optional[NotificationService] = None,
        locks: Optional[RaffleLocks] = None,
        rng: Optional[random.Random] = None
    ):
        self.session_factory = session_factory
        self.notifications = notifications or NotificationService(None)
        self.locks = locks or RaffleLocks()
        self.rng = rng or random.SystemRandom()
        self.logger = logging.getLogger(__name__)

    async def draw_internal(self, raffle_id: int, notify: bool = True) -> DrawResult:
        """Pick one approved ticket uniformly at random and finalize the raffle.

        Every ticket has the same chance, so a buyer's odds grow with the
        number of tickets they hold.

        Raises:
            RaffleNotFoundError: If the raffle does not exist
            InvalidStateError: If the raffle is not active or not drawn internally
            NoTicketsSoldError: If no ticket has been approved yet
            ConcurrencyConflictError: If another operation kept the raffle busy
        """
        async with self.locks.hold(raffle_id, "draw"):
            async with self.session_factory() as session:
                async with session.begin():
                    raffle = await self._load_for_draw(
                        session, raffle_id, RaffleStatus.ACTIVE, DrawMethod.INTERNAL
                    )

                    tickets = await approved_tickets(session, raffle_id)
                    if not tickets:
                        raise NoTicketsSoldError(raffle_id)

                    winning_number, winner_id = self.rng.choice(tickets)
                    result = await self._finalize(session, raffle, winning_number, winner_id)

        self.logger.info(
            f"Internal draw picked ticket {result.winning_number} out of {len(tickets)}",
            extra={'raffle_id': raffle_id, 'user_id': result.winner_id}
        )
        if notify:
            await self._announce(raffle, result)
        return result

    async def finalize_external_lottery(self, raffle_id: int, draw_number: str, notify: bool = True) -> DrawResult:
        """Finalize an awaiting raffle from the announced lottery number.

        When nobody holds the mapped ticket the raffle is still finalized,
        with no winner recorded.

        Raises:
            InvalidDrawNumberError: If the draw number has non-digit characters
            RaffleNotFoundError: If the raffle does not exist
            InvalidStateError: If the raffle is not awaiting a lottery draw
            ConcurrencyConflictError: If another operation kept the raffle busy
        """
        draw_number = (draw_number or "").strip()
        if not _DIGITS.match(draw_number):
            raise InvalidDrawNumberError(draw_number)

        async with self.locks.hold(raffle_id, "draw"):
            async with self.session_factory() as session:
                async with session.begin():
                    raffle = await self._load_for_draw(
                        session, raffle_id, RaffleStatus.AWAITING_DRAW, DrawMethod.EXTERNAL_LOTTERY
                    )
                    winning_number = lottery_winning_number(raffle.total_tickets, draw_number)

                    winner_id = await session.scalar(
                        select(Purchase.buyer_id)
                        .join(Ticket, Ticket.purchase_id == Purchase.id)
                        .where(
                            Purchase.raffle_id == raffle_id,
                            Purchase.status == PurchaseStatus.APPROVED,
                            Ticket.ticket_number == winning_number
                        )
                    )
                    result = await self._finalize(session, raffle, winning_number, winner_id)

        if result.has_winner:
            self.logger.info(
                f"Lottery number {draw_number} maps to ticket {winning_number}",
                extra={'raffle_id': raffle_id, 'user_id': winner_id}
            )
        else:
            self.logger.warning(
                f"Lottery number {draw_number} maps to unsold ticket {winning_number}, finalized without winner",
                extra={'raffle_id': raffle_id}
            )
        if notify:
            await self._announce(raffle, result)
        return result

    async def _load_for_draw(self, session, raffle_id: int, status: str, method: str) -> Raffle:
        raffle = await session.get(Raffle, raffle_id, with_for_update=True)
        if raffle is None:
            raise RaffleNotFoundError(raffle_id)
        if raffle.draw_method != method:
            raise InvalidStateError(
                f"Raffle {raffle_id} uses the '{raffle.draw_method}' draw method",
                raffle.status
            )
        if raffle.status != status:
            raise InvalidStateError(
                f"Raffle {raffle_id} is '{raffle.status}', expected '{status}'",
                raffle.status
            )
        return raffle

    async def _finalize(self, session, raffle: Raffle, winning_number: str, winner_id: Optional[str]) -> DrawResult:
        raffle.status = RaffleStatus.FINALIZED
        raffle.winning_number = winning_number
        raffle.winner_id = winner_id
        raffle.finalized_at = utc_now()

        winner_name = None
        if winner_id is not None:
            winner = await session.get(User, winner_id)
            winner_name = winner.name if winner else str(winner_id)

        return DrawResult(
            raffle_id=raffle.id,
            winning_number=winning_number,
            winner_id=winner_id,
            winner_name=winner_name,
            top_buyers=await top_buyers(session, raffle.id)
        )

    async def _announce(self, raffle: Raffle, result: DrawResult) -> None:
        if result.has_winner:
            message = messages.raffle_winner_message(
                raffle, result.winner_id, result.winner_name, result.winning_number, result.top_buyers
            )
        else:
            message = messages.raffle_no_winner_message(raffle, result.winning_number, result.top_buyers)

        await self.notifications.edit_or_send(raffle.channel_id, raffle.message_id, message)
        if result.has_winner:
            await self.notifications.send_to_user(result.winner_id, message)
