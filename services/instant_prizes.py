"""Secret instant-prize tickets: generation at raffle creation and matching at approval."""
import logging
import random
from dataclasses import dataclass
from typing import List, Optional, Sequence, Set, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import InstantPrize, PrizeStatus
from services.ticket_allocator import format_ticket_number
from utils.exceptions import InvalidInputError

logger = logging.getLogger(__name__)

@dataclass
class PrizeWon:
    """An instant prize awarded by one of the allocated tickets."""
    ticket_number: str
    description: str

def generate_prize_numbers(
    total_tickets: int,
    padding: int,
    prize_lines: Sequence[Tuple[int, str]],
    rng: Optional[random.Random] = None
) -> List[Tuple[str, str]]:
    """Draw distinct ticket numbers for every requested instant prize.

    Args:
        prize_lines: (quantity, description) pairs

    Returns:
        (ticket_number, description) for each prize ticket

    Raises:
        InvalidInputError: If the raffle has fewer tickets than prizes requested
    """
    pool = list(range(total_tickets))
    (rng or random.SystemRandom()).shuffle(pool)

    prizes = []
    pool_index = 0
    for quantity, description in prize_lines:
        for _ in range(quantity):
            if pool_index >= len(pool):
                raise InvalidInputError(
                    "Ticket pool exhausted while generating instant prizes: "
                    f"{sum(q for q, _ in prize_lines)} prizes for {total_tickets} tickets"
                )
            prizes.append((format_ticket_number(pool[pool_index], padding), description))
            pool_index += 1
    return prizes

async def pending_prize_numbers(session: AsyncSession, raffle_id: int) -> Set[str]:
    """Ticket numbers of the raffle's instant prizes that nobody has claimed yet."""
    result = await session.execute(
        select(InstantPrize.ticket_number).where(
            InstantPrize.raffle_id == raffle_id,
            InstantPrize.status == PrizeStatus.PENDING
        )
    )
    return set(result.scalars().all())

async def claim_instant_prizes(
    session: AsyncSession,
    raffle_id: int,
    allocated_numbers: Sequence[str],
    winner_id: str
) -> List[PrizeWon]:
    """Mark every pending prize whose number was just allocated as claimed by `winner_id`.

    Only pending rows are matched, so a prize is never claimed twice even if the
    same numbers are processed again.
    """
    if not allocated_numbers:
        return []

    result = await session.execute(
        select(InstantPrize)
        .where(
            InstantPrize.raffle_id == raffle_id,
            InstantPrize.status == PrizeStatus.PENDING,
            InstantPrize.ticket_number.in_(list(allocated_numbers))
        )
        .order_by(InstantPrize.ticket_number)
    )

    prizes_won = []
    for prize in result.scalars().all():
        prize.status = PrizeStatus.CLAIMED
        prize.winner_id = winner_id
        prizes_won.append(PrizeWon(ticket_number=prize.ticket_number, description=prize.description))

    if prizes_won:
        logger.info(
            f"Instant prizes claimed: {[p.ticket_number for p in prizes_won]}",
            extra={'raffle_id': raffle_id, 'user_id': winner_id}
        )
    return prizes_won
