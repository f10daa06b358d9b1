"""Referral bonus tickets granted to the referrer of a qualifying purchase."""
import logging
import random
from dataclasses import dataclass
from typing import Optional, Set

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import Purchase, PurchaseStatus, Raffle, Ticket, utc_now
from services.ticket_allocator import available_ticket_numbers

@dataclass
class BonusTicket:
    """Free ticket granted to a referrer."""
    referrer_id: str
    ticket_number: str
    purchase_id: int

class ReferralBonusEngine:
    """Decides on and allocates referral bonus tickets inside an approval transaction."""

    def __init__(
        self,
        min_purchase_value: float = 10.0,
        bonus_cap: int = 5,
        rng: Optional[random.Random] = None
    ):
        self.min_purchase_value = min_purchase_value
        self.bonus_cap = bonus_cap
        self.rng = rng or random.SystemRandom()
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_config(cls, raffle_config, rng: Optional[random.Random] = None):
        """Create an engine from the bot's raffle settings."""
        return cls(
            min_purchase_value=raffle_config.referral_min_purchase_value,
            bonus_cap=raffle_config.referral_bonus_cap,
            rng=rng
        )

    def qualifies(self, purchase: Purchase, raffle: Raffle) -> bool:
        """Whether the purchase is big enough to reward its referrer."""
        if not purchase.referrer_id or purchase.is_referral_bonus:
            return False
        return purchase.quantity * raffle.ticket_price >= self.min_purchase_value

    async def count_free_tickets(self, session: AsyncSession, raffle_id: int, user_id: str) -> int:
        """Number of free tickets `user_id` already holds in the raffle."""
        result = await session.execute(
            select(func.count(Ticket.id))
            .join(Purchase, Ticket.purchase_id == Purchase.id)
            .where(
                Ticket.raffle_id == raffle_id,
                Ticket.is_free.is_(True),
                Purchase.buyer_id == user_id,
                Purchase.status == PurchaseStatus.APPROVED
            )
        )
        return result.scalar_one()

    async def maybe_grant_bonus(
        self,
        session: AsyncSession,
        purchase: Purchase,
        raffle: Raffle,
        sold: Set[str],
        prize_numbers: Set[str]
    ) -> Optional[BonusTicket]:
        """Grant the purchase's referrer one free ticket if every rule allows it.

        The bonus number is drawn from tickets that are neither sold nor reserved
        as a pending instant prize, and is added to `sold` immediately.
        Returns None when there is no bonus to give.
        """
        if not self.qualifies(purchase, raffle):
            return None

        referrer_id = purchase.referrer_id
        free_tickets = await self.count_free_tickets(session, raffle.id, referrer_id)
        if free_tickets >= self.bonus_cap:
            self.logger.info(
                f"Referrer already holds {free_tickets} free tickets, no bonus",
                extra={'raffle_id': raffle.id, 'user_id': referrer_id}
            )
            return None

        candidates = available_ticket_numbers(raffle.total_tickets, sold | prize_numbers, raffle.padding)
        if not candidates:
            self.logger.info(
                "No ticket left for referral bonus",
                extra={'raffle_id': raffle.id, 'user_id': referrer_id}
            )
            return None

        bonus_number = self.rng.choice(candidates)
        sold.add(bonus_number)

        bonus_purchase = Purchase(
            raffle_id=raffle.id,
            buyer_id=referrer_id,
            quantity=1,
            status=PurchaseStatus.APPROVED,
            is_referral_bonus=True,
            created_at=utc_now()
        )
        session.add(bonus_purchase)
        await session.flush()

        session.add(Ticket(
            purchase_id=bonus_purchase.id,
            raffle_id=raffle.id,
            ticket_number=bonus_number,
            is_free=True
        ))

        self.logger.info(
            f"Referral bonus ticket {bonus_number} granted",
            extra={'raffle_id': raffle.id, 'purchase_id': purchase.id, 'user_id': referrer_id}
        )
        return BonusTicket(
            referrer_id=referrer_id,
            ticket_number=bonus_number,
            purchase_id=bonus_purchase.id
        )
