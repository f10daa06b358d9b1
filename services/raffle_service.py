"""Raffle creation, ticket reservations and raffle bookkeeping."""
import logging
import random
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import select

from database.models import (
    DrawMethod,
    InstantPrize,
    Purchase,
    PurchaseStatus,
    Raffle,
    RaffleStatus,
    User,
    utc_now,
)
from services import messages
from services.instant_prizes import generate_prize_numbers
from services.notifier import NotificationService
from services.payment_service import PaymentCodeGenerator
from services.raffle_queries import count_pending_quantity, count_sold_tickets, top_buyers
from services.ticket_allocator import ticket_padding
from utils.exceptions import (
    CapacityExceededError,
    InvalidAmountError,
    InvalidInputError,
    InvalidStateError,
    PurchaseNotFoundError,
    RaffleNotFoundError,
    ReferralCodeNotFoundError,
    UserNotRegisteredError,
)

logger = logging.getLogger(__name__)

_TICKET_PRIZE_QUANTITY = re.compile(r"(\d+)\s*X", re.IGNORECASE)

@dataclass
class PurchaseReceipt:
    """A freshly reserved purchase and how to pay for it."""
    purchase_id: int
    raffle: Raffle
    buyer_id: str
    quantity: int
    total_price: float
    payment_code: str
    referrer_id: Optional[str] = None

def parse_draw_method(raw: str) -> Tuple[str, Optional[float]]:
    """Parse 'internal' or 'lottery:<target percent>' into (draw_method, threshold ratio)."""
    value = (raw or "").strip().lower()
    if value == "internal":
        return DrawMethod.INTERNAL, None
    if value.startswith("lottery"):
        _, _, target = value.partition(":")
        if not target.strip():
            raise InvalidInputError("Invalid format. Use 'lottery:75' for a 75% sales target.")
        try:
            percent = float(target.replace(",", "."))
        except ValueError:
            raise InvalidInputError(f"Invalid lottery target '{target}'") from None
        if percent < 1 or percent > 100:
            raise InvalidInputError("The lottery target must be a number between 1 and 100.")
        return DrawMethod.EXTERNAL_LOTTERY, percent / 100.0
    raise InvalidInputError("Invalid method. Use 'internal' or 'lottery:TARGET'.")

def parse_secondary_prizes(
    raw: Optional[str],
    max_per_line: int = 50
) -> Tuple[Dict[str, str], List[Tuple[int, str]]]:
    """Parse the secondary prize form.

    Each line is either ``TOP <1-3>: description`` or
    ``TICKET [<n>x]: [<n>x] description`` (``BILHETE`` is accepted for TICKET).

    Returns:
        (top buyer prizes keyed by position, (quantity, description) instant prize lines)
    """
    top_prizes: Dict[str, str] = {}
    instant_lines: List[Tuple[int, str]] = []
    if not raw:
        return top_prizes, instant_lines

    for line in (line.strip() for line in raw.splitlines()):
        if not line:
            continue
        kind, separator, description = line.partition(":")
        description = description.strip()
        if not separator or not description:
            raise InvalidInputError(f"Invalid prize format. Use 'TYPE: ...'. Line: \"{line}\"")

        kind = kind.strip().upper()
        if kind.startswith("TOP"):
            position = kind[3:].strip()
            if position not in ("1", "2", "3"):
                raise InvalidInputError(f"Invalid TOP prize. Use 'TOP 1', 'TOP 2' or 'TOP 3'. (Error: {kind})")
            top_prizes[position] = description
        elif kind.startswith(("TICKET", "BILHETE")):
            quantity = 1
            match = _TICKET_PRIZE_QUANTITY.search(kind)
            if match:
                quantity = int(match.group(1))
            else:
                inline = re.match(r"^(\d+)\s*x\s+(.+)$", description, re.IGNORECASE)
                if inline:
                    quantity, description = int(inline.group(1)), inline.group(2).strip()
            if quantity <= 0:
                raise InvalidInputError(f"Invalid instant prize quantity. (Error: {kind})")
            if quantity > max_per_line:
                raise InvalidInputError(f"Cannot define more than {max_per_line} prize tickets of the same type.")
            instant_lines.append((quantity, description))
        else:
            raise InvalidInputError(f"Invalid prize type. Use 'TOP' or 'TICKET'. (Error: {kind})")

    return top_prizes, instant_lines

async def update_public_message(session_factory, notifications: NotificationService, raffle_id: int) -> bool:
    """Re-render a raffle's public status message with current sales."""
    async with session_factory() as session:
        raffle = await session.get(Raffle, raffle_id)
        if raffle is None or not raffle.channel_id or not raffle.message_id:
            logger.debug("Raffle has no public message to update", extra={'raffle_id': raffle_id})
            return False
        sold = await count_sold_tickets(session, raffle_id)

    return await notifications.edit(
        raffle.channel_id,
        raffle.message_id,
        messages.status_message_for(raffle, sold)
    )

class RaffleService:
    """Creates raffles, reserves tickets and keeps raffle bookkeeping."""

    @classmethod
    def from_bot(cls, bot, payment_generator: PaymentCodeGenerator):
        """Create a RaffleService instance from a bot instance."""
        return cls(
            session_factory=bot.db_session,
            payment_generator=payment_generator,
            notifications=NotificationService(bot.notifier),
            max_instant_prizes_per_line=bot.config.raffle.max_instant_prizes_per_line
        )

    def __init__(
        self,
        session_factory,
        payment_generator: PaymentCodeGenerator,
        notifications: Optional[NotificationService] = None,
        max_instant_prizes_per_line: int = 50,
        rng: Optional[random.Random] = None
    ):
        self.session_factory = session_factory
        self.payment_generator = payment_generator
        self.notifications = notifications or NotificationService(None)
        self.max_instant_prizes_per_line = max_instant_prizes_per_line
        self.rng = rng or random.SystemRandom()
        self.logger = logging.getLogger(__name__)

    async def create_raffle(
        self,
        prize_name: str,
        ticket_price: float,
        total_tickets: int,
        draw_method: str = DrawMethod.INTERNAL,
        completion_threshold_ratio: Optional[float] = None,
        top_buyer_prizes: Optional[Dict[str, str]] = None,
        instant_prizes: Sequence[Tuple[int, str]] = (),
        channel_id: Optional[str] = None
    ) -> Raffle:
        """Create a raffle together with its secret instant-prize tickets.

        When `channel_id` is given the public status message is posted there
        after the commit and its reference stored on the raffle.
        """
        prize_name = (prize_name or "").strip()
        if not prize_name:
            raise InvalidInputError("The raffle needs a prize name")
        if ticket_price is None or ticket_price <= 0:
            raise InvalidInputError("The price must be a positive number (e.g. 1.50).")
        if total_tickets is None or total_tickets <= 0:
            raise InvalidInputError("The total number of tickets must be positive.")

        if draw_method == DrawMethod.EXTERNAL_LOTTERY:
            if completion_threshold_ratio is None or not 0 < completion_threshold_ratio <= 1:
                raise InvalidInputError("Lottery raffles need a sales target between 1% and 100%.")
        elif draw_method == DrawMethod.INTERNAL:
            completion_threshold_ratio = None
        else:
            raise InvalidInputError(f"Unknown draw method '{draw_method}'")

        top_buyer_prizes = {str(k): v for k, v in (top_buyer_prizes or {}).items()}
        if any(position not in ("1", "2", "3") for position in top_buyer_prizes):
            raise InvalidInputError("Top buyer prizes only exist for positions 1 to 3.")
        for quantity, _ in instant_prizes:
            if quantity <= 0 or quantity > self.max_instant_prizes_per_line:
                raise InvalidInputError(
                    f"Instant prize quantity must be between 1 and {self.max_instant_prizes_per_line}."
                )

        padding = ticket_padding(total_tickets)
        prize_numbers = generate_prize_numbers(total_tickets, padding, instant_prizes, rng=self.rng)

        self.logger.info(f"Creating raffle '{prize_name}' with {total_tickets} tickets")
        async with self.session_factory() as session:
            async with session.begin():
                raffle = Raffle(
                    prize_name=prize_name,
                    total_tickets=total_tickets,
                    status=RaffleStatus.ACTIVE,
                    draw_method=draw_method,
                    completion_threshold_ratio=completion_threshold_ratio,
                    ticket_price=ticket_price,
                    top_buyer_prize_count=len(top_buyer_prizes),
                    top_buyer_prize_map=top_buyer_prizes
                )
                session.add(raffle)
                await session.flush()
                session.add_all([
                    InstantPrize(raffle_id=raffle.id, ticket_number=number, description=description)
                    for number, description in prize_numbers
                ])

        self.logger.info(
            f"Raffle created with {len(prize_numbers)} instant prizes",
            extra={'raffle_id': raffle.id}
        )

        if channel_id:
            message_id = await self.notifications.send_to_channel(
                channel_id, messages.raffle_status_message(raffle, 0)
            )
            if message_id:
                await self.set_public_message(raffle.id, channel_id, message_id)
                raffle.channel_id, raffle.message_id = channel_id, message_id
        return raffle

    async def set_public_message(self, raffle_id: int, channel_id: str, message_id: str) -> None:
        """Remember where the raffle's public status message lives."""
        async with self.session_factory() as session:
            async with session.begin():
                raffle = await session.get(Raffle, raffle_id)
                if raffle is None:
                    raise RaffleNotFoundError(raffle_id)
                raffle.channel_id = str(channel_id)
                raffle.message_id = str(message_id)

    async def create_purchase(
        self,
        raffle_id: int,
        buyer_id: str,
        quantity: int,
        referral_code: Optional[str] = None
    ) -> PurchaseReceipt:
        """Reserve tickets as a pending purchase and produce its payment code.

        Capacity is checked against approved tickets plus quantities still
        pending; approval re-checks it against approved tickets only.
        """
        if quantity is None or quantity <= 0:
            raise InvalidAmountError(quantity)
        buyer_id = str(buyer_id)
        code = (referral_code or "").strip().upper() or None

        async with self.session_factory() as session:
            async with session.begin():
                buyer = await session.get(User, buyer_id)
                if buyer is None:
                    raise UserNotRegisteredError(buyer_id)

                referrer_id = None
                if code:
                    if buyer.referral_code == code:
                        raise InvalidInputError("You cannot use your own referral code!")
                    referrer = await session.scalar(select(User).where(User.referral_code == code))
                    if referrer is None:
                        raise ReferralCodeNotFoundError(code)
                    referrer_id = referrer.discord_id

                raffle = await session.get(Raffle, raffle_id)
                if raffle is None:
                    raise RaffleNotFoundError(raffle_id)
                if raffle.status not in RaffleStatus.OPEN_FOR_SALES:
                    raise InvalidStateError(
                        f"The raffle \"{raffle.prize_name}\" is not accepting purchases.",
                        raffle.status
                    )

                reserved = await count_sold_tickets(session, raffle_id) + await count_pending_quantity(session, raffle_id)
                available = raffle.total_tickets - reserved
                if quantity > available:
                    raise CapacityExceededError(raffle_id, quantity, max(available, 0))

                purchase = Purchase(
                    raffle_id=raffle_id,
                    buyer_id=buyer_id,
                    referrer_id=referrer_id,
                    quantity=quantity,
                    status=PurchaseStatus.PENDING,
                    created_at=utc_now()
                )
                session.add(purchase)
                await session.flush()
                purchase_id = purchase.id

        self.logger.info(
            f"Purchase reserved: quantity {quantity}, referrer {referrer_id or 'none'}",
            extra={'raffle_id': raffle_id, 'purchase_id': purchase_id, 'user_id': buyer_id}
        )

        total_price = quantity * raffle.ticket_price
        payment_code = self.payment_generator.generate_or_fallback(total_price, str(purchase_id))
        return PurchaseReceipt(
            purchase_id=purchase_id,
            raffle=raffle,
            buyer_id=buyer_id,
            quantity=quantity,
            total_price=total_price,
            payment_code=payment_code,
            referrer_id=referrer_id
        )

    async def set_reservation_message(self, purchase_id: int, channel_id: str, message_id: str) -> None:
        """Remember the public reservation notice so approval/rejection can update it."""
        async with self.session_factory() as session:
            async with session.begin():
                purchase = await session.get(Purchase, purchase_id)
                if purchase is None:
                    raise PurchaseNotFoundError(purchase_id)
                purchase.reservation_channel_id = str(channel_id)
                purchase.reservation_message_id = str(message_id)

    async def list_open_raffles(self) -> List[Raffle]:
        """Raffles still accepting purchases, newest first."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(Raffle)
                .where(Raffle.status.in_(RaffleStatus.OPEN_FOR_SALES))
                .order_by(Raffle.id.desc())
            )
            return list(result.scalars().all())

    async def get_sold_count(self, raffle_id: int) -> int:
        async with self.session_factory() as session:
            return await count_sold_tickets(session, raffle_id)

    async def get_top_buyers(self, raffle_id: int, limit: int = 3) -> List[Tuple[str, int]]:
        async with self.session_factory() as session:
            return await top_buyers(session, raffle_id, limit)

    async def purge_raffle(self, raffle_id: int) -> str:
        """Delete a finished raffle with all its purchases, tickets and prizes.

        Returns:
            The status the raffle had when it was deleted
        """
        async with self.session_factory() as session:
            async with session.begin():
                raffle = await session.get(Raffle, raffle_id)
                if raffle is None:
                    raise RaffleNotFoundError(raffle_id)
                if raffle.status not in RaffleStatus.TERMINAL:
                    raise InvalidStateError(
                        f"Raffle {raffle_id} is still '{raffle.status}'. "
                        "Only finalized or cancelled raffles can be deleted.",
                        raffle.status
                    )
                status = raffle.status
                await session.delete(raffle)

        self.logger.info(f"Raffle purged (status was {status})", extra={'raffle_id': raffle_id})
        return status
