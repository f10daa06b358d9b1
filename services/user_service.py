"""Member registration, referral codes and ticket summaries."""
import logging
import re
import secrets
from dataclasses import dataclass
from typing import List

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import Purchase, PurchaseStatus, Raffle, RaffleStatus, Ticket, User
from utils.exceptions import InvalidInputError, UserNotRegisteredError

EMAIL_PATTERN = re.compile(r"\S+@\S+\.\S+")
MAX_CODE_ATTEMPTS = 5

@dataclass
class RegistrationResult:
    discord_id: str
    name: str
    referral_code: str
    created: bool
    code_generated: bool

@dataclass
class TicketSummary:
    """Approved tickets a member holds in one open raffle."""
    raffle_id: int
    prize_name: str
    status: str
    ticket_count: int

async def generate_referral_code(session: AsyncSession, name: str) -> str:
    """Build a code like ``JOAO-1A2B`` from the first name, ``USER-1A2B3C`` while taken.

    Raises:
        InvalidInputError: If no free code turned up after a few attempts
    """
    first_name = (name or "").split(" ")[0].upper()
    base = re.sub(r"[^A-Z]", "", first_name)[:5] or "USER"
    code = f"{base}-{secrets.token_hex(2).upper()}"

    for _ in range(MAX_CODE_ATTEMPTS):
        taken = await session.scalar(select(User.discord_id).where(User.referral_code == code))
        if taken is None:
            return code
        code = f"USER-{secrets.token_hex(3).upper()}"
    raise InvalidInputError("Could not generate a unique referral code, please try again")

class UserService:
    """Handles member registration and lookups."""

    @classmethod
    def from_bot(cls, bot):
        """Create a UserService instance from a bot instance."""
        return cls(session_factory=bot.db_session)

    def __init__(self, session_factory):
        self.session_factory = session_factory
        self.logger = logging.getLogger(__name__)

    async def register_user(self, discord_id: str, name: str, email: str) -> RegistrationResult:
        """Register a member, or hand back the existing registration.

        Existing members without a referral code get one generated.

        Raises:
            InvalidInputError: If the name or email is invalid, or the email
                belongs to another member
        """
        discord_id = str(discord_id)
        name = (name or "").strip()
        email = (email or "").strip()
        if not name:
            raise InvalidInputError("Please provide your name")
        if not EMAIL_PATTERN.fullmatch(email):
            raise InvalidInputError("That email does not look valid.")

        async with self.session_factory() as session:
            async with session.begin():
                existing = await session.get(User, discord_id)
                if existing is not None:
                    self.logger.warning("Duplicate registration attempt", extra={'user_id': discord_id})
                    code_generated = False
                    if not existing.referral_code:
                        existing.referral_code = await generate_referral_code(session, existing.name)
                        code_generated = True
                        self.logger.info("Referral code generated for existing member", extra={'user_id': discord_id})
                    return RegistrationResult(
                        discord_id=discord_id,
                        name=existing.name,
                        referral_code=existing.referral_code,
                        created=False,
                        code_generated=code_generated
                    )

                email_owner = await session.scalar(select(User.discord_id).where(User.email == email))
                if email_owner is not None:
                    raise InvalidInputError("This email is already registered to another member.")

                code = await generate_referral_code(session, name)
                session.add(User(discord_id=discord_id, name=name, email=email, referral_code=code))

        self.logger.info(f"Member {name} registered with code {code}", extra={'user_id': discord_id})
        return RegistrationResult(
            discord_id=discord_id,
            name=name,
            referral_code=code,
            created=True,
            code_generated=True
        )

    async def get_referral_code(self, discord_id: str) -> str:
        """A member's referral code, generated on first request if missing."""
        discord_id = str(discord_id)
        async with self.session_factory() as session:
            async with session.begin():
                user = await session.get(User, discord_id)
                if user is None:
                    raise UserNotRegisteredError(discord_id)
                if not user.referral_code:
                    user.referral_code = await generate_referral_code(session, user.name)
                    self.logger.info("Referral code generated on lookup", extra={'user_id': discord_id})
                return user.referral_code

    async def get_ticket_summary(self, discord_id: str) -> List[TicketSummary]:
        """Approved ticket counts per raffle that is still active or awaiting its draw."""
        discord_id = str(discord_id)
        async with self.session_factory() as session:
            if await session.get(User, discord_id) is None:
                raise UserNotRegisteredError(discord_id)

            ticket_count = func.count(Ticket.id).label("ticket_count")
            result = await session.execute(
                select(Raffle.id, Raffle.prize_name, Raffle.status, ticket_count)
                .join(Purchase, Purchase.raffle_id == Raffle.id)
                .join(Ticket, Ticket.purchase_id == Purchase.id)
                .where(
                    Purchase.buyer_id == discord_id,
                    Purchase.status == PurchaseStatus.APPROVED,
                    Raffle.status.in_(RaffleStatus.OPEN_FOR_SALES)
                )
                .group_by(Raffle.id, Raffle.prize_name, Raffle.status)
                .order_by(Raffle.id)
            )
            return [
                TicketSummary(
                    raffle_id=row.id,
                    prize_name=row.prize_name,
                    status=row.status,
                    ticket_count=row.ticket_count
                )
                for row in result.all()
            ]
