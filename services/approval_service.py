"""Admin approval and rejection of pending ticket purchases."""
import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import selectinload

from database.models import Purchase, PurchaseStatus, Raffle, RaffleStatus, Ticket
from services import messages
from services.instant_prizes import PrizeWon, claim_instant_prizes, pending_prize_numbers
from services.notifier import NotificationService
from services.raffle_locks import RaffleLocks
from services.raffle_queries import sold_ticket_numbers
from services.raffle_service import update_public_message
from services.referral_service import BonusTicket, ReferralBonusEngine
from services.ticket_allocator import allocate_tickets
from utils.exceptions import (
    ConcurrencyConflictError,
    InvalidInputError,
    InvalidStateError,
    PurchaseNotFoundError,
    RaffleError,
)

@dataclass
class ApprovalResult:
    """Everything an approval produced, for post-commit notifications."""
    purchase_id: int
    raffle_id: int
    buyer_id: str
    quantity: int
    allocated_numbers: List[str]
    prizes_won: List[PrizeWon] = field(default_factory=list)
    bonus: Optional[BonusTicket] = None
    reservation_channel_id: Optional[str] = None
    reservation_message_id: Optional[str] = None

@dataclass
class RejectionResult:
    purchase_id: int
    raffle_id: int
    buyer_id: str
    quantity: int
    reason: str
    reservation_channel_id: Optional[str] = None
    reservation_message_id: Optional[str] = None

@dataclass
class BatchOutcome:
    """Per-purchase outcome of a batch approval or rejection."""
    purchase_id: int
    success: bool
    detail: str

def parse_purchase_ids(raw: str) -> List[int]:
    """Parse a comma separated list of purchase ids, dropping duplicates."""
    ids = []
    for part in raw.replace(";", ",").split(","):
        part = part.strip()
        if not part:
            continue
        if not part.isdigit():
            raise InvalidInputError(f"Invalid purchase id '{part}'")
        purchase_id = int(part)
        if purchase_id not in ids:
            ids.append(purchase_id)
    if not ids:
        raise InvalidInputError("No purchase ids given")
    return ids

class PurchaseApprovalService:
    """Turns pending purchases into allocated tickets, or rejects them.

    Approvals and rejections hold the raffle's lock from ``RaffleLocks``, the
    same lock draws and cancellations take, so state changes on one raffle
    never interleave in this process. Each transaction starts as a write
    transaction and the pending -> approved/rejected step is a conditional
    UPDATE, so a purchase leaves pending exactly once even across
    processes. The unique (raffle_id, ticket_number) constraint is the last
    line of defence.
    """

    @classmethod
    def from_bot(cls, bot):
        """Create a PurchaseApprovalService instance from a bot instance."""
        return cls(
            session_factory=bot.db_session,
            notifications=NotificationService(bot.notifier),
            referral_engine=ReferralBonusEngine.from_config(bot.config.raffle),
            locks=bot.raffle_locks,
            timeout=bot.config.database.transaction_timeout_seconds
        )

    def __init__(
        self,
        session_factory,
        notifications: Optional[NotificationService] = None,
        referral_engine: Optional[ReferralBonusEngine] = None,
        locks: Optional[RaffleLocks] = None,
        timeout: float = 10.0,
        rng: Optional[random.Random] = None
    ):
        self.session_factory = session_factory
        self.notifications = notifications or NotificationService(None)
        self.referral_engine = referral_engine or ReferralBonusEngine(rng=rng)
        self.locks = locks or RaffleLocks()
        self.timeout = timeout
        self.rng = rng or random.SystemRandom()
        self.logger = logging.getLogger(__name__)

    async def approve(self, purchase_id: int, notify: bool = True) -> ApprovalResult:
        """Approve a pending purchase and allocate its tickets.

        Raises:
            PurchaseNotFoundError: If the purchase does not exist
            InvalidStateError: If the purchase is not pending or its raffle is closed
            CapacityExceededError: If the raffle no longer has enough unsold tickets
            ConcurrencyConflictError: If the raffle stayed busy past the wait bound,
                the transaction timed out, or the database aborted it
        """
        self.logger.info("Starting purchase approval", extra={'purchase_id': purchase_id})
        raffle_id = await self._raffle_id_for(purchase_id)

        async with self.locks.hold(raffle_id, "approval"):
            try:
                result = await asyncio.wait_for(
                    self._approve_in_transaction(purchase_id),
                    timeout=self.timeout
                )
            except asyncio.TimeoutError:
                raise ConcurrencyConflictError(
                    f"Approval of purchase {purchase_id} timed out and was rolled back"
                ) from None
            except (OperationalError, IntegrityError) as e:
                self.logger.error(
                    f"Approval transaction aborted: {e}",
                    extra={'purchase_id': purchase_id, 'raffle_id': raffle_id}
                )
                raise ConcurrencyConflictError(
                    f"Approval of purchase {purchase_id} conflicted with another transaction"
                ) from e

        self.logger.info(
            f"Purchase approved with tickets {result.allocated_numbers}",
            extra={'purchase_id': purchase_id, 'raffle_id': raffle_id, 'user_id': result.buyer_id}
        )
        if notify:
            await self._notify_approval(result)
        return result

    async def _raffle_id_for(self, purchase_id: int) -> int:
        async with self.session_factory() as session:
            raffle_id = await session.scalar(
                select(Purchase.raffle_id).where(Purchase.id == purchase_id)
            )
        if raffle_id is None:
            raise PurchaseNotFoundError(purchase_id)
        return raffle_id

    async def _approve_in_transaction(self, purchase_id: int) -> ApprovalResult:
        async with self.session_factory() as session:
            async with session.begin():
                purchase = await session.get(Purchase, purchase_id, with_for_update=True)
                if purchase is None:
                    raise PurchaseNotFoundError(purchase_id)
                if purchase.status != PurchaseStatus.PENDING:
                    raise InvalidStateError(
                        f"Purchase {purchase_id} is already '{purchase.status}'",
                        purchase.status
                    )

                raffle = await session.get(Raffle, purchase.raffle_id, with_for_update=True)
                if raffle.status not in RaffleStatus.OPEN_FOR_SALES:
                    raise InvalidStateError(
                        f"Raffle {raffle.id} is '{raffle.status}' and cannot allocate tickets",
                        raffle.status
                    )

                sold = await sold_ticket_numbers(session, raffle.id)
                prize_numbers = await pending_prize_numbers(session, raffle.id)

                allocated = allocate_tickets(
                    raffle.total_tickets,
                    sold,
                    raffle.padding,
                    purchase.quantity,
                    rng=self.rng,
                    raffle_id=raffle.id
                )

                transitioned = await session.execute(
                    update(Purchase)
                    .where(Purchase.id == purchase.id, Purchase.status == PurchaseStatus.PENDING)
                    .values(status=PurchaseStatus.APPROVED)
                )
                if transitioned.rowcount != 1:
                    raise InvalidStateError(f"Purchase {purchase_id} changed state concurrently")

                session.add_all([
                    Ticket(
                        purchase_id=purchase.id,
                        raffle_id=raffle.id,
                        ticket_number=number,
                        is_free=False
                    )
                    for number in allocated
                ])
                await session.flush()

                prizes_won = await claim_instant_prizes(
                    session, raffle.id, allocated, purchase.buyer_id
                )
                sold.update(allocated)

                bonus = await self.referral_engine.maybe_grant_bonus(
                    session, purchase, raffle, sold, prize_numbers
                )

                return ApprovalResult(
                    purchase_id=purchase.id,
                    raffle_id=raffle.id,
                    buyer_id=purchase.buyer_id,
                    quantity=purchase.quantity,
                    allocated_numbers=allocated,
                    prizes_won=prizes_won,
                    bonus=bonus,
                    reservation_channel_id=purchase.reservation_channel_id,
                    reservation_message_id=purchase.reservation_message_id
                )

    async def _notify_approval(self, result: ApprovalResult) -> None:
        await self.notifications.send_to_user(
            result.buyer_id,
            messages.purchase_approved_message(
                result.raffle_id, result.quantity, result.allocated_numbers, result.prizes_won
            )
        )
        if result.bonus:
            await self.notifications.send_to_user(
                result.bonus.referrer_id,
                messages.referral_bonus_message(
                    result.raffle_id, result.buyer_id, result.bonus.ticket_number
                )
            )
        await update_public_message(self.session_factory, self.notifications, result.raffle_id)
        await self.notifications.edit_or_send(
            result.reservation_channel_id,
            result.reservation_message_id,
            messages.reservation_approved_notice(result.purchase_id, result.allocated_numbers)
        )

    async def reject(self, purchase_id: int, reason: str, notify: bool = True) -> RejectionResult:
        """Reject a pending purchase. Rejection is terminal and allocates nothing.

        Raises:
            InvalidInputError: If no reason is given
            PurchaseNotFoundError: If the purchase does not exist
            InvalidStateError: If the purchase is not pending
            ConcurrencyConflictError: If the raffle stayed busy past the wait bound
        """
        reason = (reason or "").strip()
        if not reason:
            raise InvalidInputError("A rejection reason is required")

        raffle_id = await self._raffle_id_for(purchase_id)
        async with self.locks.hold(raffle_id, "rejection"):
            async with self.session_factory() as session:
                async with session.begin():
                    purchase = await session.get(Purchase, purchase_id)
                    if purchase is None:
                        raise PurchaseNotFoundError(purchase_id)
                    if purchase.status != PurchaseStatus.PENDING:
                        raise InvalidStateError(
                            f"Purchase {purchase_id} is already '{purchase.status}'",
                            purchase.status
                        )

                    updated = await session.execute(
                        update(Purchase)
                        .where(Purchase.id == purchase_id, Purchase.status == PurchaseStatus.PENDING)
                        .values(status=PurchaseStatus.REJECTED)
                        .execution_options(synchronize_session=False)
                    )
                    if updated.rowcount != 1:
                        raise InvalidStateError(f"Purchase {purchase_id} changed state concurrently")

                    result = RejectionResult(
                        purchase_id=purchase.id,
                        raffle_id=purchase.raffle_id,
                        buyer_id=purchase.buyer_id,
                        quantity=purchase.quantity,
                        reason=reason,
                        reservation_channel_id=purchase.reservation_channel_id,
                        reservation_message_id=purchase.reservation_message_id
                    )

        self.logger.info(
            f"Purchase rejected: {reason}",
            extra={'purchase_id': purchase_id, 'raffle_id': result.raffle_id, 'user_id': result.buyer_id}
        )
        if notify:
            await self.notifications.send_to_user(
                result.buyer_id,
                messages.purchase_rejected_message(
                    result.raffle_id, result.purchase_id, result.quantity, reason
                )
            )
            await self.notifications.edit_or_send(
                result.reservation_channel_id,
                result.reservation_message_id,
                messages.reservation_rejected_notice(result.purchase_id, reason)
            )
        return result

    async def approve_many(self, purchase_ids: List[int]) -> List[BatchOutcome]:
        """Approve each purchase independently, collecting per-id outcomes."""
        outcomes = []
        for purchase_id in purchase_ids:
            try:
                result = await self.approve(purchase_id)
                outcomes.append(BatchOutcome(
                    purchase_id, True, f"tickets {', '.join(result.allocated_numbers)}"
                ))
            except RaffleError as e:
                outcomes.append(BatchOutcome(purchase_id, False, str(e)))
        return outcomes

    async def reject_many(self, purchase_ids: List[int], reason: str) -> List[BatchOutcome]:
        """Reject each purchase independently, collecting per-id outcomes."""
        outcomes = []
        for purchase_id in purchase_ids:
            try:
                await self.reject(purchase_id, reason)
                outcomes.append(BatchOutcome(purchase_id, True, "rejected"))
            except RaffleError as e:
                outcomes.append(BatchOutcome(purchase_id, False, str(e)))
        return outcomes

    async def get_pending_purchases(self) -> List[Purchase]:
        """Pending purchases, oldest first, with their raffle loaded."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(Purchase)
                .options(selectinload(Purchase.raffle))
                .where(Purchase.status == PurchaseStatus.PENDING)
                .order_by(Purchase.created_at, Purchase.id)
            )
            return list(result.scalars().all())

    async def purchase_id_for_reservation(self, message_id: str) -> int:
        """The purchase a log-channel review message was posted for."""
        async with self.session_factory() as session:
            purchase_id = await session.scalar(
                select(Purchase.id).where(Purchase.reservation_message_id == str(message_id))
            )
        if purchase_id is None:
            raise InvalidInputError("No purchase is linked to this review message")
        return purchase_id
