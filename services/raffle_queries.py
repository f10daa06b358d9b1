"""Read helpers shared by the raffle services. All take an open session."""
from typing import List, Set, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import Purchase, PurchaseStatus, Ticket

async def sold_ticket_numbers(session: AsyncSession, raffle_id: int) -> Set[str]:
    """Ticket numbers held by approved purchases of the raffle, read fresh every call."""
    result = await session.execute(
        select(Ticket.ticket_number)
        .join(Purchase, Ticket.purchase_id == Purchase.id)
        .where(
            Purchase.raffle_id == raffle_id,
            Purchase.status == PurchaseStatus.APPROVED
        )
    )
    return set(result.scalars().all())

async def count_sold_tickets(session: AsyncSession, raffle_id: int) -> int:
    result = await session.execute(
        select(func.count(Ticket.id))
        .join(Purchase, Ticket.purchase_id == Purchase.id)
        .where(
            Purchase.raffle_id == raffle_id,
            Purchase.status == PurchaseStatus.APPROVED
        )
    )
    return result.scalar_one()

async def count_pending_quantity(session: AsyncSession, raffle_id: int) -> int:
    """Tickets reserved by purchases still waiting for approval."""
    result = await session.execute(
        select(func.coalesce(func.sum(Purchase.quantity), 0)).where(
            Purchase.raffle_id == raffle_id,
            Purchase.status == PurchaseStatus.PENDING
        )
    )
    return result.scalar_one()

async def approved_tickets(session: AsyncSession, raffle_id: int) -> List[Tuple[str, str]]:
    """(ticket_number, owner_id) for every approved ticket, ordered by ticket id."""
    result = await session.execute(
        select(Ticket.ticket_number, Purchase.buyer_id)
        .join(Purchase, Ticket.purchase_id == Purchase.id)
        .where(
            Purchase.raffle_id == raffle_id,
            Purchase.status == PurchaseStatus.APPROVED
        )
        .order_by(Ticket.id)
    )
    return [(row.ticket_number, row.buyer_id) for row in result.all()]

async def participant_ids(session: AsyncSession, raffle_id: int) -> List[str]:
    """Distinct buyers with at least one approved purchase."""
    result = await session.execute(
        select(Purchase.buyer_id)
        .where(
            Purchase.raffle_id == raffle_id,
            Purchase.status == PurchaseStatus.APPROVED
        )
        .distinct()
        .order_by(Purchase.buyer_id)
    )
    return list(result.scalars().all())

async def top_buyers(session: AsyncSession, raffle_id: int, limit: int = 3) -> List[Tuple[str, int]]:
    """Buyers ranked by paid approved tickets, earliest first on ties."""
    ticket_count = func.count(Ticket.id).label("ticket_count")
    result = await session.execute(
        select(Purchase.buyer_id, ticket_count)
        .join(Ticket, Ticket.purchase_id == Purchase.id)
        .where(
            Purchase.raffle_id == raffle_id,
            Purchase.status == PurchaseStatus.APPROVED,
            Ticket.is_free.is_(False)
        )
        .group_by(Purchase.buyer_id)
        .order_by(ticket_count.desc(), func.min(Purchase.id))
        .limit(limit)
    )
    return [(row.buyer_id, row.ticket_count) for row in result.all()]
