import random

from database.models import Purchase, PurchaseStatus, Raffle, Ticket
from services.referral_service import ReferralBonusEngine

async def test_qualifying_purchase_grants_referrer_a_free_ticket(factory, approval_service, notifier):
    await factory.user("buyer")
    await factory.user("referrer")
    raffle = await factory.raffle(total_tickets=100, ticket_price=2.0)
    purchase = await factory.purchase(raffle.id, "buyer", 5, referrer_id="referrer")

    result = await approval_service.approve(purchase.id)

    assert result.bonus is not None
    assert result.bonus.referrer_id == "referrer"
    assert result.bonus.ticket_number not in result.allocated_numbers

    bonus_purchase = await factory.get(Purchase, result.bonus.purchase_id)
    assert bonus_purchase.is_referral_bonus
    assert bonus_purchase.status == PurchaseStatus.APPROVED
    assert bonus_purchase.buyer_id == "referrer"
    assert await factory.ticket_numbers(bonus_purchase.id) == {result.bonus.ticket_number}
    assert await factory.count(Ticket, Ticket.raffle_id == raffle.id, Ticket.is_free.is_(True)) == 1

    referrer_dm = notifier.messages_for("referrer")[0]
    assert result.bonus.ticket_number in referrer_dm.description

async def test_purchase_below_minimum_earns_nothing(factory, approval_service):
    await factory.user("buyer")
    await factory.user("referrer")
    raffle = await factory.raffle(total_tickets=100, ticket_price=1.0)
    purchase = await factory.purchase(raffle.id, "buyer", 9, referrer_id="referrer")

    result = await approval_service.approve(purchase.id)

    assert result.bonus is None
    assert await factory.count(Ticket, Ticket.is_free.is_(True)) == 0

async def test_purchase_without_referrer_earns_nothing(factory, approval_service):
    await factory.user("buyer")
    raffle = await factory.raffle(total_tickets=100, ticket_price=50.0)
    purchase = await factory.purchase(raffle.id, "buyer", 1)

    result = await approval_service.approve(purchase.id)

    assert result.bonus is None

async def test_bonus_is_capped_per_raffle(factory, approval_service):
    await factory.user("buyer")
    await factory.user("referrer")
    raffle = await factory.raffle(total_tickets=100, ticket_price=10.0)
    for number in ("90", "91", "92", "93", "94"):
        await factory.tickets(raffle.id, "referrer", [number], is_free=True)
    purchase = await factory.purchase(raffle.id, "buyer", 1, referrer_id="referrer")

    result = await approval_service.approve(purchase.id)

    assert result.bonus is None
    assert await factory.count(Ticket, Ticket.raffle_id == raffle.id, Ticket.is_free.is_(True)) == 5

async def test_cap_counts_only_the_same_raffle(factory, approval_service):
    await factory.user("buyer")
    await factory.user("referrer")
    other = await factory.raffle(total_tickets=100)
    for number in ("0", "1", "2", "3", "4"):
        await factory.tickets(other.id, "referrer", [number.zfill(2)], is_free=True)
    raffle = await factory.raffle(total_tickets=100, ticket_price=10.0)
    purchase = await factory.purchase(raffle.id, "buyer", 1, referrer_id="referrer")

    result = await approval_service.approve(purchase.id)

    assert result.bonus is not None

async def test_bonus_skips_unclaimed_prize_numbers(factory, session_factory):
    await factory.user("buyer")
    await factory.user("referrer")
    raffle = await factory.raffle(total_tickets=5, ticket_price=10.0)
    purchase = await factory.purchase(
        raffle.id, "buyer", 1, referrer_id="referrer", status=PurchaseStatus.APPROVED
    )
    engine = ReferralBonusEngine(rng=random.Random(3))

    async with session_factory() as session:
        async with session.begin():
            sold = {"0", "1"}
            bonus = await engine.maybe_grant_bonus(
                session,
                await session.get(Purchase, purchase.id),
                await session.get(Raffle, raffle.id),
                sold,
                {"2", "3"}
            )

    assert bonus.ticket_number == "4"
    assert "4" in sold

async def test_no_bonus_when_raffle_is_full(factory, approval_service):
    await factory.user("buyer")
    await factory.user("referrer")
    raffle = await factory.raffle(total_tickets=10, ticket_price=1.0)
    purchase = await factory.purchase(raffle.id, "buyer", 10, referrer_id="referrer")

    result = await approval_service.approve(purchase.id)

    assert result.bonus is None
    assert len(result.allocated_numbers) == 10

def test_bonus_purchases_never_qualify():
    engine = ReferralBonusEngine()
    purchase = Purchase(quantity=1, referrer_id="referrer", is_referral_bonus=True)
    raffle = Raffle(ticket_price=100.0, total_tickets=10)

    assert not engine.qualifies(purchase, raffle)
