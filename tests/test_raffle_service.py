import pytest
from sqlalchemy import select

from database.models import (
    DrawMethod,
    InstantPrize,
    Purchase,
    PurchaseStatus,
    Raffle,
    RaffleStatus,
    Ticket,
)
from services.payment_service import MANUAL_PAYMENT_FALLBACK, PixPaymentCodeGenerator
from services.raffle_service import (
    RaffleService,
    parse_draw_method,
    parse_secondary_prizes,
    update_public_message,
)
from utils.exceptions import (
    CapacityExceededError,
    InvalidAmountError,
    InvalidInputError,
    InvalidStateError,
    RaffleNotFoundError,
    ReferralCodeNotFoundError,
    UserNotRegisteredError,
)

@pytest.mark.parametrize("raw, expected", [
    ("internal", (DrawMethod.INTERNAL, None)),
    (" Internal ", (DrawMethod.INTERNAL, None)),
    ("lottery:75", (DrawMethod.EXTERNAL_LOTTERY, 0.75)),
    ("LOTTERY: 100", (DrawMethod.EXTERNAL_LOTTERY, 1.0)),
])
def test_parse_draw_method(raw, expected):
    assert parse_draw_method(raw) == expected

@pytest.mark.parametrize("raw", ["", "random", "lottery", "lottery:", "lottery:0", "lottery:101", "lottery:abc"])
def test_parse_draw_method_rejects_invalid(raw):
    with pytest.raises(InvalidInputError):
        parse_draw_method(raw)

def test_parse_secondary_prizes():
    top, instant = parse_secondary_prizes(
        "TOP 1: Gift card\n"
        "top 3: Mug\n"
        "\n"
        "TICKET 3x: Free drink\n"
        "BILHETE: 2x Cap\n"
        "TICKET: Sticker"
    )

    assert top == {"1": "Gift card", "3": "Mug"}
    assert instant == [(3, "Free drink"), (2, "Cap"), (1, "Sticker")]

def test_parse_secondary_prizes_empty():
    assert parse_secondary_prizes(None) == ({}, [])
    assert parse_secondary_prizes("  \n ") == ({}, [])

@pytest.mark.parametrize("raw", [
    "TOP 4: Mug",
    "TOP: Mug",
    "JACKPOT: Car",
    "TICKET 3x Drink",
    "TICKET 2x:",
    "TICKET 51x: Drink",
])
def test_parse_secondary_prizes_rejects_invalid(raw):
    with pytest.raises(InvalidInputError):
        parse_secondary_prizes(raw)

async def test_create_raffle_stores_prizes_and_posts_message(raffle_service, factory, notifier):
    raffle = await raffle_service.create_raffle(
        prize_name="Console",
        ticket_price=2.5,
        total_tickets=1000,
        top_buyer_prizes={"1": "Gift card"},
        instant_prizes=[(3, "Free drink"), (2, "Cap")],
        channel_id="chan"
    )

    stored = await factory.get(Raffle, raffle.id)
    assert stored.status == RaffleStatus.ACTIVE
    assert stored.draw_method == DrawMethod.INTERNAL
    assert stored.completion_threshold_ratio is None
    assert stored.top_buyer_prize_map == {"1": "Gift card"}
    assert stored.top_buyer_prize_count == 1

    assert await factory.count(InstantPrize, InstantPrize.raffle_id == raffle.id) == 5
    async with raffle_service.session_factory() as session:
        numbers = (await session.execute(
            select(InstantPrize.ticket_number).where(InstantPrize.raffle_id == raffle.id)
        )).scalars().all()
    assert len(set(numbers)) == 5
    assert all(len(n) == 3 for n in numbers)

    channel, message_id, message = notifier.channel_messages[0]
    assert channel == "chan"
    assert stored.channel_id == "chan"
    assert stored.message_id == message_id
    assert "0 / 1000" in message.fields[0][1]

async def test_create_lottery_raffle(raffle_service):
    raffle = await raffle_service.create_raffle(
        prize_name="Bike",
        ticket_price=1.0,
        total_tickets=100,
        draw_method=DrawMethod.EXTERNAL_LOTTERY,
        completion_threshold_ratio=0.75
    )

    assert raffle.completion_threshold_ratio == 0.75
    assert raffle.message_id is None

@pytest.mark.parametrize("kwargs", [
    {"prize_name": " "},
    {"ticket_price": 0},
    {"total_tickets": 0},
    {"draw_method": "coin flip"},
    {"draw_method": DrawMethod.EXTERNAL_LOTTERY},
    {"draw_method": DrawMethod.EXTERNAL_LOTTERY, "completion_threshold_ratio": 1.5},
    {"top_buyer_prizes": {"4": "Mug"}},
    {"instant_prizes": [(51, "Drink")]},
    {"total_tickets": 3, "instant_prizes": [(2, "Drink"), (2, "Cap")]},
])
async def test_create_raffle_validation(raffle_service, factory, kwargs):
    params = {"prize_name": "Console", "ticket_price": 1.0, "total_tickets": 10}
    params.update(kwargs)

    with pytest.raises(InvalidInputError):
        await raffle_service.create_raffle(**params)

    assert await factory.count(Raffle) == 0

async def test_create_purchase_returns_receipt(raffle_service, factory):
    await factory.user("buyer")
    raffle = await factory.raffle(ticket_price=2.5)

    receipt = await raffle_service.create_purchase(raffle.id, "buyer", 4)

    assert receipt.quantity == 4
    assert receipt.total_price == 10.0
    assert receipt.payment_code.startswith("000201")
    stored = await factory.get(Purchase, receipt.purchase_id)
    assert stored.status == PurchaseStatus.PENDING
    assert stored.referrer_id is None
    assert await factory.count(Ticket) == 0

async def test_create_purchase_falls_back_to_manual_payment(session_factory, notifications, factory):
    service = RaffleService(session_factory, PixPaymentCodeGenerator(None, "Bot", "City"), notifications)
    await factory.user("buyer")
    raffle = await factory.raffle()

    receipt = await service.create_purchase(raffle.id, "buyer", 1)

    assert receipt.payment_code == MANUAL_PAYMENT_FALLBACK
    assert (await factory.get(Purchase, receipt.purchase_id)).status == PurchaseStatus.PENDING

async def test_create_purchase_requires_registration(raffle_service, factory):
    raffle = await factory.raffle()

    with pytest.raises(UserNotRegisteredError):
        await raffle_service.create_purchase(raffle.id, "stranger", 1)

async def test_create_purchase_checks_raffle(raffle_service, factory):
    await factory.user("buyer")
    closed = await factory.raffle(status=RaffleStatus.FINALIZED)
    awaiting = await factory.raffle(status=RaffleStatus.AWAITING_DRAW)

    with pytest.raises(RaffleNotFoundError):
        await raffle_service.create_purchase(999, "buyer", 1)
    with pytest.raises(InvalidStateError):
        await raffle_service.create_purchase(closed.id, "buyer", 1)
    assert (await raffle_service.create_purchase(awaiting.id, "buyer", 1)).quantity == 1

@pytest.mark.parametrize("quantity", [0, -1])
async def test_create_purchase_requires_positive_quantity(raffle_service, factory, quantity):
    await factory.user("buyer")
    raffle = await factory.raffle()

    with pytest.raises(InvalidAmountError):
        await raffle_service.create_purchase(raffle.id, "buyer", quantity)

async def test_capacity_counts_pending_reservations(raffle_service, factory):
    await factory.user("buyer")
    raffle = await factory.raffle(total_tickets=10)
    await factory.tickets(raffle.id, "buyer", ["0", "1", "2"])
    await factory.purchase(raffle.id, "buyer", 5)
    await factory.purchase(raffle.id, "buyer", 4, status=PurchaseStatus.REJECTED)

    with pytest.raises(CapacityExceededError) as exc_info:
        await raffle_service.create_purchase(raffle.id, "buyer", 3)

    assert exc_info.value.available == 2
    assert (await raffle_service.create_purchase(raffle.id, "buyer", 2)).quantity == 2

async def test_referral_code_links_referrer(raffle_service, factory):
    await factory.user("buyer", referral_code="BUYER-0001")
    await factory.user("friend", referral_code="FRIEND-0002")
    raffle = await factory.raffle()

    receipt = await raffle_service.create_purchase(raffle.id, "buyer", 1, referral_code=" friend-0002 ")

    assert receipt.referrer_id == "friend"
    assert (await factory.get(Purchase, receipt.purchase_id)).referrer_id == "friend"

async def test_own_referral_code_is_refused(raffle_service, factory):
    await factory.user("buyer", referral_code="BUYER-0001")
    raffle = await factory.raffle()

    with pytest.raises(InvalidInputError):
        await raffle_service.create_purchase(raffle.id, "buyer", 1, referral_code="BUYER-0001")

async def test_unknown_referral_code_is_refused(raffle_service, factory):
    await factory.user("buyer")
    raffle = await factory.raffle()

    with pytest.raises(ReferralCodeNotFoundError):
        await raffle_service.create_purchase(raffle.id, "buyer", 1, referral_code="NOBODY-0000")

    assert await factory.count(Purchase) == 0

async def test_reservation_message_is_stored(raffle_service, factory):
    await factory.user("buyer")
    raffle = await factory.raffle()
    purchase = await factory.purchase(raffle.id, "buyer", 1)

    await raffle_service.set_reservation_message(purchase.id, "log", 55)

    stored = await factory.get(Purchase, purchase.id)
    assert (stored.reservation_channel_id, stored.reservation_message_id) == ("log", "55")

async def test_update_public_message(session_factory, notifications, notifier, factory):
    await factory.user("buyer")
    with_message = await factory.raffle(channel_id="chan", message_id="pub")
    without_message = await factory.raffle()
    await factory.tickets(with_message.id, "buyer", ["3"])

    assert await update_public_message(session_factory, notifications, with_message.id)
    assert not await update_public_message(session_factory, notifications, without_message.id)

    assert len(notifier.edits) == 1
    assert "1 / 10" in notifier.edits[0][2].fields[0][1]

async def test_list_open_raffles(raffle_service, factory):
    active = await factory.raffle()
    awaiting = await factory.raffle(status=RaffleStatus.AWAITING_DRAW)
    await factory.raffle(status=RaffleStatus.CANCELLED)

    raffles = await raffle_service.list_open_raffles()

    assert [r.id for r in raffles] == [awaiting.id, active.id]

async def test_top_buyers_ignore_free_tickets(raffle_service, factory):
    for user_id in ("alice", "bob", "carol"):
        await factory.user(user_id)
    raffle = await factory.raffle(total_tickets=100)
    await factory.tickets(raffle.id, "alice", ["01", "02"])
    await factory.tickets(raffle.id, "bob", ["03", "04", "05"])
    await factory.tickets(raffle.id, "carol", ["06"])
    await factory.tickets(raffle.id, "carol", ["07", "08", "09"], is_free=True)

    assert await raffle_service.get_top_buyers(raffle.id) == [("bob", 3), ("alice", 2), ("carol", 1)]
    assert await raffle_service.get_sold_count(raffle.id) == 9

@pytest.mark.parametrize("status", [RaffleStatus.FINALIZED, RaffleStatus.CANCELLED])
async def test_purge_deletes_everything(raffle_service, factory, status):
    await factory.user("buyer")
    raffle = await factory.raffle(status=status)
    keep = await factory.raffle()
    await factory.tickets(raffle.id, "buyer", ["1", "2"])
    await factory.tickets(keep.id, "buyer", ["1"])
    await factory.purchase(raffle.id, "buyer", 1)
    await factory.prize(raffle.id, "5")

    assert await raffle_service.purge_raffle(raffle.id) == status

    assert await factory.get(Raffle, raffle.id) is None
    assert await factory.count(Purchase, Purchase.raffle_id == raffle.id) == 0
    assert await factory.count(Ticket, Ticket.raffle_id == raffle.id) == 0
    assert await factory.count(InstantPrize, InstantPrize.raffle_id == raffle.id) == 0
    assert await factory.count(Ticket, Ticket.raffle_id == keep.id) == 1

@pytest.mark.parametrize("status", [RaffleStatus.ACTIVE, RaffleStatus.AWAITING_DRAW])
async def test_purge_refuses_open_raffles(raffle_service, factory, status):
    raffle = await factory.raffle(status=status)

    with pytest.raises(InvalidStateError):
        await raffle_service.purge_raffle(raffle.id)

    assert await factory.get(Raffle, raffle.id) is not None
