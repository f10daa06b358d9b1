import random
from typing import Dict, Iterable, Optional

import pytest
from sqlalchemy import func, select

from database.database import Database
from database.models import (
    DrawMethod,
    InstantPrize,
    Purchase,
    PurchaseStatus,
    Raffle,
    RaffleStatus,
    Ticket,
    User,
)
from services.approval_service import PurchaseApprovalService
from services.draw_service import DrawService
from services.lifecycle_service import RaffleLifecycleService
from services.notifier import NotificationService, Notifier
from services.payment_service import PixPaymentCodeGenerator
from services.raffle_locks import RaffleLocks
from services.raffle_service import RaffleService
from services.referral_service import ReferralBonusEngine
from services.user_service import UserService

class RecordingNotifier(Notifier):
    """Notifier that remembers everything it was asked to deliver."""

    def __init__(self):
        self.direct_messages = []
        self.channel_messages = []
        self.edits = []
        self.fail_all = False
        self.missing_messages = set()
        self._next_message_id = 1000

    async def notify_user(self, user_id, message):
        if self.fail_all:
            raise RuntimeError("Cannot send messages to this user")
        self.direct_messages.append((user_id, message))

    async def notify_channel(self, channel_id, message):
        if self.fail_all:
            raise RuntimeError("Missing access")
        self._next_message_id += 1
        self.channel_messages.append((channel_id, str(self._next_message_id), message))
        return str(self._next_message_id)

    async def edit_message(self, channel_id, message_id, message):
        if self.fail_all:
            raise RuntimeError("Missing access")
        if message_id in self.missing_messages:
            return False
        self.edits.append((channel_id, message_id, message))
        return True

    def messages_for(self, user_id) -> list:
        return [message for uid, message in self.direct_messages if uid == user_id]

class Factory:
    """Inserts rows directly, bypassing service validation."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def user(self, discord_id: str, name: str = "Tester", email: Optional[str] = None,
                   referral_code: Optional[str] = None) -> User:
        user = User(
            discord_id=discord_id,
            name=name,
            email=email or f"{discord_id}@example.com",
            referral_code=referral_code
        )
        async with self.session_factory() as session:
            async with session.begin():
                session.add(user)
        return user

    async def raffle(self, total_tickets: int = 10, ticket_price: float = 1.0,
                     status: str = RaffleStatus.ACTIVE, draw_method: str = DrawMethod.INTERNAL,
                     completion_threshold_ratio: Optional[float] = None,
                     top_buyer_prize_map: Optional[Dict[str, str]] = None,
                     channel_id: Optional[str] = None, message_id: Optional[str] = None,
                     prize_name: str = "Console") -> Raffle:
        raffle = Raffle(
            prize_name=prize_name,
            total_tickets=total_tickets,
            ticket_price=ticket_price,
            status=status,
            draw_method=draw_method,
            completion_threshold_ratio=completion_threshold_ratio,
            top_buyer_prize_count=len(top_buyer_prize_map or {}),
            top_buyer_prize_map=top_buyer_prize_map or {},
            channel_id=channel_id,
            message_id=message_id
        )
        async with self.session_factory() as session:
            async with session.begin():
                session.add(raffle)
        return raffle

    async def purchase(self, raffle_id: int, buyer_id: str, quantity: int,
                       referrer_id: Optional[str] = None,
                       status: str = PurchaseStatus.PENDING,
                       reservation_channel_id: Optional[str] = None,
                       reservation_message_id: Optional[str] = None) -> Purchase:
        purchase = Purchase(
            raffle_id=raffle_id,
            buyer_id=buyer_id,
            referrer_id=referrer_id,
            quantity=quantity,
            status=status,
            reservation_channel_id=reservation_channel_id,
            reservation_message_id=reservation_message_id
        )
        async with self.session_factory() as session:
            async with session.begin():
                session.add(purchase)
        return purchase

    async def tickets(self, raffle_id: int, buyer_id: str, numbers: Iterable[str],
                      is_free: bool = False) -> Purchase:
        """An approved purchase holding exactly `numbers`."""
        numbers = list(numbers)
        async with self.session_factory() as session:
            async with session.begin():
                purchase = Purchase(
                    raffle_id=raffle_id,
                    buyer_id=buyer_id,
                    quantity=len(numbers),
                    status=PurchaseStatus.APPROVED,
                    is_referral_bonus=is_free
                )
                session.add(purchase)
                await session.flush()
                session.add_all([
                    Ticket(purchase_id=purchase.id, raffle_id=raffle_id, ticket_number=n, is_free=is_free)
                    for n in numbers
                ])
        return purchase

    async def prize(self, raffle_id: int, ticket_number: str, description: str = "Gift card") -> InstantPrize:
        prize = InstantPrize(raffle_id=raffle_id, ticket_number=ticket_number, description=description)
        async with self.session_factory() as session:
            async with session.begin():
                session.add(prize)
        return prize

    async def get(self, model, pk):
        async with self.session_factory() as session:
            return await session.get(model, pk)

    async def count(self, model, *criteria) -> int:
        async with self.session_factory() as session:
            return await session.scalar(select(func.count()).select_from(model).where(*criteria))

    async def ticket_numbers(self, purchase_id: int) -> set:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Ticket.ticket_number).where(Ticket.purchase_id == purchase_id)
            )
            return set(result.scalars().all())

@pytest.fixture
async def database(tmp_path):
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await db.create_all()
    yield db
    await db.close()

@pytest.fixture
def session_factory(database):
    return database.session

@pytest.fixture
def factory(session_factory):
    return Factory(session_factory)

@pytest.fixture
def notifier():
    return RecordingNotifier()

@pytest.fixture
def notifications(notifier):
    return NotificationService(notifier)

@pytest.fixture
def rng():
    return random.Random(20240101)

@pytest.fixture
def raffle_locks():
    return RaffleLocks(max_wait=2.0)

@pytest.fixture
def approval_service(session_factory, notifications, raffle_locks, rng):
    return PurchaseApprovalService(
        session_factory,
        notifications=notifications,
        referral_engine=ReferralBonusEngine(min_purchase_value=10.0, bonus_cap=5, rng=rng),
        locks=raffle_locks,
        timeout=10.0,
        rng=rng
    )

@pytest.fixture
def draw_service(session_factory, notifications, raffle_locks, rng):
    return DrawService(session_factory, notifications=notifications, locks=raffle_locks, rng=rng)

@pytest.fixture
def lifecycle_service(session_factory, notifications, raffle_locks):
    return RaffleLifecycleService(session_factory, notifications=notifications, locks=raffle_locks)

@pytest.fixture
def payment_generator():
    return PixPaymentCodeGenerator("raffles@example.com", "Raffle Bot", "Sao Paulo")

@pytest.fixture
def raffle_service(session_factory, notifications, payment_generator, rng):
    return RaffleService(
        session_factory,
        payment_generator=payment_generator,
        notifications=notifications,
        rng=rng
    )

@pytest.fixture
def user_service(session_factory):
    return UserService(session_factory)