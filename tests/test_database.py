import asyncio

import pytest

from database.database import Database
from database.models import Raffle
from utils.exceptions import DatabaseError

async def test_unreachable_database_raises_database_error(tmp_path):
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'bot.db'}")

    with pytest.raises(DatabaseError):
        await db.create_all()

    await db.close()

async def test_reading_transaction_holds_off_other_writers(database, factory):
    raffle = await factory.raffle(prize_name="Bike")
    order = []

    async def rename():
        async with database.session() as session:
            async with session.begin():
                stored = await session.get(Raffle, raffle.id)
                stored.prize_name = "Car"
        order.append("writer")

    async with database.session() as session:
        async with session.begin():
            assert (await session.get(Raffle, raffle.id)).prize_name == "Bike"
            writer = asyncio.ensure_future(rename())
            await asyncio.sleep(0.1)
            assert (await session.get(Raffle, raffle.id, populate_existing=True)).prize_name == "Bike"
            order.append("reader")

    await writer
    assert order == ["reader", "writer"]
    assert (await factory.get(Raffle, raffle.id)).prize_name == "Car"
