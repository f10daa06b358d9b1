"""SQLAlchemy models for the database."""
from datetime import datetime, timezone
from typing import Dict, List, Optional
from sqlalchemy import ForeignKey, JSON, String, Integer, Float, Boolean, UniqueConstraint
from sqlalchemy.orm import relationship, Mapped, mapped_column
from .database import Base

def utc_now() -> datetime:
    """Helper function to get current UTC datetime."""
    return datetime.now(timezone.utc)

def ensure_utc(dt: datetime) -> datetime:
    """Helper function to ensure datetime is UTC timezone-aware."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)

class RaffleStatus:
    ACTIVE = "active"
    AWAITING_DRAW = "awaiting_draw"
    FINALIZED = "finalized"
    CANCELLED = "cancelled"

    OPEN_FOR_SALES = (ACTIVE, AWAITING_DRAW)
    TERMINAL = (FINALIZED, CANCELLED)

class DrawMethod:
    INTERNAL = "internal"
    EXTERNAL_LOTTERY = "external_lottery"

class PurchaseStatus:
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

class PrizeStatus:
    PENDING = "pending"
    CLAIMED = "claimed"

class User(Base):
    """Registered Discord member allowed to buy tickets."""
    __tablename__ = "users"

    discord_id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    referral_code: Mapped[Optional[str]] = mapped_column(String, unique=True, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utc_now)

class Raffle(Base):
    """A pool of sequentially numbered tickets competing for one prize."""
    __tablename__ = "raffles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    prize_name: Mapped[str] = mapped_column(String, nullable=False)
    total_tickets: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String, default=RaffleStatus.ACTIVE, nullable=False)
    draw_method: Mapped[str] = mapped_column(String, default=DrawMethod.INTERNAL, nullable=False)
    completion_threshold_ratio: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    ticket_price: Mapped[float] = mapped_column(Float, nullable=False)
    draw_date: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    top_buyer_prize_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    top_buyer_prize_map: Mapped[Dict] = mapped_column(JSON, default=dict, nullable=False)
    channel_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    message_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    cancel_reason: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    winner_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    winning_number: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    finalized_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utc_now)

    purchases: Mapped[List["Purchase"]] = relationship(
        back_populates="raffle",
        cascade="all, delete-orphan",
        passive_deletes=True
    )
    instant_prizes: Mapped[List["InstantPrize"]] = relationship(
        back_populates="raffle",
        cascade="all, delete-orphan",
        passive_deletes=True
    )

    @property
    def padding(self) -> int:
        """Digit width of this raffle's ticket numbers."""
        return len(str(self.total_tickets - 1))

class Purchase(Base):
    """A buyer's request for tickets, approved or rejected by an admin."""
    __tablename__ = "purchases"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    raffle_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("raffles.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    buyer_id: Mapped[str] = mapped_column(ForeignKey("users.discord_id"), nullable=False)
    referrer_id: Mapped[Optional[str]] = mapped_column(ForeignKey("users.discord_id"), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String, default=PurchaseStatus.PENDING, nullable=False)
    is_referral_bonus: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    reservation_channel_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    reservation_message_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utc_now)

    raffle: Mapped["Raffle"] = relationship(back_populates="purchases")
    tickets: Mapped[List["Ticket"]] = relationship(
        back_populates="purchase",
        cascade="all, delete-orphan",
        passive_deletes=True
    )

class Ticket(Base):
    """One allocated ticket number owned by an approved purchase."""
    __tablename__ = "tickets"
    __table_args__ = (
        UniqueConstraint("raffle_id", "ticket_number", name="uq_ticket_raffle_number"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    purchase_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("purchases.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    # Denormalized from the purchase so the database enforces number uniqueness per raffle
    raffle_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("raffles.id", ondelete="CASCADE"),
        nullable=False
    )
    ticket_number: Mapped[str] = mapped_column(String, nullable=False)
    is_free: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    purchase: Mapped["Purchase"] = relationship(back_populates="tickets")

class InstantPrize(Base):
    """Secret ticket number that awards a prize to whoever is allocated it."""
    __tablename__ = "instant_prizes"
    __table_args__ = (
        UniqueConstraint("raffle_id", "ticket_number", name="uq_instant_prize_raffle_number"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    raffle_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("raffles.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    ticket_number: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, default=PrizeStatus.PENDING, nullable=False)
    winner_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    raffle: Mapped["Raffle"] = relationship(back_populates="instant_prizes")
