"""Configuration management for the raffle bot."""
from typing import List, Optional
import os
from pydantic import BaseModel, Field
from dotenv import load_dotenv

class DatabaseConfig(BaseModel):
    """Database configuration settings."""
    url: str = Field(
        default="sqlite+aiosqlite:///raffles.db",
        description="Database connection URL"
    )
    isolation_level: str = Field(
        default="SERIALIZABLE",
        description="Transaction isolation level used by the engine"
    )
    transaction_max_wait_seconds: float = Field(
        default=5.0,
        description="How long an approval waits for a busy raffle before failing"
    )
    transaction_timeout_seconds: float = Field(
        default=10.0,
        description="Upper bound for a single approval transaction"
    )

class LoggingConfig(BaseModel):
    """Logging configuration settings."""
    level: str = Field(
        default="INFO",
        description="Logging level"
    )
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log message format"
    )

class WebConfig(BaseModel):
    """Web server configuration settings."""
    host: str = Field(
        default="0.0.0.0",
        description="Web server host"
    )
    port: int = Field(
        default=8080,
        description="Web server port"
    )
    enabled: bool = Field(
        default=True,
        description="Whether to enable the web server"
    )

class RaffleConfig(BaseModel):
    """Raffle business rules."""
    referral_min_purchase_value: float = Field(
        default=10.0,
        description="Minimum purchase value that earns the referrer a bonus ticket"
    )
    referral_bonus_cap: int = Field(
        default=5,
        description="Maximum free tickets a referrer can hold per raffle"
    )
    max_instant_prizes_per_line: int = Field(
        default=50,
        description="Maximum instant-prize tickets per prize line"
    )
    lottery_check_interval_hours: float = Field(
        default=24.0,
        description="Interval between lottery threshold checks"
    )
    lottery_draw_weekdays: List[int] = Field(
        default_factory=lambda: [2, 5],
        description="Weekdays (Monday=0) on which the external lottery is drawn"
    )
    lottery_utc_offset_hours: int = Field(
        default=-3,
        description="UTC offset of the external lottery's calendar"
    )
    log_channel_id: Optional[str] = Field(
        default=None,
        description="Channel that receives new purchases for approval"
    )
    registered_role_id: Optional[str] = Field(
        default=None,
        description="Role granted to members after registration"
    )

class PaymentConfig(BaseModel):
    """PIX payment settings."""
    pix_key: Optional[str] = Field(
        default=None,
        description="PIX key that receives payments"
    )
    merchant_name: str = Field(
        default="RAFFLE BOT",
        description="Receiver name shown by the bank app"
    )
    merchant_city: str = Field(
        default="SAO PAULO",
        description="Receiver city shown by the bank app"
    )

class BotConfig(BaseModel):
    """Main bot configuration."""
    token: Optional[str] = Field(
        default=None,
        description="Discord bot token"
    )
    database: DatabaseConfig = Field(
        default_factory=DatabaseConfig,
        description="Database settings"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging settings"
    )
    web: WebConfig = Field(
        default_factory=WebConfig,
        description="Web server settings"
    )
    raffle: RaffleConfig = Field(
        default_factory=RaffleConfig,
        description="Raffle settings"
    )
    payment: PaymentConfig = Field(
        default_factory=PaymentConfig,
        description="Payment settings"
    )
    command_prefix: str = Field(
        default="!",
        description="Command prefix for text commands"
    )
    guild_id: Optional[str] = Field(
        default=None,
        description="Main guild ID for slash command registration"
    )

def _weekdays(raw: Optional[str]) -> List[int]:
    if not raw:
        return [2, 5]
    return [int(day) for day in raw.split(",") if day.strip()]

def load_config() -> BotConfig:
    """Load configuration from environment variables."""
    # Load environment variables from .env file
    load_dotenv()

    return BotConfig(
        token=os.getenv("TOKEN"),
        database=DatabaseConfig(
            url=os.getenv("DATABASE_URL", "sqlite+aiosqlite:///raffles.db"),
            isolation_level=os.getenv("DATABASE_ISOLATION_LEVEL", "SERIALIZABLE"),
            transaction_max_wait_seconds=float(os.getenv("TRANSACTION_MAX_WAIT", "5")),
            transaction_timeout_seconds=float(os.getenv("TRANSACTION_TIMEOUT", "10"))
        ),
        logging=LoggingConfig(
            level=os.getenv("LOG_LEVEL", "INFO"),
            format=os.getenv("LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        ),
        web=WebConfig(
            host=os.getenv("WEB_HOST", "0.0.0.0"),
            port=int(os.getenv("WEB_PORT", "8080")),
            enabled=os.getenv("WEB_ENABLED", "true").lower() == "true"
        ),
        raffle=RaffleConfig(
            referral_min_purchase_value=float(os.getenv("REFERRAL_MIN_PURCHASE_VALUE", "10")),
            referral_bonus_cap=int(os.getenv("REFERRAL_BONUS_CAP", "5")),
            max_instant_prizes_per_line=int(os.getenv("MAX_INSTANT_PRIZES_PER_LINE", "50")),
            lottery_check_interval_hours=float(os.getenv("LOTTERY_CHECK_INTERVAL_HOURS", "24")),
            lottery_draw_weekdays=_weekdays(os.getenv("LOTTERY_DRAW_WEEKDAYS")),
            lottery_utc_offset_hours=int(os.getenv("LOTTERY_UTC_OFFSET_HOURS", "-3")),
            log_channel_id=os.getenv("LOG_CHANNEL_ID"),
            registered_role_id=os.getenv("REGISTERED_ROLE_ID")
        ),
        payment=PaymentConfig(
            pix_key=os.getenv("PIX_KEY"),
            merchant_name=os.getenv("PIX_MERCHANT_NAME", "RAFFLE BOT"),
            merchant_city=os.getenv("PIX_MERCHANT_CITY", "SAO PAULO")
        ),
        command_prefix=os.getenv("COMMAND_PREFIX", "!"),
        guild_id=os.getenv("GUILD_ID")
    )
