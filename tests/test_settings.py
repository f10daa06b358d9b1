import logging

from config.settings import BotConfig, load_config
from utils.logging import setup_logger

def test_defaults():
    config = BotConfig()

    assert config.database.isolation_level == "SERIALIZABLE"
    assert config.database.transaction_max_wait_seconds == 5.0
    assert config.raffle.referral_min_purchase_value == 10.0
    assert config.raffle.referral_bonus_cap == 5
    assert config.raffle.lottery_draw_weekdays == [2, 5]
    assert config.raffle.lottery_utc_offset_hours == -3

def test_load_config_reads_environment(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///other.db")
    monkeypatch.setenv("TRANSACTION_MAX_WAIT", "1.5")
    monkeypatch.setenv("REFERRAL_BONUS_CAP", "3")
    monkeypatch.setenv("LOTTERY_DRAW_WEEKDAYS", "1, 4")
    monkeypatch.setenv("PIX_KEY", "raffles@example.com")
    monkeypatch.setenv("LOG_CHANNEL_ID", "555")

    config = load_config()

    assert config.database.url == "sqlite+aiosqlite:///other.db"
    assert config.database.transaction_max_wait_seconds == 1.5
    assert config.raffle.referral_bonus_cap == 3
    assert config.raffle.lottery_draw_weekdays == [1, 4]
    assert config.raffle.log_channel_id == "555"
    assert config.payment.pix_key == "raffles@example.com"

def test_logger_appends_raffle_context(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    logger = setup_logger("tests.raffle_logger", "test.log")

    logger.info("Purchase approved", extra={'raffle_id': 3, 'purchase_id': 9})
    for handler in logger.handlers:
        handler.close()

    content = (tmp_path / "logs" / "test.log").read_text(encoding="utf-8")
    assert "Purchase approved [raffle:3] [purchase:9]" in content
    assert "[user:" not in content
    assert logger.level == logging.INFO
