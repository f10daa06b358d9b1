import pytest

from config.settings import PaymentConfig
from services.payment_service import (
    MANUAL_PAYMENT_FALLBACK,
    PaymentCodeGenerator,
    PixPaymentCodeGenerator,
    crc16_ccitt,
)

def test_crc16_ccitt_check_value():
    assert crc16_ccitt("123456789") == "29B1"

def test_crc16_is_four_uppercase_hex_digits():
    assert crc16_ccitt("") == "FFFF"

def test_pix_code_layout():
    generator = PixPaymentCodeGenerator("raffles@example.com", "José da Silva", "São Paulo")

    code = generator.generate(10.0, "42")

    assert code.startswith("000201")
    assert "0014br.gov.bcb.pix0119raffles@example.com" in code
    assert "5303986" in code
    assert "540510.00" in code
    assert "5802BR" in code
    assert "5913JOSE DA SILVA" in code
    assert "6009SAO PAULO" in code
    assert "6206050242" in code
    assert code[-8:-4] == "6304"
    assert code[-4:] == crc16_ccitt(code[:-4])

def test_pix_txid_is_alphanumeric_and_bounded():
    generator = PixPaymentCodeGenerator("key", "Bot", "City")

    code = generator.generate(1.5, "purchase-" + "9" * 40)

    assert "62290525purchase" + "9" * 17 in code

def test_merchant_fields_are_truncated():
    generator = PixPaymentCodeGenerator("key", "A" * 40, "B" * 40)

    code = generator.generate(1.0, "1")

    assert "5925" + "A" * 25 in code
    assert "6015" + "B" * 15 in code

@pytest.mark.parametrize("pix_key, amount", [(None, 10.0), ("key", 0), ("key", -5)])
def test_invalid_requests_fall_back_to_manual_payment(pix_key, amount):
    generator = PixPaymentCodeGenerator(pix_key, "Bot", "City")

    with pytest.raises(ValueError):
        generator.generate(amount, "1")
    assert generator.generate_or_fallback(amount, "1") == MANUAL_PAYMENT_FALLBACK

def test_generator_from_config():
    generator = PixPaymentCodeGenerator.from_config(PaymentConfig(pix_key="key"))

    assert generator.pix_key == "key"
    assert generator.merchant_name == "RAFFLE BOT"

def test_custom_generator_failures_are_absorbed():
    class Broken(PaymentCodeGenerator):
        def generate(self, amount, reference):
            raise RuntimeError("provider offline")

    assert Broken().generate_or_fallback(5.0, "7") == MANUAL_PAYMENT_FALLBACK
