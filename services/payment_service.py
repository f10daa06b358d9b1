"""Payment code generation for ticket reservations."""
import logging
import re
import unicodedata
from abc import ABC, abstractmethod
from typing import Optional

MANUAL_PAYMENT_FALLBACK = "Could not generate the payment code. Please pay using the manual PIX key."

class PaymentCodeGenerator(ABC):
    """Abstract interface for payment code providers."""

    @abstractmethod
    def generate(self, amount: float, reference: str) -> str:
        """Return an opaque payment string for `amount`, tagged with `reference`."""
        pass

    def generate_or_fallback(self, amount: float, reference: str) -> str:
        """Generate a code, degrading to manual payment instructions on failure."""
        try:
            return self.generate(amount, reference)
        except Exception as e:
            logging.getLogger(__name__).error(f"Error generating payment code for {reference}: {e}")
            return MANUAL_PAYMENT_FALLBACK

def crc16_ccitt(payload: str) -> str:
    """CRC-16/CCITT-FALSE of the payload as four uppercase hex digits."""
    crc = 0xFFFF
    for byte in payload.encode("utf-8"):
        crc ^= byte << 8
        for _ in range(8):
            if crc & 0x8000:
                crc = ((crc << 1) ^ 0x1021) & 0xFFFF
            else:
                crc = (crc << 1) & 0xFFFF
    return f"{crc:04X}"

def _emv(field_id: str, value: str) -> str:
    if len(value) > 99:
        raise ValueError(f"EMV field {field_id} too long ({len(value)} chars)")
    return f"{field_id}{len(value):02d}{value}"

def _ascii(value: str, max_length: int) -> str:
    normalized = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    return normalized.upper()[:max_length]

class PixPaymentCodeGenerator(PaymentCodeGenerator):
    """Static PIX "copia e cola" BR Code."""

    def __init__(self, pix_key: Optional[str], merchant_name: str, merchant_city: str):
        self.pix_key = pix_key
        self.merchant_name = merchant_name
        self.merchant_city = merchant_city

    @classmethod
    def from_config(cls, payment_config):
        """Create a generator from the bot's payment settings."""
        return cls(
            pix_key=payment_config.pix_key,
            merchant_name=payment_config.merchant_name,
            merchant_city=payment_config.merchant_city
        )

    def generate(self, amount: float, reference: str) -> str:
        if not self.pix_key:
            raise ValueError("PIX key is not configured")
        if amount <= 0:
            raise ValueError(f"Invalid payment amount: {amount}")

        txid = re.sub(r"[^a-zA-Z0-9]", "", str(reference))[:25] or "***"
        account = _emv("00", "br.gov.bcb.pix") + _emv("01", self.pix_key)

        payload = (
            _emv("00", "01")
            + _emv("26", account)
            + _emv("52", "0000")
            + _emv("53", "986")
            + _emv("54", f"{amount:.2f}")
            + _emv("58", "BR")
            + _emv("59", _ascii(self.merchant_name, 25))
            + _emv("60", _ascii(self.merchant_city, 15))
            + _emv("62", _emv("05", txid))
            + "6304"
        )
        return payload + crc16_ccitt(payload)
