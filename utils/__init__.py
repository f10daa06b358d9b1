"""Utility functions and helpers."""
from .decorators import is_admin
from .exceptions import (
    BotError,
    DatabaseError,
    RaffleError,
    NotFoundError,
    RaffleNotFoundError,
    PurchaseNotFoundError,
    UserNotRegisteredError,
    ReferralCodeNotFoundError,
    InvalidStateError,
    CapacityExceededError,
    InvalidInputError,
    InvalidAmountError,
    InvalidDrawNumberError,
    ConcurrencyConflictError,
    NoTicketsSoldError
)

__all__ = [
    'is_admin',
    'BotError',
    'DatabaseError',
    'RaffleError',
    'NotFoundError',
    'RaffleNotFoundError',
    'PurchaseNotFoundError',
    'UserNotRegisteredError',
    'ReferralCodeNotFoundError',
    'InvalidStateError',
    'CapacityExceededError',
    'InvalidInputError',
    'InvalidAmountError',
    'InvalidDrawNumberError',
    'ConcurrencyConflictError',
    'NoTicketsSoldError'
]
