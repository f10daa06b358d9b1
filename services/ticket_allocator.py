"""Random allocation of ticket numbers from a raffle's numbering space."""
import random
from typing import Iterable, List, Optional, Set

from utils.exceptions import CapacityExceededError, InvalidAmountError

def ticket_padding(total_tickets: int) -> int:
    """Digit width used to render ticket numbers of a raffle with `total_tickets` slots."""
    if total_tickets <= 0:
        raise InvalidAmountError(total_tickets)
    return len(str(total_tickets - 1))

def format_ticket_number(number: int, padding: int) -> str:
    """Render a slot index as a zero-padded ticket number."""
    return str(number).zfill(padding)

def available_ticket_numbers(
    total_tickets: int,
    excluded: Iterable[str],
    padding: Optional[int] = None
) -> List[str]:
    """List every ticket number of the raffle that is not in `excluded`, in slot order."""
    if padding is None:
        padding = ticket_padding(total_tickets)
    excluded = set(excluded)
    return [
        number
        for number in (format_ticket_number(i, padding) for i in range(total_tickets))
        if number not in excluded
    ]

def allocate_tickets(
    total_tickets: int,
    sold: Set[str],
    padding: int,
    quantity: int,
    rng: Optional[random.Random] = None,
    raffle_id: Optional[int] = None
) -> List[str]:
    """Pick `quantity` distinct unsold ticket numbers uniformly at random.

    The whole free pool is shuffled (Fisher-Yates, via ``Random.shuffle``) so
    low numbers are not favoured. Cost is O(total_tickets), which is fine for
    raffles of a few thousand tickets.

    Raises:
        InvalidAmountError: If quantity is not positive
        CapacityExceededError: If fewer than `quantity` tickets remain unsold
    """
    if quantity <= 0:
        raise InvalidAmountError(quantity)
    if len(sold) + quantity > total_tickets:
        raise CapacityExceededError(raffle_id, quantity, max(total_tickets - len(sold), 0))

    pool = available_ticket_numbers(total_tickets, sold, padding)
    if len(pool) < quantity:
        # sold may contain numbers outside the raffle's space
        raise CapacityExceededError(raffle_id, quantity, len(pool))

    (rng or random.SystemRandom()).shuffle(pool)
    return pool[:quantity]
